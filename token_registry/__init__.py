from .registry import (
    ETH_TOKEN,
    FileTokenRegistry,
    RegistryError,
    StaticTokenRegistry,
    TokenRegistry,
    token_to_dict,
)

__all__ = [
    "ETH_TOKEN",
    "FileTokenRegistry",
    "RegistryError",
    "StaticTokenRegistry",
    "TokenRegistry",
    "token_to_dict",
]
