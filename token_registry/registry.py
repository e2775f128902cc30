"""Token metadata lookup backed by memory or a token list file."""

from pathlib import Path
from typing import Dict, Iterable, Optional, Protocol, Tuple
import json
import logging

from capsule_engine.models import NATIVE_TOKEN, Token


logger = logging.getLogger(__name__)

ETH_TOKEN = Token(
    address=NATIVE_TOKEN,
    symbol="ETH",
    decimals=18,
    logo_uri="https://assets.coingecko.com/coins/images/279/thumb/ethereum.png?1595348880",
    name="Ether",
)


class RegistryError(ValueError):
    """Raised when a token list cannot be read."""


class TokenRegistry(Protocol):
    def lookup(self, address: str) -> Optional[Token]:
        ...


class StaticTokenRegistry:
    """In-memory registry that always knows the native asset."""

    def __init__(self, tokens: Iterable[Token] = ()) -> None:
        self._tokens: Dict[str, Token] = {ETH_TOKEN.address.lower(): ETH_TOKEN}
        for token in tokens:
            self._tokens[token.address.lower()] = token

    def lookup(self, address: str) -> Optional[Token]:
        return self._tokens.get(address.lower())

    def tokens(self) -> Tuple[Token, ...]:
        return tuple(self._tokens.values())


class FileTokenRegistry:
    """Reads a Uniswap-style token list (``{"tokens": [...]}``) from disk."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._cache: Optional[StaticTokenRegistry] = None

    def lookup(self, address: str) -> Optional[Token]:
        return self._load().lookup(address)

    def tokens(self) -> Tuple[Token, ...]:
        return self._load().tokens()

    def _load(self) -> StaticTokenRegistry:
        if self._cache is None:
            self._cache = StaticTokenRegistry(self._read_all())
            logger.debug("Loaded %d token(s) from %s", len(self._cache.tokens()), self._path)
        return self._cache

    def _read_all(self) -> Tuple[Token, ...]:
        if not self._path.exists():
            raise RegistryError(f"Token list not found: {self._path}")
        try:
            data = json.loads(self._path.read_text())
        except json.JSONDecodeError as exc:
            raise RegistryError(f"Token list is not valid JSON: {self._path}") from exc
        entries = data.get("tokens", []) if isinstance(data, dict) else data
        try:
            return tuple(_token_from_dict(entry) for entry in entries)
        except (KeyError, TypeError, ValueError) as exc:
            raise RegistryError(f"Malformed token entry in {self._path}: {exc}") from exc


def _token_from_dict(data: Dict[str, object]) -> Token:
    return Token(
        address=str(data["address"]),
        symbol=str(data["symbol"]),
        decimals=int(data["decimals"]),
        logo_uri=str(data.get("logoURI", "")),
        name=str(data.get("name", "")),
    )


def token_to_dict(token: Token) -> Dict[str, object]:
    return {
        "address": token.address,
        "symbol": token.symbol,
        "decimals": token.decimals,
        "logoURI": token.logo_uri,
        "name": token.name,
    }
