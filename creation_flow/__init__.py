from .flow import (
    CapsuleCreationFlow,
    CapsuleDraftState,
    CreationBlockedError,
    CreationFailedError,
    FlowPhase,
)

__all__ = [
    "CapsuleCreationFlow",
    "CapsuleDraftState",
    "CreationBlockedError",
    "CreationFailedError",
    "FlowPhase",
]
