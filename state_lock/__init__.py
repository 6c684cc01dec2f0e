"""
Client for a Terraform remote state held in S3 and locked through DynamoDB
"""

__version__ = "0.1.0"

from .client import RemoteStateClient
from .errors import (
    AlreadyLocked,
    LockError,
    NotHeld,
    StaleTokenOrConflict,
    StateBackendError,
    StateDigestMismatch,
    StateNotFound,
)
from .lock_info import LockInfo, LockToken, StatePayload, StateVersion
from .settings import BackendSettings

__all__ = [
    "AlreadyLocked",
    "BackendSettings",
    "LockError",
    "LockInfo",
    "LockToken",
    "NotHeld",
    "RemoteStateClient",
    "StaleTokenOrConflict",
    "StateBackendError",
    "StateDigestMismatch",
    "StateNotFound",
    "StatePayload",
    "StateVersion",
]
