"""
Errors raised by the remote state client
"""

from typing import Optional

from .lock_info import LockInfo


class StateBackendError(Exception):
    """Base class for remote state backend failures"""


class LockError(StateBackendError):
    """A lock operation could not be completed"""

    def __init__(self, message: str, lock_info: Optional[LockInfo] = None):
        self.lock_info = lock_info
        if lock_info is not None:
            message = f"{message}\n\n{lock_info.describe()}"
        super().__init__(message)


class AlreadyLocked(LockError):
    """Another holder owns the lock record"""

    def __init__(self, lock_id: str, lock_info: Optional[LockInfo] = None):
        self.lock_id = lock_id
        message = (
            f"Error acquiring the state lock: {lock_id} is already locked.\n"
            "The state cannot be modified until the lock is released. If the holder "
            "crashed, remove the lock with `force-unlock` and the lock ID below."
        )
        super().__init__(message, lock_info)


class NotHeld(LockError):
    """The presented token does not match the current lock holder"""

    def __init__(self, lock_id: str, expected_id: str, lock_info: Optional[LockInfo] = None):
        self.lock_id = lock_id
        self.expected_id = expected_id
        if lock_info is None:
            message = f"Error releasing the state lock: no lock held on {lock_id}"
        else:
            message = (
                f"Error releasing the state lock: lock ID {expected_id!r} does not match "
                f"existing lock on {lock_id}"
            )
        super().__init__(message, lock_info)


class StaleTokenOrConflict(StateBackendError):
    """A state write was attempted with a token that no longer holds the lock"""

    def __init__(self, message: str, lock_info: Optional[LockInfo] = None):
        self.lock_info = lock_info
        super().__init__(message)


class StateDigestMismatch(StateBackendError):
    """The stored state does not match the digest recorded in the lock table"""

    def __init__(self, path: str, expected: str, actual: str):
        self.path = path
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"State data in S3 does not have the expected content for {path}.\n"
            f"Calculated checksum: {actual}\n"
            f"Stored checksum: {expected}\n"
            "This may be caused by an update that has not yet propagated, or by a "
            "manual change to the state object. If the object was edited by hand, "
            "update the Digest value in the lock table to the calculated checksum."
        )


class StateNotFound(StateBackendError):
    """A requested state object or version does not exist"""
