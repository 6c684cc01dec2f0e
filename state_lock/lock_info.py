"""
Lock and state records exchanged with the backend
"""

import getpass
import json
import socket
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from . import __version__


def _who() -> str:
    try:
        user = getpass.getuser()
    except (KeyError, OSError):
        user = "unknown"
    return f"{user}@{socket.gethostname()}"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass
class LockInfo:
    """
    Description of a lock holder, stored as JSON in the lock record's Info attribute

    Field names on the wire match the ones the Terraform S3 backend writes, so
    a lock taken by either client is readable by the other.
    """

    path: str
    operation: str = ""
    info: str = ""
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    who: str = field(default_factory=_who)
    version: str = __version__
    created: str = field(default_factory=_now)

    def to_dict(self) -> dict:
        return {
            "ID": self.id,
            "Operation": self.operation,
            "Info": self.info,
            "Who": self.who,
            "Version": self.version,
            "Created": self.created,
            "Path": self.path,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"))

    @classmethod
    def from_json(cls, raw: str) -> "LockInfo":
        data = json.loads(raw)
        return cls(
            id=data.get("ID", ""),
            operation=data.get("Operation", ""),
            info=data.get("Info", ""),
            who=data.get("Who", ""),
            version=data.get("Version", ""),
            created=data.get("Created", ""),
            path=data.get("Path", ""),
        )

    def describe(self) -> str:
        """Operator-facing summary of the holder"""
        return "\n".join([
            "Lock Info:",
            f"  ID:        {self.id}",
            f"  Path:      {self.path}",
            f"  Operation: {self.operation}",
            f"  Who:       {self.who}",
            f"  Version:   {self.version}",
            f"  Created:   {self.created}",
            f"  Info:      {self.info}",
        ])


@dataclass(frozen=True)
class LockToken:
    """Proof of lock possession: the record key and the holder's lock info ID"""

    lock_id: str
    id: str


@dataclass(frozen=True)
class StatePayload:
    data: bytes
    md5: str
    version_id: Optional[str] = None


@dataclass(frozen=True)
class StateVersion:
    version_id: str
    is_latest: bool
    last_modified: datetime
    size: int
