"""
Backend pointer: where the state object and its lock records live
"""

import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

# Environment variable names
ENV_BUCKET = "TFSTATE_BUCKET"
ENV_KEY = "TFSTATE_KEY"
ENV_REGION = "TFSTATE_REGION"
ENV_LOCK_TABLE = "TFSTATE_LOCK_TABLE"
ENV_ENCRYPT = "TFSTATE_ENCRYPT"

DEFAULT_WORKSPACE = "default"


def _as_bool(value: Any, default: bool = True) -> bool:
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class BackendSettings:
    bucket: str
    key: str
    dynamodb_table: str
    region: Optional[str] = None
    encrypt: bool = True
    workspace_key_prefix: str = "env:"

    @classmethod
    def from_env(cls) -> "BackendSettings":
        values = {
            ENV_BUCKET: os.environ.get(ENV_BUCKET),
            ENV_KEY: os.environ.get(ENV_KEY),
            ENV_LOCK_TABLE: os.environ.get(ENV_LOCK_TABLE),
        }
        missing = [name for name, val in values.items() if not val]
        if missing:
            raise RuntimeError(
                f"Missing required environment variables for the state backend: {', '.join(missing)}"
            )
        return cls(
            bucket=values[ENV_BUCKET],
            key=values[ENV_KEY],
            dynamodb_table=values[ENV_LOCK_TABLE],
            region=os.environ.get(ENV_REGION) or None,
            encrypt=_as_bool(os.environ.get(ENV_ENCRYPT)),
        )

    @classmethod
    def from_backend_config(cls, backend_config: Dict[str, Any]) -> "BackendSettings":
        """Build settings from the backend_config exported by the provisioning stack"""
        missing = [name for name in ("bucket", "key", "dynamodb_table") if not backend_config.get(name)]
        if missing:
            raise ValueError(f"backend_config is missing: {', '.join(missing)}")
        return cls(
            bucket=backend_config["bucket"],
            key=backend_config["key"],
            dynamodb_table=backend_config["dynamodb_table"],
            region=backend_config.get("region"),
            encrypt=_as_bool(backend_config.get("encrypt")),
            workspace_key_prefix=backend_config.get("workspace_key_prefix") or "env:",
        )

    def state_key_for(self, workspace: str = DEFAULT_WORKSPACE) -> str:
        if workspace == DEFAULT_WORKSPACE:
            return self.key
        return f"{self.workspace_key_prefix}/{workspace}/{self.key}"

    def state_path(self, workspace: str = DEFAULT_WORKSPACE) -> str:
        return f"{self.bucket}/{self.state_key_for(workspace)}"
