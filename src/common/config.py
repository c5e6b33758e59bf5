from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Dict, Iterable, Optional

from .placeholder import DEFAULT_FETCH_LIMIT, DEFAULT_SERVER_URL


# Environment variable names
ENV_STATE_FILE = "QUOTES_STATE_FILE"
ENV_SESSION_FILE = "QUOTES_SESSION_FILE"
ENV_SERVER_URL = "QUOTES_SERVER_URL"
ENV_SYNC_INTERVAL = "QUOTES_SYNC_INTERVAL"
ENV_FETCH_LIMIT = "QUOTES_FETCH_LIMIT"
ENV_STATE_BUCKET = "QUOTES_STATE_BUCKET"
ENV_STATE_KEY = "QUOTES_STATE_KEY"
ENV_FERNET_KEY = "QUOTES_FERNET_KEY"
ENV_PARAM_PREFIX = "PARAM_PREFIX"

DEFAULT_SYNC_INTERVAL = 30.0


def _getenv(name: str, default: Optional[str] = None) -> Optional[str]:
    val = os.environ.get(name)
    return val if val not in (None, "") else default


def _require(v: Optional[str], what: str) -> str:
    if not v:
        raise RuntimeError(f"Missing required configuration: {what}")
    return v


def _getenv_number(name: str, default: float, *, minimum: float) -> float:
    raw = _getenv(name)
    if raw is None:
        return default
    try:
        val = float(raw)
    except ValueError as exc:
        raise RuntimeError(f"Invalid numeric configuration {name}={raw!r}") from exc
    if val < minimum:
        raise RuntimeError(f"Configuration {name} must be >= {minimum:g}, got {raw!r}")
    return val


def load_ssm_params(prefix: str, names: Iterable[str]) -> Dict[str, Optional[str]]:
    import boto3
    from botocore.exceptions import ClientError

    ssm = boto3.client("ssm")
    out: Dict[str, Optional[str]] = {k: None for k in names}
    for name in out:
        full = f"{prefix}{name}"
        try:
            resp = ssm.get_parameter(Name=full, WithDecryption=True)
        except ClientError as e:
            # Leave as None if parameter missing or access denied
            code = e.response.get("Error", {}).get("Code")
            if code in ("ParameterNotFound", "AccessDeniedException"):
                continue
            raise
        val = resp.get("Parameter", {}).get("Value")
        out[name] = val if isinstance(val, str) and val != "" else None
    return out


@dataclass(frozen=True)
class Settings:
    """Runtime configuration, resolved from the environment and CLI overrides."""

    state_file: Optional[Path] = None
    session_file: Optional[Path] = None
    server_url: str = DEFAULT_SERVER_URL
    sync_interval: float = DEFAULT_SYNC_INTERVAL
    fetch_limit: int = DEFAULT_FETCH_LIMIT
    state_bucket: Optional[str] = None
    state_key: str = "quotes.json"
    fernet_key: Optional[str] = None
    param_prefix: Optional[str] = None

    @property
    def uses_s3(self) -> bool:
        return bool(self.state_bucket)

    @classmethod
    def from_env(cls) -> "Settings":
        state_file = _getenv(ENV_STATE_FILE)
        session_file = _getenv(ENV_SESSION_FILE)
        return cls(
            state_file=Path(state_file) if state_file else None,
            session_file=Path(session_file) if session_file else None,
            server_url=_getenv(ENV_SERVER_URL, DEFAULT_SERVER_URL) or DEFAULT_SERVER_URL,
            sync_interval=_getenv_number(ENV_SYNC_INTERVAL, DEFAULT_SYNC_INTERVAL, minimum=1.0),
            fetch_limit=int(_getenv_number(ENV_FETCH_LIMIT, DEFAULT_FETCH_LIMIT, minimum=0)),
            state_bucket=_getenv(ENV_STATE_BUCKET),
            state_key=_getenv(ENV_STATE_KEY, "quotes.json") or "quotes.json",
            fernet_key=_getenv(ENV_FERNET_KEY),
            param_prefix=_getenv(ENV_PARAM_PREFIX),
        )

    def with_overrides(self, **overrides: object) -> "Settings":
        """Copy with every non-None override applied."""
        values = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **values)

    def resolve_fernet_key(self) -> str:
        """Fernet key from the environment, else from SSM under `param_prefix`."""
        if self.fernet_key:
            return self.fernet_key
        prefix = _require(self.param_prefix, f"{ENV_FERNET_KEY} or {ENV_PARAM_PREFIX}")
        params = load_ssm_params(prefix, ["fernet_key"])
        return _require(params.get("fernet_key"), f"{prefix}fernet_key")
