"""Environment-driven configuration for greeter-rpc."""

import logging
import os
import tempfile
from pathlib import Path

DEFAULT_NAME = "GHOUMA"
DEFAULT_FIRST_NAME = "MAYEZ"
DEFAULT_CIN = "99999999"
DEFAULT_TARGET = "localhost:50051"
DEFAULT_SHUTDOWN_TIMEOUT = 5.0

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"


def is_skip_generation() -> bool:
    """Check if the proto file and code generation should be skipped."""
    return os.getenv("GREETER_RPC_SKIP_GENERATION", "false").lower() == "true"


def _get_float(var: str) -> float | None:
    raw = os.getenv(var)
    if raw is None or raw.strip() == "":
        return None
    try:
        value = float(raw)
    except ValueError as e:
        raise ValueError(f"{var} must be a number, got {raw!r}") from e
    if value < 0:
        raise ValueError(f"{var} must not be negative, got {raw!r}")
    return value


def get_shutdown_timeout() -> float:
    """Seconds to wait for a channel to finish shutting down."""
    timeout = _get_float("GREETER_RPC_SHUTDOWN_TIMEOUT")
    return DEFAULT_SHUTDOWN_TIMEOUT if timeout is None else timeout


def get_call_timeout() -> float | None:
    """Per-call deadline in seconds, or None to wait indefinitely."""
    return _get_float("GREETER_RPC_CALL_TIMEOUT")


def get_log_level() -> int:
    raw = os.getenv("GREETER_RPC_LOG_LEVEL", "INFO").upper()
    level = logging.getLevelName(raw)
    if not isinstance(level, int):
        raise ValueError(f"GREETER_RPC_LOG_LEVEL is not a log level: {raw!r}")
    return level


def configure_logging() -> None:
    """Configure root logging for the command-line entry points."""
    logging.basicConfig(level=get_log_level(), format=LOG_FORMAT)


def get_proto_path(proto_filename: str) -> Path:
    # 1. Get raw env var (or default to a shared temp dir)
    raw = os.getenv("GREETER_RPC_PROTO_PATH", None)
    base = Path(raw) if raw is not None else Path(tempfile.gettempdir()) / "greeter_rpc"

    # 2. Expand ~ and env-vars, then make absolute
    base = Path(os.path.expandvars(os.path.expanduser(str(base)))).resolve()

    # 3. Ensure it's a directory (or create it)
    if not base.exists():
        try:
            base.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise RuntimeError(f"Unable to create directory {base!r}: {e}") from e
    elif not base.is_dir():
        raise NotADirectoryError(f"{base!r} exists but is not a directory")

    # 4. Check writability
    if not os.access(base, os.W_OK):
        raise PermissionError(f"No write permission for directory {base!r}")

    # 5. Return the final file path
    return base / proto_filename
