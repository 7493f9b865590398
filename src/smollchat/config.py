"""
=============================================================================
CHAT SERVER CONFIGURATION
=============================================================================

All settings live in one dataclass, ChatConfig, filled from four layers.
Later layers win:

    ┌─────────────────────────────────────────────────────────────────────┐
    │  1. Defaults           ChatConfig()                                  │
    │  2. .env file          port=9000, room-name=Lobby, qrcode=true       │
    │  3. Environment        SMOLLCHAT_PORT=9001                           │
    │  4. CLI flags          --port 9002                                   │
    └─────────────────────────────────────────────────────────────────────┘

Layers 1 to 3 are ChatConfig.load(); the CLI (__main__.py) applies layer
4 with with_overrides().

=============================================================================
KEYS
=============================================================================

    field               .env key            environment variable
    ─────────────────   ─────────────────   ────────────────────────────
    host                host                SMOLLCHAT_HOST
    port                port                SMOLLCHAT_PORT
    qrcode              qrcode              SMOLLCHAT_QRCODE
    static_dir          static-dir          SMOLLCHAT_STATIC_DIR
    room_name           room-name           SMOLLCHAT_ROOM_NAME
    long_poll_timeout   long-poll-timeout   SMOLLCHAT_LONG_POLL_TIMEOUT
    max_workers         workers             SMOLLCHAT_WORKERS
    max_listeners       max-listeners       SMOLLCHAT_MAX_LISTENERS
    log_level           log-level           SMOLLCHAT_LOG_LEVEL

Booleans accept true/false, 1/0, yes/no, on/off. A bare "qrcode" line in
.env (no value) means true.

=============================================================================
"""

import os
import logging
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional, Union

from dotenv import dotenv_values

from .chat.registry import DeliveryPolicy


logger = logging.getLogger(__name__)


_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def parse_bool(value: Union[str, bool, None]) -> bool:
    """
    Parse a boolean setting.

        >>> parse_bool("Yes"), parse_bool("off"), parse_bool(None)
        (True, False, True)

    None counts as true: it is what a bare "qrcode" line in .env gives.

    Raises:
        ValueError: For anything else.
    """
    if value is None:
        return True
    if isinstance(value, bool):
        return value

    normalized = value.strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    raise ValueError(f"Invalid boolean value: {value!r}")


@dataclass
class ChatConfig:
    """
    Configuration for the chat server.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    NETWORK     host, port, backlog, read_size, max_request_size, timeout
    WORKERS     min_workers, max_workers, queue_size
    CHAT        room_name, static_dir, long_poll_timeout, max_listeners,
                poll_interval, delivery_policy
    STARTUP     qrcode
    LOGGING     log_level, log_format

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = "0.0.0.0"
    """Address to bind. The default listens on every interface so phones
    on the same LAN can join."""

    port: int = 8080
    """Port to listen on. 0 lets the OS pick one (tests use this)."""

    backlog: int = 128
    """Connections the OS queues before refusing new ones."""

    read_size: int = 8192
    """Upper bound on bytes read per request. The rest is never read."""

    max_request_size: int = 1024 * 1024
    """Largest buffer the parser accepts (413 beyond it)."""

    timeout: Optional[float] = 10.0
    """Socket read/write timeout. Does NOT bound long-polls, which wait
    in the registry, not on the socket."""

    # ─────────────────────────────────────────────────────────────────────
    # WORKER POOL
    # ─────────────────────────────────────────────────────────────────────

    min_workers: int = 4
    """Worker threads started up front."""

    max_workers: int = 128
    """Ceiling on worker threads. Each waiting long-poll holds one."""

    queue_size: int = 256
    """Accepted connections allowed to wait for a worker; 503 beyond."""

    # ─────────────────────────────────────────────────────────────────────
    # CHAT
    # ─────────────────────────────────────────────────────────────────────

    room_name: str = "Room"
    """Substituted into the "{{}}" marker of each page."""

    static_dir: Optional[str] = None
    """Directory with index.html, chat.html and /static/ files.
    None uses the pages bundled with the package."""

    long_poll_timeout: float = 30.0
    """Seconds a /new-message request waits before answering 204."""

    max_listeners: int = 64
    """Most long-polls allowed to wait at once; 503 beyond.
    Must stay below max_workers so other requests still get a worker."""

    poll_interval: float = 1.0
    """How often a waiting long-poll checks that its client is still there."""

    delivery_policy: DeliveryPolicy = DeliveryPolicy.FAN_OUT_ALL
    """FAN_OUT_ALL: every waiting listener gets each message."""

    # ─────────────────────────────────────────────────────────────────────
    # STARTUP
    # ─────────────────────────────────────────────────────────────────────

    qrcode: bool = False
    """Print the chat URL as a QR code in the terminal at startup."""

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    """DEBUG, INFO, WARNING, ERROR or CRITICAL."""

    log_format: str = "text"
    """Access log format: "text" or "json"."""

    server_name: str = "smollchat/1.0"
    """Shown in the startup banner."""

    # =========================================================================
    # LOADING
    # =========================================================================

    @classmethod
    def load(
        cls,
        env_file: Optional[Union[str, Path]] = ".env",
        environ: Optional[Mapping[str, str]] = None,
    ) -> "ChatConfig":
        """
        Build a config from defaults, then .env, then the environment.

        Args:
            env_file: .env path; skipped if None or missing.
            environ: Environment mapping (default: os.environ).

        Raises:
            ValueError: A value that can't be converted to its field type.
        """
        return cls().with_dotenv(env_file).with_environ(environ)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ChatConfig":
        """Defaults plus SMOLLCHAT_* environment variables only."""
        return cls().with_environ(environ)

    def with_dotenv(self, env_file: Optional[Union[str, Path]] = ".env") -> "ChatConfig":
        """
        Apply a .env file, read with python-dotenv.

        Unknown keys are ignored (with a debug log); the file may hold
        settings for other tools too.
        """
        if env_file is None:
            return self

        path = Path(env_file)
        if not path.is_file():
            return self

        values: Dict[str, Any] = {}
        for key, raw in dotenv_values(path).items():
            field_name = DOTENV_KEYS.get(key.strip().lower())
            if field_name is None:
                logger.debug(f"Ignoring unknown .env key: {key}")
                continue
            values[field_name] = _convert(field_name, raw, source=f"{path}:{key}")

        logger.debug(f"Loaded {len(values)} setting(s) from {path}")
        return replace(self, **values)

    def with_environ(self, environ: Optional[Mapping[str, str]] = None) -> "ChatConfig":
        """Apply SMOLLCHAT_* environment variables."""
        environ = os.environ if environ is None else environ

        values: Dict[str, Any] = {}
        for var, field_name in ENV_VARS.items():
            if var in environ:
                values[field_name] = _convert(field_name, environ[var], source=var)

        return replace(self, **values)

    def with_overrides(self, **overrides: Any) -> "ChatConfig":
        """
        Copy with the given fields replaced. None values are skipped, so
        unset CLI flags can be passed straight through.

        Raises:
            TypeError: Unknown field name.
        """
        known = {f.name for f in fields(self)}
        unknown = set(overrides) - known
        if unknown:
            raise TypeError(f"Unknown config field(s): {', '.join(sorted(unknown))}")

        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

    # =========================================================================
    # VALIDATION
    # =========================================================================

    def validate(self) -> None:
        """
        Check every value, fail fast at startup.

        Raises:
            ValueError: Describing the first bad value found.
        """
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.backlog < 1:
            raise ValueError("backlog must be >= 1")

        if self.read_size < 1024:
            raise ValueError("read_size must be >= 1024")

        if self.max_request_size < self.read_size:
            raise ValueError("max_request_size must be >= read_size")

        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be > 0")

        if self.min_workers < 1:
            raise ValueError("min_workers must be >= 1")

        if self.max_workers < self.min_workers:
            raise ValueError("max_workers must be >= min_workers")

        if self.queue_size < 1:
            raise ValueError("queue_size must be >= 1")

        if self.max_listeners < 1:
            raise ValueError("max_listeners must be >= 1")

        if self.max_listeners >= self.max_workers:
            raise ValueError(
                f"max_listeners ({self.max_listeners}) must be < max_workers "
                f"({self.max_workers}), or long-polls can take every worker"
            )

        if self.long_poll_timeout <= 0:
            raise ValueError("long_poll_timeout must be > 0")

        if self.poll_interval <= 0:
            raise ValueError("poll_interval must be > 0")

        if not self.room_name:
            raise ValueError("room_name must not be empty")

        if self.static_dir is not None and not Path(self.static_dir).is_dir():
            raise ValueError(f"static_dir is not a directory: {self.static_dir}")

        if self.log_level.upper() not in LOG_LEVELS:
            raise ValueError(f"Invalid log level: {self.log_level}")

        if self.log_format not in ("text", "json"):
            raise ValueError(f"Invalid log format: {self.log_format}")


# =============================================================================
# KEY MAPS AND CONVERSION
# =============================================================================

DOTENV_KEYS: Dict[str, str] = {
    "host": "host",
    "port": "port",
    "qrcode": "qrcode",
    "static-dir": "static_dir",
    "room-name": "room_name",
    "long-poll-timeout": "long_poll_timeout",
    "workers": "max_workers",
    "max-listeners": "max_listeners",
    "log-level": "log_level",
}

ENV_VARS: Dict[str, str] = {
    "SMOLLCHAT_HOST": "host",
    "SMOLLCHAT_PORT": "port",
    "SMOLLCHAT_QRCODE": "qrcode",
    "SMOLLCHAT_STATIC_DIR": "static_dir",
    "SMOLLCHAT_ROOM_NAME": "room_name",
    "SMOLLCHAT_LONG_POLL_TIMEOUT": "long_poll_timeout",
    "SMOLLCHAT_WORKERS": "max_workers",
    "SMOLLCHAT_MAX_LISTENERS": "max_listeners",
    "SMOLLCHAT_LOG_LEVEL": "log_level",
}

_CONVERTERS: Dict[str, Callable[[Any], Any]] = {
    "port": int,
    "max_workers": int,
    "max_listeners": int,
    "long_poll_timeout": float,
    "qrcode": parse_bool,
}


def _convert(field_name: str, raw: Optional[str], source: str) -> Any:
    """Convert a raw string setting to its field type."""
    converter = _CONVERTERS.get(field_name)
    if converter is None:
        if raw is None:
            raise ValueError(f"{source}: missing value")
        return raw.strip()

    try:
        if converter is parse_bool:
            return parse_bool(raw)
        if raw is None:
            raise ValueError("missing value")
        return converter(raw.strip())
    except ValueError as e:
        raise ValueError(f"{source}: invalid value {raw!r} ({e})") from None
