"""Service configuration, read once from the environment at startup."""

import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from . import utils
from .crypto import decode_key
from .errors import ConfigError

DEFAULT_ALLOWED_IMAGE_TYPES = ["image/jpeg", "image/png", "image/gif", "image/webp"]


def _required(name: str) -> str:
    value = os.getenv(name, "").strip()
    if not value:
        raise ConfigError(f"{name} environment variable is required")
    return value


def _parse(name: str, default: str, parser):
    raw = os.getenv(name, default)
    try:
        return parser(raw)
    except ValueError as e:
        raise ConfigError(f"{name} is invalid: {e}")


def _parse_bool(raw: str) -> bool:
    value = raw.strip().lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("0", "false", "no", "off", ""):
        return False
    raise ValueError(f"expected a boolean, got {raw!r}")


def _parse_types(raw: str) -> list[str]:
    types = [t.strip().lower() for t in raw.split(",") if t.strip()]
    if not types:
        raise ValueError("at least one MIME type is required")
    return types


class Config(BaseModel):
    telegram_bot_token: str
    telegram_chat_id: int
    telegram_log_chat_id: int | None = None
    encryption_key: str = Field(..., repr=False)
    max_file_size: int = 10 * 1024 * 1024
    rate_limit_per_minute: int = 60
    bind_address: str = "0.0.0.0:3000"
    allowed_image_types: list[str] = Field(default_factory=lambda: list(DEFAULT_ALLOWED_IMAGE_TYPES))
    admin_secret: str = Field("", repr=False)
    upload_delay: float = 2.0
    queue_capacity: int = 100
    backend_timeout: float = 30.0
    trust_proxy_headers: bool = False
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Config":
        """Build the configuration from environment variables (and ``.env``).

        Raises ``ConfigError`` for missing required values, unparsable values
        or an encryption key that does not decode to 32 bytes.
        """
        load_dotenv()

        log_chat = os.getenv("TELEGRAM_LOG_CHAT_ID", "").strip()
        config = cls(
            telegram_bot_token=_required("TELEGRAM_BOT_TOKEN"),
            telegram_chat_id=_parse("TELEGRAM_CHAT_ID", _required("TELEGRAM_CHAT_ID"), int),
            telegram_log_chat_id=_parse("TELEGRAM_LOG_CHAT_ID", log_chat, int) if log_chat else None,
            encryption_key=_required("ENCRYPTION_KEY"),
            max_file_size=_parse("MAX_FILE_SIZE", "10485760", utils.parse_file_size),
            rate_limit_per_minute=_parse("RATE_LIMIT_PER_MINUTE", "60", int),
            bind_address=os.getenv("BIND_ADDRESS", "0.0.0.0:3000"),
            allowed_image_types=_parse("ALLOWED_IMAGE_TYPES", ",".join(DEFAULT_ALLOWED_IMAGE_TYPES), _parse_types),
            admin_secret=os.getenv("ADMIN_SECRET", ""),
            upload_delay=_parse("UPLOAD_DELAY", "2", utils.parse_time),
            queue_capacity=_parse("QUEUE_CAPACITY", "100", int),
            backend_timeout=_parse("BACKEND_TIMEOUT", "30", utils.parse_time),
            trust_proxy_headers=_parse("TRUST_PROXY_HEADERS", "false", _parse_bool),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )
        config.validate_values()
        return config

    def validate_values(self) -> None:
        decode_key(self.encryption_key)
        if self.max_file_size <= 0:
            raise ConfigError("MAX_FILE_SIZE must be positive")
        if self.rate_limit_per_minute <= 0:
            raise ConfigError("RATE_LIMIT_PER_MINUTE must be positive")
        if self.queue_capacity <= 0:
            raise ConfigError("QUEUE_CAPACITY must be positive")
        if self.upload_delay < 0:
            raise ConfigError("UPLOAD_DELAY must not be negative")
        try:
            utils.parse_bind_address(self.bind_address)
        except ValueError as e:
            raise ConfigError(f"BIND_ADDRESS is invalid: {e}")

    @property
    def encryption_key_bytes(self) -> bytes:
        return decode_key(self.encryption_key)

    @property
    def admin_enabled(self) -> bool:
        return bool(self.admin_secret)
