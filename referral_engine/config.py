from enum import Enum
import configparser
from os import environ
from os.path import exists
from typing import Any, Optional
import logging

from pydantic import BaseModel, Field, ValidationError, computed_field, field_validator

logger = logging.getLogger(__name__)

_PATH = "app{suffix}.conf"
_CONFIG = None

AUTHENTICATION_TYPES = {"off", "basic", "bearer", "oauth2"}


def _to_bool(v: Any, default: bool) -> bool:
    if v in (None, "", " "):
        return default
    if isinstance(v, str):
        return v.lower() in ("yes", "true", "t", "1")
    return bool(v)


class LogLevel(str, Enum):
    debug = "debug"
    info = "info"
    warning = "warning"
    error = "error"
    critical = "critical"


class ConfigApp(BaseModel):
    loglevel: LogLevel = Field(default=LogLevel.info)


class ConfigUvicorn(BaseModel):
    swagger_enabled: bool = Field(default=False)
    docs_url: str = Field(default="/docs")
    redoc_url: str = Field(default="/redoc")
    host: str = Field(default="127.0.0.1")
    port: Optional[int] = Field(default=8080, gt=0, lt=65535)
    reload: bool = Field(default=True)
    reload_delay: float = Field(default=1)
    reload_dirs: list[str] = Field(default=["referral_engine"])
    use_ssl: bool = Field(default=False)
    ssl_base_dir: str | None = Field(default=None)
    ssl_cert_file: str | None = Field(default=None)
    ssl_key_file: str | None = Field(default=None)

    @field_validator("host", mode="before")
    def validate_host(cls, v: Any) -> str:
        if v in (None, "", " "):
            return "127.0.0.1"
        return str(v)

    @field_validator("port", mode="before")
    def validate_port(cls, v: Any) -> int:
        if v in (None, "", " "):
            return 8080
        return int(v)

    @field_validator("reload", mode="before")
    def validate_reload(cls, v: Any) -> bool:
        return _to_bool(v, True)

    @field_validator("reload_delay", mode="before")
    def validate_reload_delay(cls, v: Any) -> float:
        if v in (None, "", " "):
            return 1.0
        return float(v)

    @field_validator("reload_dirs", mode="before")
    def validate_reload_dirs(cls, v: Any) -> list[str]:
        if v in (None, "", " "):
            return ["referral_engine"]
        if isinstance(v, str):
            return [d.strip() for d in v.split(",")]
        return v  # type: ignore

    @field_validator("use_ssl", "swagger_enabled", mode="before")
    def validate_flags(cls, v: Any) -> bool:
        return _to_bool(v, False)


class ConfigFhirStore(BaseModel):
    url: str
    timeout: int = Field(default=600)
    authentication: str = Field(
        default="off",
        description="Authentication towards the store, can be 'off', 'basic', 'bearer' or 'oauth2'",
    )
    username: str | None = Field(default=None)
    password: str | None = Field(default=None)
    token: str | None = Field(default=None)

    @field_validator("timeout", mode="before")
    def validate_timeout(cls, v: Any) -> int:
        if v in (None, "", " "):
            return 600
        return int(v)

    @field_validator("authentication", mode="before")
    def validate_authentication(cls, value: Any) -> str:
        if value in (None, "", " "):
            return "off"
        if value not in AUTHENTICATION_TYPES:
            raise ValueError(
                "authentication must be either 'off', 'basic', 'bearer' or 'oauth2'"
            )
        return str(value)


class ConfigBser(BaseModel):
    endpoint_url: str
    recipient_not_ready: bool = Field(default=False)

    @field_validator("endpoint_url", mode="before")
    def validate_endpoint_url(cls, v: Any) -> str:
        if v is None or str(v).strip() == "":
            raise ValueError("endpoint_url must be set, the recipient needs it to send feedback")
        return str(v).strip()

    @field_validator("recipient_not_ready", mode="before")
    def validate_recipient_not_ready(cls, v: Any) -> bool:
        return _to_bool(v, False)

    @computed_field
    def process_message_url(self) -> str:
        if self.endpoint_url.endswith("/"):
            return self.endpoint_url + "$process-message"
        return self.endpoint_url + "/$process-message"


class ConfigBackendServices(BaseModel):
    fhir_server_url: str
    token_url: str
    client_id: str
    client_secret: str
    scope: str | None = Field(default=None)


class ConfigRecipient(BaseModel):
    site: str | None = Field(default=None)
    authentication_api_url: str | None = Field(default=None)
    authorization_api_url: str | None = Field(default=None)
    client_id: str | None = Field(default=None)
    api_sub_key: str | None = Field(default=None)
    api_key: str | None = Field(default=None)
    timeout: int = Field(default=600)

    @field_validator(
        "site",
        "authentication_api_url",
        "authorization_api_url",
        "client_id",
        "api_sub_key",
        "api_key",
        mode="before",
    )
    def validate_optional_str(cls, v: Any) -> str | None:
        if v in (None, "", " "):
            return None
        return str(v)

    @field_validator("timeout", mode="before")
    def validate_timeout(cls, v: Any) -> int:
        if v in (None, "", " "):
            return 600
        return int(v)


class ConfigStats(BaseModel):
    enabled: bool = Field(default=False)
    host: str | None = Field(default=None)
    port: int | None = Field(default=None)
    module_name: str | None = Field(default=None)

    @field_validator("enabled", mode="before")
    def validate_enabled(cls, v: Any) -> bool:
        return _to_bool(v, False)

    @field_validator("port", mode="before")
    def validate_port(cls, v: Any) -> int | None:
        if v in (None, "", " "):
            return None
        return int(v)


class Config(BaseModel):
    app: ConfigApp
    uvicorn: ConfigUvicorn
    fhir_store: ConfigFhirStore
    bser: ConfigBser
    backend_services: ConfigBackendServices | None = Field(default=None)
    recipient: ConfigRecipient = Field(default_factory=ConfigRecipient)
    stats: ConfigStats = Field(default_factory=ConfigStats)


def read_ini_file(path: str) -> Any:
    ini_data = configparser.ConfigParser()
    ini_data.read(path)

    ret = {}
    for section in ini_data.sections():
        ret[section] = dict(ini_data[section])

    return ret


def reset_config() -> None:
    global _CONFIG
    _CONFIG = None


def set_config(config: Config) -> None:
    global _CONFIG
    _CONFIG = config


def get_config(path: str | None = None) -> Config:
    global _CONFIG
    global _PATH

    if _CONFIG is not None:
        return _CONFIG

    if path is None:
        suffix = environ.get("APP_ENV", "")
        if suffix:
            suffix = f".{suffix}"
        path = _PATH.replace("{suffix}", suffix)
        logger.info(f"Reading configuration using file: {path}")

    if not exists(path):
        raise FileNotFoundError(f"Config file not found: {path}")

    # INI files keep us in line with the other services. Pydantic does not read them,
    # so empty optional sections are dropped before validation.
    ini_data = read_ini_file(path)

    try:
        backend = ini_data.get("backend_services")
        if backend is not None and all(v in ("", " ") for v in backend.values()):
            del ini_data["backend_services"]

        _CONFIG = Config(**ini_data)
    except ValidationError as e:
        logger.error(f"Configuration validation error: {e}")
        raise e

    return _CONFIG
