"""
Configuration record of the gateway.

The configuration is read once at startup from a TOML file and merged with
environment overrides named ``<ENV_PREFIX>_<SECTION>_<FIELD>``, for example
``APP_SERVER_PORT`` or ``APP_LOG_LEVEL``. The environment wins over the file.
The resulting ``AppConfig`` is frozen and shared by every request.
"""

import logging
import os
import tomllib
from typing import Any, Dict, Iterator, Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from proxy_gateway.errors import ConfigError
from proxy_gateway.vars import CONFIG_PATH, ENV_PREFIX

logger = logging.getLogger("uvicorn.error")

LOG_LEVELS = ("critical", "error", "warning", "info", "debug", "trace")


class _Section(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class ServerConfig(_Section):
    host: str = "127.0.0.1"
    port: int = Field(default=3000, ge=1, le=65535)


class TargetConfig(_Section):
    host: str = Field(min_length=1)
    port: int = Field(ge=1, le=65535)
    protocol: Literal["http", "https"]


class ProxyConfig(_Section):
    path_prefix: str

    @field_validator("path_prefix")
    @classmethod
    def _check_prefix(cls, value: str) -> str:
        if not value.startswith("/"):
            raise ValueError("path_prefix must start with '/'")
        if len(value) > 1:
            value = value.rstrip("/") or "/"
        return value


class RequestConfig(_Section):
    timeout: float = Field(default=30, gt=0)
    accept_invalid_certs: bool = False


class LogConfig(_Section):
    level: str = "info"

    @field_validator("level")
    @classmethod
    def _check_level(cls, value: str) -> str:
        value = value.strip().lower()
        if value == "warn":
            value = "warning"
        if value not in LOG_LEVELS:
            raise ValueError(f"level must be one of {', '.join(LOG_LEVELS)}")
        return value


class AppConfig(_Section):
    server: ServerConfig = ServerConfig()
    target: TargetConfig
    proxy: ProxyConfig
    request: RequestConfig = RequestConfig()
    log: LogConfig = LogConfig()
    config_path: str = CONFIG_PATH

    @property
    def upstream_base_url(self) -> str:
        return f"{self.target.protocol}://{self.target.host}:{self.target.port}"

    def describe(self) -> Iterator[str]:
        """Startup summary, one line per setting."""
        yield f"Config file: {self.config_path}"
        yield f"Listening on: {self.server.host}:{self.server.port}"
        yield f"Upstream: {self.upstream_base_url}"
        yield f"Path prefix: {self.proxy.path_prefix}"
        yield f"Request timeout: {self.request.timeout}s"
        yield f"Accept invalid certificates: {self.request.accept_invalid_certs}"


# Field paths that can be overridden from the environment
_SECTIONS = {
    "server": ServerConfig,
    "target": TargetConfig,
    "proxy": ProxyConfig,
    "request": RequestConfig,
    "log": LogConfig,
}


def env_var_name(section: str, field: str, prefix: str = ENV_PREFIX) -> str:
    return f"{prefix}_{section}_{field}".upper()


def _read_file(path: str) -> Dict[str, Any]:
    if not os.path.exists(path):
        logger.debug(f"Config file {path} not found, using defaults and environment")
        return {}
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e


def _apply_env_overrides(
    values: Dict[str, Any], environ: Mapping[str, str]
) -> Dict[str, Any]:
    merged = {key: value for key, value in values.items()}
    for section, model in _SECTIONS.items():
        current = merged.get(section, {})
        if not isinstance(current, dict):
            raise ConfigError(f"Config section [{section}] must be a table")
        current = dict(current)
        for field in model.model_fields:
            name = env_var_name(section, field)
            if name in environ:
                current[field] = environ[name]
        if current:
            merged[section] = current
    return merged


def load_config(
    path: Optional[str] = None, environ: Optional[Mapping[str, str]] = None
) -> AppConfig:
    """
    Build the configuration record from a TOML file and environment overrides.

    Args:
        path: Config file path, defaults to APP_CONFIG_PATH in environ, then
            CONFIG_PATH; a missing file is not an error
        environ: Environment mapping, defaults to os.environ

    Returns:
        The validated, immutable AppConfig

    Raises:
        ConfigError: If the file cannot be parsed or the merged values are invalid
    """
    environ = os.environ if environ is None else environ
    path = path or environ.get(f"{ENV_PREFIX}_CONFIG_PATH", CONFIG_PATH)

    values = _apply_env_overrides(_read_file(path), environ)
    values["config_path"] = path
    try:
        return AppConfig.model_validate(values)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
            for err in e.errors()
        )
        raise ConfigError(f"Invalid configuration: {problems}") from e
