"""Gateway configuration and loaders for YAML files and the environment."""

import importlib
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog
import yaml

from .uid import UidGenerator, default_uid_generator

logger = structlog.get_logger()

DEFAULT_CONFIG_SECTION = "webseal"


class ConfigurationError(ValueError):
    """A required gateway option is missing or invalid."""

    pass


@dataclass(frozen=True)
class GatewayConfig:
    """Per identity type gateway settings, fixed once constructed."""

    server: str
    secret: str
    port: int = 1812
    timeout: float = 60
    retries: int = 0
    uid_field: str = "uid"
    uid_generator: UidGenerator = default_uid_generator
    dictionary_path: str | None = None
    handle_timeout_as_failure: bool = False
    authentication_keys: tuple[str, ...] = ("username",)
    case_insensitive_keys: frozenset[str] = field(
        default_factory=lambda: frozenset({"username"})
    )
    scheme: str = "https"
    endpoint_path: str = "/pkmsauth"
    verify_tls: bool = True

    def __post_init__(self) -> None:
        # Normalize sequence inputs so the instance stays hashable. A bare
        # string names a single key.
        keys = self.authentication_keys
        insensitive = self.case_insensitive_keys
        object.__setattr__(
            self, "authentication_keys", (keys,) if isinstance(keys, str) else tuple(keys)
        )
        object.__setattr__(
            self,
            "case_insensitive_keys",
            frozenset({insensitive}) if isinstance(insensitive, str) else frozenset(insensitive),
        )
        self._validate()

    def _validate(self) -> None:
        if not self.server:
            raise ConfigurationError("webseal_server is required")
        if not self.secret:
            raise ConfigurationError("webseal_server_secret is required")
        for name in ("port", "retries"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ConfigurationError(
                    f"webseal_server_{name} must be an integer, got {value!r}"
                )
        if isinstance(self.timeout, bool) or not isinstance(self.timeout, int | float):
            raise ConfigurationError(
                f"webseal_server_timeout must be a number, got {self.timeout!r}"
            )
        if not 0 < self.port < 65536:
            raise ConfigurationError(f"Invalid webseal_server_port: {self.port}")
        if self.timeout <= 0:
            raise ConfigurationError("webseal_server_timeout must be positive")
        if self.retries < 0:
            raise ConfigurationError("webseal_server_retries cannot be negative")
        if not self.uid_field:
            raise ConfigurationError("webseal_uid_field is required")
        if not callable(self.uid_generator):
            raise ConfigurationError("webseal_uid_generator must be callable")
        if not self.authentication_keys:
            raise ConfigurationError("At least one authentication key is required")
        if self.scheme not in ("http", "https"):
            raise ConfigurationError(f"Unsupported gateway scheme: {self.scheme}")

    @property
    def address(self) -> str:
        """Gateway ``host:port``."""
        return f"{self.server}:{self.port}"

    @property
    def url(self) -> str:
        path = self.endpoint_path if self.endpoint_path.startswith("/") else f"/{self.endpoint_path}"
        return f"{self.scheme}://{self.address}{path}"

    def __repr__(self) -> str:
        # Keep the shared secret out of logs and tracebacks.
        return (
            f"GatewayConfig(server={self.server!r}, port={self.port}, "
            f"timeout={self.timeout}, retries={self.retries}, "
            f"uid_field={self.uid_field!r})"
        )


def import_uid_generator(spec: str) -> UidGenerator:
    """Import a UID generator given as ``package.module:function``."""
    module_name, _, attr = spec.partition(":")
    if not module_name or not attr:
        raise ConfigurationError(
            f"UID generator must be given as 'module:function', got {spec!r}"
        )
    try:
        module = importlib.import_module(module_name)
        generator = getattr(module, attr)
    except (ImportError, AttributeError) as e:
        raise ConfigurationError(f"Cannot import UID generator {spec!r}: {e}") from e
    return generator  # type: ignore[no-any-return]


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def gateway_config_from_mapping(options: dict[str, Any]) -> GatewayConfig:
    """Build a GatewayConfig from ``webseal_*`` style option names."""
    kwargs: dict[str, Any] = {}
    try:
        kwargs["server"] = options.get("webseal_server") or ""
        kwargs["secret"] = options.get("webseal_server_secret") or ""
        if options.get("webseal_server_port") is not None:
            kwargs["port"] = int(options["webseal_server_port"])
        if options.get("webseal_server_timeout") is not None:
            kwargs["timeout"] = float(options["webseal_server_timeout"])
        if options.get("webseal_server_retries") is not None:
            kwargs["retries"] = int(options["webseal_server_retries"])
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid numeric gateway option: {e}") from e

    if options.get("webseal_uid_field"):
        kwargs["uid_field"] = str(options["webseal_uid_field"])

    generator = options.get("webseal_uid_generator")
    if generator:
        kwargs["uid_generator"] = (
            import_uid_generator(generator) if isinstance(generator, str) else generator
        )

    if options.get("webseal_dictionary_path"):
        kwargs["dictionary_path"] = str(options["webseal_dictionary_path"])
    if options.get("handle_webseal_timeout_as_failure") is not None:
        kwargs["handle_timeout_as_failure"] = _parse_bool(
            options["handle_webseal_timeout_as_failure"]
        )

    for key in ("authentication_keys", "case_insensitive_keys"):
        value = options.get(key)
        if value is None:
            continue
        if isinstance(value, str):
            value = [part.strip() for part in value.split(",") if part.strip()]
        kwargs[key] = tuple(value)

    if options.get("webseal_scheme"):
        kwargs["scheme"] = str(options["webseal_scheme"])
    if options.get("webseal_endpoint_path"):
        kwargs["endpoint_path"] = str(options["webseal_endpoint_path"])
    if options.get("webseal_verify_tls") is not None:
        kwargs["verify_tls"] = _parse_bool(options["webseal_verify_tls"])

    return GatewayConfig(**kwargs)


def load_gateway_config(
    config_file: str | Path, section: str = DEFAULT_CONFIG_SECTION
) -> GatewayConfig:
    """Load gateway settings from a section of a YAML file."""
    config_path = Path(config_file)
    if not config_path.exists():
        logger.error("Gateway config file does not exist", file=str(config_path))
        raise ConfigurationError(f"Gateway config file not found: {config_path}")

    with open(config_path) as f:
        content = yaml.safe_load(f)

    if not isinstance(content, dict) or not isinstance(content.get(section), dict):
        raise ConfigurationError(
            f"Gateway config file {config_path} has no '{section}' section"
        )

    config = gateway_config_from_mapping(content[section])
    logger.info(
        "Loaded gateway configuration",
        file=str(config_path),
        server=config.server,
        port=config.port,
    )
    return config


_ENV_OPTIONS = {
    "WEBSEAL_SERVER": "webseal_server",
    "WEBSEAL_SERVER_PORT": "webseal_server_port",
    "WEBSEAL_SERVER_SECRET": "webseal_server_secret",
    "WEBSEAL_SERVER_TIMEOUT": "webseal_server_timeout",
    "WEBSEAL_SERVER_RETRIES": "webseal_server_retries",
    "WEBSEAL_UID_FIELD": "webseal_uid_field",
    "WEBSEAL_UID_GENERATOR": "webseal_uid_generator",
    "WEBSEAL_DICTIONARY_PATH": "webseal_dictionary_path",
    "WEBSEAL_TIMEOUT_AS_FAILURE": "handle_webseal_timeout_as_failure",
    "WEBSEAL_AUTHENTICATION_KEYS": "authentication_keys",
    "WEBSEAL_CASE_INSENSITIVE_KEYS": "case_insensitive_keys",
    "WEBSEAL_SCHEME": "webseal_scheme",
    "WEBSEAL_ENDPOINT_PATH": "webseal_endpoint_path",
    "WEBSEAL_VERIFY_TLS": "webseal_verify_tls",
}


def get_gateway_config() -> GatewayConfig:
    """Get the gateway config from WEBSEAL_CONFIG_PATH or WEBSEAL_* variables."""
    config_path = os.getenv("WEBSEAL_CONFIG_PATH")
    if config_path:
        return load_gateway_config(config_path)

    options = {
        option: os.environ[env_name]
        for env_name, option in _ENV_OPTIONS.items()
        if env_name in os.environ
    }
    return gateway_config_from_mapping(options)
