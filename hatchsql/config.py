"""Server configuration: settings, validation with defaults, and file loading."""

import json
import re
from collections.abc import Mapping
from dataclasses import asdict, dataclass, field, fields, is_dataclass
from datetime import timedelta
from pathlib import Path
from typing import Any, get_args, get_origin

import yaml


class ConfigError(ValueError):
    """Raised when a configuration is invalid or cannot be loaded."""


@dataclass
class TLSConfig:
    """TLS settings."""

    enabled: bool = False
    cert_file: str = ""
    key_file: str = ""
    ca_file: str = ""
    client_auth: bool = False
    client_ca_cert_file: str = ""
    insecure_skip_verify: bool = False


@dataclass
class UserInfo:
    """A user of basic authentication."""

    password: str = ""
    roles: list[str] = field(default_factory=list)


@dataclass
class BasicAuthConfig:
    """Basic authentication settings."""

    users_file: str = ""
    users: dict[str, UserInfo] = field(default_factory=dict)


@dataclass
class BearerAuthConfig:
    """Bearer token settings; ``tokens`` maps a token to a user name."""

    tokens_file: str = ""
    tokens: dict[str, str] = field(default_factory=dict)


@dataclass
class JWTAuthConfig:
    """JWT authentication settings."""

    secret: str = ""
    issuer: str = ""
    audience: str = ""


@dataclass
class OAuth2Config:
    """OAuth2 authentication settings."""

    client_id: str = ""
    client_secret: str = ""
    authorize_endpoint: str = ""
    token_endpoint: str = ""
    redirect_url: str = ""
    scopes: list[str] = field(default_factory=list)
    access_token_ttl: timedelta = field(default_factory=timedelta)
    refresh_token_ttl: timedelta = field(default_factory=timedelta)
    allowed_grant_types: list[str] = field(default_factory=list)


@dataclass
class AuthConfig:
    """Authentication settings; ``type`` is basic, bearer, jwt or oauth2."""

    enabled: bool = False
    type: str = ""
    basic_auth: BasicAuthConfig = field(default_factory=BasicAuthConfig)
    bearer_auth: BearerAuthConfig = field(default_factory=BearerAuthConfig)
    jwt_auth: JWTAuthConfig = field(default_factory=JWTAuthConfig)
    oauth2_auth: OAuth2Config = field(default_factory=OAuth2Config)


@dataclass
class MetricsConfig:
    """Metrics endpoint settings."""

    enabled: bool = False
    address: str = ""
    path: str = ""


@dataclass
class HealthConfig:
    """Health check settings."""

    enabled: bool = False
    interval: timedelta = field(default_factory=timedelta)


@dataclass
class ConnectionPoolConfig:
    """Database connection pool settings."""

    max_open_connections: int = 0
    max_idle_connections: int = 0
    conn_max_lifetime: timedelta = field(default_factory=timedelta)
    conn_max_idle_time: timedelta = field(default_factory=timedelta)
    health_check_period: timedelta = field(default_factory=timedelta)


@dataclass
class TransactionConfig:
    """Transaction settings."""

    default_isolation_level: str = ""
    max_transaction_age: timedelta = field(default_factory=timedelta)
    cleanup_interval: timedelta = field(default_factory=timedelta)


@dataclass
class CacheItemConfig:
    """Settings of one kind of cached item."""

    enabled: bool = False
    max_size: int = 0
    ttl: timedelta = field(default_factory=timedelta)


@dataclass
class CacheSettings:
    """Server cache settings."""

    enabled: bool = False
    max_size: int = 0
    ttl: timedelta = field(default_factory=timedelta)
    cleanup_interval: timedelta = field(default_factory=timedelta)
    enable_stats: bool = False
    prepared_statements: CacheItemConfig = field(default_factory=CacheItemConfig)
    query_results: CacheItemConfig = field(default_factory=CacheItemConfig)


_DEFAULT_GRANT_TYPES = ("authorization_code", "refresh_token", "client_credentials")
_ZERO = timedelta(0)


@dataclass
class Config:
    """Complete server configuration. Unset fields hold zero values."""

    address: str = ""
    database: str = ""
    log_level: str = ""
    max_connections: int = 0
    connection_timeout: timedelta = field(default_factory=timedelta)
    query_timeout: timedelta = field(default_factory=timedelta)
    max_message_size: int = 0
    shutdown_timeout: timedelta = field(default_factory=timedelta)
    tls: TLSConfig = field(default_factory=TLSConfig)
    auth: AuthConfig = field(default_factory=AuthConfig)
    metrics: MetricsConfig = field(default_factory=MetricsConfig)
    health: HealthConfig = field(default_factory=HealthConfig)
    reflection: bool = False
    connection_pool: ConnectionPoolConfig = field(default_factory=ConnectionPoolConfig)
    transaction: TransactionConfig = field(default_factory=TransactionConfig)
    cache: CacheSettings = field(default_factory=CacheSettings)
    safe_copy: bool = False

    def validate(self) -> None:
        """Check the configuration and fill unset values with defaults.

        Raises ConfigError when a required setting is missing.
        """
        if not self.address:
            raise ConfigError("address is required")

        if self.max_connections <= 0:
            self.max_connections = 100
        if self.connection_timeout <= _ZERO:
            self.connection_timeout = timedelta(seconds=30)
        if self.query_timeout <= _ZERO:
            self.query_timeout = timedelta(minutes=5)
        if self.max_message_size <= 0:
            self.max_message_size = 16 * 1024 * 1024
        if self.shutdown_timeout <= _ZERO:
            self.shutdown_timeout = timedelta(seconds=30)

        if self.tls.enabled and (not self.tls.cert_file or not self.tls.key_file):
            raise ConfigError("TLS cert and key files are required when TLS is enabled")

        if self.auth.enabled:
            self._validate_auth()

        pool = self.connection_pool
        if pool.max_open_connections <= 0:
            pool.max_open_connections = 25
        if pool.max_idle_connections <= 0:
            pool.max_idle_connections = 5
        if pool.conn_max_lifetime <= _ZERO:
            pool.conn_max_lifetime = timedelta(minutes=30)
        if pool.conn_max_idle_time <= _ZERO:
            pool.conn_max_idle_time = timedelta(minutes=10)
        if pool.health_check_period <= _ZERO:
            pool.health_check_period = timedelta(minutes=1)

        if self.transaction.max_transaction_age <= _ZERO:
            self.transaction.max_transaction_age = timedelta(hours=1)
        if self.transaction.cleanup_interval <= _ZERO:
            self.transaction.cleanup_interval = timedelta(minutes=5)

        if not self.metrics.path:
            self.metrics.path = "/metrics"

    def _validate_auth(self) -> None:
        auth = self.auth
        if auth.type == "basic":
            if not auth.basic_auth.users and not auth.basic_auth.users_file:
                raise ConfigError("basic auth requires users or users file")
        elif auth.type == "bearer":
            if not auth.bearer_auth.tokens and not auth.bearer_auth.tokens_file:
                raise ConfigError("bearer auth requires tokens or tokens file")
        elif auth.type == "jwt":
            if not auth.jwt_auth.secret:
                raise ConfigError("JWT auth requires secret")
        elif auth.type == "oauth2":
            oauth = auth.oauth2_auth
            if not oauth.client_id or not oauth.client_secret:
                raise ConfigError("OAuth2 auth requires client ID and secret")
            if not oauth.authorize_endpoint or not oauth.token_endpoint:
                raise ConfigError("OAuth2 auth requires authorize and token endpoints")
            if oauth.access_token_ttl <= _ZERO:
                oauth.access_token_ttl = timedelta(hours=1)
            if oauth.refresh_token_ttl <= _ZERO:
                oauth.refresh_token_ttl = timedelta(hours=24)
            if not oauth.allowed_grant_types:
                oauth.allowed_grant_types = list(_DEFAULT_GRANT_TYPES)
        else:
            raise ConfigError(f"unsupported auth type: {auth.type}")


def default_config() -> Config:
    """Return the default server configuration."""
    return Config(
        address="0.0.0.0:8815",
        database=":memory:",
        log_level="info",
        max_connections=100,
        connection_timeout=timedelta(seconds=30),
        query_timeout=timedelta(minutes=5),
        max_message_size=16 * 1024 * 1024,
        shutdown_timeout=timedelta(seconds=30),
        tls=TLSConfig(enabled=False),
        auth=AuthConfig(enabled=False, type="basic"),
        metrics=MetricsConfig(enabled=True, address=":9090", path="/metrics"),
        health=HealthConfig(enabled=True, interval=timedelta(seconds=10)),
        reflection=True,
        connection_pool=ConnectionPoolConfig(
            max_open_connections=25,
            max_idle_connections=5,
            conn_max_lifetime=timedelta(minutes=30),
            conn_max_idle_time=timedelta(minutes=10),
            health_check_period=timedelta(minutes=1),
        ),
        transaction=TransactionConfig(
            default_isolation_level="READ_COMMITTED",
            max_transaction_age=timedelta(hours=1),
            cleanup_interval=timedelta(minutes=5),
        ),
        cache=CacheSettings(
            enabled=True,
            max_size=100 * 1024 * 1024,
            ttl=timedelta(minutes=5),
            cleanup_interval=timedelta(minutes=1),
            enable_stats=True,
            prepared_statements=CacheItemConfig(
                enabled=True, max_size=10 * 1024 * 1024, ttl=timedelta(hours=1)
            ),
            query_results=CacheItemConfig(
                enabled=True, max_size=50 * 1024 * 1024, ttl=timedelta(minutes=5)
            ),
        ),
        safe_copy=False,
    )


_UNIT_SECONDS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")


def _parse_duration(text: str, name: str) -> timedelta:
    """Parse a duration such as ``30s``, ``1h30m`` or ``250ms``."""
    s = text.strip()
    sign = 1.0
    if s[:1] in "+-" and s:
        sign = -1.0 if s[0] == "-" else 1.0
        s = s[1:]
    if s == "0":
        return timedelta(0)
    if not s:
        raise ConfigError(f"invalid duration for {name}: {text!r}")
    total = 0.0
    pos = 0
    for match in _DURATION_PART.finditer(s):
        if match.start() != pos:
            break
        total += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
        pos = match.end()
    if pos != len(s):
        raise ConfigError(f"invalid duration for {name}: {text!r}")
    return timedelta(seconds=sign * total)


def _convert(tp: Any, value: Any, name: str) -> Any:
    origin = get_origin(tp)
    if isinstance(tp, type) and is_dataclass(tp):
        if not isinstance(value, Mapping):
            raise ConfigError(f"{name} must be a mapping")
        return _build(tp, value, name)
    if tp is timedelta:
        if isinstance(value, timedelta):
            return value
        if isinstance(value, bool):
            raise ConfigError(f"{name} must be a duration")
        if isinstance(value, (int, float)):
            return timedelta(seconds=value)
        if isinstance(value, str):
            return _parse_duration(value, name)
        raise ConfigError(f"{name} must be a duration")
    if tp is bool:
        if isinstance(value, bool):
            return value
        raise ConfigError(f"{name} must be a boolean")
    if tp is int:
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        raise ConfigError(f"{name} must be an integer")
    if tp is str:
        if isinstance(value, str):
            return value
        raise ConfigError(f"{name} must be a string")
    if origin is list:
        if not isinstance(value, (list, tuple)):
            raise ConfigError(f"{name} must be a list")
        (item_type,) = get_args(tp)
        return [_convert(item_type, item, name) for item in value]
    if origin is dict:
        if not isinstance(value, Mapping):
            raise ConfigError(f"{name} must be a mapping")
        _, value_type = get_args(tp)
        return {str(k): _convert(value_type, v, f"{name}.{k}") for k, v in value.items()}
    raise ConfigError(f"unsupported setting type for {name}")


def _build(cls: type, data: Mapping[str, Any], prefix: str = "") -> Any:
    kwargs = {}
    for f in fields(cls):
        if f.name in data:
            name = f"{prefix}.{f.name}" if prefix else f.name
            kwargs[f.name] = _convert(f.type, data[f.name], name)
    return cls(**kwargs)


def _merge(base: dict[str, Any], overrides: Mapping[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in overrides.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, Mapping):
            merged[key] = _merge(current, value)
        else:
            merged[key] = value
    return merged


def load_from_file(path: str | Path) -> Config:
    """Load a YAML or JSON configuration file over the default configuration.

    Durations may be strings such as ``30s`` or ``1h30m``, or numbers of seconds.
    The result is not validated.
    """
    path = Path(path)
    text = path.read_text(encoding="utf-8")
    try:
        if path.suffix.lower() == ".json":
            data = json.loads(text) if text.strip() else None
        else:
            data = yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ConfigError(f"failed to parse {path}: {exc}") from exc
    if data is None:
        data = {}
    if not isinstance(data, Mapping):
        raise ConfigError(f"{path} must hold a mapping at the top level")
    return _build(Config, _merge(asdict(default_config()), data))