"""Application configuration utilities for Taste Mixer."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
import os
from pathlib import Path
from typing import Any, Literal

DEFAULT_SPOTIFY_SCOPES: tuple[str, ...] = (
    "user-read-private",
    "user-read-email",
    "user-top-read",
    "playlist-modify-public",
    "playlist-modify-private",
    "user-follow-read",
    "user-library-read",
)
DEFAULT_API_BASE_URL = "https://api.spotify.com/v1"
DEFAULT_ACCOUNTS_BASE_URL = "https://accounts.spotify.com"
DEFAULT_REDIRECT_URI = "http://127.0.0.1:3000/auth/callback"
DEFAULT_TOKEN_PROXY_URL = "http://127.0.0.1:3000/api"

DEFAULT_GATEWAY_MAX_RETRIES = 3
DEFAULT_GATEWAY_BACKOFF_MS = 1000
DEFAULT_RETRY_AFTER_SECONDS = 1.0
DEFAULT_GATEWAY_TIMEOUT_MS = 10_000
DEFAULT_GATEWAY_MAX_CONCURRENCY = 8

DEFAULT_CACHE_TTL_SECONDS = 300.0
DEFAULT_REFRESH_MARGIN_SECONDS = 300

DEFAULT_MARKET = "ES"
DEFAULT_MAX_TRACKS = 50
DEFAULT_MORE_COUNT = 10
DEFAULT_FALLBACK_QUERY = "year:2020-2024"

DEFAULT_STATE_DIR = "~/.tastemixer"

_RUNTIME_ENV_CACHE: dict[str, str] | None = None


def _load_env_file(path: Path) -> dict[str, str]:
    try:
        contents = path.read_text(encoding="utf-8")
    except OSError:
        return {}
    env_values: dict[str, str] = {}
    for line in contents.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        key, sep, value = stripped.partition("=")
        if not sep:
            continue
        env_values[key.strip()] = value.strip().strip('"').strip("'")
    return env_values


def load_runtime_env(
    *,
    env_file: str | os.PathLike[str] | None = None,
    base_env: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """Load runtime environment values applying .env before explicit environment."""

    env: dict[str, str] = {}
    source = dict(base_env if base_env is not None else os.environ)

    path = Path(env_file) if env_file is not None else Path(".env")
    if path.exists() and path.is_file():
        env.update(_load_env_file(path))

    env.update({key: str(value) for key, value in source.items() if value is not None})
    return env


def get_runtime_env() -> Mapping[str, str]:
    """Return the cached runtime environment mapping."""

    global _RUNTIME_ENV_CACHE
    if _RUNTIME_ENV_CACHE is None:
        _RUNTIME_ENV_CACHE = load_runtime_env()
    return _RUNTIME_ENV_CACHE


def override_runtime_env(runtime_env: Mapping[str, str] | None) -> None:
    """Override the cached runtime environment (primarily for testing)."""

    global _RUNTIME_ENV_CACHE
    if runtime_env is None:
        _RUNTIME_ENV_CACHE = None
    else:
        _RUNTIME_ENV_CACHE = dict(runtime_env)


def get_env(name: str, default: str | None = None) -> str | None:
    """Return an environment variable honoring ENV > .env > defaults."""

    env = get_runtime_env()
    return env.get(name, default)


def _env_value(env: Mapping[str, Any], key: str) -> str | None:
    value = env.get(key)
    if value is None:
        return None
    return str(value)


def _as_int(value: str | None, *, default: int) -> int:
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _as_float(value: str | None, *, default: float) -> float:
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _bounded_int(
    value: Any,
    *,
    default: int,
    minimum: int | None = None,
    maximum: int | None = None,
) -> int:
    resolved = _as_int(value, default=default)
    if minimum is not None:
        resolved = max(minimum, resolved)
    if maximum is not None:
        resolved = min(maximum, resolved)
    return resolved


def _parse_list(value: str | None) -> list[str]:
    if value is None:
        return []
    candidates = value.replace("\n", ",").replace(" ", ",").split(",")
    return [item.strip() for item in candidates if item.strip()]


@dataclass(slots=True)
class SpotifyConfig:
    client_id: str | None
    client_secret: str | None
    redirect_uri: str
    scopes: tuple[str, ...]
    api_base_url: str = DEFAULT_API_BASE_URL
    accounts_base_url: str = DEFAULT_ACCOUNTS_BASE_URL

    @property
    def scope(self) -> str:
        return " ".join(self.scopes)

    @property
    def token_url(self) -> str:
        return f"{self.accounts_base_url.rstrip('/')}/api/token"

    @property
    def authorize_url(self) -> str:
        return f"{self.accounts_base_url.rstrip('/')}/authorize"


@dataclass(slots=True)
class TokenProxyConfig:
    base_url: str
    exchange_path: str = "/token-exchange"
    refresh_path: str = "/token-refresh"
    timeout_seconds: float = 10.0

    @property
    def exchange_url(self) -> str:
        return f"{self.base_url.rstrip('/')}{self.exchange_path}"

    @property
    def refresh_url(self) -> str:
        return f"{self.base_url.rstrip('/')}{self.refresh_path}"


@dataclass(slots=True, frozen=True)
class GatewayPolicy:
    max_retries: int = DEFAULT_GATEWAY_MAX_RETRIES
    backoff_ms: int = DEFAULT_GATEWAY_BACKOFF_MS
    default_retry_after_s: float = DEFAULT_RETRY_AFTER_SECONDS
    timeout_ms: int = DEFAULT_GATEWAY_TIMEOUT_MS
    max_concurrency: int = DEFAULT_GATEWAY_MAX_CONCURRENCY

    @classmethod
    def from_env(cls, env: Mapping[str, Any]) -> GatewayPolicy:
        return cls(
            max_retries=_bounded_int(
                env.get("GATEWAY_MAX_RETRIES"),
                default=DEFAULT_GATEWAY_MAX_RETRIES,
                minimum=0,
                maximum=10,
            ),
            backoff_ms=_bounded_int(
                env.get("GATEWAY_BACKOFF_MS"),
                default=DEFAULT_GATEWAY_BACKOFF_MS,
                minimum=0,
            ),
            default_retry_after_s=max(
                0.0,
                _as_float(
                    _env_value(env, "GATEWAY_DEFAULT_RETRY_AFTER_S"),
                    default=DEFAULT_RETRY_AFTER_SECONDS,
                ),
            ),
            timeout_ms=_bounded_int(
                env.get("GATEWAY_TIMEOUT_MS"),
                default=DEFAULT_GATEWAY_TIMEOUT_MS,
                minimum=100,
            ),
            max_concurrency=_bounded_int(
                env.get("GATEWAY_MAX_CONCURRENCY"),
                default=DEFAULT_GATEWAY_MAX_CONCURRENCY,
                minimum=1,
            ),
        )


@dataclass(slots=True, frozen=True)
class CacheConfig:
    ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS
    sweep_enabled: bool = True


@dataclass(slots=True, frozen=True)
class GeneratorConfig:
    default_market: str = DEFAULT_MARKET
    max_tracks: int = DEFAULT_MAX_TRACKS
    more_count: int = DEFAULT_MORE_COUNT
    related_artist_limit: int = 3
    search_limit: int = 50
    more_search_limit: int = 30
    artist_offset_ceiling: int = 20
    genre_offset_ceiling: int = 30
    fallback_query: str = DEFAULT_FALLBACK_QUERY
    refresh_margin_seconds: int = DEFAULT_REFRESH_MARGIN_SECONDS


@dataclass(slots=True, frozen=True)
class StorageConfig:
    backend: Literal["memory", "fs"] = "fs"
    state_dir: str = DEFAULT_STATE_DIR

    @property
    def state_path(self) -> Path:
        return Path(self.state_dir).expanduser() / "state.json"


@dataclass(slots=True, frozen=True)
class LoggingConfig:
    level: str = "INFO"
    log_file: str | None = None


@dataclass(slots=True)
class MixerConfig:
    spotify: SpotifyConfig
    token_proxy: TokenProxyConfig
    gateway: GatewayPolicy
    cache: CacheConfig
    generator: GeneratorConfig
    storage: StorageConfig
    logging: LoggingConfig


def _parse_storage_backend(raw_value: str | None) -> Literal["memory", "fs"]:
    value = (raw_value or "fs").strip().lower()
    if value == "memory":
        return "memory"
    return "fs"


def load_config(runtime_env: Mapping[str, Any] | None = None) -> MixerConfig:
    """Build the application configuration from the runtime environment."""

    env = runtime_env if runtime_env is not None else get_runtime_env()

    scopes = tuple(_parse_list(_env_value(env, "SPOTIFY_SCOPES"))) or DEFAULT_SPOTIFY_SCOPES
    spotify = SpotifyConfig(
        client_id=_env_value(env, "SPOTIFY_CLIENT_ID"),
        client_secret=_env_value(env, "SPOTIFY_CLIENT_SECRET"),
        redirect_uri=(_env_value(env, "SPOTIFY_REDIRECT_URI") or DEFAULT_REDIRECT_URI).strip(),
        scopes=scopes,
        api_base_url=(_env_value(env, "SPOTIFY_API_BASE_URL") or DEFAULT_API_BASE_URL).strip(),
        accounts_base_url=(
            _env_value(env, "SPOTIFY_ACCOUNTS_BASE_URL") or DEFAULT_ACCOUNTS_BASE_URL
        ).strip(),
    )

    token_proxy = TokenProxyConfig(
        base_url=(_env_value(env, "TOKEN_PROXY_URL") or DEFAULT_TOKEN_PROXY_URL).strip(),
        timeout_seconds=max(
            1.0, _as_float(_env_value(env, "TOKEN_PROXY_TIMEOUT_S"), default=10.0)
        ),
    )

    cache = CacheConfig(
        ttl_seconds=max(
            1.0,
            _as_float(_env_value(env, "CACHE_TTL_SECONDS"), default=DEFAULT_CACHE_TTL_SECONDS),
        ),
    )

    market = (_env_value(env, "DEFAULT_MARKET") or DEFAULT_MARKET).strip().upper()
    generator = GeneratorConfig(
        default_market=market or DEFAULT_MARKET,
        max_tracks=_bounded_int(
            env.get("PLAYLIST_MAX_TRACKS"), default=DEFAULT_MAX_TRACKS, minimum=1, maximum=100
        ),
        more_count=_bounded_int(
            env.get("PLAYLIST_MORE_COUNT"), default=DEFAULT_MORE_COUNT, minimum=1, maximum=50
        ),
        fallback_query=(
            _env_value(env, "PLAYLIST_FALLBACK_QUERY") or DEFAULT_FALLBACK_QUERY
        ).strip(),
        refresh_margin_seconds=_bounded_int(
            env.get("TOKEN_REFRESH_MARGIN_S"),
            default=DEFAULT_REFRESH_MARGIN_SECONDS,
            minimum=0,
        ),
    )

    storage = StorageConfig(
        backend=_parse_storage_backend(_env_value(env, "STATE_BACKEND")),
        state_dir=(_env_value(env, "STATE_DIR") or DEFAULT_STATE_DIR).strip(),
    )

    logging_config = LoggingConfig(
        level=(_env_value(env, "LOG_LEVEL") or "INFO").strip().upper(),
        log_file=_env_value(env, "LOG_FILE"),
    )

    return MixerConfig(
        spotify=spotify,
        token_proxy=token_proxy,
        gateway=GatewayPolicy.from_env(env),
        cache=cache,
        generator=generator,
        storage=storage,
        logging=logging_config,
    )


__all__ = [
    "CacheConfig",
    "DEFAULT_SPOTIFY_SCOPES",
    "GatewayPolicy",
    "GeneratorConfig",
    "LoggingConfig",
    "MixerConfig",
    "SpotifyConfig",
    "StorageConfig",
    "TokenProxyConfig",
    "get_env",
    "get_runtime_env",
    "load_config",
    "load_runtime_env",
    "override_runtime_env",
]
