"""Explicit wiring of one Taste Mixer session."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

import httpx

from tastemixer.auth.credential_store import CredentialStore
from tastemixer.auth.store import StateStore
from tastemixer.auth.store_factory import build_state_store
from tastemixer.config import MixerConfig, load_config
from tastemixer.core.spotify_client import SpotifyCatalog
from tastemixer.integrations.request_gateway import RequestGateway
from tastemixer.logging import configure_logging, get_logger
from tastemixer.logging_events import log_event
from tastemixer.orchestrator.generation_queue import DEFAULT_DEBOUNCE_SECONDS
from tastemixer.orchestrator.playlist_session import PlaylistSession
from tastemixer.services.cache import ResultCache
from tastemixer.services.favorites import FavoritesService
from tastemixer.services.oauth_service import OAuthService
from tastemixer.services.playlist_generator import PlaylistGenerator
from tastemixer.services.playlist_mutator import PlaylistMutator
from tastemixer.services.token_refresher import CredentialRefresher

__all__ = ["MixerContext", "build_context"]

logger = get_logger(__name__)


@dataclass(slots=True)
class MixerContext:
    """Every collaborator of a session; independent contexts share nothing."""

    config: MixerConfig
    state: StateStore
    credentials: CredentialStore
    refresher: CredentialRefresher
    cache: ResultCache
    gateway: RequestGateway
    catalog: SpotifyCatalog
    generator: PlaylistGenerator
    mutator: PlaylistMutator
    oauth: OAuthService
    favorites: FavoritesService

    def new_session(self, *, debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS) -> PlaylistSession:
        return PlaylistSession(
            self.generator, self.mutator, self.catalog, debounce_seconds=debounce_seconds
        )

    async def start(self) -> None:
        if self.config.cache.sweep_enabled:
            self.cache.start_sweeper()
        log_event(logger, "context.started", ttl_s=self.cache.ttl_seconds)

    async def aclose(self) -> None:
        await self.cache.stop_sweeper()
        log_event(logger, "context.closed")

    async def __aenter__(self) -> MixerContext:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()


def _client_factory(
    transport: httpx.AsyncBaseTransport | None, timeout: float
) -> Callable[[], httpx.AsyncClient] | None:
    if transport is None:
        return None

    def _factory() -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=transport, timeout=timeout)

    return _factory


def build_context(
    config: MixerConfig | None = None,
    *,
    state_store: StateStore | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> MixerContext:
    """Wire a session; ``transport`` routes every HTTP call (tests use a mock)."""

    resolved = config or load_config()
    configure_logging(resolved.logging)
    state = state_store if state_store is not None else build_state_store(resolved.storage)
    credentials = CredentialStore(state)

    http_client_factory = _client_factory(transport, resolved.token_proxy.timeout_seconds)

    refresher = CredentialRefresher(
        credentials,
        refresh_url=resolved.token_proxy.refresh_url,
        http_client_factory=http_client_factory,
        margin_ms=resolved.generator.refresh_margin_seconds * 1000,
        timeout_seconds=resolved.token_proxy.timeout_seconds,
    )
    cache = ResultCache(ttl_seconds=resolved.cache.ttl_seconds)
    gateway = RequestGateway(
        refresher.ensure_valid_access_token,
        base_url=resolved.spotify.api_base_url,
        policy=resolved.gateway,
        transport=transport,
    )
    catalog = SpotifyCatalog(gateway, cache)
    return MixerContext(
        config=resolved,
        state=state,
        credentials=credentials,
        refresher=refresher,
        cache=cache,
        gateway=gateway,
        catalog=catalog,
        generator=PlaylistGenerator(catalog, cache, config=resolved.generator),
        mutator=PlaylistMutator(catalog),
        oauth=OAuthService(
            spotify=resolved.spotify,
            token_proxy=resolved.token_proxy,
            credentials=credentials,
            http_client_factory=http_client_factory,
        ),
        favorites=FavoritesService(state),
    )
