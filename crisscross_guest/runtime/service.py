"""Cache runtime service: lifecycle management with state machine.

CacheService owns every piece of cache state (store, transports, dispatch
table, event bus) and wires them together.  Construct one per process and
pass it to the code that needs the server list.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Tuple

import httpx

from crisscross_guest.cache.reload import ReloadStrategy
from crisscross_guest.cache.store import CacheStore, ReloadCallback, require_address
from crisscross_guest.config.schema import GuestConfig
from crisscross_guest.dispatch import DispatchTable, build_handler_registry
from crisscross_guest.errors import GuestBaseError
from crisscross_guest.events import EventBus, Observer
from crisscross_guest.models import ServerRecord
from crisscross_guest.runtime.models import CacheStatus, ServiceState, is_valid_transition
from crisscross_guest.transport.http import PullClient
from crisscross_guest.transport.probe import TransportProbe

logger = logging.getLogger(__name__)

_UNSET: Any = object()


class _InvalidStateTransition(Exception):
    """Raised internally when an illegal state transition is attempted."""

    def __init__(self, current: ServiceState, target: ServiceState) -> None:
        super().__init__(f"Invalid state transition: {current.value} → {target.value}")
        self.current = current
        self.target = target


class CacheService:
    """Client-side cache of the network's server list.

    State machine::

        PENDING ─► STARTING ─► RUNNING ─► STOPPING ─► STOPPED
                       │                      ▲
                       └──────► ERROR ────────┘
                                  │
                                  └──► STARTING  (retry)

    Usage::

        service = CacheService(GuestConfig(port=15001))
        service.on("serverchange", print)
        await service.start()
        relays = service.list_servers("relay")
        await service.stop()

    Parameters
    ----------
    config:
        Connection and cache settings; defaults when omitted.
    pull_transport:
        Optional :mod:`httpx` transport for the pull client.
    connect:
        Optional WebSocket connection factory for the push transport.
    """

    # ------------------------------------------------------------------ #
    #  Initialisation
    # ------------------------------------------------------------------ #

    def __init__(
        self,
        config: Optional[GuestConfig] = None,
        *,
        pull_transport: Optional[httpx.AsyncBaseTransport] = None,
        connect: Optional[Callable[..., Any]] = None,
    ) -> None:
        self._config = config or GuestConfig()
        self._state: ServiceState = ServiceState.PENDING
        self._started_at: Optional[datetime] = None
        self._error_message: Optional[str] = None

        self._bus = EventBus()
        self._store = CacheStore(
            self._bus,
            cache_ttl=self._config.cache_ttl,
            on_refresh=self._refresh,
        )
        self._dispatch = DispatchTable(build_handler_registry(self._store), self._bus)

        probe_kwargs: dict = {
            "on_message": self._dispatch.handle_frame,
            "open_timeout": self._config.request_timeout,
        }
        if connect is not None:
            probe_kwargs["connect"] = connect
        self._probe = TransportProbe(self._bus, **probe_kwargs)

        self._puller = PullClient(timeout=self._config.request_timeout, transport=pull_transport)
        self._reload = ReloadStrategy(self._store, self._probe, self._puller, self._bus)

        logger.info("CacheService initialized (state=%s).", self._state.value)

    @classmethod
    def from_options(cls, options: Any, **kwargs: Any) -> "CacheService":
        """Build a service from a loose options mapping.

        Raises:
            ConfigurationError: If *options* is an array or fails validation.
        """
        return cls(GuestConfig.from_options(options), **kwargs)

    async def __aenter__(self) -> "CacheService":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.stop()

    # ------------------------------------------------------------------ #
    #  Properties
    # ------------------------------------------------------------------ #

    @property
    def state(self) -> ServiceState:
        return self._state

    @property
    def config(self) -> GuestConfig:
        return self._config

    @property
    def events(self) -> EventBus:
        """The service's event bus."""
        return self._bus

    @property
    def store(self) -> CacheStore:
        return self._store

    @property
    def probe(self) -> TransportProbe:
        return self._probe

    @property
    def dispatch_table(self) -> DispatchTable:
        return self._dispatch

    @property
    def host(self) -> Optional[str]:
        return self._reload.host

    @property
    def port(self) -> Optional[int]:
        return self._reload.port

    @property
    def is_running(self) -> bool:
        return self._state == ServiceState.RUNNING

    # ------------------------------------------------------------------ #
    #  State machine
    # ------------------------------------------------------------------ #

    def _transition(self, target: ServiceState) -> None:
        if not is_valid_transition(self._state, target):
            raise _InvalidStateTransition(self._state, target)
        prev = self._state
        self._state = target
        logger.info("Service state: %s → %s", prev.value, target.value)

    # ------------------------------------------------------------------ #
    #  Lifecycle
    # ------------------------------------------------------------------ #

    async def start(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        ready_callback: Optional[ReloadCallback] = None,
    ) -> None:
        """Load the cache over HTTP, then try to upgrade to the push channel.

        *host*/*port* default to the configured values.  *ready_callback*
        is called with the server list once the cache is first loaded.

        Raises:
            ConfigurationError: If host/port are unusable.
            TransportError: If the initial pull fails at the network level.
        """
        self._transition(ServiceState.STARTING)
        self._error_message = None

        host = self._config.host if host is None else host
        port = self._config.port if port is None else port
        self._reload.set_endpoint(host, port)

        try:
            await self._reload.trigger_reload(ready_callback)
            # No automatic reconnect: once the push channel closes, TTL
            # refreshes pull until attempt_upgrade() is called again.
            self._probe.attempt_upgrade(host, port)
        except GuestBaseError as exc:
            self._error_message = str(exc)
            self._transition(ServiceState.ERROR)
            raise

        self._started_at = datetime.now(timezone.utc)
        self._transition(ServiceState.RUNNING)

    async def stop(self) -> None:
        """Stop the refresh timer and close both transports."""
        if self._state in (ServiceState.STOPPING, ServiceState.STOPPED):
            return
        transitioning = is_valid_transition(self._state, ServiceState.STOPPING)
        if transitioning:
            self._transition(ServiceState.STOPPING)

        await self._store.stop()
        await self._reload.cancel_background()
        await self._probe.close()
        await self._puller.close()

        if transitioning:
            self._transition(ServiceState.STOPPED)

    def attempt_upgrade(self) -> None:
        """Try the push channel again, e.g. after a ``wsclose``."""
        self._probe.attempt_upgrade(self.host, self.port)

    async def _refresh(self) -> None:
        await self._reload.trigger_reload()

    # ------------------------------------------------------------------ #
    #  Public API
    # ------------------------------------------------------------------ #

    def list_servers(self, type: str = "") -> Tuple[ServerRecord, ...]:
        """List cached servers, optionally only those of *type*."""
        return self._store.list_servers(type)

    async def trigger_cache_reload(self, callback: Optional[ReloadCallback] = None) -> None:
        """Reload via push or pull; *callback* gets the next server list."""
        await self._reload.trigger_reload(callback)

    async def reload(self, timeout: Optional[float] = _UNSET) -> Tuple[ServerRecord, ...]:
        """Reload and wait for the new server list.

        *timeout* defaults to ``config.reload_timeout``.
        """
        if timeout is _UNSET:
            timeout = self._config.reload_timeout
        return await self._reload.reload(timeout)

    def report_server_issue(self, address: str, callback: Optional[ReloadCallback] = None):
        """Report that a server is not responding.

        The server is dropped from the cache immediately and a reload is
        started in the background; *callback* is called once it lands.  The
        reload may bring the server back if the host still lists it.

        Returns the background reload task.

        Raises:
            ValueError: If *address* is empty.
        """
        require_address(address)
        task = self._reload.spawn_reload(callback)
        self._store.evict(address)
        return task

    def on(self, event: str, observer: Observer) -> None:
        """Subscribe *observer* to *event* on the service's bus."""
        self._bus.subscribe(event, observer)

    def off(self, event: str, observer: Observer) -> None:
        self._bus.unsubscribe(event, observer)

    def status(self) -> CacheStatus:
        timer = self._store.timer
        status = CacheStatus(
            state=self._state,
            host=self.host,
            port=self.port,
            transport=self._probe.state,
            server_count=len(self._store),
            pending_callbacks=self._store.pending_count,
            refresh_timer_running=timer is not None and timer.running,
            cache_ttl=self._config.cache_ttl,
            push_requests=self._reload.push_requests,
            pull_requests=self._reload.pull_requests,
            started_at=self._started_at,
            error_message=self._error_message,
            last_close=self._probe.last_close,
        )
        status.compute_uptime()
        return status

