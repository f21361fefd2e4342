from __future__ import annotations

from collections import OrderedDict
from functools import lru_cache
import threading
from typing import Optional, Sequence, Tuple

from fastapi import Depends

from lead_intake.adapters.geo_providers import GeoProvider, IpApiComProvider, IpApiCoProvider, is_public_ip
from lead_intake.adapters.remote_store import LeadStore, SubmittedContactsStore
from lead_intake.adapters.rest_client import RestStoreClient
from lead_intake.adapters.storage import FileStorage, SessionStorageRegistry, StorageBackend
from lead_intake.app.config import Settings, get_settings
from lead_intake.orchestrator.graph import LeadSubmissionPipeline
from lead_intake.schemas.context import ClientContext
from lead_intake.services.cache import KeyValueCache
from lead_intake.services.cooldown import CooldownTracker
from lead_intake.services.duplicate_guard import DuplicateGuard, LocalContactRepository
from lead_intake.services.lead import LeadService
from lead_intake.services.tracking import TrackingCollector
from lead_intake.services.visitor_session import VisitorSession
from lead_intake.utils.timeutil import Clock, utc_now


class ClientLockRegistry:
    """One lock per client so a client never has two submissions in flight.

    Locks are kept in least-recently-used order and capped at `max_clients`.
    A lock that is currently held is never evicted.
    """

    def __init__(self, max_clients: int = 1000) -> None:
        self._max_clients = max(1, max_clients)
        self._guard = threading.Lock()
        self._locks: "OrderedDict[str, threading.Lock]" = OrderedDict()

    def lock_for(self, client_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(client_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[client_id] = lock
                self._evict_idle()
            else:
                self._locks.move_to_end(client_id)
            return lock

    def _evict_idle(self) -> None:
        overflow = len(self._locks) - self._max_clients
        if overflow <= 0:
            return
        # the newest entry is the lock being handed out, never evict it
        for client_id in list(self._locks)[:-1]:
            if overflow <= 0:
                break
            if not self._locks[client_id].locked():
                del self._locks[client_id]
                overflow -= 1

    def __len__(self) -> int:
        return len(self._locks)


class IntakeFactory:
    """Builds per-client services on top of the process-wide stores."""

    def __init__(
        self,
        settings: Settings,
        rest_client: RestStoreClient,
        durable_storage: StorageBackend,
        session_registry: SessionStorageRegistry,
        lock_registry: ClientLockRegistry,
        geo_providers: Sequence[GeoProvider],
        clock: Optional[Clock] = None,
    ) -> None:
        self._settings = settings
        self._rest_client = rest_client
        self._durable_storage = durable_storage
        self._session_registry = session_registry
        self._lock_registry = lock_registry
        self._geo_providers = list(geo_providers)
        self._clock = clock or utc_now

    def durable_cache(self, context: ClientContext) -> KeyValueCache:
        prefix = f"{self._settings.storage_prefix}{context.client_id}_"
        return KeyValueCache(self._durable_storage, prefix=prefix, clock=self._clock)

    def session_cache(self, context: ClientContext) -> KeyValueCache:
        backend = self._session_registry.for_session(context.session_id)
        return KeyValueCache(backend, prefix=self._settings.storage_prefix, clock=self._clock)

    def tracking_for(self, context: ClientContext) -> TrackingCollector:
        client_ip = context.ip_address if is_public_ip(context.ip_address) else None
        return TrackingCollector(
            session_cache=self.session_cache(context),
            providers=self._geo_providers,
            max_age_minutes=self._settings.tracking_cache_minutes,
            client_ip=client_ip,
            default_timezone=self._settings.default_timezone,
            clock=self._clock,
        )

    def guard_for(self, context: ClientContext) -> DuplicateGuard:
        return DuplicateGuard(
            local=LocalContactRepository(self.durable_cache(context), clock=self._clock),
            remote=SubmittedContactsStore(self._rest_client, clock=self._clock),
            country_code=self._settings.default_country_code,
        )

    def cooldown_for(self, context: ClientContext) -> CooldownTracker:
        return CooldownTracker(self.durable_cache(context), clock=self._clock)

    def session_for(self, context: ClientContext) -> VisitorSession:
        return VisitorSession(self.session_cache(context), clock=self._clock)

    def lead_service(self) -> LeadService:
        return LeadService(
            lead_store=LeadStore(self._rest_client, clock=self._clock),
            country_code=self._settings.default_country_code,
            clock=self._clock,
        )

    def pipeline_for(self, context: ClientContext) -> LeadSubmissionPipeline:
        tracking = self.tracking_for(context)
        session = self.session_for(context)
        return LeadSubmissionPipeline(
            lead_service=self.lead_service(),
            duplicate_guard=self.guard_for(context),
            cooldown=self.cooldown_for(context),
            cooldown_minutes=self._settings.cooldown_minutes,
            tracking_source=lambda: tracking.get_tracking_data(context.user_agent),
            utm_source=session.get_utm_params,
            lock=self._lock_registry.lock_for(context.client_id),
        )


@lru_cache(maxsize=1)
def get_rest_client() -> RestStoreClient:
    settings = get_settings()
    return RestStoreClient(base_url=settings.api_base_url, timeout=settings.api_timeout_seconds)


@lru_cache(maxsize=1)
def get_durable_storage() -> FileStorage:
    settings = get_settings()
    return FileStorage(settings.durable_store_path)


@lru_cache(maxsize=1)
def get_session_registry() -> SessionStorageRegistry:
    settings = get_settings()
    return SessionStorageRegistry(max_sessions=settings.max_sessions)


@lru_cache(maxsize=1)
def get_lock_registry() -> ClientLockRegistry:
    settings = get_settings()
    return ClientLockRegistry(max_clients=settings.max_client_locks)


@lru_cache(maxsize=1)
def get_geo_providers() -> Tuple[GeoProvider, ...]:
    settings = get_settings()
    timeout = settings.geolocation_timeout_seconds
    return (
        IpApiCoProvider(url=settings.ip_api_url, timeout=timeout),
        IpApiComProvider(url=settings.ip_api_fallback_url, timeout=timeout),
    )


def get_intake_factory(
    settings: Settings = Depends(get_settings),
    rest_client: RestStoreClient = Depends(get_rest_client),
    durable_storage: FileStorage = Depends(get_durable_storage),
    session_registry: SessionStorageRegistry = Depends(get_session_registry),
    lock_registry: ClientLockRegistry = Depends(get_lock_registry),
    geo_providers: Tuple[GeoProvider, ...] = Depends(get_geo_providers),
) -> IntakeFactory:
    return IntakeFactory(
        settings=settings,
        rest_client=rest_client,
        durable_storage=durable_storage,
        session_registry=session_registry,
        lock_registry=lock_registry,
        geo_providers=geo_providers,
    )
