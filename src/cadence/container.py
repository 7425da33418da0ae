"""
Lazy-initialised composition root.

:class:`CadenceContainer` holds the store and the external collaborators
and builds the orchestrator, event processor, sync executor and
scheduler from them on first access. Anything passed to the constructor
replaces the default built from settings, which is how tests swap in
fakes.

Usage::

    container = CadenceContainer()
    outcome = await container.processor.handle(event)
    tick = await container.scheduler.tick()

    # As a context manager for automatic cleanup:
    with CadenceContainer(CadenceSettings(database_url="cadence.db")) as c:
        c.store.rules.save(rule)
"""

from __future__ import annotations

from typing import Any

from cadence.automation.actions import (
    ActionDispatcher,
    ChannelClientFactory,
    ChannelMessageAction,
    DirectMessageAction,
    DocumentDestinationFactory,
    DocumentProducer,
    DocumentPushAction,
    WebhookAction,
)
from cadence.automation.orchestrator import AutomationOrchestrator, EventProcessor
from cadence.core.events.memory import InMemoryEventBus
from cadence.core.logging import get_logger
from cadence.core.settings import CadenceSettings, get_settings
from cadence.execution.redelivery import BackoffRedelivery, Redelivery
from cadence.execution.retry import ExponentialBackoff
from cadence.integrations import (
    HttpDocumentDestinationFactory,
    HttpDocumentProducer,
    HubSpotProvider,
    HubSpotTokenRefresher,
    SlackClientFactory,
)
from cadence.storage import Store, create_store
from cadence.sync.executor import SyncExecutor
from cadence.sync.providers import (
    CredentialResolver,
    InMemoryCredentialStore,
    ProviderRegistry,
    RefreshingCredentialResolver,
)
from cadence.sync.scanner import DueSetScanner
from cadence.sync.scheduler import SyncScheduler

logger = get_logger(__name__)


class CadenceContainer:
    """Lazy-initialised dependency container.

    Components are created on first property access and disposed via
    :meth:`close` (or the context-manager protocol).
    """

    def __init__(
        self,
        settings: CadenceSettings | None = None,
        *,
        store: Store | None = None,
        channel_clients: ChannelClientFactory | None = None,
        document_producer: DocumentProducer | None = None,
        document_destinations: DocumentDestinationFactory | None = None,
        providers: ProviderRegistry | None = None,
        credentials: CredentialResolver | None = None,
        redelivery: Redelivery | None = None,
        webhook_client: Any | None = None,
    ) -> None:
        self._settings = settings
        self._store = store
        self._channel_clients = channel_clients
        self._document_producer = document_producer
        self._document_destinations = document_destinations
        self._providers = providers
        self._credentials = credentials
        self._redelivery = redelivery
        self._webhook_client = webhook_client
        self._credential_store: InMemoryCredentialStore | None = None
        self._dispatcher: ActionDispatcher | None = None
        self._orchestrator: AutomationOrchestrator | None = None
        self._processor: EventProcessor | None = None
        self._executor: SyncExecutor | None = None
        self._scheduler: SyncScheduler | None = None
        self._event_bus: InMemoryEventBus | None = None

    # ── Properties (lazy) ────────────────────────────────────────

    @property
    def settings(self) -> CadenceSettings:
        if self._settings is None:
            self._settings = get_settings()
        return self._settings

    @property
    def store(self) -> Store:
        if self._store is None:
            self._store = create_store(self.settings.database_url)
            logger.debug("container.store_created", database_url=self.settings.database_url)
        return self._store

    @property
    def channel_clients(self) -> ChannelClientFactory:
        if self._channel_clients is None:
            self._channel_clients = SlackClientFactory(
                default_token=self.settings.slack_bot_token,
                base_url=self.settings.slack_api_url,
                timeout=self.settings.http_timeout_seconds,
            )
        return self._channel_clients

    @property
    def document_destinations(self) -> DocumentDestinationFactory:
        if self._document_destinations is None:
            self._document_destinations = HttpDocumentDestinationFactory(
                self.settings.document_api_url,
                self.settings.document_api_token,
                timeout=self.settings.http_timeout_seconds,
            )
        return self._document_destinations

    @property
    def document_producer(self) -> DocumentProducer:
        if self._document_producer is None:
            self._document_producer = HttpDocumentProducer(
                self.settings.document_api_url or "",
                self.settings.document_api_token,
                timeout=self.settings.http_timeout_seconds,
            )
        return self._document_producer

    @property
    def dispatcher(self) -> ActionDispatcher:
        if self._dispatcher is None:
            self._dispatcher = ActionDispatcher([
                ChannelMessageAction(self.channel_clients),
                DirectMessageAction(self.channel_clients, self.store.directory),
                DocumentPushAction(
                    self.document_producer,
                    self.document_destinations,
                    self.store.documents,
                    default_folder=self.settings.document_folder,
                ),
                WebhookAction(self._webhook_client, timeout=self.settings.http_timeout_seconds),
            ])
        return self._dispatcher

    @property
    def orchestrator(self) -> AutomationOrchestrator:
        if self._orchestrator is None:
            self._orchestrator = AutomationOrchestrator(
                self.store,
                self.dispatcher,
                dedup_window_seconds=self.settings.dedup_window_seconds,
                lease_seconds=self.settings.execution_lease_seconds,
            )
        return self._orchestrator

    @property
    def redelivery(self) -> Redelivery:
        if self._redelivery is None:
            self._redelivery = BackoffRedelivery(
                ExponentialBackoff(
                    max_retries=self.settings.redelivery_max_attempts - 1,
                    base_delay=self.settings.redelivery_initial_delay_seconds,
                    max_delay=self.settings.redelivery_max_delay_seconds,
                )
            )
        return self._redelivery

    @property
    def processor(self) -> EventProcessor:
        if self._processor is None:
            self._processor = EventProcessor(self.orchestrator, self.redelivery)
        return self._processor

    @property
    def credential_store(self) -> InMemoryCredentialStore:
        if self._credential_store is None:
            self._credential_store = InMemoryCredentialStore()
        return self._credential_store

    @property
    def providers(self) -> ProviderRegistry:
        if self._providers is None:
            self._providers = ProviderRegistry([
                HubSpotProvider(
                    self.settings.hubspot_api_url, timeout=self.settings.http_timeout_seconds
                ),
            ])
        return self._providers

    @property
    def credentials(self) -> CredentialResolver:
        if self._credentials is None:
            refresher = None
            if self.settings.hubspot_client_id and self.settings.hubspot_client_secret:
                refresher = HubSpotTokenRefresher(
                    self.settings.hubspot_client_id,
                    self.settings.hubspot_client_secret,
                    self.settings.hubspot_api_url,
                    timeout=self.settings.http_timeout_seconds,
                )
            self._credentials = RefreshingCredentialResolver(
                self.credential_store,
                refresher,
                refresh_skew_seconds=self.settings.credential_refresh_skew_seconds,
            )
        return self._credentials

    @property
    def executor(self) -> SyncExecutor:
        if self._executor is None:
            self._executor = SyncExecutor(self.store, self.providers, self.credentials)
        return self._executor

    @property
    def scheduler(self) -> SyncScheduler:
        if self._scheduler is None:
            self._scheduler = SyncScheduler(
                DueSetScanner(self.store.data_sources, self.settings.due_batch_size),
                self.executor,
                self.store.data_sources,
                max_concurrency=self.settings.max_concurrent_syncs,
                per_tenant_limit=self.settings.max_concurrent_syncs_per_tenant,
            )
        return self._scheduler

    @property
    def event_bus(self) -> InMemoryEventBus:
        if self._event_bus is None:
            self._event_bus = InMemoryEventBus()
        return self._event_bus

    # ── Lifecycle ────────────────────────────────────────────────

    async def start(self) -> None:
        """Subscribe the event processor to the in-process bus."""
        await self.processor.subscribe(self.event_bus)

    async def aclose(self) -> None:
        if self._processor is not None:
            await self._processor.aclose()
        if self._event_bus is not None:
            await self._event_bus.close()
        self.close()

    def close(self) -> None:
        if self._store is not None:
            self._store.close()
            self._store = None

    def __enter__(self) -> CadenceContainer:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()


__all__ = ["CadenceContainer"]
