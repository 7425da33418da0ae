"""
Sync executor: one run for one data source.

Steps:

1. Open a :class:`SyncRun` (``running``) and mark the registration ``running``
2. Resolve credentials (every run, never cached) and fetch from the provider
3. Diff fetched records against stored ones by external id
4. Track transitions of the registration's stage field for new and
   changed records
5. Upsert those records
6. Finish the run ``success`` and schedule the next run from the frequency

Any exception in 2-5 ends the run ``error``, stores the message on the
run and the registration, and leaves ``next_scheduled_sync_at`` alone so
the source is still due on the next tick. The exception does not leave
:meth:`SyncExecutor.run`; one failing source never aborts a batch.
"""

from __future__ import annotations

import asyncio
from datetime import datetime

from cadence.core.errors import CadenceError, ConfigurationError, DataSourceNotFoundError
from cadence.core.logging import LogContext, get_logger
from cadence.core.timestamps import utc_now
from cadence.storage.protocols import Store
from cadence.sync.models import (
    DataSourceRegistration,
    SyncedRecord,
    SyncResult,
    SyncRun,
    SyncStatus,
    SyncTrigger,
)
from cadence.sync.providers import CredentialResolver, ExternalRecord, ProviderRegistry
from cadence.sync.stage_history import StageTransitionTracker, stage_value

logger = get_logger(__name__)


class SyncExecutor:
    def __init__(
        self,
        store: Store,
        providers: ProviderRegistry,
        credentials: CredentialResolver,
    ) -> None:
        self._store = store
        self.providers = providers
        self.credentials = credentials
        self.tracker = StageTransitionTracker(store.stage_history)

    async def run(
        self,
        data_source_id: str,
        trigger: SyncTrigger = SyncTrigger.MANUAL,
        now: datetime | None = None,
    ) -> SyncResult:
        """Sync one data source.

        Raises:
            DataSourceNotFoundError: no registration with ``data_source_id``.
        """
        registration = self._store.data_sources.get(data_source_id)
        if registration is None:
            raise DataSourceNotFoundError(
                f"Data source not found: {data_source_id}"
            ).with_context(data_source_id=data_source_id)

        run = SyncRun.start(registration, trigger)
        if now is not None:
            run.started_at = now
        self._store.sync_runs.add(run)
        registration.last_sync_status = SyncStatus.RUNNING.value
        self._store.data_sources.save(registration)

        async with LogContext(
            data_source_id=registration.id,
            tenant_id=registration.tenant_id,
            sync_run_id=run.id,
        ):
            logger.info(
                "sync.run_started",
                provider=registration.provider,
                object_type=registration.object_type,
                trigger=trigger.value,
            )
            try:
                await self._sync(registration, run, now)
            except asyncio.CancelledError:
                run.cancel(now)
                self._store.sync_runs.save(run)
                registration.last_sync_status = SyncStatus.CANCELLED.value
                self._store.data_sources.save(registration)
                raise
            except Exception as e:
                message = e.message if isinstance(e, CadenceError) else (str(e) or type(e).__name__)
                finished = now or utc_now()
                run.fail(message, finished)
                self._store.sync_runs.save(run)

                registration.last_sync_status = SyncStatus.ERROR.value
                registration.last_sync_error = message
                registration.last_sync_at = finished
                self._store.data_sources.save(registration)

                logger.warning(
                    "sync.run_failed",
                    error=message,
                    error_type=type(e).__name__,
                    retryable=getattr(e, "retryable", None),
                )
                return SyncResult.from_run(run, registration.next_scheduled_sync_at)

            finished = now or utc_now()
            run.succeed(finished)
            self._store.sync_runs.save(run)

            registration.last_sync_status = SyncStatus.SUCCESS.value
            registration.last_sync_error = None
            registration.last_sync_at = finished
            registration.records_count = self._store.records.count(registration.id)
            registration.next_scheduled_sync_at = registration.sync_frequency.next_run(finished)
            self._store.data_sources.save(registration)

            logger.info(
                "sync.run_completed",
                records_fetched=run.records_fetched,
                records_created=run.records_created,
                records_updated=run.records_updated,
                stage_changes=run.stage_changes,
                duration_ms=run.duration_ms,
            )
            return SyncResult.from_run(run, registration.next_scheduled_sync_at)

    async def _sync(
        self, registration: DataSourceRegistration, run: SyncRun, now: datetime | None
    ) -> None:
        if not registration.is_active:
            raise ConfigurationError("Data source is not active").with_context(
                data_source_id=registration.id
            )

        adapter = self.providers.get(registration.provider)
        credentials = await self.credentials.resolve(registration.tenant_id, registration.provider)
        fetched = await adapter.fetch(registration, credentials)

        run.records_fetched = len(fetched.records)
        self._apply(registration, run, fetched.records, now or utc_now())

    def _apply(
        self,
        registration: DataSourceRegistration,
        run: SyncRun,
        records: list[ExternalRecord],
        now: datetime,
    ) -> None:
        # Last occurrence of an external id wins.
        latest = {r.external_id: r for r in records}
        stored = self._store.records.get_many(registration.id, latest.keys())
        stage_field = registration.tracked_stage_field

        changed: list[SyncedRecord] = []
        for external_id, record in latest.items():
            previous = stored.get(external_id)
            if previous is None:
                run.records_created += 1
            elif previous.data != record.properties:
                run.records_updated += 1
            else:
                continue

            changed.append(
                SyncedRecord(
                    data_source_id=registration.id,
                    external_id=external_id,
                    tenant_id=registration.tenant_id,
                    object_type=registration.object_type,
                    data=dict(record.properties),
                    synced_at=now,
                )
            )

        # Stage history is written before the records: if it fails, the
        # records still differ on the next run and their stages are tracked
        # again.
        if stage_field:
            for synced in changed:
                opened = self.tracker.track(
                    registration, synced.external_id, stage_value(synced.data, stage_field), now
                )
                if opened is not None and opened.from_stage is not None:
                    run.stage_changes += 1

        self._store.records.upsert_many(changed)
        run.records_processed = run.records_created + run.records_updated


__all__ = ["SyncExecutor"]
