"""
Data sync router.

Endpoints:
    POST /sync/sources                  Register a data source
    GET  /sync/sources/{id}             Get a data source
    POST /sync/sources/{id}/run         Sync one source now
    GET  /sync/sources/{id}/runs        Recent sync runs
    POST /sync/tick                     Run one scheduler tick
    GET  /sync/sources/{id}/stages/{entity_id}  Stage history of an entity
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Query
from pydantic import BaseModel, Field

from cadence.api.deps import ContainerDep
from cadence.core.errors import DataSourceNotFoundError
from cadence.sync.models import DataSourceRegistration, SyncFrequency

router = APIRouter(prefix="/sync")


# ------------------------------------------------------------------ #
# Schemas
# ------------------------------------------------------------------ #


class RegisterSourceRequest(BaseModel):
    tenant_id: str
    provider: str
    object_type: str
    sync_frequency: SyncFrequency = SyncFrequency.HOURLY
    stage_field: str | None = None
    settings: dict[str, Any] = Field(default_factory=dict)
    is_active: bool = True


# ------------------------------------------------------------------ #
# Helpers
# ------------------------------------------------------------------ #


def _get_source(container: Any, data_source_id: str) -> DataSourceRegistration:
    registration = container.store.data_sources.get(data_source_id)
    if registration is None:
        raise DataSourceNotFoundError(
            f"Data source not found: {data_source_id}"
        ).with_context(data_source_id=data_source_id)
    return registration


# ------------------------------------------------------------------ #
# Endpoints
# ------------------------------------------------------------------ #


@router.post("/sources", status_code=201)
def register_source(body: RegisterSourceRequest, container: ContainerDep) -> dict[str, Any]:
    registration = DataSourceRegistration.create(
        tenant_id=body.tenant_id,
        provider=body.provider,
        object_type=body.object_type,
        sync_frequency=body.sync_frequency,
        stage_field=body.stage_field,
        settings=body.settings,
        is_active=body.is_active,
    )
    container.store.data_sources.save(registration)
    return registration.to_dict()


@router.get("/sources/{data_source_id}")
def get_source(data_source_id: str, container: ContainerDep) -> dict[str, Any]:
    return _get_source(container, data_source_id).to_dict()


@router.post("/sources/{data_source_id}/run")
async def run_source(data_source_id: str, container: ContainerDep) -> dict[str, Any]:
    """Sync one source now; waits for a run of it already in flight."""
    result = await container.scheduler.sync_now(data_source_id)
    return result.to_dict()


@router.get("/sources/{data_source_id}/runs")
def list_runs(
    data_source_id: str,
    container: ContainerDep,
    limit: int = Query(20, ge=1, le=200),
) -> list[dict[str, Any]]:
    _get_source(container, data_source_id)
    return [run.to_dict() for run in container.store.sync_runs.list_for_source(data_source_id, limit)]


@router.get("/sources/{data_source_id}/stages/{entity_id}")
def stage_history(data_source_id: str, entity_id: str, container: ContainerDep) -> list[dict[str, Any]]:
    registration = _get_source(container, data_source_id)
    return [i.to_dict() for i in container.executor.tracker.history(registration, entity_id)]


@router.post("/tick")
async def tick(container: ContainerDep) -> dict[str, Any]:
    """Run one scheduler tick over the due set."""
    result = await container.scheduler.tick()
    return result.to_dict()
