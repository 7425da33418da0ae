"""
FastAPI dependency providers.

The container lives on ``app.state`` so tests can build an app around a
container of fakes and every request sees the same engine instance.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from cadence.container import CadenceContainer
from cadence.core.settings import CadenceSettings


def get_container(request: Request) -> CadenceContainer:
    return request.app.state.container


def get_settings(request: Request) -> CadenceSettings:
    return request.app.state.settings


ContainerDep = Annotated[CadenceContainer, Depends(get_container)]
SettingsDep = Annotated[CadenceSettings, Depends(get_settings)]
