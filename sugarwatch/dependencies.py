"""Application-scoped objects exposed as FastAPI dependencies."""

from typing import Annotated

from fastapi import Depends, Request

from sugarwatch.services.dexcom_sync import DexcomPoller
from sugarwatch.services.event_bus import EventBus


def get_event_bus(request: Request) -> EventBus:
    return request.app.state.event_bus


def get_dexcom_poller(request: Request) -> DexcomPoller:
    return request.app.state.dexcom_poller


EventBusDep = Annotated[EventBus, Depends(get_event_bus)]
DexcomPollerDep = Annotated[DexcomPoller, Depends(get_dexcom_poller)]
