import logging
from typing import List
from uuid import UUID

from fastapi import APIRouter, HTTPException

from pixelperks.models.dc_models import (
    AddTimeModel,
    JoinSessionModel,
    MoveSessionModel,
    OperationResultModel,
    ReduceTimeModel,
    SaveBillModel,
    StartSessionModel,
    StationModel,
    StopPlayerModel,
    TimerModel,
    TogglePlayerModel,
)
from pixelperks.models.schema_models import StationSchema
from pixelperks.services import registry

station_router = APIRouter(prefix="/stations", tags=["stations"])


def checked(result: OperationResultModel) -> OperationResultModel:
    """Turn a failed operation into the matching HTTP error."""
    if result.success:
        return result
    if result.message.endswith("not found"):
        raise HTTPException(status_code=404, detail=result.message)
    raise HTTPException(status_code=409, detail=result.message)


class StationAPI:
    @staticmethod
    @station_router.post("", response_model=StationSchema, status_code=201)
    async def create_station(station: StationModel):
        return await registry.station_service.create_station(station)

    @staticmethod
    @station_router.get("", response_model=List[StationSchema])
    async def get_stations():
        return await registry.station_service.read_stations()

    @staticmethod
    @station_router.get("/{station_id}", response_model=StationSchema)
    async def get_station(station_id: UUID):
        station = await registry.station_service.read_station(station_id)
        if station is None:
            raise HTTPException(status_code=404, detail="Station not found")
        return station

    @staticmethod
    @station_router.delete("/{station_id}", response_model=OperationResultModel)
    async def delete_station(station_id: UUID):
        return checked(await registry.station_service.delete_station(station_id))

    @staticmethod
    @station_router.get("/{station_id}/timer", response_model=TimerModel)
    async def get_timer(station_id: UUID):
        timer = await registry.station_service.read_timer(station_id)
        if timer is None:
            raise HTTPException(status_code=404, detail="Station not found")
        return timer


class SessionAPI:
    @staticmethod
    @station_router.post("/{station_id}/start", response_model=OperationResultModel)
    async def start_session(station_id: UUID, request: StartSessionModel):
        return checked(await registry.station_service.start_session(station_id, request))

    @staticmethod
    @station_router.post("/{station_id}/walk-in-order", response_model=OperationResultModel)
    async def start_walk_in_order(station_id: UUID, request: StartSessionModel):
        return checked(await registry.station_service.start_walk_in_order(station_id, request))

    @staticmethod
    @station_router.post("/{station_id}/join", response_model=OperationResultModel)
    async def join_session(station_id: UUID, request: JoinSessionModel):
        return checked(await registry.station_service.join_session(station_id, request))

    @staticmethod
    @station_router.post("/{station_id}/stop", response_model=OperationResultModel)
    async def stop_player(station_id: UUID, request: StopPlayerModel):
        result = checked(await registry.station_service.stop_participant(station_id, request.participant_id))
        if result.checkout_required:
            logging.info(f"Station {station_id} has no active players left, checkout required")
        return result

    @staticmethod
    @station_router.post("/{station_id}/toggle", response_model=OperationResultModel)
    async def toggle_station(station_id: UUID):
        return checked(await registry.station_service.toggle_station_timer(station_id))

    @staticmethod
    @station_router.post("/{station_id}/toggle-player", response_model=OperationResultModel)
    async def toggle_player(station_id: UUID, request: TogglePlayerModel):
        return checked(await registry.station_service.toggle_player_timer(station_id, request.participant_id))

    @staticmethod
    @station_router.post("/{station_id}/add-time", response_model=OperationResultModel)
    async def add_time(station_id: UUID, request: AddTimeModel):
        return checked(await registry.station_service.add_time(station_id, request))

    @staticmethod
    @station_router.post("/{station_id}/reduce-time", response_model=OperationResultModel)
    async def reduce_time(station_id: UUID, request: ReduceTimeModel):
        return checked(await registry.station_service.reduce_time(station_id, request))

    @staticmethod
    @station_router.post("/{station_id}/move", response_model=OperationResultModel)
    async def move_session(station_id: UUID, request: MoveSessionModel):
        return checked(await registry.station_service.move_session(station_id, request))

    @staticmethod
    @station_router.put("/{station_id}/bill", response_model=OperationResultModel)
    async def save_bill(station_id: UUID, request: SaveBillModel):
        return checked(await registry.station_service.save_bill(station_id, request))
