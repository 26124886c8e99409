from fastapi import APIRouter, HTTPException, status

from codepair.api.deps import Rooms
from codepair.schemas.room import RoomCreateRequest, RoomCreateResponse, RoomRead
from codepair.services.room_store import Room

router = APIRouter(prefix="/rooms", tags=["rooms"])


def _room_url(room_id: str) -> str:
    return f"/room/{room_id}"


def _map_room(room: Room) -> RoomRead:
    return RoomRead(
        room_id=room.id,
        participant_count=room.participant_count,
        created_at=room.created_at,
        language=room.language,
    )


@router.post("", response_model=RoomCreateResponse, status_code=status.HTTP_201_CREATED)
async def create_room(
    rooms: Rooms,
    payload: RoomCreateRequest | None = None,
) -> RoomCreateResponse:
    room = rooms.create(payload.language if payload is not None else None)
    return RoomCreateResponse(room_id=room.id, url=_room_url(room.id), language=room.language)


@router.get("/{room_id}", response_model=RoomRead)
async def get_room(room_id: str, rooms: Rooms) -> RoomRead:
    room = rooms.get(room_id)
    if room is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Room not found")
    return _map_room(room)
