from datetime import datetime

from codepair.core.config import Language
from codepair.schemas.common import CamelModel


class RoomCreateRequest(CamelModel):
    language: Language | None = None


class RoomCreateResponse(CamelModel):
    room_id: str
    url: str
    language: Language


class RoomRead(CamelModel):
    room_id: str
    participant_count: int
    created_at: datetime
    language: Language


class HealthRead(CamelModel):
    status: str
    timestamp: datetime
