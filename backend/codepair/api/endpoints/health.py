from datetime import UTC, datetime

from fastapi import APIRouter

from codepair.schemas.room import HealthRead

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthRead)
async def health() -> HealthRead:
    return HealthRead(status="ok", timestamp=datetime.now(UTC))
