from fastapi import APIRouter

from codepair.api.endpoints import execution, rooms

api_router = APIRouter()
api_router.include_router(rooms.router)
api_router.include_router(execution.router)
