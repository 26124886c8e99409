from typing import Annotated

from fastapi import Depends, Request

from codepair.services.code_executor import CodeExecutor
from codepair.services.room_store import RoomStore


def get_room_store(request: Request) -> RoomStore:
    return request.app.state.room_store


def get_code_executor(request: Request) -> CodeExecutor:
    return request.app.state.code_executor


Rooms = Annotated[RoomStore, Depends(get_room_store)]
Executor = Annotated[CodeExecutor, Depends(get_code_executor)]
