import asyncio
import json
import logging
from contextlib import suppress
from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from codepair.services.code_executor import CodeExecutor
from codepair.services.code_templates import SUPPORTED_LANGUAGES
from codepair.services.room_broker import Outbox, RoomBroker
from codepair.services.room_connection import RoomConnection
from codepair.services.room_store import RoomStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])

ROOM_EVENTS = {"join-room", "code-change", "cursor-change", "code-executed", "execute-code"}


async def _forward_outbox(websocket: WebSocket, queue: Outbox) -> None:
    while True:
        payload = await queue.get()
        try:
            await websocket.send_json(payload)
        except (RuntimeError, WebSocketDisconnect):
            return


def _error(detail: str) -> dict[str, Any]:
    return {"type": "error", "detail": detail}


async def _run_and_publish(
    connection: RoomConnection,
    room_id: str,
    code: str,
    language: str,
    *,
    store: RoomStore,
    broker: RoomBroker,
    executor: CodeExecutor,
) -> None:
    output = await executor.execute(code, language)

    # The room may have been reclaimed while the interpreter was running.
    if store.get(room_id) is None:
        return
    broker.publish(
        room_id,
        {
            "type": "execution-result",
            "senderId": connection.id,
            "language": language,
            "output": [line.model_dump(mode="json") for line in output],
        },
    )


def _start_execution(
    connection: RoomConnection,
    room_id: str,
    language: Any,
    *,
    store: RoomStore,
    broker: RoomBroker,
    executor: CodeExecutor,
) -> asyncio.Task[None] | None:
    room = store.get(room_id)
    if room is None:
        logger.debug("Dropping execute-code for missing room %s", room_id)
        return None

    run_language = language or room.language
    if not isinstance(run_language, str) or run_language not in SUPPORTED_LANGUAGES:
        connection.send(_error("Unsupported language"))
        return None

    # Snapshot the content now so edits arriving during the run do not change what runs.
    return asyncio.create_task(
        _run_and_publish(
            connection,
            room_id,
            room.content,
            run_language,
            store=store,
            broker=broker,
            executor=executor,
        )
    )


@router.websocket("/ws")
async def room_stream(websocket: WebSocket) -> None:
    state = websocket.app.state
    store: RoomStore = state.room_store
    broker: RoomBroker = state.room_broker
    executor: CodeExecutor = state.code_executor

    connection = RoomConnection(
        store,
        broker,
        state.room_reclaimer,
        queue_size=state.settings.outbound_queue_size,
    )

    await websocket.accept()
    logger.info("Connection %s opened", connection.id)
    forward_task = asyncio.create_task(_forward_outbox(websocket, connection.outbox))
    execution_task: asyncio.Task[None] | None = None
    try:
        while True:
            frame = await websocket.receive()
            if frame["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(frame.get("code", 1000), frame.get("reason"))
            raw = frame.get("text")
            if raw is None:
                connection.send(_error("Invalid message format"))
                continue

            try:
                message = json.loads(raw)
            except ValueError:
                connection.send(_error("Invalid JSON"))
                continue
            if not isinstance(message, dict):
                connection.send(_error("Invalid message format"))
                continue

            message_type = str(message.get("type") or "").strip()
            if message_type == "ping":
                connection.send({"type": "pong"})
                continue

            if message_type not in ROOM_EVENTS:
                connection.send(_error("Unsupported message type"))
                continue

            room_id = message.get("roomId")
            if not isinstance(room_id, str) or not room_id:
                connection.send(_error("roomId is required"))
                continue

            if message_type == "join-room":
                connection.join(room_id)
            elif message_type == "code-change":
                content = message.get("content")
                if not isinstance(content, str):
                    connection.send(_error("content must be a string"))
                    continue
                connection.change_content(room_id, content)
            elif message_type == "cursor-change":
                connection.relay_cursor(room_id, message.get("position"))
            elif message_type == "code-executed":
                connection.relay_execution(room_id, message.get("timestamp"))
            elif execution_task is not None and not execution_task.done():
                connection.send(_error("Execution already in progress"))
            else:
                execution_task = _start_execution(
                    connection,
                    room_id,
                    message.get("language"),
                    store=store,
                    broker=broker,
                    executor=executor,
                )
    except WebSocketDisconnect:
        pass
    finally:
        connection.disconnect()
        for task in (execution_task, forward_task):
            if task is None:
                continue
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task

        logger.info("Connection %s closed", connection.id)
