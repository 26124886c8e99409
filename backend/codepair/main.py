from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from codepair.api.endpoints import health, realtime
from codepair.api.router import api_router
from codepair.core.config import Settings, get_settings
from codepair.core.logging_setup import setup_logging
from codepair.services.code_executor import CodeExecutor
from codepair.services.room_broker import RoomBroker
from codepair.services.room_reclaimer import RoomReclaimer
from codepair.services.room_store import RoomStore


def create_app(settings: Settings | None = None) -> FastAPI:
    app_settings = settings or get_settings()
    logger = setup_logging(app_settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        room_store = RoomStore(default_language=app_settings.default_language)
        app.state.settings = app_settings
        app.state.room_store = room_store
        app.state.room_broker = RoomBroker()
        app.state.room_reclaimer = RoomReclaimer(
            room_store,
            delay_seconds=app_settings.room_reclaim_delay_seconds,
        )
        app.state.code_executor = CodeExecutor(
            python_executable=app_settings.python_executable,
            node_executable=app_settings.node_executable,
            timeout_seconds=app_settings.execution_timeout_seconds,
            max_output_lines=app_settings.execution_max_output_lines,
            max_output_bytes=app_settings.execution_max_output_bytes,
        )
        logger.info("%s started (environment=%s)", app_settings.app_name, app_settings.environment)
        yield
        app.state.room_reclaimer.close()
        logger.info("%s stopped", app_settings.app_name)

    app = FastAPI(title=app_settings.app_name, lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router)
    app.include_router(api_router, prefix=app_settings.api_prefix)
    app.include_router(realtime.router)

    return app


app = create_app()
