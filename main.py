import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from pymongo import MongoClient
from rich.logging import RichHandler

from api import router
from database import connect, ensure_indexes
from media import FFprobeInspector, LocalUploader
from responses import api_response, register_exception_handlers
from settings import Settings, get_settings

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    """Route stdlib logging through rich; calling it again only updates the level."""

    root = logging.getLogger()
    if not any(isinstance(handler, RichHandler) for handler in root.handlers):
        root.addHandler(RichHandler(rich_tracebacks=True, show_path=False))
    root.setLevel(level.upper())


def create_app(settings: Optional[Settings] = None, client: Optional[MongoClient] = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level)
    os.makedirs(settings.upload_dir, exist_ok=True)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owns_client = client is None
        mongo = connect(settings) if owns_client else client
        app.state.db = mongo[settings.db_name]
        ensure_indexes(app.state.db)
        try:
            yield
        finally:
            if owns_client:
                mongo.close()
                logger.info("MongoDB client closed")

    app = FastAPI(title="Video Sharing API", lifespan=lifespan)
    app.state.settings = settings
    app.state.uploader = LocalUploader(settings.upload_dir)
    app.state.media_inspector = FFprobeInspector(settings.ffprobe_path)

    # CORS
    origins = settings.cors_origins_list
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials="*" not in origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Static files for uploaded media
    app.mount("/static", StaticFiles(directory=settings.upload_dir), name="static")

    register_exception_handlers(app)
    app.include_router(router)

    @app.get("/")
    def read_root():
        return api_response(200, {"name": app.title}, "Video Sharing Backend running")

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=get_settings().port)
