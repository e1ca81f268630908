import logging
import os
from contextlib import asynccontextmanager
from logging.handlers import RotatingFileHandler
from typing import Optional

from fastapi import FastAPI

from .admin import AdminService
from .config import settings
from .pool import QuestionPoolLoader
from .router import router
from .store import CsvDocumentStore, DocumentStore
from .uploads import ImageUploader


# --- Logging Setup ---
def setup_logging():
    logger = logging.getLogger("nihongo_quiz")
    logger.setLevel(logging.INFO)

    if not any(isinstance(h, RotatingFileHandler) for h in logger.handlers):
        os.makedirs(settings.LOG_DIR, exist_ok=True)
        log_path = os.path.join(settings.LOG_DIR, settings.LOG_FILE)
        file_handler = RotatingFileHandler(log_path, maxBytes=5_000_000, backupCount=3)
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s - %(levelname)s - %(message)s")
        )
        logger.addHandler(file_handler)
    # Also configure root logger to see logs from other libraries
    logging.basicConfig(level=logging.INFO)


# --- Lifecycle ---
@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.store.load_all()
    yield
    app.state.sessions.clear()
    await app.state.uploader.aclose()


# --- App Factory ---
def create_app(
    store: Optional[DocumentStore] = None,
    uploader: Optional[ImageUploader] = None,
    loader: Optional[QuestionPoolLoader] = None,
) -> FastAPI:
    setup_logging()
    app = FastAPI(
        title=settings.PROJECT_NAME,
        debug=settings.DEBUG,
        lifespan=lifespan,
        root_path=settings.ROOT_PATH,
    )

    app.state.store = store or CsvDocumentStore(settings.STORE_DIR)
    app.state.uploader = uploader or ImageUploader()
    app.state.loader = loader or QuestionPoolLoader(app.state.store)
    app.state.admin = AdminService(app.state.store, app.state.uploader)
    app.state.sessions = {}

    app.include_router(router)

    return app
