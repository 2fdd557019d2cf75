# Run from project root: uvicorn deepsearch.main:app --reload

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

import deepsearch.models.chat  # noqa: F401 (registers tables)
from deepsearch.api.routes import router
from deepsearch.core.config import LOG_LEVEL
from deepsearch.core.database import Base, engine

logging.basicConfig(level=LOG_LEVEL)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Create tables if they don't exist
    Base.metadata.create_all(bind=engine)
    yield


app = FastAPI(title="Deepsearch Chat Backend", lifespan=lifespan)
app.include_router(router)
