# Run from project root: uvicorn fitcoach.main:app --reload

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from fitcoach.api.routes import router
from fitcoach.core.config import LOG_LEVEL
from fitcoach.core.errors import SemanticLayerUnavailableError
from fitcoach.mcp.server import mcp_router
from fitcoach.services.knowledge_store import get_knowledge_store

logging.basicConfig(level=LOG_LEVEL)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # A broken semantic build aborts startup here instead of failing per request.
    get_knowledge_store().warm()
    logger.info("[main] semantic layer loaded")
    yield


app = FastAPI(title="Fitness Coaching Semantic Layer", lifespan=lifespan)
app.include_router(router)
app.include_router(mcp_router, prefix="/mcp")


@app.exception_handler(SemanticLayerUnavailableError)
async def semantic_layer_unavailable(request: Request, exc: SemanticLayerUnavailableError) -> JSONResponse:
    logger.error("[main] semantic layer unavailable: %s", exc.message)
    return JSONResponse(status_code=503, content={"detail": exc.message})
