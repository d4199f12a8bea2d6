# src/ekko_server/main.py
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from ekko_server.api.errors import http_exception_handler, request_validation_exception_handler
from ekko_server.api.routes import router
from ekko_server.config import settings
from ekko_server.infra.providers import close_providers

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Release outbound connections on shutdown."""
    yield
    logger.info("Shutting down...")
    close_providers()


app = FastAPI(
    title="Ekko Shard Server",
    description="Encrypted, versioned shard storage with feeds, trending and suggestions.",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(router)
app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, request_validation_exception_handler)


@app.get("/health", tags=["system"])
def health():
    return {"ok": True, "storage": settings.STORAGE_BACKEND}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "ekko_server.main:app",
        host=settings.SERVER_HOST,
        port=settings.SERVER_PORT,
        reload=settings.DEBUG,
    )
