"""Main application entry point."""

from contextlib import asynccontextmanager

from fastapi import FastAPI

from quote_engine.api.routes import router
from quote_engine.utils.config import config
from quote_engine.utils.logger import StructuredLogger

logger = StructuredLogger("App")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Validate configuration before serving quotes."""
    try:
        config.validate()
    except ValueError as e:
        logger.error("Invalid configuration", exception=e)
        raise
    logger.info(
        "Quote engine ready",
        context={"cache_dir": str(config.cache_dir), "default_fiat": config.default_fiat},
    )
    yield


app = FastAPI(
    title="Market Quote Engine",
    description="FX and crypto quotes with cached, multi-provider resolution",
    version="1.0.0",
    lifespan=lifespan,
)

app.include_router(router, prefix="/api", tags=["market"])


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
