from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
import uvicorn
import logging
import os
from datetime import datetime
from contextlib import asynccontextmanager

from docanalysis.analyzers.document_analyzer import DocumentAnalyzer
from docanalysis.routes.analysis_routes import router as analysis_router
from docanalysis.utils.cache import ResultCache
from docanalysis.utils.config import settings
from docanalysis.utils.credentials import CredentialStore

VERSION = "1.0.0"

logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the shared analyzer (and cache) for the lifetime of the app"""
    logger.info("Starting document analysis gateway...")

    store = CredentialStore.from_settings(settings)
    if not (store.key and store.endpoint):
        logger.warning("⚠️ Service credentials are not configured; analysis requests will fail")

    cache = ResultCache.from_settings(settings)
    if cache and not await cache.initialize():
        logger.warning("⚠️ Redis initialization failed - running without result cache")

    analyzer = DocumentAnalyzer(store, settings, cache=cache)
    await analyzer.open()
    app.state.analyzer = analyzer
    logger.info(f"✅ Gateway ready in {settings.environment} mode (api-version {settings.api_version})")

    yield

    logger.info("Shutting down document analysis gateway...")
    await analyzer.close()
    if cache:
        await cache.close()
    logger.info("✅ Clean shutdown completed")


app = FastAPI(
    title="Document Analysis Gateway",
    description="Submits documents to the document analysis service and polls for results",
    version=VERSION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc"
)

app.include_router(analysis_router, prefix="/api")


@app.get("/")
async def root():
    """Root endpoint with service info"""
    return {
        "service": "Document Analysis Gateway",
        "version": VERSION,
        "environment": settings.environment,
        "timestamp": datetime.now().isoformat(),
        "endpoints": {
            "submit": "/api/submit (POST)",
            "analyze": "/api/analyze (POST)",
            "upload": "/api/analyze/upload (POST)",
            "result": "/api/analysis/{model_id}/{result_id} (GET)",
            "health": "/health (GET)",
            "docs": "/docs"
        },
        "defaults": {
            "model_id": settings.default_model_id,
            "api_version": settings.api_version,
            "poll_interval": settings.poll_interval,
            "max_wait": settings.max_wait,
            "max_file_size": f"{settings.max_file_size // (1024 * 1024)}MB",
        }
    }


@app.get("/health")
async def health_check(request: Request):
    """Health check endpoint with dependency status"""
    analyzer = getattr(request.app.state, "analyzer", None)
    if analyzer is None:
        return {
            "status": "degraded",
            "reason": "analyzer not initialized",
            "timestamp": datetime.now().isoformat()
        }
    health = await analyzer.health_check()
    health["version"] = VERSION
    return health


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "status_code": 500,
            "timestamp": datetime.now().isoformat(),
            "path": request.url.path
        }
    )


if __name__ == "__main__":
    uvicorn.run(
        "docanalysis.main:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", 8000)),
        reload=settings.is_development(),
        log_level="info",
        access_log=True
    )
