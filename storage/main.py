"""Entry point for the storage service."""

import uvicorn
import time
import uuid
from fastapi import Depends, FastAPI, Request, status
from fastapi.responses import JSONResponse

from common.logging_config import setup_logging
from common.exceptions import (
    StorageException,
    ConfigurationError,
    ProviderNotImplementedError,
    TransportError,
    RetryExhaustedError,
    ChunkDownloadError,
    ChunkedFileUrlError,
    ChunkManifestRequiredError,
    NoBotsAvailableError,
    UnknownBotError,
    NoStorageProvidersError
)
from storage.config import STORAGE_HOST, STORAGE_PORT
from storage.manager import StorageManager
from storage.routes.file_routes import router as file_router
from storage.routes.status_routes import router as status_router
from storage.service_locator import close_storage_manager, get_storage_manager

logger = setup_logging('storage')
setup_logging('botpool')

app = FastAPI(
    title="Bot Pool Storage",
    description="Object storage over a pool of Telegram bots with provider fallback",
    version="1.0.0"
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """
    Middleware to log all HTTP requests and responses.
    """
    request_id = str(uuid.uuid4())
    request.state.request_id = request_id

    start_time = time.time()

    logger.info(
        f"Request started: {request.method} {request.url.path} [request_id={request_id}]"
    )

    response = await call_next(request)

    duration = time.time() - start_time

    logger.info(
        f"Request completed: {request.method} {request.url.path} "
        f"status={response.status_code} duration={duration:.3f}s [request_id={request_id}]"
    )

    response.headers["X-Request-ID"] = request_id

    return response


@app.on_event("shutdown")
async def shutdown_event():
    """
    Close provider HTTP clients on application shutdown.
    """
    logger.info("Storage service shutting down...")
    await close_storage_manager()
    logger.info("Storage providers closed")


def _error_response(request: Request, exc: Exception, status_code: int, code: str, label: str) -> JSONResponse:
    request_id = getattr(request.state, 'request_id', 'unknown')
    if status_code >= 500:
        logger.error(
            f"{label}: {exc} [request_id={request_id}] path={request.url.path}",
            exc_info=status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
        )
    else:
        logger.warning(f"{label}: {exc} [request_id={request_id}] path={request.url.path}")
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "code": code}
    )


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError):
    return _error_response(request, exc, status.HTTP_503_SERVICE_UNAVAILABLE, "PROVIDER_NOT_CONFIGURED", "Configuration error")


@app.exception_handler(ProviderNotImplementedError)
async def not_implemented_handler(request: Request, exc: ProviderNotImplementedError):
    return _error_response(request, exc, status.HTTP_501_NOT_IMPLEMENTED, "NOT_IMPLEMENTED", "Not implemented error")


@app.exception_handler(NoBotsAvailableError)
async def no_bots_handler(request: Request, exc: NoBotsAvailableError):
    return _error_response(request, exc, status.HTTP_503_SERVICE_UNAVAILABLE, "NO_BOTS_AVAILABLE", "No bots available")


@app.exception_handler(NoStorageProvidersError)
async def no_providers_handler(request: Request, exc: NoStorageProvidersError):
    return _error_response(request, exc, status.HTTP_503_SERVICE_UNAVAILABLE, "NO_STORAGE_PROVIDERS", "No storage providers")


@app.exception_handler(UnknownBotError)
async def unknown_bot_handler(request: Request, exc: UnknownBotError):
    return _error_response(request, exc, status.HTTP_404_NOT_FOUND, "UNKNOWN_BOT", "Unknown bot error")


@app.exception_handler(ChunkManifestRequiredError)
async def manifest_required_handler(request: Request, exc: ChunkManifestRequiredError):
    return _error_response(request, exc, status.HTTP_409_CONFLICT, "MANIFEST_REQUIRED", "Chunk list required")


@app.exception_handler(ChunkedFileUrlError)
async def chunked_url_handler(request: Request, exc: ChunkedFileUrlError):
    return _error_response(request, exc, status.HTTP_409_CONFLICT, "CHUNKED_FILE", "Chunked file URL error")


@app.exception_handler(ChunkDownloadError)
async def chunk_download_handler(request: Request, exc: ChunkDownloadError):
    return _error_response(request, exc, status.HTTP_502_BAD_GATEWAY, "CHUNK_DOWNLOAD_FAILED", "Chunk download error")


@app.exception_handler(RetryExhaustedError)
async def retry_exhausted_handler(request: Request, exc: RetryExhaustedError):
    return _error_response(request, exc, status.HTTP_502_BAD_GATEWAY, "RETRY_EXHAUSTED", "Retry exhausted error")


@app.exception_handler(TransportError)
async def transport_error_handler(request: Request, exc: TransportError):
    return _error_response(request, exc, status.HTTP_502_BAD_GATEWAY, "BACKEND_ERROR", "Backend error")


@app.exception_handler(StorageException)
async def storage_exception_handler(request: Request, exc: StorageException):
    return _error_response(request, exc, status.HTTP_500_INTERNAL_SERVER_ERROR, "INTERNAL_ERROR", "Storage exception")


app.include_router(status_router)
app.include_router(file_router)


@app.get("/")
async def root():
    """
    Root endpoint for health check.
    """
    return {"message": "Bot Pool Storage API", "status": "running"}


@app.get("/health")
async def health_check():
    """
    Health check endpoint for Docker healthcheck.
    Returns 200 if service is alive.
    """
    return {"status": "healthy", "service": "storage"}


@app.get("/ready")
async def ready_check(manager: StorageManager = Depends(get_storage_manager)):
    """
    Readiness check endpoint.
    Ready when at least one storage provider can accept uploads.
    """
    available = [provider_type.value for provider_type in manager.available_types()]
    ready = bool(available)
    status_code = status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE

    return JSONResponse(
        status_code=status_code,
        content={
            "ready": ready,
            "providers": available
        }
    )


def main() -> None:
    """
    Start the FastAPI server with uvicorn.
    """
    uvicorn.run(
        "storage.main:app",
        host=STORAGE_HOST,
        port=STORAGE_PORT
    )


if __name__ == "__main__":
    main()
