"""Entry point for the storage API service."""

import time
import uuid
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from blobstore.archive_storage import ArchiveStorage
from common.logging_config import setup_logging
from storage_api.bus import MessageProducer, UploadStreamConsumer
from storage_api.config import (
    ACKNOWLEDGE_TOPIC,
    DOWNLOAD_SEGMENT_SIZE,
    DOWNLOAD_TOPIC,
    KAFKA_BOOTSTRAP_SERVERS,
    KAFKA_CLIENT_ID,
    KAFKA_GROUP_ID,
    ORDER_NUMBER_BASE,
    REDIS_URL,
    STORAGE_API_HOST,
    STORAGE_API_PORT,
    STORAGE_PATH,
    UPLOAD_IDLE_TIMEOUT_SECONDS,
    UPLOAD_REAPER_INTERVAL_SECONDS,
    UPLOAD_TOPIC,
)
from storage_api.database import get_db_connection, init_database
from storage_api.exceptions import (
    ArchiveBusyError,
    ArchiveNotFoundError,
    DownloadNotFoundError,
    InvalidAPIKeyError,
    InvalidArchiveNameError,
    StorageServiceError,
)
from storage_api.routes.archive_routes import router as archive_router
from storage_api.sequence_tracker import SequenceTracker
from storage_api.service_locator import get_sequence_tracker, set_archive_service, set_sequence_tracker
from storage_api.services.archive_service import ArchiveService
from storage_api.transfer.download_emission import DownloadEmitter
from storage_api.transfer.reaper import IdleUploadReaper
from storage_api.transfer.upload_ingestion import UploadIngestion

logger = setup_logging('storage_api')

app = FastAPI(
    title="Archive Storage API",
    description="Archive storage with uploads and downloads streamed over Kafka",
    version="1.0.0"
)

producer: Optional[MessageProducer] = None
consumer: Optional[UploadStreamConsumer] = None
emitter: Optional[DownloadEmitter] = None
reaper: Optional[IdleUploadReaper] = None


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """
    Middleware to log all HTTP requests and responses.
    """
    request_id = str(uuid.uuid4())
    request.state.request_id = request_id

    start_time = time.time()

    logger.info(f"Request started: {request.method} {request.url.path} [request_id={request_id}]")

    response = await call_next(request)

    duration = time.time() - start_time

    logger.info(
        f"Request completed: {request.method} {request.url.path} "
        f"status={response.status_code} duration={duration:.3f}s [request_id={request_id}]"
    )

    response.headers["X-Request-ID"] = request_id

    return response


@app.on_event("startup")
async def startup_event():
    """
    Connect to Redis and Kafka, then start consuming the upload stream.
    """
    global producer, consumer, emitter, reaper

    logger.info("Storage API starting up...")

    init_database()
    logger.info("Database initialized")

    storage = ArchiveStorage(STORAGE_PATH)
    tracker = SequenceTracker.from_url(REDIS_URL)
    set_sequence_tracker(tracker)

    producer = MessageProducer(KAFKA_BOOTSTRAP_SERVERS, KAFKA_CLIENT_ID)
    await producer.start()

    emitter = DownloadEmitter(storage, producer, DOWNLOAD_TOPIC, segment_size=DOWNLOAD_SEGMENT_SIZE)
    set_archive_service(ArchiveService(storage, emitter))

    ingestion = UploadIngestion(
        storage=storage,
        tracker=tracker,
        producer=producer,
        acknowledge_topic=ACKNOWLEDGE_TOPIC,
        order_number_base=ORDER_NUMBER_BASE,
    )
    await ingestion.recover_sessions()

    consumer = UploadStreamConsumer(
        UPLOAD_TOPIC,
        ingestion.handle_record,
        bootstrap_servers=KAFKA_BOOTSTRAP_SERVERS,
        group_id=KAFKA_GROUP_ID,
        client_id=KAFKA_CLIENT_ID,
    )
    await consumer.start()

    reaper = IdleUploadReaper(ingestion, UPLOAD_IDLE_TIMEOUT_SECONDS, UPLOAD_REAPER_INTERVAL_SECONDS)
    await reaper.start()

    logger.info("Storage API started")


@app.on_event("shutdown")
async def shutdown_event():
    """
    Stop consuming, cancel running downloads and close connections.
    """
    logger.info("Storage API shutting down...")

    if consumer:
        await consumer.stop()

    if reaper:
        await reaper.stop()

    if emitter:
        await emitter.stop()
        logger.info("Download emissions stopped")

    if producer:
        await producer.stop()

    tracker = get_sequence_tracker()
    if tracker:
        await tracker.close()
        logger.info("Redis connection closed")


def _error_response(request: Request, exc: Exception, status_code: int, code: str) -> JSONResponse:
    request_id = getattr(request.state, 'request_id', 'unknown')
    logger.warning(f"{type(exc).__name__}: {exc} [request_id={request_id}] path={request.url.path}")
    return JSONResponse(status_code=status_code, content={"detail": str(exc), "code": code})


@app.exception_handler(ArchiveNotFoundError)
async def archive_not_found_handler(request: Request, exc: ArchiveNotFoundError):
    return _error_response(request, exc, status.HTTP_404_NOT_FOUND, "ARCHIVE_NOT_FOUND")


@app.exception_handler(DownloadNotFoundError)
async def download_not_found_handler(request: Request, exc: DownloadNotFoundError):
    return _error_response(request, exc, status.HTTP_404_NOT_FOUND, "DOWNLOAD_NOT_FOUND")


@app.exception_handler(ArchiveBusyError)
async def archive_busy_handler(request: Request, exc: ArchiveBusyError):
    return _error_response(request, exc, status.HTTP_409_CONFLICT, "ARCHIVE_BUSY")


@app.exception_handler(InvalidArchiveNameError)
async def invalid_archive_name_handler(request: Request, exc: InvalidArchiveNameError):
    return _error_response(request, exc, status.HTTP_400_BAD_REQUEST, "INVALID_ARCHIVE_NAME")


@app.exception_handler(InvalidAPIKeyError)
async def invalid_api_key_handler(request: Request, exc: InvalidAPIKeyError):
    return _error_response(request, exc, status.HTTP_401_UNAUTHORIZED, "INVALID_API_KEY")


@app.exception_handler(StorageServiceError)
async def storage_service_error_handler(request: Request, exc: StorageServiceError):
    request_id = getattr(request.state, 'request_id', 'unknown')
    logger.error(
        f"Storage service error: {exc} [request_id={request_id}] path={request.url.path}",
        exc_info=True
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": str(exc), "code": "INTERNAL_ERROR"}
    )


app.include_router(archive_router)


@app.get("/health")
async def health_check():
    """
    Liveness endpoint. Returns 200 if service is alive.
    """
    return {"status": "healthy", "service": "storage-api"}


@app.get("/ready")
async def ready_check():
    """
    Readiness check endpoint.
    Verifies database and Redis connectivity and that the upload stream is being consumed.
    """
    try:
        with get_db_connection() as conn:
            conn.execute("SELECT 1")
        db_status = "ok"
    except Exception as e:
        db_status = f"error: {str(e)}"

    tracker = get_sequence_tracker()
    if tracker is None:
        redis_status = "error: not initialized"
    else:
        try:
            await tracker.ping()
            redis_status = "ok"
        except Exception as e:
            redis_status = f"error: {str(e)}"

    consumer_status = "ok" if consumer is not None and consumer.is_alive else "error: not consuming"

    ready = db_status == "ok" and redis_status == "ok" and consumer_status == "ok"
    status_code = status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE

    return JSONResponse(
        status_code=status_code,
        content={
            "ready": ready,
            "database": db_status,
            "redis": redis_status,
            "consumer": consumer_status
        }
    )


def main() -> None:
    """
    Start the FastAPI server with uvicorn.
    """
    uvicorn.run(
        "storage_api.main:app",
        host=STORAGE_API_HOST,
        port=STORAGE_API_PORT,
    )


if __name__ == "__main__":
    main()
