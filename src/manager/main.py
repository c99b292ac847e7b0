"""FastAPI host for the subtitle pipeline."""

from contextlib import asynccontextmanager
from typing import Dict, List, Optional

from fastapi import FastAPI, HTTPException, Query, status
from fastapi.middleware.cors import CORSMiddleware

from common.config import settings
from common.errors import ConfigurationError
from common.event_publisher import EventPublishingObserver, event_publisher
from common.logging_config import setup_service_logging
from common.observer import CompositeObserver, LoggingObserver, RecordingObserver
from common.schemas import FileRef, Task
from manager.file_processor import FileJobStateMachine
from manager.scheduler import TaskScheduler
from manager.schemas import (
    EventListResponse,
    HealthResponse,
    ProviderSummary,
    ProviderTestRequest,
    ProviderTestResponse,
    SchedulerStatusResponse,
    TaskSubmitRequest,
    TaskSubmitResponse,
)
from translator.batch_engine import probe_translator
from translator.providers import default_providers, get_translator

# Configure logging
logger = setup_service_logging("manager")

providers = default_providers()
recording_observer = RecordingObserver(max_events=settings.recent_events_limit)
observer = CompositeObserver([LoggingObserver(logger), recording_observer])
file_processor = FileJobStateMachine(observer=observer, providers=providers)
scheduler = TaskScheduler(file_processor, observer=observer)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifespan events."""
    logger.info("Starting subtitle pipeline API...")
    scheduler.start()

    if settings.event_publishing_enabled:
        if await event_publisher.connect():
            observer.add(EventPublishingObserver(event_publisher))

    logger.info("API startup complete")

    yield

    logger.info("Shutting down subtitle pipeline API...")
    await scheduler.stop()
    if settings.event_publishing_enabled:
        await event_publisher.disconnect()


app = FastAPI(
    title="Subtitle Pipeline API",
    description="API for queueing subtitle generation and translation jobs",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins() or ["http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type", "Authorization"],
)


def _status_response() -> SchedulerStatusResponse:
    snapshot = scheduler.snapshot()
    return SchedulerStatusResponse(
        status=scheduler.status(),
        pending=len(snapshot.pending),
        active_count=snapshot.active_count,
        concurrency_limit=snapshot.concurrency_limit,
    )


@app.get("/", response_model=Dict[str, str])
async def root():
    """Root endpoint with API information."""
    return {
        "message": "Subtitle Pipeline API",
        "version": "1.0.0",
        "docs": "/docs",
    }


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """Service health with scheduler and event publisher state."""
    return HealthResponse(
        status="ok",
        scheduler=scheduler.status(),
        event_publishing={
            "enabled": settings.event_publishing_enabled,
            "connected": event_publisher.is_connected,
        },
    )


@app.post(
    "/tasks",
    response_model=TaskSubmitResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def submit_tasks(request: TaskSubmitRequest):
    """Queue files for processing with one shared job configuration."""
    tasks = [Task(file=FileRef(path=path), config=request.config) for path in request.files]
    scheduler.submit(tasks)
    logger.info(f"Accepted {len(tasks)} files ({request.config.task_type.value})")

    return TaskSubmitResponse(
        queued=len(tasks),
        file_ids=[task.file.uuid for task in tasks],
        status=scheduler.status(),
    )


@app.post("/tasks/pause", response_model=SchedulerStatusResponse)
async def pause_tasks():
    scheduler.pause()
    return _status_response()


@app.post("/tasks/resume", response_model=SchedulerStatusResponse)
async def resume_tasks():
    scheduler.resume()
    return _status_response()


@app.post("/tasks/cancel", response_model=SchedulerStatusResponse)
async def cancel_tasks():
    scheduler.cancel()
    return _status_response()


@app.get("/tasks/status", response_model=SchedulerStatusResponse)
async def get_task_status():
    return _status_response()


@app.get("/events", response_model=EventListResponse)
async def list_recent_events(limit: Optional[int] = Query(default=100, ge=0)):
    """Most recent pipeline events, oldest first."""
    events = recording_observer.recent(limit)
    return EventListResponse(events=events, count=len(events))


@app.get("/providers", response_model=List[ProviderSummary])
async def list_providers():
    return [
        ProviderSummary(
            id=provider.id,
            name=provider.name,
            type=provider.type,
            is_ai=provider.is_ai,
            use_batch_translation=provider.use_batch_translation,
            model_name=provider.model_name,
        )
        for provider in providers.values()
    ]


@app.post("/providers/{provider_id}/test", response_model=ProviderTestResponse)
async def probe_provider(provider_id: str, request: ProviderTestRequest):
    """Translate a sample line to check a provider's configuration."""
    provider = providers.get(provider_id)
    if provider is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown translation provider: {provider_id}",
        )

    try:
        result = await probe_translator(
            provider,
            get_translator(provider),
            request.source_language,
            request.target_language,
        )
    except ConfigurationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except Exception as e:
        logger.error(f"❌ Provider test failed for {provider_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Provider test failed: {e}",
        )

    return ProviderTestResponse(**result)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
