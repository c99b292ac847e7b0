"""Notification channel between the pipeline core and its host."""

import logging
from collections import deque
from typing import Any, Deque, Dict, Iterable, List, Optional

from common.schemas import (
    FileJobResult,
    FileRef,
    PipelineEvent,
    PipelineEventType,
    QueueOutcome,
    StageName,
    StageStatus,
)

logger = logging.getLogger(__name__)


class PipelineObserver:
    """
    Receives pipeline notifications.

    Every hook is a no-op, so observers override only what they need.
    Notifications are fire-and-forget: the pipeline never waits on them.
    """

    def on_stage_change(
        self, file: FileRef, stage: StageName, status: StageStatus
    ) -> None:
        pass

    def on_progress(self, file: FileRef, stage: StageName, percent: float) -> None:
        pass

    def on_error(self, file: FileRef, stage: StageName, message: str) -> None:
        pass

    def on_message(self, level: str, message: str) -> None:
        pass

    def on_queue_complete(self, outcome: QueueOutcome) -> None:
        pass

    def on_file_result(self, result: FileJobResult) -> None:
        pass


class LoggingObserver(PipelineObserver):
    """Logs every notification."""

    def __init__(self, log: Optional[logging.Logger] = None):
        self.log = log or logger

    def on_stage_change(
        self, file: FileRef, stage: StageName, status: StageStatus
    ) -> None:
        if status == StageStatus.DONE:
            self.log.info(f"✅ {file.path}: {stage.value} done")
        elif status == StageStatus.ERROR:
            self.log.error(f"❌ {file.path}: {stage.value} failed")
        else:
            self.log.info(f"{file.path}: {stage.value} -> {status.value}")

    def on_progress(self, file: FileRef, stage: StageName, percent: float) -> None:
        self.log.debug(f"{file.path}: {stage.value} {percent:.1f}%")

    def on_error(self, file: FileRef, stage: StageName, message: str) -> None:
        self.log.error(f"❌ {file.path}: {stage.value} error: {message}")

    def on_message(self, level: str, message: str) -> None:
        log_level = getattr(logging, level.upper(), logging.INFO)
        self.log.log(log_level, message)

    def on_queue_complete(self, outcome: QueueOutcome) -> None:
        if outcome == QueueOutcome.CANCELLED:
            self.log.warning("⚠️ Task queue cancelled")
        else:
            self.log.info("✅ Task queue completed")


class CompositeObserver(PipelineObserver):
    """
    Fans notifications out to several observers.

    A failing observer is logged and skipped; it never affects the pipeline
    or the other observers.
    """

    def __init__(self, observers: Iterable[PipelineObserver] = ()):
        self.observers: List[PipelineObserver] = list(observers)

    def add(self, observer: PipelineObserver) -> None:
        self.observers.append(observer)

    def _dispatch(self, hook: str, *args: Any) -> None:
        for observer in self.observers:
            try:
                getattr(observer, hook)(*args)
            except Exception as e:
                logger.exception(
                    f"Observer {type(observer).__name__}.{hook} failed: {e}"
                )

    def on_stage_change(
        self, file: FileRef, stage: StageName, status: StageStatus
    ) -> None:
        self._dispatch("on_stage_change", file, stage, status)

    def on_progress(self, file: FileRef, stage: StageName, percent: float) -> None:
        self._dispatch("on_progress", file, stage, percent)

    def on_error(self, file: FileRef, stage: StageName, message: str) -> None:
        self._dispatch("on_error", file, stage, message)

    def on_message(self, level: str, message: str) -> None:
        self._dispatch("on_message", level, message)

    def on_queue_complete(self, outcome: QueueOutcome) -> None:
        self._dispatch("on_queue_complete", outcome)

    def on_file_result(self, result: FileJobResult) -> None:
        self._dispatch("on_file_result", result)


def build_event(
    event_type: PipelineEventType,
    file: Optional[FileRef] = None,
    stage: Optional[StageName] = None,
    **payload: Any,
) -> PipelineEvent:
    """Create a PipelineEvent from observer hook arguments."""
    return PipelineEvent(
        event_type=event_type,
        file_uuid=file.uuid if file else None,
        file_path=file.path if file else None,
        stage=stage,
        payload=payload,
    )


class EventCollector(PipelineObserver):
    """Converts hook calls into PipelineEvent models and hands them to ``emit``."""

    def emit(self, event: PipelineEvent) -> None:
        raise NotImplementedError

    def on_stage_change(
        self, file: FileRef, stage: StageName, status: StageStatus
    ) -> None:
        self.emit(
            build_event(
                PipelineEventType.STAGE_CHANGED, file, stage, status=status.value
            )
        )

    def on_progress(self, file: FileRef, stage: StageName, percent: float) -> None:
        self.emit(build_event(PipelineEventType.PROGRESS, file, stage, percent=percent))

    def on_error(self, file: FileRef, stage: StageName, message: str) -> None:
        self.emit(build_event(PipelineEventType.ERROR, file, stage, message=message))

    def on_message(self, level: str, message: str) -> None:
        self.emit(build_event(PipelineEventType.MESSAGE, level=level, message=message))

    def on_queue_complete(self, outcome: QueueOutcome) -> None:
        self.emit(build_event(PipelineEventType.QUEUE_COMPLETED, outcome=outcome.value))

    def on_file_result(self, result: FileJobResult) -> None:
        self.emit(
            build_event(
                PipelineEventType.FILE_COMPLETED,
                result.file,
                StageName.PROCESS_FILE,
                succeeded=result.succeeded,
                srt_path=result.srt_path,
                translated_srt_path=result.translated_srt_path,
                error=result.error,
            )
        )


class RecordingObserver(EventCollector):
    """Keeps the most recent events in memory."""

    def __init__(self, max_events: Optional[int] = None):
        self.events: Deque[PipelineEvent] = deque(maxlen=max_events)

    def emit(self, event: PipelineEvent) -> None:
        self.events.append(event)

    def recent(self, limit: Optional[int] = None) -> List[PipelineEvent]:
        events = list(self.events)
        if limit is not None:
            events = events[-limit:] if limit > 0 else []
        return events

    def of_type(self, event_type: PipelineEventType) -> List[PipelineEvent]:
        return [event for event in self.events if event.event_type == event_type]

    def payloads(self, event_type: PipelineEventType) -> List[Dict[str, Any]]:
        return [event.payload for event in self.of_type(event_type)]

    def clear(self) -> None:
        self.events.clear()
