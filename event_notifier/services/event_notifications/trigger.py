import asyncio
import enum
from typing import Any, Dict, Optional, Set, Union

from event_notifier.schemas.event_notification_schemas import EventPayload, RunMetrics
from event_notifier.utils.logging import get_logger

from .pipeline import EventNotificationPipeline

logger = get_logger()


class TriggerState(str, enum.Enum):
    IDLE = "idle"
    PROCESSING = "processing"


class TriggerAdapter:
    """
    Turns "event created" signals into pipeline runs.

    Signals never wait on a run and never see its errors. Duplicate signals for
    the same event are allowed to run side by side; the history table's unique
    constraint keeps them from notifying anyone twice.
    """

    def __init__(self, pipeline: EventNotificationPipeline):
        self.pipeline = pipeline
        self._runs: Set[asyncio.Task] = set()

    @property
    def state(self) -> TriggerState:
        return TriggerState.PROCESSING if self._runs else TriggerState.IDLE

    def on_event_created(
        self, payload: Union[EventPayload, Dict[str, Any]]
    ) -> "asyncio.Task[Optional[RunMetrics]]":
        """Schedule a run on the running loop and return without waiting for it."""
        task = asyncio.get_running_loop().create_task(self.handle(payload))
        self._runs.add(task)
        task.add_done_callback(self._runs.discard)
        return task

    async def handle(
        self, payload: Union[EventPayload, Dict[str, Any]]
    ) -> Optional[RunMetrics]:
        """Run the pipeline for one signal; errors are logged, never raised."""
        if isinstance(payload, EventPayload):
            event_id = payload.id
        else:
            event_id = payload.get("id") if isinstance(payload, dict) else None
        try:
            event = (
                payload
                if isinstance(payload, EventPayload)
                else EventPayload.model_validate(payload)
            )
            return await self.pipeline.run(event)
        except Exception:
            logger.exception(f"Event notification run failed for event {event_id}")
            return None

    async def drain(self) -> None:
        """Wait for every in-flight run to finish."""
        if self._runs:
            await asyncio.gather(*list(self._runs), return_exceptions=True)
