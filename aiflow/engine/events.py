"""Typed lifecycle events emitted by the workflow engine."""

from __future__ import annotations

import inspect
import logging
from collections import defaultdict
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Type, TypeVar, Union

from pydantic import BaseModel, Field

from ..contracts import utcnow

logger = logging.getLogger(__name__)


class WorkflowEvent(BaseModel):
    """Base class of every engine event. Subscribe to it to receive all of them."""

    session_id: str
    timestamp: datetime = Field(default_factory=utcnow)


class WorkflowStarted(WorkflowEvent):
    workflow_id: str


class StepStarted(WorkflowEvent):
    step_id: str


class StepCompleted(WorkflowEvent):
    step_id: str
    outputs: Dict[str, Any] = Field(default_factory=dict)


class StepFailed(WorkflowEvent):
    step_id: str
    error: str


class WorkflowPaused(WorkflowEvent):
    step_id: str


class WorkflowResumed(WorkflowEvent):
    step_id: str


class WorkflowCompleted(WorkflowEvent):
    outputs: Dict[str, Any] = Field(default_factory=dict)


class WorkflowFailed(WorkflowEvent):
    error: str


EventT = TypeVar("EventT", bound=WorkflowEvent)
Handler = Callable[[Any], Union[None, Awaitable[None]]]


class EventBus:
    """Deliver engine events to handlers registered per event class.

    Handlers may be plain functions or coroutine functions. A handler that
    raises is logged and skipped; it never interrupts the workflow run.
    """

    def __init__(self) -> None:
        self._handlers: Dict[Type[WorkflowEvent], List[Handler]] = defaultdict(list)

    def on(
        self, event_type: Type[EventT], handler: Callable[[EventT], Any]
    ) -> Callable[[], None]:
        """Register ``handler`` for ``event_type`` and its subclasses.

        Returns a function that removes the registration.
        """
        self._handlers[event_type].append(handler)

        def unsubscribe() -> None:
            handlers = self._handlers.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def handler_count(self, event_type: Optional[Type[WorkflowEvent]] = None) -> int:
        if event_type is None:
            return sum(len(handlers) for handlers in self._handlers.values())
        return len(self._handlers.get(event_type, []))

    async def emit(self, event: WorkflowEvent) -> None:
        for event_type in type(event).__mro__:
            if event_type not in self._handlers:
                continue
            for handler in list(self._handlers[event_type]):
                try:
                    result = handler(event)
                    if inspect.isawaitable(result):
                        await result
                except Exception as exc:
                    logger.warning(
                        f"Event handler {getattr(handler, '__name__', handler)!r} "
                        f"failed for {type(event).__name__}: {exc}"
                    )


__all__ = [
    "EventBus",
    "StepCompleted",
    "StepFailed",
    "StepStarted",
    "WorkflowCompleted",
    "WorkflowEvent",
    "WorkflowFailed",
    "WorkflowPaused",
    "WorkflowResumed",
    "WorkflowStarted",
]
