"""
Job Events
==========
Fixed event vocabulary emitted by a running job, delivered to observers.

Emission is fire-and-forget: the engine never waits on, or fails because
of, whoever is listening.  An observer that raises is logged at debug level
and skipped.

Kinds:
    - ``progress``      JobProgress.to_dict()
    - ``log``           {"timestamp", "message"}
    - ``result``        one lead record
    - ``statusChange``  {"state", "previous", "error"?}
    - ``screenshot``    {"label", "png": bytes}
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Iterable, List, Optional, Tuple

logger = logging.getLogger(__name__)

PROGRESS = "progress"
LOG = "log"
RESULT = "result"
STATUS_CHANGE = "statusChange"
SCREENSHOT = "screenshot"

EVENT_KINDS = (PROGRESS, LOG, RESULT, STATUS_CHANGE, SCREENSHOT)


class Observer(ABC):
    @abstractmethod
    def on_event(self, job_id: str, kind: str, payload: Any) -> None:
        ...


class EventBus:
    """Fans one event out to every registered observer."""

    def __init__(self, observers: Optional[Iterable[Observer]] = None):
        self._observers: List[Observer] = list(observers or [])

    def subscribe(self, observer: Observer) -> None:
        if observer not in self._observers:
            self._observers.append(observer)

    def unsubscribe(self, observer: Observer) -> None:
        if observer in self._observers:
            self._observers.remove(observer)

    @property
    def observers(self) -> List[Observer]:
        return list(self._observers)

    def emit(self, job_id: str, kind: str, payload: Any = None) -> None:
        for observer in list(self._observers):
            try:
                observer.on_event(job_id, kind, payload)
            except Exception as e:
                logger.debug(
                    f"[EVENTS] Observer {type(observer).__name__} failed on {kind}: {e}"
                )


class CallbackObserver(Observer):
    """Adapts a plain ``callback(job_id, kind, payload)``."""

    def __init__(self, callback: Callable[[str, str, Any], None], kinds: Optional[Iterable[str]] = None):
        self.callback = callback
        self.kinds = set(kinds) if kinds else None

    def on_event(self, job_id: str, kind: str, payload: Any) -> None:
        if self.kinds is None or kind in self.kinds:
            self.callback(job_id, kind, payload)


class LoggingObserver(Observer):
    """Writes progress and state changes to the module logger."""

    def on_event(self, job_id: str, kind: str, payload: Any) -> None:
        if kind == PROGRESS:
            eta = payload.get("eta_seconds")
            eta_text = f" eta={eta}s" if eta is not None else ""
            logger.info(
                f"[JOB {job_id}] {payload.get('success_count', 0)}/{payload.get('total', 0)} "
                f"({payload.get('percent', 0)}%) err={payload.get('error_count', 0)} "
                f"skip={payload.get('skipped_count', 0)}{eta_text} {payload.get('message', '')}"
            )
        elif kind == STATUS_CHANGE:
            logger.info(f"[JOB {job_id}] {payload.get('previous')} -> {payload.get('state')}")
        elif kind == SCREENSHOT:
            logger.debug(f"[JOB {job_id}] Screenshot '{payload.get('label')}' captured")


class RecordingObserver(Observer):
    """Keeps every event in memory, in arrival order."""

    def __init__(self):
        self.events: List[Tuple[str, str, Any]] = []

    def on_event(self, job_id: str, kind: str, payload: Any) -> None:
        self.events.append((job_id, kind, payload))

    def of_kind(self, kind: str, job_id: Optional[str] = None) -> List[Any]:
        return [
            payload for jid, k, payload in self.events
            if k == kind and (job_id is None or jid == job_id)
        ]
