from __future__ import annotations

import dataclasses
import datetime
import logging
from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar

from ai_daily_digest.core.constants import STEP_IDLE
from ai_daily_digest.utils import isoformat_utc

logger = logging.getLogger(__name__)

S = TypeVar("S")
Listener = Callable[[S], None]


@dataclass(frozen=True)
class GenerationState:
    running: bool = False
    step: str = STEP_IDLE
    progress: str = ""
    started_at: datetime.datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "running": self.running,
            "step": self.step,
            "progress": self.progress,
            "startedAt": isoformat_utc(self.started_at) if self.started_at else None,
        }


@dataclass(frozen=True)
class TranslateState:
    running: bool = False
    total: int = 0
    done: int = 0
    current: str = ""

    def to_dict(self) -> dict[str, Any]:
        return dataclasses.asdict(self)


class StateBroadcaster(Generic[S]):
    """Fan a state snapshot out to listeners. A listener that raises is dropped."""

    def __init__(self) -> None:
        self._listeners: list[Listener[S]] = []

    def subscribe(self, listener: Listener[S]) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def publish(self, state: S) -> None:
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception as exc:
                logger.debug("Dropping state listener %r: %s", listener, exc)
                if listener in self._listeners:
                    self._listeners.remove(listener)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)


class StateTracker(Generic[S]):
    """Holds one immutable snapshot; every update swaps it whole and broadcasts."""

    def __init__(self, initial: S) -> None:
        self._initial = initial
        self._state = initial
        self._broadcaster: StateBroadcaster[S] = StateBroadcaster()

    @property
    def state(self) -> S:
        return self._state

    def subscribe(self, listener: Listener[S]) -> Callable[[], None]:
        return self._broadcaster.subscribe(listener)

    @property
    def listener_count(self) -> int:
        return self._broadcaster.listener_count

    def update(self, **changes: Any) -> S:
        self._state = dataclasses.replace(self._state, **changes)  # type: ignore[type-var]
        self._broadcaster.publish(self._state)
        return self._state

    def replace(self, state: S) -> S:
        self._state = state
        self._broadcaster.publish(state)
        return state

    def reset(self) -> S:
        return self.replace(self._initial)


class GenerationTracker(StateTracker[GenerationState]):
    def __init__(self) -> None:
        super().__init__(GenerationState())

    @property
    def running(self) -> bool:
        return self.state.running


class TranslateTracker(StateTracker[TranslateState]):
    def __init__(self) -> None:
        super().__init__(TranslateState())
