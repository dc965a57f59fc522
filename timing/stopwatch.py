from enum import Enum, auto
from typing import Callable, List, Optional, Protocol, Tuple
import logging
import time

from timing.race import (
    Milliseconds,
    Race,
    RaceIdFactory,
    datetime_from_ms,
    default_rider_name,
)

# Sampling cadence of the running stopwatch, in seconds.
TICK_INTERVAL = 0.01


def wall_clock_ms() -> int:
    return time.time_ns() // 1_000_000


class ScheduledTick(Protocol):
    def stop(self) -> None: ...


# schedule(interval_seconds, callback) -> handle; Textual's App.set_interval fits.
Scheduler = Callable[[float, Callable[[], None]], ScheduledTick]


class StopwatchState(Enum):
    READY = auto()
    RUNNING = auto()
    STOPPED = auto()


class Stopwatch:
    """Millisecond stopwatch with lap checkpoints for one timing session.

    Elapsed time is always recomputed from the wall clock against a start
    reference, so late or skipped ticks never accumulate drift. Finished
    sessions are handed to ``on_commit`` as immutable Race records.
    """

    def __init__(
        self,
        *,
        schedule: Scheduler,
        on_commit: Callable[[Race], None],
        clock: Callable[[], int] = wall_clock_ms,
        start_gate: Optional[Callable[[], bool]] = None,
        id_factory: Optional[RaceIdFactory] = None,
        rider_name: str = "",
    ):
        self._schedule = schedule
        self._on_commit = on_commit
        self._clock = clock
        self._start_gate = start_gate
        self._id_factory = id_factory or RaceIdFactory()
        self._ticker: Optional[ScheduledTick] = None
        self._reference_ms: Optional[int] = None

        self.rider_name: str = rider_name
        self.state: StopwatchState = StopwatchState.READY
        self.elapsed_ms: int = 0
        self.laps: List[int] = []
        self.last_race: Optional[Race] = None

    @property
    def is_running(self) -> bool:
        return self.state == StopwatchState.RUNNING

    @property
    def lap_times(self) -> Tuple[int, ...]:
        return tuple(self.laps)

    def start(self) -> None:
        if self.state == StopwatchState.RUNNING:
            return
        if self._start_gate is not None and not self._start_gate():
            logging.info("Start refused: timing not permitted")
            return

        # Resuming after a stop keeps the frozen elapsed value and laps.
        self._reference_ms = self._clock() - self.elapsed_ms
        self.state = StopwatchState.RUNNING
        self._ticker = self._schedule(TICK_INTERVAL, self.tick)
        logging.info(f"Stopwatch started, resuming from {self.elapsed_ms}ms")

    def tick(self) -> None:
        if self.state != StopwatchState.RUNNING or self._reference_ms is None:
            return
        # A wall clock stepping backwards must not make elapsed time shrink.
        self.elapsed_ms = max(self.elapsed_ms, self._clock() - self._reference_ms)
        logging.debug(f"Stopwatch tick: {self.elapsed_ms}ms")

    def record_lap(self) -> None:
        if self.state != StopwatchState.RUNNING or self.elapsed_ms <= 0:
            return
        self.laps.append(self.elapsed_ms)
        logging.info(f"Lap {len(self.laps)} recorded at {self.elapsed_ms}ms")

    def stop(self) -> Optional[Race]:
        """Stop timing and commit the session. Returns the committed race, if any."""
        if self.state != StopwatchState.RUNNING:
            return None
        self._cancel_ticker()

        if self.elapsed_ms <= 0:
            self.state = StopwatchState.READY
            logging.info("Stopwatch stopped with no elapsed time, nothing committed")
            return None

        now_ms = self._clock()
        # After a backwards clock step the end still lies total_time past the start.
        end_ms = max(now_ms, self._reference_ms + self.elapsed_ms)
        self.laps.append(self.elapsed_ms)
        race_id = self._id_factory.next_id(now_ms)
        race = Race(
            id=race_id,
            start_time=datetime_from_ms(self._reference_ms),
            end_time=datetime_from_ms(end_ms),
            total_time=Milliseconds(self.elapsed_ms),
            lap_times=tuple(self.laps),
            rider_name=self.rider_name or default_rider_name(race_id),
        )
        self.state = StopwatchState.STOPPED
        self.last_race = race
        logging.info(f"Stopwatch stopped, committing {race}")
        self._on_commit(race)
        return race

    def reset(self) -> None:
        self._cancel_ticker()
        self.state = StopwatchState.READY
        self._reference_ms = None
        self.elapsed_ms = 0
        self.laps.clear()
        self.last_race = None
        logging.info("Stopwatch reset")

    def close(self) -> None:
        """Cancel any pending tick; call when the owning view goes away."""
        self._cancel_ticker()

    def _cancel_ticker(self) -> None:
        if self._ticker is not None:
            self._ticker.stop()
            self._ticker = None

    def __repr__(self) -> str:
        return (
            f"Stopwatch(state={self.state}, "
            f"elapsed_ms={self.elapsed_ms!r}, "
            f"laps={self.laps!r})"
        )
