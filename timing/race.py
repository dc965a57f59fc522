from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, List, NewType, Optional, Tuple

# Wrap raw values in types for clarity.
RaceId = NewType('RaceId', str)
Milliseconds = NewType('Milliseconds', int)


def default_rider_name(race_id: str) -> str:
    """Label used when no rider name is configured: last four id characters."""
    return f"Rider {race_id[-4:]}"


def datetime_from_ms(epoch_ms: int) -> datetime:
    return datetime.fromtimestamp(epoch_ms / 1000, tz=timezone.utc)


def _parse_timestamp(value: str) -> datetime:
    # JavaScript style "Z" suffixes are accepted as UTC.
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class Race:
    """One completed timing session.

    lap_times holds cumulative checkpoints in milliseconds, each the elapsed
    time at the moment the lap was recorded, not the duration of the lap.
    """
    id: RaceId
    start_time: datetime
    end_time: datetime
    total_time: Milliseconds
    lap_times: Tuple[Milliseconds, ...] = field(default=())
    rider_name: str = ""

    def __post_init__(self):
        # Accept any sequence but store an immutable tuple.
        object.__setattr__(self, "lap_times", tuple(self.lap_times))
        if not self.id:
            raise ValueError("Race id must not be empty")
        if self.total_time < 0:
            raise ValueError("Total time must be >= 0")
        if not self.rider_name:
            raise ValueError("Rider name must not be empty")
        previous = 0
        for lap_time in self.lap_times:
            if lap_time < 0:
                raise ValueError("Lap times must be >= 0")
            if lap_time < previous:
                raise ValueError("Lap times must be non-decreasing")
            previous = lap_time

    def __str__(self):
        return (f"Race {self.id} | {self.rider_name} | "
                f"total: {self.total_time}ms, laps: {len(self.lap_times)}")

    def lap_splits(self) -> List[int]:
        """Duration of each lap, the difference between consecutive checkpoints."""
        splits = []
        previous = 0
        for lap_time in self.lap_times:
            splits.append(lap_time - previous)
            previous = lap_time
        return splits

    def best_split(self) -> Optional[int]:
        """Returns the fastest lap duration, or None if no laps were recorded."""
        splits = self.lap_splits()
        if not splits:
            return None
        return min(splits)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "startTime": self.start_time.isoformat(timespec="milliseconds"),
            "endTime": self.end_time.isoformat(timespec="milliseconds"),
            "totalTime": self.total_time,
            "lapTimes": list(self.lap_times),
            "riderName": self.rider_name,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Race":
        return cls(
            id=RaceId(str(data["id"])),
            start_time=_parse_timestamp(data["startTime"]),
            end_time=_parse_timestamp(data["endTime"]),
            total_time=Milliseconds(int(data["totalTime"])),
            lap_times=tuple(Milliseconds(int(t)) for t in data.get("lapTimes", [])),
            rider_name=data["riderName"],
        )


class RaceIdFactory:
    """Hands out millisecond-timestamp ids that never repeat.

    Two races committed within the same millisecond, or a wall clock that
    stepped backwards, still get strictly increasing ids.
    """

    def __init__(self, floor: int = 0):
        self._last = floor

    @classmethod
    def after(cls, existing_ids) -> "RaceIdFactory":
        """Create a factory whose ids sort after every numeric id given."""
        floor = 0
        for race_id in existing_ids:
            if str(race_id).isdigit():
                floor = max(floor, int(race_id))
        return cls(floor=floor)

    def next_id(self, now_ms: int) -> RaceId:
        self._last = max(now_ms, self._last + 1)
        return RaceId(str(self._last))
