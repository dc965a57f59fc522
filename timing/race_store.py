import json
import logging
from typing import Callable, Iterator, List, Optional, Protocol

from timing.race import Race

STORAGE_KEY = "timing-storage"


class DuplicateIdError(ValueError):
    """Raised when a race is added with an id already in the store."""

    def __init__(self, race_id: str):
        super().__init__(f"Race id {race_id!r} is already in the store")
        self.race_id = race_id


class StoragePort(Protocol):
    def get_item(self, key: str) -> Optional[str]: ...

    def set_item(self, key: str, value: str) -> None: ...


def serialize_races(races: List[Race]) -> str:
    return json.dumps({"races": [race.to_dict() for race in races]})


def deserialize_races(raw: str) -> List[Race]:
    """Parse stored history, skipping records that are not valid races."""
    data = json.loads(raw)
    races = []
    for index, item in enumerate(data.get("races", [])):
        try:
            races.append(Race.from_dict(item))
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            logging.warning(f"Skipping unreadable race record {index}: {e}")
    return races


class RaceStore:
    """Ordered, persisted history of completed races.

    Storage order is append order. Every mutation writes the whole
    collection back through the storage port. A failed write is logged and
    reported through ``on_persist_error``; the in-memory collection stays
    authoritative for the lifetime of the process.
    """

    def __init__(
        self,
        storage: StoragePort,
        *,
        key: str = STORAGE_KEY,
        on_persist_error: Optional[Callable[[Exception], None]] = None,
    ):
        self.storage = storage
        self.key = key
        self.on_persist_error = on_persist_error
        self._races: List[Race] = self._load()

    def _load(self) -> List[Race]:
        try:
            raw = self.storage.get_item(self.key)
        except Exception as e:
            logging.error(f"Failed to read race history: {e}")
            return []
        if raw is None:
            return []
        try:
            races = deserialize_races(raw)
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            logging.error(f"Stored race history is malformed, starting empty: {e}")
            return []

        # Keep the first occurrence if a corrupted history repeats an id.
        seen = set()
        unique = []
        for race in races:
            if race.id in seen:
                logging.warning(f"Dropping duplicate race id {race.id} from history")
                continue
            seen.add(race.id)
            unique.append(race)
        logging.info(f"Loaded {len(unique)} races from storage")
        return unique

    def _persist(self) -> None:
        try:
            self.storage.set_item(self.key, serialize_races(self._races))
        except Exception as e:
            logging.warning(f"Failed to persist race history: {e}")
            if self.on_persist_error is not None:
                self.on_persist_error(e)

    def add_race(self, race: Race) -> None:
        if any(existing.id == race.id for existing in self._races):
            raise DuplicateIdError(race.id)
        self._races.append(race)
        logging.info(f"Race added to history: {race}")
        self._persist()

    def clear_history(self) -> None:
        self._races = []
        logging.info("Race history cleared")
        self._persist()

    def delete_race(self, race_id: str) -> None:
        remaining = [race for race in self._races if race.id != race_id]
        if len(remaining) != len(self._races):
            logging.info(f"Race {race_id} deleted from history")
        self._races = remaining
        self._persist()

    def list_races(self) -> List[Race]:
        """Returns a copy of the races in the order they were added."""
        return list(self._races)

    def get_race(self, race_id: str) -> Optional[Race]:
        for race in self._races:
            if race.id == race_id:
                return race
        return None

    def __len__(self) -> int:
        return len(self._races)

    def __iter__(self) -> Iterator[Race]:
        return iter(list(self._races))
