import json
import sqlite3
import unittest
from datetime import datetime, timedelta, timezone

from storage import KeyValueDatabase
from timing.race import Race, RaceId
from timing.race_store import STORAGE_KEY, DuplicateIdError, RaceStore


START = datetime(2025, 6, 1, 10, 0, 0, 123000, tzinfo=timezone.utc)


def make_race(race_id: str, total_time: int = 5000, lap_times=None) -> Race:
    return Race(
        id=RaceId(race_id),
        start_time=START,
        end_time=START + timedelta(milliseconds=total_time),
        total_time=total_time,
        lap_times=lap_times if lap_times is not None else (total_time,),
        rider_name=f"Rider {race_id[-4:]}",
    )


class FailingStorage:
    def __init__(self):
        self.raw = None

    def get_item(self, key):
        return self.raw

    def set_item(self, key, value):
        raise sqlite3.OperationalError("database is locked")


class TestRaceStore(unittest.TestCase):
    def setUp(self):
        self.db = KeyValueDatabase(":memory:")
        self.store = RaceStore(self.db)

    def tearDown(self):
        self.db.close()

    def test_empty_store(self):
        self.assertEqual(self.store.list_races(), [])
        self.assertEqual(len(self.store), 0)

    def test_add_race_keeps_append_order(self):
        races = [make_race("1001"), make_race("1003"), make_race("1002")]
        for race in races:
            self.store.add_race(race)
        self.assertEqual(self.store.list_races(), races)

    def test_add_race_persists(self):
        self.store.add_race(make_race("1001"))
        stored = json.loads(self.db.get_item(STORAGE_KEY))
        self.assertEqual([r["id"] for r in stored["races"]], ["1001"])

    def test_duplicate_id_rejected(self):
        self.store.add_race(make_race("1001"))
        with self.assertRaises(DuplicateIdError):
            self.store.add_race(make_race("1001", total_time=7000))
        self.assertEqual(len(self.store), 1)

    def test_list_races_is_a_copy(self):
        self.store.add_race(make_race("1001"))
        races = self.store.list_races()
        races.clear()
        self.assertEqual(len(self.store), 1)

    def test_delete_race_removes_exactly_one(self):
        for race_id in ("1001", "1002", "1003"):
            self.store.add_race(make_race(race_id))
        self.store.delete_race("1002")
        self.assertEqual([r.id for r in self.store.list_races()], ["1001", "1003"])

    def test_delete_unknown_id_is_noop(self):
        self.store.add_race(make_race("1001"))
        before = self.store.list_races()
        self.store.delete_race("9999")
        self.assertEqual(self.store.list_races(), before)

    def test_clear_history(self):
        self.store.add_race(make_race("1001"))
        self.store.add_race(make_race("1002"))
        self.store.clear_history()
        self.assertEqual(self.store.list_races(), [])
        self.assertEqual(json.loads(self.db.get_item(STORAGE_KEY)), {"races": []})

    def test_clear_empty_history_is_noop(self):
        self.store.clear_history()
        self.assertEqual(self.store.list_races(), [])

    def test_reload_round_trip(self):
        races = [
            make_race("1001", total_time=5000, lap_times=(1500, 4200, 5000)),
            make_race("1002", total_time=61_239, lap_times=(61_239,)),
            make_race("1003", total_time=0, lap_times=()),
        ]
        for race in races:
            self.store.add_race(race)

        reloaded = RaceStore(self.db)
        self.assertEqual(reloaded.list_races(), races)
        for race in reloaded.list_races():
            duration = race.end_time - race.start_time
            self.assertEqual(duration, timedelta(milliseconds=race.total_time))

    def test_get_race(self):
        race = make_race("1001")
        self.store.add_race(race)
        self.assertEqual(self.store.get_race("1001"), race)
        self.assertIsNone(self.store.get_race("1002"))

    def test_malformed_storage_starts_empty(self):
        self.db.set_item(STORAGE_KEY, "{not json")
        self.assertEqual(RaceStore(self.db).list_races(), [])

    def test_invalid_record_does_not_discard_valid_races(self):
        first, second = make_race("1001"), make_race("1002")
        broken = make_race("1003").to_dict()
        broken["riderName"] = ""
        payload = {"races": [first.to_dict(), broken, second.to_dict()]}
        self.db.set_item(STORAGE_KEY, json.dumps(payload))

        store = RaceStore(self.db)
        self.assertEqual(store.list_races(), [first, second])

        store.add_race(make_race("1004"))
        stored = json.loads(self.db.get_item(STORAGE_KEY))
        self.assertEqual([r["id"] for r in stored["races"]], ["1001", "1002", "1004"])

    def test_duplicate_ids_in_storage_are_dropped_on_load(self):
        race = make_race("1001")
        payload = {"races": [race.to_dict(), race.to_dict()]}
        self.db.set_item(STORAGE_KEY, json.dumps(payload))
        self.assertEqual(RaceStore(self.db).list_races(), [race])

    def test_persist_failure_is_reported_and_memory_kept(self):
        errors = []
        store = RaceStore(FailingStorage(), on_persist_error=errors.append)
        race = make_race("1001")
        store.add_race(race)
        self.assertEqual(store.list_races(), [race])
        self.assertEqual(len(errors), 1)
        self.assertIsInstance(errors[0], sqlite3.OperationalError)

    def test_persist_failure_without_callback_does_not_raise(self):
        store = RaceStore(FailingStorage())
        store.add_race(make_race("1001"))
        store.delete_race("1001")
        self.assertEqual(store.list_races(), [])


if __name__ == "__main__":
    unittest.main()
