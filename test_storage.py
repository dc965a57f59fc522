import tempfile
import unittest
from pathlib import Path

from storage import KeyValueDatabase


class TestKeyValueDatabase(unittest.TestCase):
    def test_missing_key_returns_none(self):
        with KeyValueDatabase(":memory:") as db:
            self.assertIsNone(db.get_item("timing-storage"))

    def test_set_item_overwrites(self):
        with KeyValueDatabase(":memory:") as db:
            db.set_item("timing-storage", '{"races": []}')
            db.set_item("timing-storage", '{"races": [1]}')
            self.assertEqual(db.get_item("timing-storage"), '{"races": [1]}')

    def test_remove_item(self):
        with KeyValueDatabase(":memory:") as db:
            db.set_item("timing-storage", "{}")
            db.remove_item("timing-storage")
            db.remove_item("never-set")
            self.assertIsNone(db.get_item("timing-storage"))

    def test_values_survive_reopening(self):
        with tempfile.TemporaryDirectory() as tmp:
            db_path = str(Path(tmp) / "velotimer.db")
            with KeyValueDatabase(db_path) as db:
                db.set_item("timing-storage", '{"races": []}')
            with KeyValueDatabase(db_path) as db:
                self.assertEqual(db.get_item("timing-storage"), '{"races": []}')


if __name__ == "__main__":
    unittest.main()
