import json
import shutil
import tempfile
import unittest
from pathlib import Path

from congregation_sync.config import settings
from congregation_sync.models import CacheRecord, Preferences, RemoteItem
from congregation_sync.state import StateManager


class TestStateManager(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()
        self.path = Path(self.tmpdir) / "state.json"
        settings.PERSIST_ENABLED = True

    def tearDown(self):
        shutil.rmtree(self.tmpdir, ignore_errors=True)

    def test_values_survive_reload(self):
        sm = StateManager(str(self.path))
        self.assertIsNone(sm.get("missing"))

        sm.set("notes", b'[{"id": "n1", "text": "Pray for the Smiths"}]')

        reloaded = StateManager(str(self.path))
        self.assertEqual(json.loads(reloaded.get("notes")), [{"id": "n1", "text": "Pray for the Smiths"}])
        self.assertFalse(self.path.with_suffix(".tmp").exists())

    def test_delete(self):
        sm = StateManager(str(self.path))
        sm.set("a", b"1")
        sm.delete("a")
        self.assertIsNone(StateManager(str(self.path)).get("a"))

    def test_corrupt_file_starts_fresh(self):
        self.path.write_text("{not json")
        sm = StateManager(str(self.path))
        self.assertEqual(sm.values, {})

    def test_cache_record_round_trip(self):
        sm = StateManager(str(self.path))
        record = CacheRecord(
            items=[RemoteItem(id="v1", title="It Is Well", payload="v1")],
            fetched_at=10.0,
            valid_ids=["v1"],
            last_checked_at=11.0
        )
        sm.save_cache("playlist", record)

        self.assertEqual(StateManager(str(self.path)).load_cache("playlist"), record)
        self.assertEqual(sm.load_cache("announcements"), CacheRecord())

    def test_delete_cache(self):
        sm = StateManager(str(self.path))
        sm.save_cache("scripture:john:3", CacheRecord(fetched_at=1.0))
        sm.delete_cache("scripture:john:3")
        self.assertNotIn("cache:scripture:john:3", StateManager(str(self.path)).values)

    def test_unreadable_cache_is_discarded(self):
        sm = StateManager(str(self.path))
        sm.set("cache:playlist", b'{"valid_ids": "not-a-list"}')
        self.assertEqual(sm.load_cache("playlist"), CacheRecord())

    def test_preferences(self):
        sm = StateManager(str(self.path))
        self.assertEqual(sm.load_preferences(), Preferences())

        sm.save_preferences(Preferences(font_size="large", enable_background_music=True))

        prefs = StateManager(str(self.path)).load_preferences()
        self.assertEqual(prefs.font_size, "large")
        self.assertTrue(prefs.enable_background_music)

    def test_persistence_disabled(self):
        settings.PERSIST_ENABLED = False
        try:
            sm = StateManager(str(self.path))
            sm.set("a", b"1")
            self.assertEqual(sm.get("a"), b"1")
            self.assertFalse(self.path.exists())
        finally:
            settings.PERSIST_ENABLED = True

    def test_unwritable_path_goes_read_only(self):
        sm = StateManager(str(Path(self.tmpdir) / "missing-dir" / "state.json"))
        sm.set("a", b"1")
        self.assertTrue(sm.read_only)
        self.assertEqual(sm.get("a"), b"1")


if __name__ == '__main__':
    unittest.main()
