"""
Unit tests for job_store.py.
"""

import unittest
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from job_store import InMemoryJobStore, JobProgress


class TestJobProgress(unittest.TestCase):
    def test_to_dict_drops_none(self):
        self.assertEqual(JobProgress(10, "Working").to_dict(), {"percent": 10, "status": "Working"})
        self.assertEqual(
            JobProgress(100, "Failed", error="boom").to_dict(),
            {"percent": 100, "status": "Failed", "error": "boom"},
        )


class TestInMemoryJobStore(unittest.TestCase):
    def test_update_and_get(self):
        store = InMemoryJobStore()
        store.update("job1", 40, "Stitching")
        self.assertEqual(store.get("job1"), JobProgress(40, "Stitching"))
        self.assertIn("job1", store)
        self.assertEqual(len(store), 1)

    def test_percent_clamped(self):
        store = InMemoryJobStore()
        self.assertEqual(store.update("job1", 150, "x").percent, 100)
        self.assertEqual(store.update("job2", -5, "x").percent, 0)

    def test_percent_never_decreases(self):
        store = InMemoryJobStore()
        store.update("job1", 82, "Background music ready!")
        record = store.update("job1", 80, "No music found, skipping...")
        self.assertEqual(record.percent, 82)
        self.assertEqual(store.get("job1").status, "No music found, skipping...")
        self.assertEqual(store.update("job1", 100, "Failed", error="boom").percent, 100)

    def test_percent_restarts_after_delete(self):
        store = InMemoryJobStore()
        store.update("job1", 100, "Done")
        store.delete("job1")
        self.assertEqual(store.update("job1", 0, "Starting up...").percent, 0)

    def test_update_replaces_record(self):
        store = InMemoryJobStore()
        store.update("job1", 98, "Uploading", output="ignored")
        store.update("job1", 100, "Ready", output="https://cdn/v.mp4")
        self.assertEqual(store.get("job1").output, "https://cdn/v.mp4")

    def test_delete_missing_is_noop(self):
        store = InMemoryJobStore()
        store.delete("nope")
        self.assertIsNone(store.get("nope"))

    def test_schedule_delete(self):
        store = InMemoryJobStore()
        store.update("job1", 100, "Done")
        timer = store.schedule_delete("job1", delay=0.01)
        timer.join(2)
        self.assertNotIn("job1", store)


if __name__ == "__main__":
    unittest.main()
