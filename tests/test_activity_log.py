import sys
import tempfile
import unittest
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from actionflow.activity_log import LOG_FILENAME, append_event, read_recent_events


class ActivityLogTests(unittest.TestCase):
    def test_append_and_read_recent(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            logs_dir = Path(tmp) / "logs"
            for idx in range(5):
                append_event(logs_dir, "save_failed" if idx % 2 else "flow_failed", index=idx)
            recent = read_recent_events(logs_dir, limit=2)
            self.assertEqual([entry["index"] for entry in recent], [3, 4])
            failed_saves = read_recent_events(logs_dir, event="save_failed")
            self.assertEqual([entry["index"] for entry in failed_saves], [1, 3])
            self.assertIn("timestamp", recent[0])

    def test_bad_lines_are_skipped(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            logs_dir = Path(tmp)
            (logs_dir / LOG_FILENAME).write_text('not json\n[1]\n{"event": "load_failed"}\n')
            self.assertEqual(read_recent_events(logs_dir), [{"event": "load_failed"}])
            self.assertEqual(read_recent_events(Path(tmp) / "missing"), [])


if __name__ == "__main__":
    unittest.main()
