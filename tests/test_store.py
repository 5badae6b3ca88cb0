import os
import sys
import tempfile
import threading
import unittest
from datetime import date
from pathlib import Path
from unittest.mock import patch

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from actionflow.activity_log import read_recent_events
from actionflow.errors import StoreNotLoadedError
from actionflow.models import Contact, Task, TaskCategory, TaskRef, TaskStoreState, empty_state
from actionflow.persistence import BackgroundSaver
from actionflow.store import TaskStore

TODAY = date(2024, 5, 15)


class _MemoryRepository:
    def __init__(self, state: TaskStoreState | None = None, fail_saves: bool = False) -> None:
        self.state = state or empty_state()
        self.fail_saves = fail_saves
        self.saved: list[TaskStoreState] = []
        self.lock = threading.Lock()

    def load(self) -> TaskStoreState:
        return self.state

    def save(self, state: TaskStoreState) -> None:
        if self.fail_saves:
            raise OSError("disk full")
        with self.lock:
            self.saved.append(state)


class _BrokenRepository(_MemoryRepository):
    def load(self) -> TaskStoreState:
        raise OSError("unreachable")


def _store(repository: _MemoryRepository, **kwargs) -> TaskStore:
    store = TaskStore(repository, clock=lambda: TODAY, **kwargs)
    store.load()
    return store


class LoadTests(unittest.TestCase):
    def test_mutation_before_load_raises(self) -> None:
        store = TaskStore(_MemoryRepository(), clock=lambda: TODAY)
        with self.assertRaises(StoreNotLoadedError):
            store.add_task(TaskCategory.DAILY, "Too early")
        with self.assertRaises(StoreNotLoadedError):
            store.undo()

    def test_load_seeds_defaults_once_and_persists(self) -> None:
        template = Task(id="dd1", text="Standup", completed=False, owner="Ann")
        repository = _MemoryRepository(
            TaskStoreState(default_daily_tasks=(template,), default_weekly_tasks=(template,))
        )
        store = _store(repository)
        store.flush(timeout=5)
        self.assertEqual([t.date for t in store.state.daily_tasks], ["2024-05-15"])
        self.assertEqual([t.date for t in store.state.weekly_tasks], ["2024-05-12"])
        self.assertEqual(repository.saved[-1], store.state)
        self.assertFalse(store.can_undo)
        self.assertIs(store.load(), store.state)

    def test_load_without_templates_does_not_save(self) -> None:
        repository = _MemoryRepository()
        store = _store(repository)
        store.flush(timeout=5)
        self.assertEqual(repository.saved, [])
        self.assertTrue(store.is_loaded)

    def test_load_failure_falls_back_to_empty_state(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            logs_dir = Path(tmp)
            store = _store(_BrokenRepository(), logs_dir=logs_dir)
            self.assertEqual(store.state, empty_state())
            events = read_recent_events(logs_dir, event="load_failed")
            self.assertEqual(events[-1]["error"], "unreachable")


class HistoryTests(unittest.TestCase):
    def setUp(self) -> None:
        self.repository = _MemoryRepository(
            TaskStoreState(contacts=(Contact(id="c1", name="Ann"),), my_contact_id="c1")
        )
        self.store = _store(self.repository)

    def tearDown(self) -> None:
        self.store.flush(timeout=5)
        self.store.saver.close()

    def test_undo_then_redo_restores_exact_states(self) -> None:
        s0 = self.store.state
        self.store.add_task(TaskCategory.DAILY, "First")
        s1 = self.store.state
        self.store.toggle_task(TaskCategory.DAILY, s1.daily_tasks[0].id)
        s2 = self.store.state
        self.assertEqual(self.store.undo(), s1)
        self.assertEqual(self.store.undo(), s0)
        self.assertFalse(self.store.can_undo)
        self.assertEqual(self.store.redo(), s1)
        self.assertEqual(self.store.redo(), s2)
        self.assertFalse(self.store.can_redo)

    def test_new_change_clears_redo(self) -> None:
        self.store.add_task(TaskCategory.MISC, "One")
        self.store.undo()
        self.assertTrue(self.store.can_redo)
        self.store.add_task(TaskCategory.MISC, "Two")
        self.assertFalse(self.store.can_redo)

    def test_noop_records_no_history(self) -> None:
        before = self.store.state
        self.store.add_task(TaskCategory.DAILY, "   ")
        self.store.delete_sprint("missing")
        self.assertIs(self.store.state, before)
        self.assertFalse(self.store.can_undo)

    def test_history_is_capped(self) -> None:
        store = _store(_MemoryRepository(), history_limit=3)
        for idx in range(6):
            store.add_task(TaskCategory.MISC, f"Task {idx}")
        undone = 0
        while store.can_undo:
            store.undo()
            undone += 1
        self.assertEqual(undone, 3)
        self.assertEqual(len(store.state.misc_tasks), 3)
        store.flush(timeout=5)

    def test_reset_clears_history(self) -> None:
        self.store.add_task(TaskCategory.DAILY, "Temp")
        self.store.reset_application_data()
        self.assertEqual(self.store.state, empty_state())
        self.assertFalse(self.store.can_undo)
        self.assertFalse(self.store.can_redo)

    def test_undo_and_redo_persist(self) -> None:
        self.store.add_task(TaskCategory.DAILY, "Saved")
        self.store.undo()
        self.store.flush(timeout=5)
        self.assertEqual(self.repository.saved[-1], self.store.state)
        self.store.redo()
        self.store.flush(timeout=5)
        self.assertEqual(len(self.repository.saved[-1].daily_tasks), 1)


class NotificationTests(unittest.TestCase):
    def test_refusal_notifies_without_changing_state(self) -> None:
        notices = []
        store = _store(_MemoryRepository(), notify=notices.append)
        before = store.state
        store.clear_active_sprint_tasks()
        self.assertIs(store.state, before)
        self.assertEqual(notices[-1].title, "No Active Sprint")
        self.assertTrue(notices[-1].is_error)

    def test_bulk_complete_reports_count(self) -> None:
        notices = []
        repository = _MemoryRepository(
            TaskStoreState(
                daily_tasks=(
                    Task(id="d1", text="Send report", completed=False, owner="Ann", date="2024-05-15"),
                    Task(id="d2", text="Call Bob", completed=False, owner="Ann", date="2024-05-15"),
                )
            )
        )
        store = _store(repository, notify=notices.append)
        store.complete_tasks([TaskRef("d1", TaskCategory.DAILY)])
        self.assertEqual([t.completed for t in store.state.daily_tasks], [True, False])
        self.assertEqual(notices[-1].description, "Marked 1 task(s) as complete.")
        store.flush(timeout=5)


class SaveFailureTests(unittest.TestCase):
    def test_failed_save_is_logged_and_state_kept(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            logs_dir = Path(tmp)
            repository = _MemoryRepository(fail_saves=True)
            saver = BackgroundSaver(repository, logs_dir=logs_dir)
            store = _store(repository, saver=saver)
            store.add_task(TaskCategory.MISC, "Keep me")
            self.assertFalse(store.last_save.result(timeout=5))
            self.assertEqual(store.state.misc_tasks[0].text, "Keep me")
            self.assertTrue(store.can_undo)
            events = read_recent_events(logs_dir, event="save_failed")
            self.assertEqual(events[-1]["error"], "disk full")
            saver.close()

    def test_default_store_logs_to_configured_home(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            with patch.dict(os.environ, {"ACTIONFLOW_HOME": tmp}):
                store = TaskStore(_MemoryRepository(fail_saves=True), clock=lambda: TODAY)
                store.load()
                store.add_task(TaskCategory.MISC, "Unsaved")
                self.assertFalse(store.last_save.result(timeout=5))
            store.saver.close()
            self.assertEqual(store.logs_dir, Path(tmp) / "logs")
            events = read_recent_events(Path(tmp) / "logs", event="save_failed")
            self.assertEqual(events[-1]["error"], "disk full")

    def test_default_store_logs_load_failure(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            with patch.dict(os.environ, {"ACTIONFLOW_HOME": tmp}):
                store = TaskStore(_BrokenRepository(), clock=lambda: TODAY)
                store.load()
            events = read_recent_events(Path(tmp) / "logs", event="load_failed")
            self.assertEqual(events[-1]["error"], "unreachable")

    def test_saves_complete_in_submission_order(self) -> None:
        repository = _MemoryRepository()
        store = _store(repository)
        for idx in range(10):
            store.add_task(TaskCategory.MISC, f"Task {idx}")
        store.flush(timeout=5)
        self.assertEqual([len(s.misc_tasks) for s in repository.saved], list(range(1, 11)))
        self.assertEqual(repository.saved[-1], store.state)


if __name__ == "__main__":
    unittest.main()
