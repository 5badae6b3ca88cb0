from __future__ import annotations

from concurrent.futures import Future
from datetime import date
from pathlib import Path
from typing import Any, Callable, Iterable

from actionflow import transitions
from actionflow.activity_log import append_event
from actionflow.config import DEFAULT_HISTORY_LIMIT, load_paths
from actionflow.errors import StoreNotLoadedError
from actionflow.models import TaskCategory, TaskRef, TaskStoreState, empty_state
from actionflow.persistence import BackgroundSaver, StateRepository
from actionflow.transitions import Notice, Transition

Clock = Callable[[], date]
NoticeHandler = Callable[[Notice], None]


class TaskStore:
    """Owns the canonical in-memory state.

    Mutations run a pure transition, record the previous state for undo when
    something changed, and hand the new state to the background saver without
    waiting for it.
    """

    def __init__(
        self,
        repository: StateRepository,
        saver: BackgroundSaver | None = None,
        clock: Clock | None = None,
        notify: NoticeHandler | None = None,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        logs_dir: Path | None = None,
    ) -> None:
        self.repository = repository
        self.logs_dir = logs_dir if logs_dir is not None else load_paths().logs_dir
        self.saver = saver or BackgroundSaver(repository, logs_dir=self.logs_dir)
        self.clock = clock or date.today
        self.notify = notify
        self.history_limit = history_limit
        self._state: TaskStoreState = empty_state()
        self._loaded = False
        self._past: list[TaskStoreState] = []
        self._future: list[TaskStoreState] = []
        self.last_save: Future | None = None

    @property
    def state(self) -> TaskStoreState:
        return self._state

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    @property
    def can_undo(self) -> bool:
        return bool(self._past)

    @property
    def can_redo(self) -> bool:
        return bool(self._future)

    def load(self) -> TaskStoreState:
        if self._loaded:
            return self._state
        try:
            state = self.repository.load()
        except Exception as exc:  # noqa: BLE001
            append_event(self.logs_dir, "load_failed", error=str(exc))
            state = empty_state()
        today = self.clock()
        seeded = state
        for category in (TaskCategory.DAILY, TaskCategory.WEEKLY):
            seeded = transitions.add_default_tasks_for_date(seeded, today, category).state
        self._state = seeded
        self._loaded = True
        if seeded is not state:
            self._persist()
        return self._state

    def flush(self, timeout: float | None = None) -> None:
        self.saver.flush(timeout=timeout)

    def _require_loaded(self) -> None:
        if not self._loaded:
            raise StoreNotLoadedError("Task store has not been loaded yet.")

    def _persist(self) -> None:
        self.last_save = self.saver.submit(self._state)

    def _apply(self, transition: Transition) -> Transition:
        if transition.state is not self._state:
            self._past.append(self._state)
            if len(self._past) > self.history_limit:
                del self._past[: len(self._past) - self.history_limit]
            self._future.clear()
            self._state = transition.state
            self._persist()
        if transition.notice is not None and self.notify is not None:
            self.notify(transition.notice)
        return transition

    def _run(self, fn: Callable[..., Transition], *args: Any) -> Transition:
        self._require_loaded()
        return self._apply(fn(self._state, *args))

    def add_task(self, category: TaskCategory, text: str, options: dict[str, Any] | None = None) -> Transition:
        return self._run(transitions.add_task, category, text, self.clock(), options)

    def toggle_task(self, category: TaskCategory, task_id: str) -> Transition:
        return self._run(transitions.toggle_task, category, task_id)

    def delete_task(self, category: TaskCategory, task_id: str) -> Transition:
        return self._run(transitions.delete_task, category, task_id)

    def delete_tasks(self, refs: Iterable[TaskRef]) -> Transition:
        return self._run(transitions.delete_tasks, list(refs))

    def update_task(self, category: TaskCategory, task_id: str, updates: dict[str, Any]) -> Transition:
        return self._run(transitions.update_task, category, task_id, updates)

    def complete_tasks(self, refs: Iterable[TaskRef]) -> Transition:
        return self._run(transitions.complete_tasks, list(refs))

    def move_task(
        self, task_id: str, source: TaskCategory, destination: TaskCategory, destination_index: int
    ) -> Transition:
        return self._run(transitions.move_task, task_id, source, destination, destination_index, self.clock())

    def reorder_task(self, category: TaskCategory, old_index: int, new_index: int) -> Transition:
        return self._run(transitions.reorder_task, category, old_index, new_index)

    def add_contact(self, name: str, email: str = "") -> Transition:
        return self._run(transitions.add_contact, name, email)

    def update_contact(self, contact_id: str, updates: dict[str, Any]) -> Transition:
        return self._run(transitions.update_contact, contact_id, updates)

    def delete_contact(self, contact_id: str) -> Transition:
        return self._run(transitions.delete_contact, contact_id)

    def set_my_contact(self, contact_id: str) -> Transition:
        return self._run(transitions.set_my_contact, contact_id)

    def add_sprint(self, name: str) -> Transition:
        return self._run(transitions.add_sprint, name, self.clock())

    def delete_sprint(self, name: str) -> Transition:
        return self._run(transitions.delete_sprint, name)

    def set_active_sprint(self, name: str) -> Transition:
        return self._run(transitions.set_active_sprint, name)

    def update_sprint_dates(self, name: str, start_date: str | None = None, end_date: str | None = None) -> Transition:
        return self._run(transitions.update_sprint_dates, name, start_date, end_date)

    def clear_active_sprint_tasks(self) -> Transition:
        return self._run(transitions.clear_active_sprint_tasks)

    def add_default_tasks_for_date(self, on: date, category: TaskCategory) -> Transition:
        return self._run(transitions.add_default_tasks_for_date, on, category)

    def reset_application_data(self) -> Transition:
        self._require_loaded()
        transition = transitions.reset_application_data(self._state)
        self._state = transition.state
        self._past.clear()
        self._future.clear()
        self._persist()
        if transition.notice is not None and self.notify is not None:
            self.notify(transition.notice)
        return transition

    def undo(self) -> TaskStoreState:
        self._require_loaded()
        if not self._past:
            return self._state
        self._future.append(self._state)
        self._state = self._past.pop()
        self._persist()
        return self._state

    def redo(self) -> TaskStoreState:
        self._require_loaded()
        if not self._future:
            return self._state
        self._past.append(self._state)
        self._state = self._future.pop()
        self._persist()
        return self._state
