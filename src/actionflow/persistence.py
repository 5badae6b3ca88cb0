from __future__ import annotations

import json
import os
import tempfile
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Protocol

import httpx

from actionflow.activity_log import append_event
from actionflow.config import load_paths
from actionflow.errors import PersistenceError
from actionflow.models import TaskStoreState, empty_state, state_from_dict, state_to_dict


@lru_cache(maxsize=1)
def _shared_http_client() -> httpx.Client:
    return httpx.Client()


class StateRepository(Protocol):
    def load(self) -> TaskStoreState:
        ...

    def save(self, state: TaskStoreState) -> None:
        ...


@dataclass
class JsonFileRepository:
    """Whole-blob JSON storage; a missing or unreadable file is replaced by the empty default."""

    path: Path

    def load(self) -> TaskStoreState:
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            state = empty_state()
            self.save(state)
            return state
        return state_from_dict(payload)

    def load_raw(self) -> dict:
        return state_to_dict(self.load())

    def save(self, state: TaskStoreState) -> None:
        self.save_raw(state_to_dict(state))

    def save_raw(self, payload: dict) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=".tasks-", suffix=".json", dir=self.path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(payload, handle, indent=2)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise


@dataclass(frozen=True)
class HttpStateRepository:
    base_url: str
    timeout_s: float = 10.0

    @property
    def url(self) -> str:
        return f"{self.base_url.rstrip('/')}/api/tasks"

    def load(self) -> TaskStoreState:
        client = _shared_http_client()
        response = client.get(self.url, timeout=self.timeout_s)
        if response.status_code >= 400:
            raise PersistenceError(f"Failed to fetch tasks ({response.status_code}): {response.text}")
        return state_from_dict(response.json())

    def save(self, state: TaskStoreState) -> None:
        client = _shared_http_client()
        response = client.post(self.url, json=state_to_dict(state), timeout=self.timeout_s)
        if response.status_code >= 400:
            raise PersistenceError(f"Failed to save tasks ({response.status_code}): {response.text}")


class BackgroundSaver:
    """Fire-and-forget writer.

    A single worker thread keeps writes in the order they were submitted. A
    failed write is logged and otherwise ignored; the returned future resolves
    to ``False`` in that case.
    """

    def __init__(self, repository: StateRepository, logs_dir: Path | None = None) -> None:
        self.repository = repository
        self.logs_dir = logs_dir if logs_dir is not None else load_paths().logs_dir
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="actionflow-save")
        self._lock = threading.Lock()
        self._pending: list[Future] = []

    def submit(self, state: TaskStoreState) -> Future:
        future = self._executor.submit(self._write, state)
        with self._lock:
            self._pending = [f for f in self._pending if not f.done()]
            self._pending.append(future)
        return future

    def _write(self, state: TaskStoreState) -> bool:
        try:
            self.repository.save(state)
        except Exception as exc:  # noqa: BLE001
            append_event(self.logs_dir, "save_failed", error=str(exc))
            return False
        return True

    def flush(self, timeout: float | None = None) -> None:
        with self._lock:
            pending = list(self._pending)
        for future in pending:
            future.result(timeout=timeout)

    def close(self) -> None:
        self._executor.shutdown(wait=True)
