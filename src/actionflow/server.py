from __future__ import annotations

import json
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

from actionflow.activity_log import append_event
from actionflow.config import load_paths
from actionflow.persistence import JsonFileRepository

TASKS_PATH = "/api/tasks"


class _StateHandler(BaseHTTPRequestHandler):
    repository: JsonFileRepository
    logs_dir: Path

    def _send_json(self, payload: Any, status: int = 200) -> None:
        data = json.dumps(payload).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json; charset=utf-8")
        self.send_header("Cache-Control", "no-store")
        self.send_header("Content-Length", str(len(data)))
        self.end_headers()
        self.wfile.write(data)

    def do_GET(self) -> None:  # noqa: N802
        if urlparse(self.path).path != TASKS_PATH:
            self._send_json({"error": "not found"}, status=404)
            return
        self._send_json(self.repository.load_raw())

    def do_POST(self) -> None:  # noqa: N802
        if urlparse(self.path).path != TASKS_PATH:
            self._send_json({"error": "not found"}, status=404)
            return
        try:
            length = int(self.headers.get("Content-Length", "0") or "0")
        except ValueError:
            self._send_json({"success": False, "message": "Invalid Content-Length header."}, status=400)
            return
        try:
            payload = json.loads(self.rfile.read(length).decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            self._send_json({"success": False, "message": "Request body must be JSON."}, status=400)
            return
        if not isinstance(payload, dict):
            self._send_json({"success": False, "message": "Request body must be a JSON object."}, status=400)
            return
        try:
            self.repository.save_raw(payload)
        except OSError as exc:
            append_event(self.logs_dir, "save_failed", error=str(exc), source="server")
            self._send_json({"success": False, "message": "Failed to save data."}, status=500)
            return
        self._send_json({"success": True, "message": "Data saved successfully."})

    def log_message(self, _format: str, *_args: Any) -> None:
        return


def build_server(host: str, port: int, state_path: Path, logs_dir: Path | None = None) -> ThreadingHTTPServer:
    class Handler(_StateHandler):
        repository = JsonFileRepository(state_path)

    Handler.logs_dir = logs_dir if logs_dir is not None else load_paths().logs_dir

    class _StateServer(ThreadingHTTPServer):
        daemon_threads = True
        allow_reuse_address = True

    return _StateServer((host, port), Handler)


def run_server(host: str, port: int, state_path: Path, logs_dir: Path | None = None) -> None:
    server = build_server(host, port, state_path, logs_dir)
    print(f"ActionFlow state endpoint running at http://{host}:{port}{TASKS_PATH}")
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        pass
    finally:
        server.server_close()
