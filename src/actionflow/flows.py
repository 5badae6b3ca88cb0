"""Natural-language command flows.

Each flow renders a prompt, asks the gateway for JSON, validates the shape and
returns a typed result. Any failure on the way is re-raised as a single
``FlowError`` carrying the underlying detail.
"""

from __future__ import annotations

import json
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import date
from typing import Any, Callable, TypeVar

from actionflow.errors import ActionFlowError, FlowError, SchemaError
from actionflow.llm import LLMGateway
from actionflow.models import TaskCategory, date_key, week_end, week_start
from actionflow.prompts import (
    build_answer_prompt,
    build_chunk_summary_prompt,
    build_combine_summaries_prompt,
    build_complete_tasks_prompt,
    build_create_tasks_prompt,
    build_delete_tasks_prompt,
    build_router_prompt,
)
from actionflow.schemas import (
    AssistantRoute,
    CreateTasksResult,
    IdentifiedTask,
    TaskSelectionResult,
    parse_answer,
    parse_assistant_route,
    parse_create_tasks,
    parse_identified_tasks,
)

CREATE_TEMPERATURE = 0.2
SELECT_TEMPERATURE = 0.1
ROUTER_TEMPERATURE = 0.2
SUMMARY_TEMPERATURE = 0.2

SUMMARY_CHUNK_SIZE = 15000
SUMMARY_CHUNK_OVERLAP = 1000
SUMMARY_MAX_CHARS = 500000

T = TypeVar("T")


def _run_flow(failure: str, action: Callable[[], T]) -> T:
    try:
        return action()
    except FlowError:
        raise
    except ActionFlowError as exc:
        raise FlowError(f"Failed to {failure}. Details: {exc}") from exc


def _validated(parsed: tuple[T | None, str | None]) -> T:
    result, error = parsed
    if error or result is None:
        raise SchemaError(f"Response failed validation: {error}")
    return result


def _known_tasks(tasks_json: str) -> dict[str, dict[str, Any]]:
    """Index the task snapshot sent to the model by id."""
    try:
        snapshot = json.loads(tasks_json)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Task snapshot is not valid JSON: {exc}") from exc
    known: dict[str, dict[str, Any]] = {}
    if not isinstance(snapshot, dict):
        return known
    for key, entries in snapshot.items():
        if not isinstance(entries, list):
            continue
        fallback = key[: -len("Tasks")] if key.endswith("Tasks") else key
        for entry in entries:
            if isinstance(entry, dict) and isinstance(entry.get("id"), str):
                known[entry["id"]] = {
                    "text": str(entry.get("text", "")),
                    "category": entry.get("category") or fallback,
                }
    return known


def _ground_selection(result: TaskSelectionResult, known: dict[str, dict[str, Any]]) -> TaskSelectionResult:
    grounded: list[IdentifiedTask] = []
    seen: set[str] = set()
    for task in result.tasks:
        original = known.get(task.id)
        if original is None:
            raise SchemaError(f"Response referenced unknown task id {task.id!r}")
        if task.id in seen:
            continue
        seen.add(task.id)
        grounded.append(
            IdentifiedTask(id=task.id, text=original["text"], category=TaskCategory(original["category"]))
        )
    return TaskSelectionResult(tasks=grounded, clarification=result.clarification)


def create_tasks_from_text(
    gateway: LLMGateway,
    query: str,
    contacts_json: str,
    default_owner_name: str,
    *,
    decompose: bool = False,
) -> CreateTasksResult:
    if not default_owner_name or not default_owner_name.strip():
        raise ValueError("default_owner_name is required")
    prompt = build_create_tasks_prompt(query, contacts_json, default_owner_name.strip(), decompose)

    def action() -> CreateTasksResult:
        payload = gateway.request_json(prompt, temperature=CREATE_TEMPERATURE)
        return _validated(parse_create_tasks(payload, allow_original_task=decompose))

    return _run_flow("process task creation request", action)


def complete_tasks_from_text(gateway: LLMGateway, query: str, open_tasks_json: str) -> TaskSelectionResult:
    known = _known_tasks(open_tasks_json)
    prompt = build_complete_tasks_prompt(query, open_tasks_json)

    def action() -> TaskSelectionResult:
        payload = gateway.request_json(prompt, temperature=SELECT_TEMPERATURE)
        result = _validated(parse_identified_tasks(payload, "tasksToComplete"))
        return _ground_selection(result, known)

    return _run_flow("process task completion request", action)


def delete_tasks_from_text(gateway: LLMGateway, query: str, all_tasks_json: str) -> TaskSelectionResult:
    known = _known_tasks(all_tasks_json)
    prompt = build_delete_tasks_prompt(query, all_tasks_json)

    def action() -> TaskSelectionResult:
        payload = gateway.request_json(prompt, temperature=SELECT_TEMPERATURE)
        result = _validated(parse_identified_tasks(payload, "tasksToDelete"))
        return _ground_selection(result, known)

    return _run_flow("process task deletion request", action)


def _week_bounds(today: date) -> tuple[str, str, str]:
    return date_key(today), date_key(week_start(today)), date_key(week_end(today))


def route_query(gateway: LLMGateway, query: str, all_tasks_json: str, today: date) -> AssistantRoute:
    prompt = build_router_prompt(query, all_tasks_json, *_week_bounds(today))

    def action() -> AssistantRoute:
        payload = gateway.request_json(prompt, temperature=ROUTER_TEMPERATURE)
        return _validated(parse_assistant_route(payload))

    return _run_flow("get answer from assistant", action)


def answer_question(gateway: LLMGateway, query: str, all_tasks_json: str, today: date) -> str:
    prompt = build_answer_prompt(query, all_tasks_json, *_week_bounds(today))

    def action() -> str:
        payload = gateway.request_json(prompt, temperature=ROUTER_TEMPERATURE)
        return _validated(parse_answer(payload))

    return _run_flow("get answer from assistant", action)


def split_into_chunks(
    text: str, chunk_size: int = SUMMARY_CHUNK_SIZE, overlap: int = SUMMARY_CHUNK_OVERLAP
) -> list[str]:
    if chunk_size <= overlap:
        raise ValueError("chunk_size must be larger than overlap")
    step = chunk_size - overlap
    return [text[start : start + chunk_size] for start in range(0, len(text), step)]


def summarize_text(gateway: LLMGateway, text: str, max_workers: int = 4) -> str:
    if len(text) > SUMMARY_MAX_CHARS:
        raise ValueError(f"Text exceeds {SUMMARY_MAX_CHARS} characters.")

    def summarize_one(chunk: str) -> str:
        return gateway.request_text(build_chunk_summary_prompt(chunk), temperature=SUMMARY_TEMPERATURE).strip()

    def action() -> str:
        if len(text) <= SUMMARY_CHUNK_SIZE:
            return summarize_one(text)
        chunks = split_into_chunks(text)
        summaries: list[str] = [""] * len(chunks)

        def _summarize_at(index: int, chunk: str) -> None:
            summaries[index] = summarize_one(chunk)

        with ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(chunks)))) as executor:
            futures = [executor.submit(_summarize_at, idx, chunk) for idx, chunk in enumerate(chunks)]
            for future in as_completed(futures):
                future.result()
        combined = [summary for summary in summaries if summary]
        final = gateway.request_text(build_combine_summaries_prompt(combined), temperature=SUMMARY_TEMPERATURE)
        return final.strip()

    return _run_flow("summarize text", action)
