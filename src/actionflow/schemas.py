from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from actionflow.models import LIVE_CATEGORIES, TaskCategory

TASK_CATEGORY_VALUES = tuple(category.value for category in LIVE_CATEGORIES)
ASSISTANT_INTENTS = ("create_tasks", "answer_question", "greeting", "clarification")


@dataclass(frozen=True)
class CreatedTask:
    text: str
    category: TaskCategory
    owner: str


@dataclass(frozen=True)
class CreateTasksResult:
    tasks: list[CreatedTask]
    clarification: str | None
    original_task: CreatedTask | None = None


@dataclass(frozen=True)
class IdentifiedTask:
    id: str
    text: str
    category: TaskCategory


@dataclass(frozen=True)
class TaskSelectionResult:
    tasks: list[IdentifiedTask]
    clarification: str | None


@dataclass(frozen=True)
class AssistantRoute:
    intent: str
    answer: str | None


def _parse_clarification(payload: dict[str, Any]) -> tuple[str | None, str | None]:
    if "clarification" not in payload:
        return None, "clarification required"
    clarification = payload["clarification"]
    if clarification is None:
        return None, None
    if not isinstance(clarification, str):
        return None, "clarification must be string or null"
    return clarification.strip() or None, None


def _parse_category(value: Any, label: str) -> tuple[TaskCategory | None, str | None]:
    if not isinstance(value, str) or value not in TASK_CATEGORY_VALUES:
        return None, f"{label} category must be one of {', '.join(TASK_CATEGORY_VALUES)}"
    return TaskCategory(value), None


def _parse_created_task(entry: Any, label: str) -> tuple[CreatedTask | None, str | None]:
    if not isinstance(entry, dict):
        return None, f"{label} must be object"
    text = entry.get("text")
    owner = entry.get("owner")
    if not isinstance(text, str) or not text.strip():
        return None, f"{label} text missing"
    category, error = _parse_category(entry.get("category"), label)
    if error:
        return None, error
    if not isinstance(owner, str) or not owner.strip():
        return None, f"{label} owner must be a non-empty string"
    return CreatedTask(text=text.strip(), category=category, owner=owner.strip()), None


def parse_create_tasks(payload: Any, *, allow_original_task: bool = False) -> tuple[CreateTasksResult | None, str | None]:
    if not isinstance(payload, dict):
        return None, "payload must be object"
    tasks_raw = payload.get("tasks")
    if not isinstance(tasks_raw, list):
        return None, "tasks must be list"
    tasks: list[CreatedTask] = []
    for idx, entry in enumerate(tasks_raw):
        task, error = _parse_created_task(entry, f"task {idx}")
        if error:
            return None, error
        tasks.append(task)
    clarification, error = _parse_clarification(payload)
    if error:
        return None, error
    original_task: CreatedTask | None = None
    original_raw = payload.get("originalTask")
    # Ignored unless goal decomposition is on.
    if allow_original_task and original_raw is not None:
        original_task, error = _parse_created_task(original_raw, "originalTask")
        if error:
            return None, error
    return CreateTasksResult(tasks=tasks, clarification=clarification, original_task=original_task), None


def parse_identified_tasks(payload: Any, list_key: str) -> tuple[TaskSelectionResult | None, str | None]:
    """Shared shape of the complete and delete flows (``tasksToComplete`` / ``tasksToDelete``)."""
    if not isinstance(payload, dict):
        return None, "payload must be object"
    tasks_raw = payload.get(list_key)
    if not isinstance(tasks_raw, list):
        return None, f"{list_key} must be list"
    tasks: list[IdentifiedTask] = []
    for idx, entry in enumerate(tasks_raw):
        label = f"{list_key}[{idx}]"
        if not isinstance(entry, dict):
            return None, f"{label} must be object"
        task_id = entry.get("id")
        text = entry.get("text")
        if not isinstance(task_id, str) or not task_id:
            return None, f"{label} id missing"
        if not isinstance(text, str):
            return None, f"{label} text must be string"
        category, error = _parse_category(entry.get("category"), label)
        if error:
            return None, error
        tasks.append(IdentifiedTask(id=task_id, text=text, category=category))
    clarification, error = _parse_clarification(payload)
    if error:
        return None, error
    return TaskSelectionResult(tasks=tasks, clarification=clarification), None


def parse_assistant_route(payload: Any) -> tuple[AssistantRoute | None, str | None]:
    if not isinstance(payload, dict):
        return None, "payload must be object"
    intent = payload.get("intent")
    if intent not in ASSISTANT_INTENTS:
        return None, f"intent must be one of {', '.join(ASSISTANT_INTENTS)}"
    answer = payload.get("answer")
    if intent == "create_tasks":
        # Extraction happens downstream; any answer text is discarded.
        return AssistantRoute(intent=intent, answer=None), None
    if not isinstance(answer, str) or not answer.strip():
        return None, f"answer required for intent {intent}"
    return AssistantRoute(intent=intent, answer=answer.strip()), None


def parse_answer(payload: Any) -> tuple[str | None, str | None]:
    if not isinstance(payload, dict):
        return None, "payload must be object"
    answer = payload.get("answer")
    if not isinstance(answer, str) or not answer.strip():
        return None, "answer required"
    return answer.strip(), None
