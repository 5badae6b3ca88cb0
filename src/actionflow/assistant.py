from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Callable

from actionflow import flows
from actionflow.activity_log import append_event
from actionflow.errors import FlowError
from actionflow.llm import LLMGateway
from actionflow.models import (
    CATEGORY_LABELS,
    TaskCategory,
    TaskRef,
    default_owner_name,
    tasks_context,
)
from actionflow.schemas import CreatedTask
from actionflow.store import TaskStore

CREATE = "create"
COMPLETE = "complete"
DELETE = "delete"
CHAT = "chat"


@dataclass(frozen=True)
class AssistantReply:
    message: str
    intent: str | None = None
    clarification: bool = False
    error: str | None = None
    task_ids: list[str] = field(default_factory=list)


@dataclass
class PendingClarification:
    kind: str
    query: str


def combine_followup(original: str, answer: str) -> str:
    return f"{original}\nUser's answer: {answer}"


class AssistantSession:
    """Conversational command surface over a loaded ``TaskStore``.

    When a flow asks for clarification the original query is remembered, and
    the next message is sent back to that same flow combined with the answer.
    With goal decomposition the goal itself is added as one task; pass
    ``add_subtasks=True`` to add the ordered sub-tasks instead.
    """

    def __init__(
        self,
        store: TaskStore,
        gateway: LLMGateway,
        clock: Callable[[], date] | None = None,
        decompose: bool = False,
        logs_dir: Path | None = None,
        add_subtasks: bool = False,
    ) -> None:
        self.store = store
        self.gateway = gateway
        self.clock = clock or store.clock
        self.decompose = decompose
        self.add_subtasks = add_subtasks
        self.logs_dir = logs_dir if logs_dir is not None else store.logs_dir
        self.pending: PendingClarification | None = None

    def all_tasks_json(self) -> str:
        return json.dumps(tasks_context(self.store.state))

    def open_tasks_json(self) -> str:
        return json.dumps(tasks_context(self.store.state, open_only=True))

    def contacts_json(self) -> str:
        return json.dumps([{"id": c.id, "name": c.name, "email": c.email} for c in self.store.state.contacts])

    def send(self, message: str) -> AssistantReply:
        text = message.strip()
        if not text:
            return AssistantReply(message="")
        if self.pending is not None:
            pending = self.pending
            self.pending = None
            return self._dispatch(pending.kind, combine_followup(pending.query, text))
        return self._dispatch(CHAT, text)

    def create(self, query: str) -> AssistantReply:
        return self._dispatch(CREATE, query)

    def complete(self, query: str) -> AssistantReply:
        return self._dispatch(COMPLETE, query)

    def delete(self, query: str) -> AssistantReply:
        return self._dispatch(DELETE, query)

    def _dispatch(self, kind: str, query: str) -> AssistantReply:
        handlers = {
            CHAT: self._chat,
            CREATE: self._create,
            COMPLETE: self._complete,
            DELETE: self._delete,
        }
        try:
            return handlers[kind](query)
        except FlowError as exc:
            append_event(self.logs_dir, "flow_failed", kind=kind, error=str(exc))
            return AssistantReply(message=str(exc), error=str(exc))

    def _ask(self, kind: str, query: str, question: str) -> AssistantReply:
        self.pending = PendingClarification(kind=kind, query=query)
        return AssistantReply(message=question, intent=kind, clarification=True)

    def _chat(self, query: str) -> AssistantReply:
        route = flows.route_query(self.gateway, query, self.all_tasks_json(), self.clock())
        if route.intent == "create_tasks":
            return self._create(query)
        if route.intent == "clarification":
            return self._ask(CHAT, query, route.answer or "Could you tell me a bit more?")
        return AssistantReply(message=route.answer or "", intent=route.intent)

    def _create(self, query: str) -> AssistantReply:
        state = self.store.state
        result = flows.create_tasks_from_text(
            self.gateway,
            query,
            self.contacts_json(),
            default_owner_name(state),
            decompose=self.decompose,
        )
        if result.clarification:
            return self._ask(CREATE, query, result.clarification)
        if result.original_task is not None and not (self.add_subtasks and result.tasks):
            created = [result.original_task]
        else:
            created = result.tasks
        if not created:
            return AssistantReply(
                message="I couldn't identify any tasks from your request. Please try rephrasing.",
                intent=CREATE,
            )
        ids = [self._add(task) for task in created]
        if len(created) == 1:
            task = created[0]
            message = f'Okay, I\'ve added "{task.text}" to your {CATEGORY_LABELS[task.category]} list.'
        else:
            message = f"I've added {len(created)} tasks for you."
        return AssistantReply(message=message, intent=CREATE, task_ids=[i for i in ids if i])

    def _add(self, task: CreatedTask) -> str | None:
        options = {"owner": task.owner}
        if task.category == TaskCategory.SPRINT:
            options["sprint"] = self.store.state.active_sprint_name
        before = {t.id for t in self.store.state.tasks(task.category)}
        self.store.add_task(task.category, task.text, options)
        added = [t.id for t in self.store.state.tasks(task.category) if t.id not in before]
        return added[0] if added else None

    def _select(self, kind: str, query: str) -> AssistantReply:
        if kind == COMPLETE:
            result = flows.complete_tasks_from_text(self.gateway, query, self.open_tasks_json())
        else:
            result = flows.delete_tasks_from_text(self.gateway, query, self.all_tasks_json())
        if result.clarification and not result.tasks:
            return self._ask(kind, query, result.clarification)
        if not result.tasks:
            return AssistantReply(message="I couldn't find any matching tasks.", intent=kind)
        refs = [TaskRef(id=task.id, category=task.category) for task in result.tasks]
        if kind == COMPLETE:
            transition = self.store.complete_tasks(refs)
        else:
            transition = self.store.delete_tasks(refs)
        notice = transition.notice
        message = notice.description if notice else "Done."
        return AssistantReply(message=message, intent=kind, task_ids=[ref.id for ref in refs])

    def _complete(self, query: str) -> AssistantReply:
        return self._select(COMPLETE, query)

    def _delete(self, query: str) -> AssistantReply:
        return self._select(DELETE, query)
