from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, timedelta
from enum import Enum
from typing import Any, Iterator


class TaskCategory(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    SPRINT = "sprint"
    MISC = "misc"
    DEFAULT_DAILY = "defaultDaily"
    DEFAULT_WEEKLY = "defaultWeekly"
    DEFAULT_SPRINT = "defaultSprint"

    @property
    def is_template(self) -> bool:
        return self in TEMPLATE_CATEGORIES


LIVE_CATEGORIES = (
    TaskCategory.DAILY,
    TaskCategory.WEEKLY,
    TaskCategory.SPRINT,
    TaskCategory.MISC,
)
TEMPLATE_CATEGORIES = (
    TaskCategory.DEFAULT_DAILY,
    TaskCategory.DEFAULT_WEEKLY,
    TaskCategory.DEFAULT_SPRINT,
)
ALL_CATEGORIES = LIVE_CATEGORIES + TEMPLATE_CATEGORIES

# Display labels used in prompts and notices.
CATEGORY_LABELS = {
    TaskCategory.DAILY: "Today",
    TaskCategory.WEEKLY: "This Week",
    TaskCategory.SPRINT: "Sprint",
    TaskCategory.MISC: "Misc",
    TaskCategory.DEFAULT_DAILY: "Default Daily",
    TaskCategory.DEFAULT_WEEKLY: "Default Weekly",
    TaskCategory.DEFAULT_SPRINT: "Default Sprint",
}

UNASSIGNED_OWNER = "Unassigned"


@dataclass(frozen=True)
class Task:
    id: str
    text: str
    completed: bool
    owner: str
    date: str | None = None
    sprint: str | None = None


@dataclass(frozen=True)
class Contact:
    id: str
    name: str
    email: str = ""


@dataclass(frozen=True)
class Sprint:
    name: str
    start_date: str
    end_date: str


@dataclass(frozen=True)
class TaskRef:
    id: str
    category: TaskCategory


_LIST_FIELDS = {
    TaskCategory.DAILY: "daily_tasks",
    TaskCategory.WEEKLY: "weekly_tasks",
    TaskCategory.SPRINT: "sprint_tasks",
    TaskCategory.MISC: "misc_tasks",
    TaskCategory.DEFAULT_DAILY: "default_daily_tasks",
    TaskCategory.DEFAULT_WEEKLY: "default_weekly_tasks",
    TaskCategory.DEFAULT_SPRINT: "default_sprint_tasks",
}

_JSON_KEYS = {
    TaskCategory.DAILY: "dailyTasks",
    TaskCategory.WEEKLY: "weeklyTasks",
    TaskCategory.SPRINT: "sprintTasks",
    TaskCategory.MISC: "miscTasks",
    TaskCategory.DEFAULT_DAILY: "defaultDailyTasks",
    TaskCategory.DEFAULT_WEEKLY: "defaultWeeklyTasks",
    TaskCategory.DEFAULT_SPRINT: "defaultSprintTasks",
}


@dataclass(frozen=True)
class TaskStoreState:
    active_sprint_name: str = ""
    sprints: tuple[Sprint, ...] = ()
    daily_tasks: tuple[Task, ...] = ()
    weekly_tasks: tuple[Task, ...] = ()
    sprint_tasks: tuple[Task, ...] = ()
    misc_tasks: tuple[Task, ...] = ()
    contacts: tuple[Contact, ...] = ()
    my_contact_id: str | None = None
    default_daily_tasks: tuple[Task, ...] = ()
    default_weekly_tasks: tuple[Task, ...] = ()
    default_sprint_tasks: tuple[Task, ...] = ()

    def tasks(self, category: TaskCategory) -> tuple[Task, ...]:
        return getattr(self, _LIST_FIELDS[TaskCategory(category)])

    def with_tasks(self, category: TaskCategory, tasks: Any) -> TaskStoreState:
        return replace(self, **{_LIST_FIELDS[TaskCategory(category)]: tuple(tasks)})

    def find_task(self, category: TaskCategory, task_id: str) -> Task | None:
        for task in self.tasks(category):
            if task.id == task_id:
                return task
        return None

    @property
    def my_contact(self) -> Contact | None:
        for contact in self.contacts:
            if contact.id == self.my_contact_id:
                return contact
        return None

    def find_sprint(self, name: str) -> Sprint | None:
        for sprint in self.sprints:
            if sprint.name == name:
                return sprint
        return None


def empty_state() -> TaskStoreState:
    return TaskStoreState()


def iter_tasks(
    state: TaskStoreState, categories: tuple[TaskCategory, ...] = LIVE_CATEGORIES
) -> Iterator[tuple[TaskCategory, Task]]:
    for category in categories:
        for task in state.tasks(category):
            yield category, task


def default_owner_name(state: TaskStoreState) -> str:
    """Owner for new tasks: my contact, else the first contact, else "Unassigned"."""
    mine = state.my_contact
    if mine and mine.name:
        return mine.name
    if state.contacts and state.contacts[0].name:
        return state.contacts[0].name
    return UNASSIGNED_OWNER


def date_key(value: date) -> str:
    return value.strftime("%Y-%m-%d")


def week_start(value: date) -> date:
    # Weeks start on Sunday.
    return value - timedelta(days=(value.weekday() + 1) % 7)


def week_end(value: date) -> date:
    return week_start(value) + timedelta(days=6)


def task_to_dict(task: Task) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "id": task.id,
        "text": task.text,
        "completed": task.completed,
        "owner": task.owner,
    }
    if task.date is not None:
        payload["date"] = task.date
    if task.sprint is not None:
        payload["sprint"] = task.sprint
    return payload


def task_from_dict(payload: Any) -> Task | None:
    if not isinstance(payload, dict):
        return None
    task_id = payload.get("id")
    text = payload.get("text")
    if not isinstance(task_id, str) or not task_id or not isinstance(text, str):
        return None
    owner = payload.get("owner")
    task_date = payload.get("date")
    sprint = payload.get("sprint")
    completed = payload.get("completed")
    return Task(
        id=task_id,
        text=text,
        completed=completed if isinstance(completed, bool) else False,
        owner=owner if isinstance(owner, str) else "",
        date=task_date if isinstance(task_date, str) else None,
        sprint=sprint if isinstance(sprint, str) else None,
    )


def state_to_dict(state: TaskStoreState) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "activeSprintName": state.active_sprint_name,
        "sprints": [
            {"name": s.name, "startDate": s.start_date, "endDate": s.end_date}
            for s in state.sprints
        ],
    }
    for category in LIVE_CATEGORIES:
        payload[_JSON_KEYS[category]] = [task_to_dict(t) for t in state.tasks(category)]
    payload["contacts"] = [
        {"id": c.id, "name": c.name, "email": c.email} for c in state.contacts
    ]
    payload["myContactId"] = state.my_contact_id
    for category in TEMPLATE_CATEGORIES:
        payload[_JSON_KEYS[category]] = [task_to_dict(t) for t in state.tasks(category)]
    return payload


def state_from_dict(payload: Any) -> TaskStoreState:
    """Best-effort merge of a persisted blob over the empty default.

    Unknown keys are ignored, missing or mistyped keys keep their defaults and
    malformed list entries are dropped.
    """
    state = empty_state()
    if not isinstance(payload, dict):
        return state
    active = payload.get("activeSprintName")
    if isinstance(active, str):
        state = replace(state, active_sprint_name=active)
    sprints_raw = payload.get("sprints")
    if isinstance(sprints_raw, list):
        sprints = []
        for entry in sprints_raw:
            if not isinstance(entry, dict) or not isinstance(entry.get("name"), str):
                continue
            sprints.append(
                Sprint(
                    name=entry["name"],
                    start_date=str(entry.get("startDate") or ""),
                    end_date=str(entry.get("endDate") or ""),
                )
            )
        state = replace(state, sprints=tuple(sprints))
    for category in ALL_CATEGORIES:
        raw = payload.get(_JSON_KEYS[category])
        if not isinstance(raw, list):
            continue
        tasks = [task for task in (task_from_dict(item) for item in raw) if task is not None]
        state = state.with_tasks(category, tasks)
    contacts_raw = payload.get("contacts")
    if isinstance(contacts_raw, list):
        contacts = []
        for entry in contacts_raw:
            if not isinstance(entry, dict):
                continue
            contact_id = entry.get("id")
            name = entry.get("name")
            if not isinstance(contact_id, str) or not isinstance(name, str):
                continue
            email = entry.get("email")
            contacts.append(Contact(id=contact_id, name=name, email=email if isinstance(email, str) else ""))
        state = replace(state, contacts=tuple(contacts))
    my_contact_id = payload.get("myContactId")
    if isinstance(my_contact_id, str) or my_contact_id is None:
        state = replace(state, my_contact_id=my_contact_id)
    return state


def tasks_context(state: TaskStoreState, *, open_only: bool = False) -> dict[str, list[dict[str, Any]]]:
    """Live task lists keyed by their JSON names, each task tagged with its category."""
    context: dict[str, list[dict[str, Any]]] = {}
    for category in LIVE_CATEGORIES:
        entries = []
        for task in state.tasks(category):
            if open_only and task.completed:
                continue
            entry = task_to_dict(task)
            entry["category"] = category.value
            entries.append(entry)
        context[_JSON_KEYS[category]] = entries
    return context
