"""Pure task-store transitions.

Every function takes the current ``TaskStoreState`` and returns a
``Transition``. A refusal or a no-op hands back the very same state object,
which is how the store knows not to record history or persist.
"""

from __future__ import annotations

import time
import uuid
from collections import defaultdict
from dataclasses import dataclass, replace
from datetime import date, timedelta
from typing import Any, Iterable

from actionflow.models import (
    ALL_CATEGORIES,
    CATEGORY_LABELS,
    Contact,
    Sprint,
    Task,
    TaskCategory,
    TaskRef,
    TaskStoreState,
    date_key,
    default_owner_name,
    empty_state,
    week_start,
)

SPRINT_LENGTH_DAYS = 14

_TASK_UPDATE_FIELDS = {"text", "completed", "owner", "date", "sprint"}


@dataclass(frozen=True)
class Notice:
    title: str
    description: str
    variant: str = "default"

    @property
    def is_error(self) -> bool:
        return self.variant == "destructive"


@dataclass(frozen=True)
class Transition:
    state: TaskStoreState
    notice: Notice | None = None


def new_id(prefix: str) -> str:
    return f"{prefix}-{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}"


def _unchanged(state: TaskStoreState, notice: Notice | None = None) -> Transition:
    return Transition(state=state, notice=notice)


def _refuse(state: TaskStoreState, title: str, description: str) -> Transition:
    return Transition(state=state, notice=Notice(title, description, "destructive"))


def destination_fields(state: TaskStoreState, category: TaskCategory, today: date) -> dict[str, str | None]:
    """The date/sprint pair a task carries while it lives in ``category``."""
    if category in (TaskCategory.DAILY, TaskCategory.MISC):
        return {"date": date_key(today), "sprint": None}
    if category == TaskCategory.WEEKLY:
        return {"date": date_key(week_start(today)), "sprint": None}
    if category == TaskCategory.SPRINT:
        return {"date": None, "sprint": state.active_sprint_name}
    return {"date": None, "sprint": None}


def add_task(
    state: TaskStoreState,
    category: TaskCategory,
    text: str,
    today: date,
    options: dict[str, Any] | None = None,
) -> Transition:
    category = TaskCategory(category)
    cleaned = (text or "").strip()
    if not cleaned:
        return _unchanged(state)
    options = options or {}
    owner = (options.get("owner") or "").strip() or default_owner_name(state)
    task_date: str | None = None
    sprint: str | None = None
    if category == TaskCategory.SPRINT:
        sprint = options.get("sprint") or state.active_sprint_name
    elif not category.is_template:
        task_date = options.get("date") or date_key(today)
    task = Task(
        id=options.get("id") or new_id(category.value),
        text=cleaned,
        completed=bool(options.get("completed", False)),
        owner=owner,
        date=task_date,
        sprint=sprint,
    )
    return Transition(state=state.with_tasks(category, state.tasks(category) + (task,)))


def toggle_task(state: TaskStoreState, category: TaskCategory, task_id: str) -> Transition:
    tasks = state.tasks(category)
    if not any(task.id == task_id for task in tasks):
        return _unchanged(state)
    updated = [replace(t, completed=not t.completed) if t.id == task_id else t for t in tasks]
    return Transition(state=state.with_tasks(category, updated))


def delete_task(state: TaskStoreState, category: TaskCategory, task_id: str) -> Transition:
    tasks = state.tasks(category)
    remaining = [task for task in tasks if task.id != task_id]
    if len(remaining) == len(tasks):
        return _unchanged(state)
    return Transition(state=state.with_tasks(category, remaining))


def _group_by_category(refs: Iterable[TaskRef]) -> dict[TaskCategory, set[str]]:
    grouped: dict[TaskCategory, set[str]] = defaultdict(set)
    for ref in refs:
        grouped[TaskCategory(ref.category)].add(ref.id)
    return grouped


def delete_tasks(state: TaskStoreState, refs: Iterable[TaskRef]) -> Transition:
    new_state = state
    removed = 0
    for category, ids in _group_by_category(refs).items():
        tasks = new_state.tasks(category)
        remaining = [task for task in tasks if task.id not in ids]
        removed += len(tasks) - len(remaining)
        if len(remaining) != len(tasks):
            new_state = new_state.with_tasks(category, remaining)
    if removed == 0:
        return _unchanged(state, Notice("No Tasks Deleted", "None of the selected tasks were found."))
    return Transition(
        state=new_state,
        notice=Notice("Tasks Deleted", f"Successfully deleted {removed} task(s)."),
    )


def complete_tasks(state: TaskStoreState, refs: Iterable[TaskRef]) -> Transition:
    new_state = state
    changed = 0
    for category, ids in _group_by_category(refs).items():
        tasks = new_state.tasks(category)
        updated = []
        for task in tasks:
            if task.id in ids and not task.completed:
                updated.append(replace(task, completed=True))
                changed += 1
            else:
                updated.append(task)
        new_state = new_state.with_tasks(category, updated)
    if changed == 0:
        return _unchanged(
            state,
            Notice("No Tasks Completed", "The matching tasks were already complete or could not be found."),
        )
    return Transition(
        state=new_state,
        notice=Notice("Tasks Completed", f"Marked {changed} task(s) as complete."),
    )


def _ensure_contact(state: TaskStoreState, name: str) -> TaskStoreState:
    lowered = name.lower()
    if any(contact.name.lower() == lowered for contact in state.contacts):
        return state
    contact = Contact(id=new_id("contact"), name=name, email="")
    return replace(state, contacts=state.contacts + (contact,))


def update_task(
    state: TaskStoreState, category: TaskCategory, task_id: str, updates: dict[str, Any]
) -> Transition:
    task = state.find_task(category, task_id)
    if task is None:
        return _unchanged(state)
    unknown = set(updates) - _TASK_UPDATE_FIELDS
    if unknown:
        raise ValueError(f"Unsupported task fields: {', '.join(sorted(unknown))}")
    changes = dict(updates)
    if "text" in changes:
        text = (changes["text"] or "").strip()
        if not text:
            return _unchanged(state)
        changes["text"] = text
    new_state = state
    owner = changes.get("owner")
    if isinstance(owner, str) and owner.strip():
        changes["owner"] = owner.strip()
        new_state = _ensure_contact(new_state, owner.strip())
    updated_task = replace(task, **changes)
    if updated_task == task and new_state is state:
        return _unchanged(state)
    updated = [updated_task if t.id == task_id else t for t in new_state.tasks(category)]
    return Transition(state=new_state.with_tasks(category, updated))


def move_task(
    state: TaskStoreState,
    task_id: str,
    source: TaskCategory,
    destination: TaskCategory,
    destination_index: int,
    today: date,
) -> Transition:
    source = TaskCategory(source)
    destination = TaskCategory(destination)
    task = state.find_task(source, task_id)
    if task is None:
        return _unchanged(state)
    remaining = [t for t in state.tasks(source) if t.id != task_id]
    moved = replace(task, **destination_fields(state, destination, today))
    new_state = state.with_tasks(source, remaining)
    target = list(new_state.tasks(destination))
    index = max(0, min(destination_index, len(target)))
    target.insert(index, moved)
    return Transition(
        state=new_state.with_tasks(destination, target),
        notice=Notice("Task Moved", f"Task moved to {CATEGORY_LABELS[destination]} checklist."),
    )


def reorder_task(state: TaskStoreState, category: TaskCategory, old_index: int, new_index: int) -> Transition:
    tasks = list(state.tasks(category))
    if not (0 <= old_index < len(tasks)) or not (0 <= new_index < len(tasks)):
        return _unchanged(state)
    if old_index == new_index:
        return _unchanged(state)
    task = tasks.pop(old_index)
    tasks.insert(new_index, task)
    return Transition(state=state.with_tasks(category, tasks))


def _rewrite_owners(state: TaskStoreState, old: str, new: str) -> TaskStoreState:
    for category in ALL_CATEGORIES:
        tasks = state.tasks(category)
        if any(task.owner == old for task in tasks):
            state = state.with_tasks(
                category, [replace(t, owner=new) if t.owner == old else t for t in tasks]
            )
    return state


def add_contact(state: TaskStoreState, name: str, email: str = "") -> Transition:
    cleaned = (name or "").strip()
    if not cleaned:
        return _unchanged(state)
    contact = Contact(id=new_id("contact"), name=cleaned, email=(email or "").strip())
    return Transition(state=replace(state, contacts=state.contacts + (contact,)))


def update_contact(state: TaskStoreState, contact_id: str, updates: dict[str, Any]) -> Transition:
    original = next((c for c in state.contacts if c.id == contact_id), None)
    if original is None:
        return _unchanged(state)
    changes = {key: value for key, value in updates.items() if key in ("name", "email")}
    if "name" in changes:
        name = (changes["name"] or "").strip()
        if not name:
            changes.pop("name")
        else:
            changes["name"] = name
    updated = replace(original, **changes)
    if updated == original:
        return _unchanged(state)
    new_state = replace(
        state, contacts=tuple(updated if c.id == contact_id else c for c in state.contacts)
    )
    if updated.name != original.name:
        new_state = _rewrite_owners(new_state, original.name, updated.name)
    return Transition(state=new_state)


def delete_contact(state: TaskStoreState, contact_id: str) -> Transition:
    doomed = next((c for c in state.contacts if c.id == contact_id), None)
    if doomed is None:
        return _unchanged(state)
    deleting_mine = state.my_contact_id == contact_id
    mine = state.my_contact
    reassign_to = mine.name if mine is not None and not deleting_mine else ""
    new_state = _rewrite_owners(state, doomed.name, reassign_to)
    new_state = replace(
        new_state,
        contacts=tuple(c for c in new_state.contacts if c.id != contact_id),
        my_contact_id=None if deleting_mine else new_state.my_contact_id,
    )
    return Transition(
        state=new_state,
        notice=Notice("Contact Deleted", f"Tasks reassigned from {doomed.name}."),
    )


def set_my_contact(state: TaskStoreState, contact_id: str) -> Transition:
    contact = next((c for c in state.contacts if c.id == contact_id), None)
    if contact is None or state.my_contact_id == contact_id:
        return _unchanged(state)
    return Transition(
        state=replace(state, my_contact_id=contact_id),
        notice=Notice("My Contact Set", f'"{contact.name}" is now the default owner for new tasks.'),
    )


def add_sprint(state: TaskStoreState, name: str, today: date) -> Transition:
    cleaned = (name or "").strip()
    if not cleaned:
        return _unchanged(state)
    if any(s.name.lower() == cleaned.lower() for s in state.sprints):
        return _refuse(state, "Duplicate Sprint", "A sprint with this name already exists.")
    sprint = Sprint(
        name=cleaned,
        start_date=date_key(today),
        end_date=date_key(today + timedelta(days=SPRINT_LENGTH_DAYS - 1)),
    )
    sprints = state.sprints + (sprint,)
    active = sprint.name if len(sprints) == 1 else state.active_sprint_name
    return Transition(
        state=replace(state, sprints=sprints, active_sprint_name=active),
        notice=Notice("Sprint Added", f'"{sprint.name}" has been created.'),
    )


def delete_sprint(state: TaskStoreState, name: str) -> Transition:
    if any(task.sprint == name for task in state.sprint_tasks):
        return _refuse(state, "Cannot Delete Sprint", "This sprint has tasks assigned to it.")
    if state.find_sprint(name) is None:
        return _unchanged(state)
    sprints = tuple(s for s in state.sprints if s.name != name)
    active = state.active_sprint_name
    if active == name:
        active = sprints[0].name if sprints else ""
    return Transition(
        state=replace(state, sprints=sprints, active_sprint_name=active),
        notice=Notice("Sprint Deleted", f'"{name}" has been removed.'),
    )


def set_active_sprint(state: TaskStoreState, name: str) -> Transition:
    if state.active_sprint_name == name:
        return _unchanged(state)
    return Transition(
        state=replace(state, active_sprint_name=name),
        notice=Notice("Active Sprint Changed", f'You are now viewing "{name}".'),
    )


def update_sprint_dates(
    state: TaskStoreState, name: str, start_date: str | None = None, end_date: str | None = None
) -> Transition:
    sprint = state.find_sprint(name)
    if sprint is None:
        return _unchanged(state)
    updated = replace(
        sprint,
        start_date=start_date or sprint.start_date,
        end_date=end_date or sprint.end_date,
    )
    if updated == sprint:
        return _unchanged(state)
    return Transition(
        state=replace(state, sprints=tuple(updated if s.name == name else s for s in state.sprints))
    )


def clear_active_sprint_tasks(state: TaskStoreState) -> Transition:
    active = state.active_sprint_name
    if not active:
        return _refuse(state, "No Active Sprint", "There is no active sprint selected.")
    remaining = [task for task in state.sprint_tasks if task.sprint != active]
    if len(remaining) == len(state.sprint_tasks):
        return _unchanged(state)
    return Transition(
        state=state.with_tasks(TaskCategory.SPRINT, remaining),
        notice=Notice("Sprint Tasks Cleared", f'All tasks for "{active}" have been deleted.'),
    )


def reset_application_data(state: TaskStoreState) -> Transition:
    return Transition(
        state=empty_state(),
        notice=Notice("Application Reset", "All data has been cleared."),
    )


def add_default_tasks_for_date(state: TaskStoreState, on: date, category: TaskCategory) -> Transition:
    category = TaskCategory(category)
    if category == TaskCategory.DAILY:
        key = date_key(on)
        templates = state.default_daily_tasks
        description = f"Added default tasks for {key}."
    elif category == TaskCategory.WEEKLY:
        key = date_key(week_start(on))
        templates = state.default_weekly_tasks
        description = f"Added default tasks for the week of {key}."
    else:
        raise ValueError(f"Default tasks can only be seeded for daily or weekly, not {category.value}")
    if not templates or any(task.date == key for task in state.tasks(category)):
        return _unchanged(state)
    seeded = [
        replace(template, id=new_id(category.value), date=key, sprint=None, completed=False)
        for template in templates
    ]
    return Transition(
        state=state.with_tasks(category, state.tasks(category) + tuple(seeded)),
        notice=Notice("Default Tasks Added", description),
    )
