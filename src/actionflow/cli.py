from __future__ import annotations

import json
from datetime import date
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from actionflow.activity_log import read_recent_events
from actionflow.assistant import AssistantReply, AssistantSession
from actionflow.config import (
    AppConfig,
    LLMSettings,
    Paths,
    load_config,
    load_paths,
    resolve_config,
    save_config,
)
from actionflow.errors import ConfigurationError, FlowError
from actionflow.flows import summarize_text
from actionflow.llm import LLMGateway, build_llm_client, is_gemini_url
from actionflow.models import ALL_CATEGORIES, CATEGORY_LABELS, LIVE_CATEGORIES, TaskCategory
from actionflow.persistence import HttpStateRepository, JsonFileRepository, StateRepository
from actionflow.server import run_server
from actionflow.store import TaskStore
from actionflow.transitions import Notice

app = typer.Typer(help="ActionFlow task checklists")
contact_app = typer.Typer(help="Manage contacts")
sprint_app = typer.Typer(help="Manage sprints")
app.add_typer(contact_app, name="contact")
app.add_typer(sprint_app, name="sprint")

console = Console()

_REMOTE_OPTION = typer.Option(None, "--remote", help="Base URL of a running state endpoint.")


def _print_notice(notice: Notice) -> None:
    style = "bold red" if notice.is_error else "bold green"
    console.print(f"[{style}]{escape(notice.title)}[/{style}]: {escape(notice.description)}")


def _repository(paths: Paths, remote: str | None) -> StateRepository:
    if remote:
        return HttpStateRepository(base_url=remote)
    return JsonFileRepository(paths.state_path)


def _open_store(remote: str | None = None) -> tuple[TaskStore, Paths, AppConfig]:
    paths = load_paths()
    config = resolve_config(paths)
    store = TaskStore(
        _repository(paths, remote),
        notify=_print_notice,
        history_limit=config.history_limit,
        logs_dir=paths.logs_dir,
    )
    store.load()
    return store, paths, config


def _build_gateway(settings: LLMSettings) -> LLMGateway:
    try:
        return LLMGateway(build_llm_client(settings))
    except ConfigurationError as exc:
        typer.echo(str(exc))
        raise typer.Exit(code=1) from exc


def _category(value: str) -> TaskCategory:
    try:
        return TaskCategory(value)
    except ValueError as exc:
        names = ", ".join(c.value for c in ALL_CATEGORIES)
        raise typer.BadParameter(f"category must be one of {names}") from exc


def _find_contact_id(store: TaskStore, name_or_id: str) -> str:
    for contact in store.state.contacts:
        if contact.id == name_or_id or contact.name.lower() == name_or_id.lower():
            return contact.id
    typer.echo(f"Contact not found: {name_or_id}")
    raise typer.Exit(code=1)


def _print_reply(reply: AssistantReply) -> None:
    if reply.error:
        console.print(f"[bold red]Jarvis[/bold red]: {escape(reply.message)}")
        return
    console.print(f"[bold green]Jarvis[/bold green]: {escape(reply.message)}")


@app.command()
def setup() -> None:
    """Write the LLM configuration file."""
    paths = load_paths()
    current = load_config(paths.config_path)
    base_url = typer.prompt("LLM base URL", default=current.llm.base_url)
    model = typer.prompt("LLM model", default=current.llm.model or "llama3")
    api_key = current.llm.api_key
    if is_gemini_url(base_url):
        api_key = typer.prompt("Gemini API key", hide_input=True)
    config = AppConfig(
        llm=LLMSettings(model=model, base_url=base_url, api_key=api_key, timeout_s=current.llm.timeout_s),
        server=current.server,
        history_limit=current.history_limit,
    )
    save_config(paths.config_path, config)
    typer.echo(f"Config saved to {paths.config_path}")


@app.command("list")
def list_tasks(
    category: Optional[str] = typer.Argument(None, help="Only show one category."),
    remote: Optional[str] = _REMOTE_OPTION,
) -> None:
    """Show the checklists."""
    store, _, _ = _open_store(remote)
    state = store.state
    categories = [_category(category)] if category else list(LIVE_CATEGORIES)
    for cat in categories:
        table = Table(title=CATEGORY_LABELS[cat])
        table.add_column("#", justify="right")
        table.add_column("Done")
        table.add_column("Task")
        table.add_column("Owner")
        table.add_column("Date / Sprint")
        table.add_column("Id", style="dim")
        for idx, task in enumerate(state.tasks(cat)):
            table.add_row(
                str(idx),
                "x" if task.completed else "",
                escape(task.text),
                escape(task.owner),
                escape(task.date or task.sprint or ""),
                task.id,
            )
        console.print(table)
    if state.active_sprint_name:
        console.print(f"[dim]Active sprint: {escape(state.active_sprint_name)}[/dim]")


@app.command()
def add(
    category: str = typer.Argument(..., help="daily, weekly, sprint, misc or a default template list."),
    text: str = typer.Argument(..., help="Task text."),
    owner: Optional[str] = typer.Option(None, help="Owner name."),
    remote: Optional[str] = _REMOTE_OPTION,
) -> None:
    """Add a task."""
    store, _, _ = _open_store(remote)
    options = {"owner": owner} if owner else None
    before = store.state
    if store.add_task(_category(category), text, options).state is before:
        typer.echo("Nothing added.")
    store.flush()


@app.command()
def toggle(category: str, task_id: str, remote: Optional[str] = _REMOTE_OPTION) -> None:
    """Flip a task between open and done."""
    store, _, _ = _open_store(remote)
    store.toggle_task(_category(category), task_id)
    store.flush()


@app.command()
def remove(category: str, task_id: str, remote: Optional[str] = _REMOTE_OPTION) -> None:
    """Delete a task."""
    store, _, _ = _open_store(remote)
    store.delete_task(_category(category), task_id)
    store.flush()


@app.command()
def move(
    task_id: str,
    source: str,
    destination: str,
    index: int = typer.Option(0, help="Position in the destination list."),
    remote: Optional[str] = _REMOTE_OPTION,
) -> None:
    """Move a task to another checklist."""
    store, _, _ = _open_store(remote)
    store.move_task(task_id, _category(source), _category(destination), index)
    store.flush()


@app.command()
def seed(
    category: str = typer.Argument("daily", help="daily or weekly"),
    on: Optional[str] = typer.Option(None, help="Date (YYYY-MM-DD), defaults to today."),
    remote: Optional[str] = _REMOTE_OPTION,
) -> None:
    """Copy the default template tasks into a day or week."""
    store, _, _ = _open_store(remote)
    target = date.fromisoformat(on) if on else store.clock()
    try:
        store.add_default_tasks_for_date(target, _category(category))
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc
    store.flush()


@app.command()
def reset(
    yes: bool = typer.Option(False, "--yes", help="Skip confirmation."),
    remote: Optional[str] = _REMOTE_OPTION,
) -> None:
    """Clear all application data."""
    if not yes and not typer.confirm("Delete all tasks, contacts and sprints?", default=False):
        raise typer.Exit(code=1)
    store, _, _ = _open_store(remote)
    store.reset_application_data()
    store.flush()


@contact_app.command("list")
def contact_list(remote: Optional[str] = _REMOTE_OPTION) -> None:
    """List contacts."""
    store, _, _ = _open_store(remote)
    for contact in store.state.contacts:
        marker = " (me)" if contact.id == store.state.my_contact_id else ""
        typer.echo(f"{contact.id}\t{contact.name}{marker}\t{contact.email}")


@contact_app.command("add")
def contact_add(
    name: str,
    email: str = typer.Option("", help="Email address."),
    me: bool = typer.Option(False, "--me", help="Make this the default task owner."),
    remote: Optional[str] = _REMOTE_OPTION,
) -> None:
    """Add a contact."""
    store, _, _ = _open_store(remote)
    store.add_contact(name, email)
    if me and store.state.contacts:
        store.set_my_contact(store.state.contacts[-1].id)
    store.flush()


@contact_app.command("rename")
def contact_rename(contact: str, new_name: str, remote: Optional[str] = _REMOTE_OPTION) -> None:
    """Rename a contact and every task they own."""
    store, _, _ = _open_store(remote)
    store.update_contact(_find_contact_id(store, contact), {"name": new_name})
    store.flush()


@contact_app.command("delete")
def contact_delete(contact: str, remote: Optional[str] = _REMOTE_OPTION) -> None:
    """Delete a contact, reassigning their tasks."""
    store, _, _ = _open_store(remote)
    store.delete_contact(_find_contact_id(store, contact))
    store.flush()


@contact_app.command("me")
def contact_me(contact: str, remote: Optional[str] = _REMOTE_OPTION) -> None:
    """Set the default owner for new tasks."""
    store, _, _ = _open_store(remote)
    store.set_my_contact(_find_contact_id(store, contact))
    store.flush()


@sprint_app.command("list")
def sprint_list(remote: Optional[str] = _REMOTE_OPTION) -> None:
    """List sprints."""
    store, _, _ = _open_store(remote)
    for sprint in store.state.sprints:
        marker = " *" if sprint.name == store.state.active_sprint_name else ""
        typer.echo(f"{sprint.name}{marker}\t{sprint.start_date} -> {sprint.end_date}")


@sprint_app.command("add")
def sprint_add(name: str, remote: Optional[str] = _REMOTE_OPTION) -> None:
    """Create a sprint."""
    store, _, _ = _open_store(remote)
    store.add_sprint(name)
    store.flush()


@sprint_app.command("delete")
def sprint_delete(name: str, remote: Optional[str] = _REMOTE_OPTION) -> None:
    """Delete a sprint that has no tasks."""
    store, _, _ = _open_store(remote)
    store.delete_sprint(name)
    store.flush()


@sprint_app.command("activate")
def sprint_activate(name: str, remote: Optional[str] = _REMOTE_OPTION) -> None:
    """Switch the active sprint."""
    store, _, _ = _open_store(remote)
    if store.state.find_sprint(name) is None:
        typer.echo(f"Sprint not found: {name}")
        raise typer.Exit(code=1)
    store.set_active_sprint(name)
    store.flush()


@sprint_app.command("dates")
def sprint_dates(
    name: str,
    start: Optional[str] = typer.Option(None, help="Start date (YYYY-MM-DD)."),
    end: Optional[str] = typer.Option(None, help="End date (YYYY-MM-DD)."),
    remote: Optional[str] = _REMOTE_OPTION,
) -> None:
    """Change sprint start or end dates."""
    store, _, _ = _open_store(remote)
    store.update_sprint_dates(name, start, end)
    store.flush()


@sprint_app.command("clear")
def sprint_clear(remote: Optional[str] = _REMOTE_OPTION) -> None:
    """Delete every task of the active sprint."""
    store, _, _ = _open_store(remote)
    store.clear_active_sprint_tasks()
    store.flush()


@app.command()
def jarvis(
    query: str = typer.Argument(..., help="What you want Jarvis to do."),
    action: str = typer.Option("auto", help="auto, create, complete or delete."),
    decompose: bool = typer.Option(False, "--decompose", help="Break complex goals into sub-tasks."),
    subtasks: bool = typer.Option(False, "--subtasks", help="With --decompose, add the sub-tasks instead of the goal."),
    remote: Optional[str] = _REMOTE_OPTION,
) -> None:
    """Run one natural-language command."""
    store, paths, config = _open_store(remote)
    session = AssistantSession(
        store,
        _build_gateway(config.llm),
        decompose=decompose,
        logs_dir=paths.logs_dir,
        add_subtasks=subtasks,
    )
    handlers = {
        "auto": session.send,
        "create": session.create,
        "complete": session.complete,
        "delete": session.delete,
    }
    if action not in handlers:
        raise typer.BadParameter("action must be auto, create, complete or delete")
    reply = handlers[action](query)
    _print_reply(reply)
    store.flush()
    if reply.error:
        raise typer.Exit(code=1)


@app.command()
def chat(
    decompose: bool = typer.Option(False, "--decompose", help="Break complex goals into sub-tasks."),
    subtasks: bool = typer.Option(False, "--subtasks", help="With --decompose, add the sub-tasks instead of the goal."),
    remote: Optional[str] = _REMOTE_OPTION,
) -> None:
    """Interactive Jarvis session with /undo and /redo."""
    store, paths, config = _open_store(remote)
    session = AssistantSession(
        store,
        _build_gateway(config.llm),
        decompose=decompose,
        logs_dir=paths.logs_dir,
        add_subtasks=subtasks,
    )
    commands = {
        "/complete": session.complete,
        "/delete": session.delete,
        "/create": session.create,
    }
    console.print("[dim]Jarvis chat (type 'exit' to quit; /create, /complete, /delete, /undo, /redo)[/dim]")
    while True:
        user_input = console.input("[bold cyan]You[/bold cyan]: ").strip()
        if user_input.lower() in {"exit", "quit"}:
            break
        if user_input == "/undo":
            if not store.can_undo:
                console.print("[dim]Nothing to undo.[/dim]")
            store.undo()
            continue
        if user_input == "/redo":
            if not store.can_redo:
                console.print("[dim]Nothing to redo.[/dim]")
            store.redo()
            continue
        verb, _, rest = user_input.partition(" ")
        handler = commands.get(verb)
        reply = handler(rest) if handler else session.send(user_input)
        _print_reply(reply)
    store.flush()


@app.command()
def summarize(path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Text file to summarize.")) -> None:
    """Summarize a long text file with the configured model."""
    paths = load_paths()
    config = resolve_config(paths)
    gateway = _build_gateway(config.llm)
    try:
        summary = summarize_text(gateway, path.read_text(encoding="utf-8", errors="replace"))
    except (FlowError, ValueError) as exc:
        typer.echo(str(exc))
        raise typer.Exit(code=1) from exc
    console.print(escape(summary))


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, help="Bind address."),
    port: Optional[int] = typer.Option(None, help="Port."),
) -> None:
    """Serve the task state blob over HTTP."""
    paths = load_paths()
    config = resolve_config(paths)
    run_server(host or config.server.host, port or config.server.port, paths.state_path, paths.logs_dir)


@app.command()
def logs(limit: int = typer.Option(20, help="Number of entries.")) -> None:
    """Show recent activity log entries."""
    paths = load_paths()
    for entry in read_recent_events(paths.logs_dir, limit=limit):
        typer.echo(json.dumps(entry))


if __name__ == "__main__":
    app()
