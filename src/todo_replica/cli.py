"""Command-line interface for the todo replica.

Each invocation binds a session for ``--user`` against the SQLite document
store, runs one command and prints the result as JSON.

Usage:
    todo-replica init-config                          # Create config file
    todo-replica --user alice tasks add "Buy milk"    # Add a task
    todo-replica --user alice tasks list --overdue    # List overdue tasks
    todo-replica --user alice projects move <id> 0    # Move a project first
    todo-replica --user alice stats                   # Replica counts
"""

import asyncio
import contextlib
import json
import sys
from collections.abc import Awaitable, Callable
from datetime import datetime
from pathlib import Path
from typing import Any, TypeVar

import click
import tomli_w
from prometheus_client import generate_latest
from pydantic import BaseModel, ValidationError

from todo_replica import __version__
from todo_replica.config import get_config_path, get_default_config, load_settings_with_toml
from todo_replica.core import views
from todo_replica.core.identity import Identity, LocalAuthProvider
from todo_replica.core.session import Session
from todo_replica.errors import NotFoundError, ReplicaError
from todo_replica.models import (
    EntityKind,
    NewProject,
    NewTask,
    Priority,
    ProjectColor,
    ProjectPatch,
    ProjectSort,
    TaskFilter,
    TaskPatch,
    TaskSort,
)
from todo_replica.storage.sqlite_gateway import SqliteGateway
from todo_replica.utils.logging import get_logger, setup_logging

PRIORITY_CHOICE = click.IntRange(int(Priority.URGENT), int(Priority.LOW))
COLOR_CHOICE = click.Choice([color.name.lower() for color in ProjectColor], case_sensitive=False)
SORT_FIELDS = ["title", "priority", "due_date", "created_at", "updated_at", "completed"]
PROJECT_SORT_FIELDS = ["name", "order", "created_at", "updated_at", "is_favorite", "is_archived"]

ModelT = TypeVar("ModelT", bound=BaseModel)


def format_error(error: ReplicaError) -> str:
    """Format a replica error for the terminal."""
    hint = "retry the command" if error.recoverable else "check the configuration"
    return f"Error [{type(error).__name__}]: {error}\n\nRemediation: {hint}"


def echo_json(value: Any) -> None:
    click.echo(json.dumps(value, indent=2, sort_keys=True))


def dump(value: Any) -> Any:
    """JSON-compatible form of models and lists of models."""
    if isinstance(value, list):
        return [dump(item) for item in value]
    if hasattr(value, "model_dump"):
        return value.model_dump(mode="json")
    return value


def run_with_session(
    ctx: click.Context,
    action: Callable[[Session], Awaitable[Any]],
    render: Callable[[Any], None] | None = None,
) -> None:
    """Bind a session, run ``action`` and print its result as JSON.

    Exits with status 1 on any replica error.
    """
    options = ctx.obj

    async def runner() -> Any:
        settings = options["settings"]
        gateway = SqliteGateway(settings.resolved_database_path)
        user = options.get("user")
        auth = LocalAuthProvider(Identity(user_id=user) if user else None)
        try:
            async with Session(gateway, auth, settings) as session:
                if session.error is not None:
                    raise session.error
                result = await action(session)
                await session.drain()
                return result
        finally:
            await gateway.close()

    try:
        result = asyncio.run(runner())
    except ReplicaError as e:
        get_logger(__name__).error("command_failed", command=ctx.info_name, error=str(e))
        click.echo(format_error(e), err=True)
        sys.exit(1)
    if render is not None:
        render(result)
    else:
        echo_json(dump(result))


def parse_due(value: str | None) -> datetime | None:
    if value is None:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError as e:
        raise click.BadParameter(f"expected an ISO 8601 date or datetime, got {value!r}") from e


def build_model(model: type[ModelT], **fields: Any) -> ModelT:
    """Validate command input, reporting failures as usage errors."""
    try:
        return model(**fields)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc']) or model.__name__}: {error['msg']}" for error in e.errors()
        )
        raise click.BadParameter(problems) from e


@click.group()
@click.option("--user", envvar="TODO_REPLICA_USER", help="Signed-in user id")
@click.option("--db", "database_path", type=click.Path(dir_okay=False), help="Override document store path")
@click.option("--config", type=click.Path(exists=False), help="Override config file path")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
    help="Override log level",
)
@click.version_option(version=__version__, prog_name="todo-replica")
@click.pass_context
def main(
    ctx: click.Context,
    user: str | None,
    database_path: str | None,
    config: str | None,
    log_level: str | None,
) -> None:
    """Local replica of a task and project store.

    Configuration is loaded from (in priority order):
    1. CLI arguments
    2. Environment variables (TODO_REPLICA_*)
    3. Config file (~/.config/todo-replica/config.toml)
    4. Built-in defaults
    """
    ctx.ensure_object(dict)
    ctx.obj["user"] = user
    ctx.obj["config_path"] = config
    settings = load_settings_with_toml(
        Path(config) if config else None,
        database_path=database_path,
        log_level=log_level,
    )
    ctx.obj["settings"] = settings
    setup_logging(settings, use_stderr=True)


@main.command()
@click.option("--force", is_flag=True, help="Overwrite an existing file")
@click.pass_context
def init_config(ctx: click.Context, force: bool) -> None:
    """Create the configuration file with defaults.

    The file is created with permissions 600.
    """
    config_path = Path(ctx.obj.get("config_path") or get_config_path())

    if config_path.exists() and not force:
        click.echo(f"Config file already exists: {config_path}")
        if not click.confirm("Overwrite?"):
            sys.exit(0)

    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, "wb") as f:
        tomli_w.dump(get_default_config(), f)

    # chmod may not be supported on every platform
    with contextlib.suppress(OSError):
        config_path.chmod(0o600)

    click.echo(f"Created config file: {config_path}")


@main.command()
@click.option("--metrics", "show_metrics", is_flag=True, help="Print Prometheus metrics instead")
@click.pass_context
def stats(ctx: click.Context, show_metrics: bool) -> None:
    """Show replica counts for the signed-in user."""

    async def action(session: Session) -> dict[str, Any]:
        return {
            "user_id": session.require_owner(),
            "state": session.state.value,
            "last_synced_at": session.last_synced_at.isoformat() if session.last_synced_at else None,
            "counts": session.cache.snapshot(),
            "overdue": len(session.overdue()),
            "due_today": len(session.due_today()),
            "favorites": len(session.favorites()),
            "archived": len(session.archived()),
        }

    if not show_metrics:
        run_with_session(ctx, action)
        return

    async def metrics_action(session: Session) -> None:
        session.require_owner()

    run_with_session(ctx, metrics_action, render=lambda _: click.echo(generate_latest().decode("utf-8")))


# =============================================================================
# Tasks
# =============================================================================


@main.group()
def tasks() -> None:
    """Manage tasks."""


@tasks.command("add")
@click.argument("title")
@click.option("--description", help="Task notes")
@click.option("--priority", type=PRIORITY_CHOICE, help="1 (urgent) to 4 (low)")
@click.option("--due", help="Due date, ISO 8601")
@click.option("--project", "project_id", help="Project id (inbox if omitted)")
@click.option("--label", "labels", multiple=True, help="Label (repeatable)")
@click.pass_context
def tasks_add(
    ctx: click.Context,
    title: str,
    description: str | None,
    priority: int | None,
    due: str | None,
    project_id: str | None,
    labels: tuple[str, ...],
) -> None:
    """Add a task."""
    fields: dict[str, Any] = {
        "title": title,
        "description": description,
        "due_date": parse_due(due),
        "project_id": project_id,
        "labels": list(labels),
    }
    if priority is not None:
        fields["priority"] = priority
    new_task = build_model(NewTask, **fields)
    run_with_session(ctx, lambda session: session.tasks.add(new_task))


@tasks.command("list")
@click.option("--project", "project_id", help="Only tasks of this project")
@click.option("--inbox", is_flag=True, help="Only tasks without a project")
@click.option("--priority", type=PRIORITY_CHOICE)
@click.option("--completed/--open", "completed", default=None, help="Filter by completion")
@click.option("--label", "labels", multiple=True, help="Required label (repeatable)")
@click.option("--overdue", is_flag=True, help="Only overdue tasks")
@click.option("--today", is_flag=True, help="Only tasks due today")
@click.option("--sort", "sort_field", type=click.Choice(SORT_FIELDS), help="Sort field")
@click.option("--desc", is_flag=True, help="Sort descending")
@click.pass_context
def tasks_list(
    ctx: click.Context,
    project_id: str | None,
    inbox: bool,
    priority: int | None,
    completed: bool | None,
    labels: tuple[str, ...],
    overdue: bool,
    today: bool,
    sort_field: str | None,
    desc: bool,
) -> None:
    """List tasks."""
    filter_fields: dict[str, Any] = {"completed": completed, "priority": priority, "labels": list(labels)}
    if inbox:
        filter_fields["project_id"] = views.INBOX
    elif project_id is not None:
        filter_fields["project_id"] = project_id
    task_filter = build_model(TaskFilter, **filter_fields)
    task_sort = build_model(TaskSort, field=sort_field, direction="desc" if desc else "asc") if sort_field else None

    async def action(session: Session) -> list[Any]:
        session.require_owner()
        selected = session.filter_tasks(task_filter)
        if overdue:
            keep = {task.id for task in session.overdue()}
            selected = [task for task in selected if task.id in keep]
        if today:
            keep = {task.id for task in session.due_today()}
            selected = [task for task in selected if task.id in keep]
        if task_sort is not None:
            selected = views.sort_tasks(selected, task_sort)
        return selected

    run_with_session(ctx, action)


@tasks.command("update")
@click.argument("task_id")
@click.option("--title")
@click.option("--description")
@click.option("--priority", type=PRIORITY_CHOICE)
@click.option("--due", help="Due date, ISO 8601")
@click.option("--clear-due", is_flag=True, help="Remove the due date")
@click.option("--project", "project_id", help="Move to project")
@click.option("--inbox", is_flag=True, help="Move to the inbox")
@click.option("--label", "labels", multiple=True, help="Replace labels (repeatable)")
@click.pass_context
def tasks_update(
    ctx: click.Context,
    task_id: str,
    title: str | None,
    description: str | None,
    priority: int | None,
    due: str | None,
    clear_due: bool,
    project_id: str | None,
    inbox: bool,
    labels: tuple[str, ...],
) -> None:
    """Update fields of a task."""
    fields: dict[str, Any] = {}
    if title is not None:
        fields["title"] = title
    if description is not None:
        fields["description"] = description
    if priority is not None:
        fields["priority"] = priority
    if clear_due:
        fields["due_date"] = None
    elif due is not None:
        fields["due_date"] = parse_due(due)
    if inbox:
        fields["project_id"] = None
    elif project_id is not None:
        fields["project_id"] = project_id
    if labels:
        fields["labels"] = list(labels)
    patch = build_model(TaskPatch, **fields)

    async def action(session: Session) -> Any:
        session.require_owner()
        session.cache.tasks.require(task_id)
        return await session.tasks.update(task_id, patch)

    run_with_session(ctx, action)


@tasks.command("done")
@click.argument("task_id")
@click.option("--undo", is_flag=True, help="Mark as not completed")
@click.pass_context
def tasks_done(ctx: click.Context, task_id: str, undo: bool) -> None:
    """Mark a task completed."""

    async def action(session: Session) -> Any:
        session.require_owner()
        session.cache.tasks.require(task_id)
        return await session.tasks.toggle_completion(task_id, completed=not undo)

    run_with_session(ctx, action)


@tasks.command("delete")
@click.argument("task_id")
@click.pass_context
def tasks_delete(ctx: click.Context, task_id: str) -> None:
    """Delete a task."""

    async def action(session: Session) -> dict[str, Any]:
        return {"deleted": await session.tasks.delete(task_id), "task_id": task_id}

    run_with_session(ctx, action)


# =============================================================================
# Projects
# =============================================================================


@main.group()
def projects() -> None:
    """Manage projects."""


@projects.command("add")
@click.argument("name")
@click.option("--description", help="Project notes")
@click.option("--color", type=COLOR_CHOICE, help="Palette color")
@click.option("--order", type=int, help="Order value (appended if omitted)")
@click.pass_context
def projects_add(
    ctx: click.Context,
    name: str,
    description: str | None,
    color: str | None,
    order: int | None,
) -> None:
    """Add a project."""
    fields: dict[str, Any] = {"name": name, "description": description, "order": order}
    if color is not None:
        fields["color"] = color
    new_project = build_model(NewProject, **fields)
    run_with_session(ctx, lambda session: session.projects.add(new_project))


@projects.command("list")
@click.option(
    "--view",
    type=click.Choice(["active", "favorites", "archived", "all"]),
    default="active",
    show_default=True,
)
@click.option("--sort", "sort_field", type=click.Choice(PROJECT_SORT_FIELDS), help="Sort field")
@click.option("--desc", is_flag=True, help="Sort descending")
@click.pass_context
def projects_list(ctx: click.Context, view: str, sort_field: str | None, desc: bool) -> None:
    """List projects, in display order unless sorted."""
    selectors = {
        "active": views.active,
        "favorites": views.favorites,
        "archived": views.archived,
        "all": views.all_projects,
    }
    project_sort = build_model(ProjectSort, field=sort_field, direction="desc" if desc else "asc") if sort_field else None

    async def action(session: Session) -> list[Any]:
        session.require_owner()
        selected = selectors[view](session.cache)
        if project_sort is not None:
            selected = views.sort_projects(selected, project_sort)
        return selected

    run_with_session(ctx, action)


@projects.command("move")
@click.argument("project_id")
@click.argument("target", type=int)
@click.option("--index", "by_index", is_flag=True, help="TARGET is a 0-based display position")
@click.pass_context
def projects_move(ctx: click.Context, project_id: str, target: int, by_index: bool) -> None:
    """Move a project to an order value or display position."""

    async def action(session: Session) -> list[Any]:
        if by_index:
            await session.projects.move_to_index(project_id, target)
        else:
            await session.projects.reorder(project_id, target)
        return views.all_projects(session.cache)

    run_with_session(ctx, action)


@projects.command("favorite")
@click.argument("project_id")
@click.pass_context
def projects_favorite(ctx: click.Context, project_id: str) -> None:
    """Toggle the favorite flag."""

    async def action(session: Session) -> Any:
        session.require_owner()
        if project_id not in session.cache.projects:
            raise NotFoundError(EntityKind.PROJECT, project_id)
        return await session.projects.toggle_favorite(project_id)

    run_with_session(ctx, action)


@projects.command("archive")
@click.argument("project_id")
@click.pass_context
def projects_archive(ctx: click.Context, project_id: str) -> None:
    """Toggle the archived flag."""

    async def action(session: Session) -> Any:
        session.require_owner()
        if project_id not in session.cache.projects:
            raise NotFoundError(EntityKind.PROJECT, project_id)
        return await session.projects.toggle_archived(project_id)

    run_with_session(ctx, action)


@projects.command("rename")
@click.argument("project_id")
@click.argument("name")
@click.pass_context
def projects_rename(ctx: click.Context, project_id: str, name: str) -> None:
    """Rename a project."""
    patch = build_model(ProjectPatch, name=name)

    async def action(session: Session) -> Any:
        session.require_owner()
        session.cache.projects.require(project_id)
        return await session.projects.update(project_id, patch)

    run_with_session(ctx, action)


@projects.command("delete")
@click.argument("project_id")
@click.pass_context
def projects_delete(ctx: click.Context, project_id: str) -> None:
    """Delete a project and its tasks."""

    async def action(session: Session) -> dict[str, Any]:
        removed = await session.projects.delete(project_id)
        return {"project_id": project_id, "tasks_removed": removed}

    run_with_session(ctx, action)


if __name__ == "__main__":
    main()
