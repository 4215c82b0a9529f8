# src/flowdesk/cli/commands.py

from __future__ import annotations

import inspect
import logging
import re
import shlex
from collections.abc import Awaitable, Callable
from dataclasses import replace
from datetime import datetime
from typing import cast

from ..core.state import AppState
from ..errors import RequiredFieldError, TrackerError, UnauthenticatedError, friendly_error_message
from ..tasks.derive import Histogram, excerpt, initials
from ..tasks.models import STAGES, ProjectDraft, TaskDraft, TaskPriority, TaskStatus, parse_due_date
from ..tasks.store import PROJECTS, TASKS
from ..tasks.views import DashboardView, ProjectDetailView, ProjectsView, TaskCard, TeamView

CommandEmitter = Callable[[str], None]
CommandHandler2 = Callable[[AppState, list[str]], Awaitable[str]]
CommandHandler3 = Callable[[AppState, list[str], CommandEmitter | None], Awaitable[str]]
CommandHandler = CommandHandler2 | CommandHandler3

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Slash-command registry used by the console (/help, /tasks, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}
        self._public: set[str] = set()
        self._admin_only: set[str] = set()

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
        *,
        public: bool = False,
        admin_only: bool = False,
    ) -> None:
        """
        public: usable without a session (login, register, ...).
        admin_only: hidden from members in /help and refused for them.
        """
        aliases = aliases or []
        key = name.lower()
        for k in [key, *(a.lower() for a in aliases)]:
            self._handlers[k] = handler
            if public:
                self._public.add(k)
            if admin_only:
                self._admin_only.add(k)
        self._help[key] = help_text

    async def handle(
        self,
        state: AppState,
        line: str,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        try:
            parts = shlex.split(line[1:])
        except ValueError:
            return "Could not parse the command (unbalanced quotes?)."
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        if name not in self._public and not state.session.is_authenticated:
            return "Please log in first: /login <email> <password> (or /register, /join)."
        if name in self._admin_only and not state.session.is_admin:
            return f"/{name} is available to organization admins only."

        logger.debug("Command /%s (%d args)", name, len(args))

        try:
            nparams = len(inspect.signature(handler).parameters)
        except (TypeError, ValueError):
            nparams = 3

        try:
            if nparams >= 3:
                h3 = cast(CommandHandler3, handler)
                return await h3(state, args, emit)
            h2 = cast(CommandHandler2, handler)
            return await h2(state, args)
        except RequiredFieldError as e:
            return f"Missing field: {e.message}"
        except UnauthenticatedError as e:
            # Rejected credential: drop the stale session so the next command asks for a login.
            if state.session.is_authenticated:
                state.session.logout()
            return f"{e.message} Use /login."
        except TrackerError as e:
            # Failures the coordinator already announced get a short reply.
            return "Failed." if e.reported else friendly_error_message(e)
        except ValueError as e:
            return f"Invalid input: {e}"

    def build_help(self, *, is_admin: bool) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            if name in self._admin_only and not is_admin:
                continue
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


# ---- parsing helpers ----

_STAGE_ALIASES = {re.sub(r"[\s_-]+", "", s.value.lower()): s for s in STAGES}


def parse_stage(raw: str) -> TaskStatus:
    """Accept "in progress", "In-Progress", "inprogress", ... for the stage names."""
    stage = _STAGE_ALIASES.get(re.sub(r"[\s_-]+", "", raw.lower()))
    if stage is None:
        raise ValueError(f"unknown stage {raw!r} (use one of: {', '.join(s.value for s in STAGES)})")
    return stage


def parse_priority(raw: str) -> TaskPriority:
    for p in TaskPriority:
        if p.value.lower() == raw.strip().lower():
            return p
    raise ValueError(f"unknown priority {raw!r} (use Low, Medium or High)")


def split_options(args: list[str]) -> tuple[dict[str, str], list[str]]:
    """Split ["a=1", "word", "b=2"] into ({"a": "1", "b": "2"}, ["word"])."""
    opts: dict[str, str] = {}
    rest: list[str] = []
    for a in args:
        key, sep, value = a.partition("=")
        if sep and key:
            opts[key.lower()] = value
        else:
            rest.append(a)
    return opts, rest


# ---- rendering helpers ----


def _bar(hist: Histogram, category: str, width: int = 20) -> str:
    return "#" * round(hist.bar_percent(category) / 100 * width)


def _fmt_date(dt: datetime | None) -> str:
    return dt.astimezone().strftime("%Y-%m-%d") if dt else ""


def _fmt_card(card: TaskCard, *, show_project: bool = True) -> str:
    t = card.task
    bits = [f"[{t.id}] {t.title} ({t.priority.value})"]
    if card.overdue:
        bits.append("OVERDUE")
    if show_project and t.project.name:
        bits.append(f"project: {t.project.name}")
    if t.assignee is not None:
        bits.append(f"@{t.assignee.name or t.assignee.id}")
    if t.due_date is not None:
        bits.append(f"due {_fmt_date(t.due_date)}")
    line = "  " + "  ".join(bits)
    if t.description:
        line += "\n      " + excerpt(t.description)
    return line


def _fmt_board(board: dict[TaskStatus, tuple[TaskCard, ...]], *, show_project: bool = True) -> list[str]:
    lines: list[str] = []
    for stage in STAGES:
        cards = board.get(stage, ())
        lines.append(f"== {stage.value} ({len(cards)})")
        if not cards:
            lines.append("  No tasks")
        lines.extend(_fmt_card(c, show_project=show_project) for c in cards)
    return lines


# ---- commands ----


async def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help(is_admin=state.session.is_admin)


async def cmd_whoami(state: AppState, args: list[str]) -> str:
    ident = state.session.require_identity()
    return f"{ident.name} <{ident.email}> - {ident.role.value} of {ident.org_name}"


async def cmd_login(state: AppState, args: list[str]) -> str:
    if len(args) < 2:
        return "Usage: /login <email> <password>"
    ident = await state.session.login(args[0], args[1])
    return f"Welcome back, {ident.name} ({ident.role.value}, {ident.org_name})."


async def cmd_register(state: AppState, args: list[str]) -> str:
    """/register <orgName> <email> <password> <your name...>"""
    if len(args) < 4:
        return "Usage: /register <orgName> <email> <password> <your name>"
    ident = await state.session.register_and_create_org(" ".join(args[3:]), args[1], args[2], args[0])
    return f"Organization {ident.org_name} created. You are its {ident.role.value}."


async def cmd_join(state: AppState, args: list[str]) -> str:
    """/join <orgName> <email> <password> <your name...>"""
    if len(args) < 4:
        return "Usage: /join <orgName> <email> <password> <your name>"
    ident = await state.session.join_existing_org(" ".join(args[3:]), args[1], args[2], args[0])
    return f"Joined {ident.org_name} as {ident.role.value}."


async def cmd_logout(state: AppState, args: list[str]) -> str:
    state.session.logout()
    return "Logged out."


async def cmd_dashboard(state: AppState, args: list[str]) -> str:
    view = DashboardView(state.coordinator)
    await view.load()
    if view.summary is None:
        return view.error or "Dashboard is empty."

    s = view.summary
    status_hist = s.status_histogram
    prio_hist = s.priority_histogram
    lines = [
        f"Dashboard - {state.session.org_name}",
        f"  Projects: {s.total_projects}  Tasks: {s.total_tasks}  Overdue: {s.overdue_tasks}",
        f"  Completion: {s.completed_percentage}% ({s.done_tasks} of {s.total_tasks} tasks completed)",
        "  By stage:",
    ]
    lines.extend(f"    {k:<12}{v:>4} {_bar(status_hist, k)}" for k, v in status_hist.counts.items())
    lines.append("  By priority:")
    lines.extend(f"    {k:<12}{v:>4} {_bar(prio_hist, k)}" for k, v in prio_hist.counts.items())
    lines.append("  Recent tasks:")
    recent = view.recent_cards()
    if not recent:
        lines.append("    No tasks yet.")
    for card in recent:
        flag = "  OVERDUE" if card.overdue else ""
        lines.append(f"    {card.task.title} [{card.task.status.value}]{flag}")
    return "\n".join(lines)


async def cmd_projects(state: AppState, args: list[str]) -> str:
    view = ProjectsView(state.coordinator, state.session)
    await view.load()
    lines: list[str] = []
    if view.error:
        lines.append(f"[error] {view.error}")
    if not view.projects:
        lines.append("No projects yet." + (" Create one with /new-project." if view.can_manage else ""))
    for p in view.projects:
        lines.append(f"[{p.id}] {p.name}  {p.completion_percentage}% ({p.done_tasks}/{p.total_tasks} done)")
        if p.description:
            lines.append(f"    {excerpt(p.description)}")
    return "\n".join(lines)


async def cmd_project(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /project <projectId>"
    view = ProjectDetailView(state.coordinator, args[0])
    await view.load()
    p = view.project
    if view.redirect_to is not None or p is None:
        # Gone (or unreachable): fall back to the project list.
        listing = await cmd_projects(state, [])
        return f"Project {args[0]} is not available.\n{listing}"
    lines = [
        f"{p.name}",
        f"  {p.completion_percentage}% complete - {p.done_tasks}/{p.total_tasks} tasks done",
    ]
    if p.description:
        lines.append(f"  {p.description}")
    if view.error:
        lines.append(f"[error] {view.error}")
    lines.extend(_fmt_board(view.board(), show_project=False))
    return "\n".join(lines)


async def cmd_new_project(state: AppState, args: list[str]) -> str:
    """/new-project <name> [description...]"""
    name = args[0] if args else ""
    description = " ".join(args[1:])
    await state.coordinator.create_project(ProjectDraft(name=name, description=description))
    return f"{len(state.store.projects())} project(s) now."


async def cmd_edit_project(state: AppState, args: list[str]) -> str:
    """/edit-project <projectId> [name=..] [desc=..]"""
    opts, rest = split_options(args)
    if not rest:
        return "Usage: /edit-project <projectId> name=... desc=..."
    project = state.store.get(PROJECTS, rest[0])
    if project is None:
        return f"Project {rest[0]} is not loaded; list projects with /projects first."
    draft = ProjectDraft(
        name=opts.get("name", project.name),
        description=opts.get("desc", project.description or ""),
    )
    await state.coordinator.update_project(project.id, draft)
    return "Saved."


async def cmd_delete_project(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /delete-project <projectId>"
    deleted = await state.coordinator.delete_project(args[0])
    return "Done." if deleted else "Cancelled."


async def cmd_tasks(state: AppState, args: list[str]) -> str:
    """/tasks [status=..] [priority=..] [project=..]  ("all" or "" clears one filter)"""
    board = state.board
    opts, _ = split_options(args)

    updated = board.task_filter
    for key, value in opts.items():
        value = "" if value.lower() in ("", "all", "any") else value
        if key == "status" and value:
            value = parse_stage(value).value
        if key == "priority" and value:
            value = parse_priority(value).value
        updated = updated.with_value(key, value)

    # Other views share the task collection, so the board always reloads with its own filters.
    board.task_filter = updated
    await board.load()

    lines = [f"Task board - {board.count_label}"]
    active = board.task_filter.to_query()
    if active:
        lines.append("  Filters: " + ", ".join(f"{k}={v}" for k, v in active.items()) + "  (/clear-filters)")
    if board.error:
        lines.append(f"[error] {board.error}")
    lines.extend(_fmt_board(board.board()))
    return "\n".join(lines)


async def cmd_clear_filters(state: AppState, args: list[str]) -> str:
    changed = await state.board.clear_filters()
    if not changed:
        return "No filters are set."
    return await cmd_tasks(state, [])


async def cmd_new_task(state: AppState, args: list[str]) -> str:
    """/new-task <projectId> <title...> [priority=..] [status=..] [due=YYYY-MM-DD] [assignee=<userId>] [desc=..]"""
    opts, rest = split_options(args)
    if not rest:
        return "Usage: /new-task <projectId> <title> [priority=High] [status=Todo] [due=2025-01-31] [assignee=<id>]"
    draft = TaskDraft(
        project_id=rest[0],
        title=" ".join(rest[1:]),
        description=opts.get("desc", ""),
        status=parse_stage(opts["status"]) if opts.get("status") else TaskStatus.BACKLOG,
        priority=parse_priority(opts["priority"]) if opts.get("priority") else TaskPriority.MEDIUM,
        due_date=parse_due_date(opts.get("due")),
        assignee_id=opts.get("assignee") or None,
    )
    await state.coordinator.create_task(draft)
    return f"{len(state.store.tasks())} task(s) on the current board."


async def cmd_edit_task(state: AppState, args: list[str]) -> str:
    """/edit-task <taskId> [title=..] [desc=..] [priority=..] [status=..] [due=..|none] [assignee=..|none]"""
    opts, rest = split_options(args)
    if not rest:
        return "Usage: /edit-task <taskId> title=... priority=... due=YYYY-MM-DD|none assignee=<id>|none"
    task = state.store.get(TASKS, rest[0])
    if task is None:
        return f"Task {rest[0]} is not on the current board; open it with /tasks or /project first."

    draft = TaskDraft.from_task(task)
    overrides: dict[str, object] = {}
    if "title" in opts:
        overrides["title"] = opts["title"]
    if "desc" in opts:
        overrides["description"] = opts["desc"]
    if opts.get("priority"):
        overrides["priority"] = parse_priority(opts["priority"])
    if opts.get("status"):
        overrides["status"] = parse_stage(opts["status"])
    if "due" in opts:
        overrides["due_date"] = None if opts["due"].lower() in ("", "none") else parse_due_date(opts["due"])
    if "assignee" in opts:
        overrides["assignee_id"] = None if opts["assignee"].lower() in ("", "none") else opts["assignee"]

    await state.coordinator.update_task(task.id, replace(draft, **overrides))
    return "Saved."


async def cmd_stage(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """/stage <taskId> <stage...>"""
    if len(args) < 2:
        return "Usage: /stage <taskId> <Backlog|Todo|In Progress|Done>"
    task_id = args[0]
    stage = parse_stage(" ".join(args[1:]))

    if emit is not None:
        emit(f"Moving {task_id} to {stage.value}...")
    await state.coordinator.change_stage(task_id, stage)
    task = state.store.get(TASKS, task_id)
    return f"{task.title if task else task_id} is now {stage.value}."


async def cmd_delete_task(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /delete-task <taskId>"
    deleted = await state.coordinator.delete_task(args[0])
    return "Done." if deleted else "Cancelled."


async def cmd_team(state: AppState, args: list[str]) -> str:
    view = TeamView(state.coordinator)
    await view.load()
    if view.error and not view.members:
        return view.error

    me = state.session.identity
    workload = view.workload
    lines: list[str] = []
    for title, group in (("Admins", view.admins), ("Members", view.regular_members)):
        if not group:
            continue
        lines.append(f"{title} ({len(group)})")
        for m in group:
            w = workload.get(m.id)
            stats = f"{w.done_total}/{w.assigned_total} done ({w.percentage}%)" if w else "0/0 done (0%)"
            you = " (you)" if me is not None and m.id == me.id else ""
            lines.append(f"  [{initials(m.name)}] {m.name}{you} <{m.email}>  {stats}")
    if not lines:
        lines.append("No members yet.")
    lines.append(f"Others can join with the organization name: {state.session.org_name}")
    return "\n".join(lines)


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"], public=True)
registry.register("login", cmd_login, help_text="Log in: /login <email> <password>.", public=True)
registry.register(
    "register",
    cmd_register,
    help_text="Create an organization: /register <orgName> <email> <password> <name>.",
    public=True,
)
registry.register(
    "join", cmd_join, help_text="Join an organization: /join <orgName> <email> <password> <name>.", public=True
)
registry.register("whoami", cmd_whoami, help_text="Show the current user and organization.")
registry.register("logout", cmd_logout, help_text="Log out and forget the saved session.")
registry.register("dashboard", cmd_dashboard, help_text="Organization overview.", aliases=["d"])
registry.register("projects", cmd_projects, help_text="List projects.", aliases=["p"])
registry.register("project", cmd_project, help_text="Project board: /project <projectId>.")
registry.register(
    "new-project", cmd_new_project, help_text="Create a project: /new-project <name> [description].", admin_only=True
)
registry.register(
    "edit-project", cmd_edit_project, help_text="Rename or describe a project: /edit-project <projectId> name=..", admin_only=True
)
registry.register(
    "delete-project", cmd_delete_project, help_text="Delete a project and its tasks.", admin_only=True
)
registry.register(
    "tasks", cmd_tasks, help_text="Task board: /tasks [status=..] [priority=..] [project=..].", aliases=["t"]
)
registry.register("clear-filters", cmd_clear_filters, help_text="Reset the task board filters.")
registry.register("new-task", cmd_new_task, help_text="Create a task: /new-task <projectId> <title> [key=value...].")
registry.register("edit-task", cmd_edit_task, help_text="Edit a task: /edit-task <taskId> key=value...")
registry.register("stage", cmd_stage, help_text="Move a task: /stage <taskId> <stage>.")
registry.register("delete-task", cmd_delete_task, help_text="Delete a task: /delete-task <taskId>.")
registry.register("team", cmd_team, help_text="Members and their workload.")
