"""Interactive terminal interface state machine and plain-text rendering."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from itertools import zip_longest
from typing import Optional, Protocol

from .model import MCPServer, ModelProfile


class Page(IntEnum):
    OVERVIEW = 0
    MODELS = 1
    MCP_SERVERS = 2
    SYNC_PREVIEW = 3
    BACKUPS = 4


PAGE_TITLES = {
    Page.OVERVIEW: "Overview",
    Page.MODELS: "Models",
    Page.MCP_SERVERS: "MCP Servers",
    Page.SYNC_PREVIEW: "Sync Preview",
    Page.BACKUPS: "Backups",
}


class ConfirmAction(str, Enum):
    SYNC = "sync"
    RESTORE = "restore"
    DELETE_MODEL = "delete_model"
    DELETE_MCP = "delete_mcp"


class _FormMode(Enum):
    MODEL_ADD = "model_add"
    MODEL_EDIT = "model_edit"
    MCP_ADD = "mcp_add"
    MCP_EDIT = "mcp_edit"


# Keys that carry a meaning of their own and never insert text into a form.
_NAMED_KEYS = frozenset(
    {"enter", "esc", "tab", "backspace", "up", "down", "left", "right", "ctrl+c"}
)

_NAV_WIDTH = 18
_CONTENT_WIDTH = 78


@dataclass
class BackupItem:
    """A backup summary shown in the interface."""

    id: str
    created_at: str = ""
    reason: str = ""
    corrupted: bool = False


@dataclass
class ModelFormInput:
    """Values entered in the model form."""

    name: str = ""
    base_url: str = ""
    model: str = ""
    auth_token: str = ""
    description: str = ""


@dataclass
class MCPFormInput:
    """Values entered in the MCP form."""

    name: str = ""
    command: str = ""
    args: list[str] = field(default_factory=list)
    env: dict[str, str] = field(default_factory=dict)
    description: str = ""


@dataclass
class Snapshot:
    """Read-only view data the interface displays."""

    current_model_id: str = ""
    current_model_name: str = ""
    enabled_mcp_ids: list[str] = field(default_factory=list)
    enabled_mcp_count: int = 0
    last_sync_result: str = ""
    lock_status: str = ""
    target_status: str = ""
    models: list[ModelProfile] = field(default_factory=list)
    mcp_servers: list[MCPServer] = field(default_factory=list)


class Controller(Protocol):
    """Operations the interface asks of the service layer; failures raise."""

    def refresh(self) -> Snapshot: ...

    def use_model(self, model_id: str) -> Snapshot: ...

    def toggle_mcp(self, mcp_id: str) -> Snapshot: ...

    def sync_preview(self) -> list[str]: ...

    def list_backups(self) -> list[BackupItem]: ...

    def sync_apply(self) -> tuple[Snapshot, list[str]]: ...

    def restore_backup(self, backup_id: str) -> tuple[Snapshot, list[BackupItem]]: ...

    def add_model(self, spec: ModelFormInput) -> Snapshot: ...

    def edit_model(self, model_id: str, spec: ModelFormInput) -> Snapshot: ...

    def remove_model(self, model_id: str) -> Snapshot: ...

    def add_mcp(self, spec: MCPFormInput) -> Snapshot: ...

    def edit_mcp(self, mcp_id: str, spec: MCPFormInput) -> Snapshot: ...

    def remove_mcp(self, mcp_id: str) -> Snapshot: ...


@dataclass
class _FormField:
    label: str
    value: str = ""
    secret: bool = False


@dataclass
class _Form:
    mode: _FormMode
    title: str
    fields: list[_FormField]
    target: str = ""
    index: int = 0

    def values(self) -> list[str]:
        return [item.value for item in self.fields]


def _wrap_index(index: int, length: int) -> int:
    return 0 if length == 0 else index % length


def _fallback(value: str, default: str) -> str:
    return default if not value.strip() else value


def parse_csv(value: str) -> list[str]:
    """Split comma-separated text into trimmed, non-empty items."""
    return [part.strip() for part in value.split(",") if part.strip()]


def parse_env_csv(value: str) -> dict[str, str]:
    """Parse ``KEY=VALUE`` pairs separated by commas; items without ``=`` are ignored."""
    env: dict[str, str] = {}
    for item in parse_csv(value):
        key, sep, raw = item.partition("=")
        if sep:
            env[key.strip()] = raw.strip()
    return env


def format_env(env: dict[str, str]) -> str:
    """Render an environment mapping as comma-separated ``KEY=VALUE`` pairs."""
    return ",".join(f"{key}={value}" for key, value in env.items())


class App:
    """State of the interactive interface, driven one key at a time."""

    def __init__(self, snapshot: Snapshot, controller: Optional[Controller] = None) -> None:
        self.snapshot = dataclasses.replace(
            snapshot,
            lock_status=_fallback(snapshot.lock_status, "exclusive"),
            target_status=_fallback(snapshot.target_status, "unknown"),
            enabled_mcp_ids=list(snapshot.enabled_mcp_ids or []),
        )
        self.controller = controller
        self.page = Page.OVERVIEW
        self.model_cursor = 0
        self.mcp_cursor = 0
        self.backup_cursor = 0
        self.drift_paths: list[str] = []
        self.backups: list[BackupItem] = []
        self.form: Optional[_Form] = None
        self.confirm_action: Optional[ConfirmAction] = None
        self.confirm_target = ""
        self.status_message = ""
        self.error_message = ""
        self.quitting = False

    # ----- input -------------------------------------------------------

    def update(self, key: str) -> bool:
        """Handle one key press; return True when the interface should quit."""
        if self.form is not None:
            self._handle_form(key)
            return False
        if self.confirm_action is not None:
            self._handle_confirm(key)
            return False

        if key in ("q", "ctrl+c"):
            self.quitting = True
            return True
        if key in ("l", "right"):
            self._switch_page(self.page + 1)
        elif key in ("h", "left"):
            self._switch_page(self.page - 1)
        elif key in ("j", "down"):
            if not self._move_cursor(1):
                self._switch_page(self.page + 1)
        elif key in ("k", "up"):
            if not self._move_cursor(-1):
                self._switch_page(self.page - 1)
        elif key == "u":
            self._use_selected_model()
        elif key == " ":
            self._toggle_selected_mcp()
        elif key == "s":
            self._switch_page(Page.SYNC_PREVIEW)
            self._load_sync_preview()
        elif key == "r":
            self._refresh_current_page()
        elif key == "enter":
            self._start_confirm()
        elif key == "a":
            self._start_add_form()
        elif key == "e":
            self._start_edit_form()
        elif key == "d":
            self._start_delete_confirm()
        return False

    def _fail(self, exc: Exception) -> None:
        self.error_message = str(exc)

    def _succeed(self, message: str) -> None:
        self.status_message = message
        self.error_message = ""

    def _clear_confirm(self) -> None:
        self.confirm_action = None
        self.confirm_target = ""

    def _clear_transient(self) -> None:
        self.status_message = ""
        self.error_message = ""
        self._clear_confirm()
        self.form = None

    def _switch_page(self, index: int) -> None:
        self.page = Page(index % len(Page))
        self._clear_transient()
        if self.page is Page.SYNC_PREVIEW:
            self._load_sync_preview()
        elif self.page is Page.BACKUPS:
            self._load_backups()

    def _move_cursor(self, delta: int) -> bool:
        if self.page is Page.MODELS and self.snapshot.models:
            self.model_cursor = _wrap_index(self.model_cursor + delta, len(self.snapshot.models))
            return True
        if self.page is Page.MCP_SERVERS and self.snapshot.mcp_servers:
            self.mcp_cursor = _wrap_index(self.mcp_cursor + delta, len(self.snapshot.mcp_servers))
            return True
        if self.page is Page.BACKUPS and self.backups:
            self.backup_cursor = _wrap_index(self.backup_cursor + delta, len(self.backups))
            return True
        return False

    def _refresh_current_page(self) -> None:
        self._clear_transient()
        if self.controller is not None:
            try:
                self.snapshot = self.controller.refresh()
            except Exception as exc:
                self._fail(exc)
                return
        if self.page is Page.SYNC_PREVIEW:
            self._load_sync_preview()
        elif self.page is Page.BACKUPS:
            self._load_backups()
        else:
            self.status_message = "refreshed"

    def _use_selected_model(self) -> None:
        if self.page is not Page.MODELS or not self.snapshot.models or self.controller is None:
            return
        try:
            self.snapshot = self.controller.use_model(self.snapshot.models[self.model_cursor].id)
        except Exception as exc:
            self._fail(exc)
            return
        self._succeed("model switched")

    def _toggle_selected_mcp(self) -> None:
        if (
            self.page is not Page.MCP_SERVERS
            or not self.snapshot.mcp_servers
            or self.controller is None
        ):
            return
        try:
            self.snapshot = self.controller.toggle_mcp(
                self.snapshot.mcp_servers[self.mcp_cursor].id
            )
        except Exception as exc:
            self._fail(exc)
            return
        self._succeed("mcp toggled")

    def _load_sync_preview(self) -> None:
        if self.controller is None:
            return
        try:
            self.drift_paths = list(self.controller.sync_preview())
        except Exception as exc:
            self._fail(exc)
            return
        self._succeed("sync preview refreshed")

    def _set_backups(self, backups: list[BackupItem]) -> None:
        self.backups = list(backups)
        self.backup_cursor = _wrap_index(self.backup_cursor, len(self.backups))

    def _load_backups(self) -> None:
        if self.controller is None:
            return
        try:
            backups = self.controller.list_backups()
        except Exception as exc:
            self._fail(exc)
            return
        self._set_backups(backups)
        self._succeed("backups refreshed")

    def _start_confirm(self) -> None:
        if self.page is Page.SYNC_PREVIEW and self.drift_paths:
            self.confirm_action = ConfirmAction.SYNC
        elif self.page is Page.BACKUPS and self.backups:
            self.confirm_action = ConfirmAction.RESTORE
            self.confirm_target = self.backups[self.backup_cursor].id

    def _start_delete_confirm(self) -> None:
        if self.page is Page.MODELS and self.snapshot.models:
            self.confirm_action = ConfirmAction.DELETE_MODEL
            self.confirm_target = self.snapshot.models[self.model_cursor].id
        elif self.page is Page.MCP_SERVERS and self.snapshot.mcp_servers:
            self.confirm_action = ConfirmAction.DELETE_MCP
            self.confirm_target = self.snapshot.mcp_servers[self.mcp_cursor].id

    def _handle_confirm(self, key: str) -> None:
        if key in ("esc", "n"):
            self._clear_confirm()
            self._succeed("cancelled")
        elif key in ("enter", "y"):
            action = {
                ConfirmAction.SYNC: self._apply_sync,
                ConfirmAction.RESTORE: self._restore_selected_backup,
                ConfirmAction.DELETE_MODEL: self._delete_selected_model,
                ConfirmAction.DELETE_MCP: self._delete_selected_mcp,
            }[self.confirm_action]
            action()

    def _apply_sync(self) -> None:
        if self.controller is None:
            self._clear_transient()
            return
        try:
            snapshot, drift = self.controller.sync_apply()
        except Exception as exc:
            self._fail(exc)
            self._clear_confirm()
            return
        self.snapshot = snapshot
        self.drift_paths = list(drift)
        self._succeed("sync completed")
        self._clear_confirm()

    def _restore_selected_backup(self) -> None:
        if self.controller is None or not self.confirm_target:
            self._clear_transient()
            return
        try:
            snapshot, backups = self.controller.restore_backup(self.confirm_target)
        except Exception as exc:
            self._fail(exc)
            self._clear_confirm()
            return
        self.snapshot = snapshot
        self._set_backups(backups)
        self._succeed("backup restored")
        self._clear_confirm()

    def _delete_selected_model(self) -> None:
        if self.controller is None or not self.confirm_target:
            self._clear_transient()
            return
        try:
            self.snapshot = self.controller.remove_model(self.confirm_target)
        except Exception as exc:
            self._fail(exc)
            self._clear_confirm()
            return
        self.model_cursor = _wrap_index(self.model_cursor, len(self.snapshot.models))
        self._succeed("model removed")
        self._clear_confirm()

    def _delete_selected_mcp(self) -> None:
        if self.controller is None or not self.confirm_target:
            self._clear_transient()
            return
        try:
            self.snapshot = self.controller.remove_mcp(self.confirm_target)
        except Exception as exc:
            self._fail(exc)
            self._clear_confirm()
            return
        self.mcp_cursor = _wrap_index(self.mcp_cursor, len(self.snapshot.mcp_servers))
        self._succeed("mcp removed")
        self._clear_confirm()

    def _reset_for_form(self) -> None:
        self.status_message = ""
        self.error_message = ""
        self._clear_confirm()

    def _start_add_form(self) -> None:
        if self.page is Page.MODELS:
            self.form = _Form(
                _FormMode.MODEL_ADD,
                "Add Model",
                [
                    _FormField("Name"),
                    _FormField("Base URL"),
                    _FormField("Model"),
                    _FormField("Auth Token", secret=True),
                    _FormField("Description"),
                ],
            )
        elif self.page is Page.MCP_SERVERS:
            self.form = _Form(
                _FormMode.MCP_ADD,
                "Add MCP",
                [
                    _FormField("Name"),
                    _FormField("Command"),
                    _FormField("Args (comma separated)"),
                    _FormField("Env (KEY=VALUE,comma separated)"),
                    _FormField("Description"),
                ],
            )
        self._reset_for_form()

    def _start_edit_form(self) -> None:
        if self.page is Page.MODELS:
            if not self.snapshot.models:
                return
            item = self.snapshot.models[self.model_cursor]
            self.form = _Form(
                _FormMode.MODEL_EDIT,
                "Edit Model",
                [
                    _FormField("Name", item.name),
                    _FormField("Base URL", item.env.get("ANTHROPIC_BASE_URL", "")),
                    _FormField("Model", item.env.get("ANTHROPIC_MODEL", "")),
                    _FormField("Auth Token", item.env.get("ANTHROPIC_AUTH_TOKEN", ""), True),
                    _FormField("Description", item.description),
                ],
                target=item.id,
            )
        elif self.page is Page.MCP_SERVERS:
            if not self.snapshot.mcp_servers:
                return
            server = self.snapshot.mcp_servers[self.mcp_cursor]
            self.form = _Form(
                _FormMode.MCP_EDIT,
                "Edit MCP",
                [
                    _FormField("Name", server.name),
                    _FormField("Command", server.command),
                    _FormField("Args (comma separated)", ",".join(server.args)),
                    _FormField("Env (KEY=VALUE,comma separated)", format_env(server.env)),
                    _FormField("Description", server.description),
                ],
                target=server.id,
            )
        self._reset_for_form()

    def _handle_form(self, key: str) -> None:
        form = self.form
        current = form.fields[form.index]
        if key == "esc":
            self.form = None
            self._succeed("cancelled")
        elif key in ("tab", "enter"):
            if form.index == len(form.fields) - 1:
                self._submit_form()
            else:
                form.index += 1
        elif key == "backspace":
            current.value = current.value[:-1]
        elif key not in _NAMED_KEYS:
            current.value += key

    def _submit_form(self) -> None:
        if self.controller is None or self.form is None:
            return
        form = self.form
        name, second, third, fourth, description = form.values()
        try:
            if form.mode in (_FormMode.MODEL_ADD, _FormMode.MODEL_EDIT):
                spec = ModelFormInput(
                    name=name,
                    base_url=second,
                    model=third,
                    auth_token=fourth,
                    description=description,
                )
                if form.mode is _FormMode.MODEL_ADD:
                    snapshot, message = self.controller.add_model(spec), "model added"
                else:
                    snapshot = self.controller.edit_model(form.target, spec)
                    message = "model updated"
            else:
                mcp_spec = MCPFormInput(
                    name=name,
                    command=second,
                    args=parse_csv(third),
                    env=parse_env_csv(fourth),
                    description=description,
                )
                if form.mode is _FormMode.MCP_ADD:
                    snapshot, message = self.controller.add_mcp(mcp_spec), "mcp added"
                else:
                    snapshot = self.controller.edit_mcp(form.target, mcp_spec)
                    message = "mcp updated"
        except Exception as exc:
            self._fail(exc)
            return
        self.snapshot = snapshot
        self._succeed(message)
        self.form = None

    # ----- rendering ---------------------------------------------------

    def view(self) -> str:
        """Render the whole screen as text."""
        if self.quitting:
            return "Bye."

        nav = [
            ("> " if page is self.page else "  ") + PAGE_TITLES[page] for page in Page
        ]
        left = ["", *(" " + line for line in nav), ""]
        content = self._form_view() if self.form is not None else self._page_view()
        right = ["", *("  " + line for line in content.split("\n")), ""]

        rows = []
        for left_line, right_line in zip_longest(left, right, fillvalue=""):
            rows.append(
                left_line[: _NAV_WIDTH - 1].ljust(_NAV_WIDTH - 1) + "│" + right_line
            )

        parts = [
            f"Lock: {self.snapshot.lock_status}",
            f"Target: {self.snapshot.target_status}",
            f"Last Sync: {_fallback(self.snapshot.last_sync_result, 'never')}",
            "Keys: h/l j/k a e d u space s r q",
        ]
        if self.status_message:
            parts.append("Info: " + self.status_message)
        if self.error_message:
            parts.append("Error: " + self.error_message)
        if self.confirm_action is not None:
            parts.append(
                f"Confirm: {self.confirm_action.value} (enter/y confirm, esc/n cancel)"
            )
        if self.form is not None:
            parts.append("Form: enter/tab next, backspace delete, esc cancel")
        rows.append(" " + " | ".join(parts) + " ")
        return "\n".join(rows)

    def _page_view(self) -> str:
        snap = self.snapshot
        if self.page is Page.OVERVIEW:
            return (
                "Overview\n\n"
                f"Current model: {_fallback(snap.current_model_name, '(none)')}\n"
                f"Enabled MCPs: {snap.enabled_mcp_count}\n"
                f"Last sync: {_fallback(snap.last_sync_result, 'never')}"
            )
        if self.page is Page.MODELS:
            if not snap.models:
                return "Models\n\nNo models configured.\n\nPress `a` to add a model."
            lines = ["Models", ""]
            for i, item in enumerate(snap.models):
                label = ("> " if i == self.model_cursor else "  ") + item.name
                if item.id == snap.current_model_id:
                    label += " [active]"
                lines.append(label)
            lines += ["", "Press `a` add, `e` edit, `d` delete, `u` use."]
            return "\n".join(lines)
        if self.page is Page.MCP_SERVERS:
            if not snap.mcp_servers:
                return "MCP Servers\n\nNo MCP servers configured.\n\nPress `a` to add an MCP."
            lines = ["MCP Servers", ""]
            for i, server in enumerate(snap.mcp_servers):
                prefix = "> " if i == self.mcp_cursor else "  "
                state = "enabled" if server.id in snap.enabled_mcp_ids else "disabled"
                lines.append(f"{prefix}{server.name} ({server.command}) [{state}]")
            lines += ["", "Press `a` add, `e` edit, `d` delete, `space` toggle."]
            return "\n".join(lines)
        if self.page is Page.SYNC_PREVIEW:
            lines = ["Sync Preview", ""]
            if not self.drift_paths:
                lines.append("No drift loaded. Press `s` or `r` to refresh.")
            else:
                lines.append("Managed paths changed:")
                lines += ["- " + path for path in self.drift_paths]
                lines += ["", "Press `enter` to confirm sync."]
            return "\n".join(lines)
        lines = ["Backups", ""]
        if not self.backups:
            lines.append("No backups loaded. Press `r` to refresh.")
            return "\n".join(lines)
        for i, backup in enumerate(self.backups):
            prefix = "> " if i == self.backup_cursor else "  "
            label = f"{prefix}{backup.id} {backup.created_at} {backup.reason}"
            if backup.corrupted:
                label += " [corrupted]"
            lines.append(label)
        lines += ["", "Press `enter` to confirm restore. Press `r` to refresh backups."]
        return "\n".join(lines)

    def _form_view(self) -> str:
        form = self.form
        lines = [form.title, ""]
        for i, item in enumerate(form.fields):
            prefix = "> " if i == form.index else "  "
            value = "*" * len(item.value) if item.secret else item.value
            lines.append(f"{prefix}{item.label}: {value}")
        lines += ["", "Press `enter` on the last field to submit."]
        return "\n".join(lines)