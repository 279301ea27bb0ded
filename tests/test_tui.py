import pytest

from mcfg.model import BusinessError, MCPServer, ModelProfile
from mcfg.tui import (
    App,
    BackupItem,
    MCPFormInput,
    ModelFormInput,
    Snapshot,
    format_env,
    parse_csv,
    parse_env_csv,
)


class StubController:
    def __init__(self, snapshot=None, drift=None, applied_drift=None, backups=None,
                 restored_backups=None):
        self.snapshot = snapshot if snapshot is not None else Snapshot()
        self.drift = drift or []
        self.applied_drift = applied_drift or []
        self.backups = backups or []
        self.restored_backups = restored_backups
        self.next_id = 0
        self.received = []

    def refresh(self):
        return self.snapshot

    def use_model(self, model_id):
        return self.snapshot

    def toggle_mcp(self, mcp_id):
        return self.snapshot

    def sync_preview(self):
        return self.drift

    def list_backups(self):
        return self.backups

    def sync_apply(self):
        return self.snapshot, self.applied_drift

    def restore_backup(self, backup_id):
        if self.restored_backups is not None:
            return self.snapshot, self.restored_backups
        return self.snapshot, self.backups

    def add_model(self, spec: ModelFormInput):
        self.received.append(spec)
        self.next_id += 1
        self.snapshot.models.append(ModelProfile(id=f"id-{self.next_id}", name=spec.name))
        return self.snapshot

    def edit_model(self, model_id, spec):
        for item in self.snapshot.models:
            if item.id == model_id:
                item.name = spec.name
        return self.snapshot

    def remove_model(self, model_id):
        self.snapshot.models = [m for m in self.snapshot.models if m.id != model_id]
        return self.snapshot

    def add_mcp(self, spec: MCPFormInput):
        self.received.append(spec)
        self.next_id += 1
        self.snapshot.mcp_servers.append(
            MCPServer(id=f"id-{self.next_id}", name=spec.name, command=spec.command)
        )
        return self.snapshot

    def edit_mcp(self, mcp_id, spec):
        for item in self.snapshot.mcp_servers:
            if item.id == mcp_id:
                item.name = spec.name
                item.command = spec.command
        return self.snapshot

    def remove_mcp(self, mcp_id):
        self.snapshot.mcp_servers = [m for m in self.snapshot.mcp_servers if m.id != mcp_id]
        return self.snapshot


class FailingController(StubController):
    def use_model(self, model_id):
        raise BusinessError("cannot switch")


def press(app, *keys):
    for key in keys:
        app.update(key)
    return app


def model_env():
    return {
        "ANTHROPIC_BASE_URL": "https://e.com",
        "ANTHROPIC_MODEL": "claude",
        "ANTHROPIC_AUTH_TOKEN": "token",
    }


def test_default_page_overview():
    app = App(Snapshot(current_model_name="Claude Sonnet", enabled_mcp_count=2,
                       last_sync_result="success"), None)
    view = app.view()
    assert "Overview" in view
    assert "Current model: Claude Sonnet" in view


def test_nav_switch_to_models():
    app = press(App(Snapshot(), None), "j")
    assert "> Models" in app.view()


def test_nav_wrap_around():
    app = press(App(Snapshot(), None), "k")
    assert "> Backups" in app.view()


def test_overview_no_model():
    app = App(Snapshot(enabled_mcp_count=1), None)
    assert "Current model: (none)" in app.view()


def test_default_status_values():
    view = App(Snapshot(), None).view()
    assert "Lock: exclusive" in view
    assert "Target: unknown" in view
    assert "Last Sync: never" in view


def test_models_page_list_displays():
    app = App(Snapshot(
        current_model_id="01HQXBF7M6SJHMR6G32P5D1K7Y",
        current_model_name="Claude Sonnet",
        models=[
            ModelProfile(id="01HQXBF7M6SJHMR6G32P5D1K7Y", name="Claude Sonnet"),
            ModelProfile(id="01HQXBG84ESB7XJQ9WAAYH54AM", name="GPT-4.1"),
        ],
    ), None)
    view = press(app, "j").view()
    assert "Claude Sonnet [active]" in view
    assert "GPT-4.1" in view


def test_models_page_add_model():
    controller = StubController(Snapshot(models=[ModelProfile(id="01", name="Claude Sonnet")]))
    app = press(App(Snapshot(), controller), "j", "a")
    keys = ["D", "e", "m", "o", "enter", "h", "t", "t", "p", "s", ":", "/", "/", "e", ".",
            "c", "o", "m", "enter", "c", "l", "a", "u", "d", "e", "enter", "t", "o", "k",
            "e", "n", "enter", "n", "o", "t", "e", "enter"]
    view = press(app, *keys).view()
    assert "Demo" in view
    assert "Info: model added" in view
    assert controller.received[0] == ModelFormInput(
        name="Demo", base_url="https://e.com", model="claude", auth_token="token",
        description="note",
    )


def test_models_page_edit_model():
    controller = StubController(Snapshot(
        models=[ModelProfile(id="01", name="Renamed", env=model_env())]))
    app = App(Snapshot(models=[ModelProfile(id="01", name="Old", env=model_env())]), controller)
    press(app, "j", "e", "backspace", "backspace", "backspace")
    view = press(app, "R", "e", "n", "a", "m", "e", "d",
                 "enter", "enter", "enter", "enter", "enter").view()
    assert "Renamed" in view
    assert "Info: model updated" in view


def test_edit_form_masks_secret():
    app = App(Snapshot(models=[ModelProfile(id="01", name="Old", env=model_env())]),
              StubController())
    view = press(app, "j", "e").view()
    assert "Auth Token: *****" in view
    assert "Base URL: https://e.com" in view


def test_models_page_delete_model():
    controller = StubController(Snapshot(models=[]))
    app = App(Snapshot(models=[ModelProfile(id="01", name="Old")]), controller)
    view = press(app, "j", "d", "enter").view()
    assert "No models configured." in view
    assert "Info: model removed" in view


def test_models_page_use_model():
    models = [ModelProfile(id="01", name="Claude Sonnet"), ModelProfile(id="02", name="GPT-4.1")]
    controller = StubController(Snapshot(current_model_id="02", current_model_name="GPT-4.1",
                                         models=list(models)))
    app = App(Snapshot(current_model_id="01", current_model_name="Claude Sonnet",
                       models=list(models)), controller)
    view = press(app, "j", "j", "u").view()
    assert "GPT-4.1 [active]" in view
    assert "Info: model switched" in view


def test_mcp_page_add_edit_delete():
    controller = StubController(Snapshot(
        mcp_servers=[MCPServer(id="m1", name="git", command="git-cmd")]))
    app = press(App(Snapshot(), controller), "j", "l", "a")
    press(app, "g", "i", "t", "enter", "n", "p", "x", "enter", "-", "y", ",", "s", "e", "r",
          "v", "e", "r", "enter", "K", "=", "V", "enter", "d", "e", "s", "c", "enter")
    view = app.view()
    assert "git" in view
    assert "Info: mcp added" in view
    assert controller.received[0].args == ["-y", "server"]
    assert controller.received[0].env == {"K": "V"}

    controller.snapshot = Snapshot(mcp_servers=[MCPServer(id="m1", name="git2", command="npx")])
    press(app, "e", "backspace", "backspace", "backspace", "g", "i", "t", "2",
          "enter", "enter", "enter", "enter", "enter")
    view = app.view()
    assert "git2" in view
    assert "Info: mcp updated" in view

    controller.snapshot = Snapshot()
    view = press(app, "d", "enter").view()
    assert "No MCP servers configured." in view
    assert "Info: mcp removed" in view


def test_mcp_page_toggle_enable():
    controller = StubController(Snapshot(
        enabled_mcp_ids=["m1"], enabled_mcp_count=1,
        mcp_servers=[MCPServer(id="m1", name="filesystem", command="npx")]))
    app = App(Snapshot(mcp_servers=[MCPServer(id="m1", name="filesystem", command="npx")]),
              controller)
    assert "[disabled]" in press(app, "j", "l").view()
    view = press(app, " ").view()
    assert "[enabled]" in view
    assert "Info: mcp toggled" in view


def test_sync_preview_confirm():
    controller = StubController(Snapshot(last_sync_result="success"),
                                drift=["env.ANTHROPIC_MODEL"], applied_drift=[])
    view = press(App(Snapshot(), controller), "s", "enter", "enter").view()
    assert "Info: sync completed" in view
    assert "No drift loaded" in view


def test_sync_preview_cancel():
    controller = StubController(drift=["env.ANTHROPIC_MODEL"])
    app = press(App(Snapshot(), controller), "s", "enter")
    assert "Confirm: sync" in app.view()
    view = press(app, "esc").view()
    assert "Info: cancelled" in view
    assert "env.ANTHROPIC_MODEL" in view


def test_backups_page_restore_confirm():
    item = BackupItem(id="b1", created_at="2026-03-10T10:00:00Z", reason="sync")
    controller = StubController(backups=[item], restored_backups=[item])
    view = press(App(Snapshot(), controller), "k", "enter", "enter").view()
    assert "Info: backup restored" in view
    assert "b1 2026-03-10T10:00:00Z sync" in view


def test_backups_page_restore_cancel():
    controller = StubController(
        backups=[BackupItem(id="b1", created_at="2026-03-10T10:00:00Z", reason="sync")])
    view = press(App(Snapshot(), controller), "k", "enter", "esc").view()
    assert "Info: cancelled" in view


def test_backups_page_shows_corrupted():
    controller = StubController(backups=[BackupItem(id="b1", corrupted=True)])
    assert "[corrupted]" in press(App(Snapshot(), controller), "k").view()


def test_controller_error_shown():
    controller = FailingController()
    app = App(Snapshot(models=[ModelProfile(id="01", name="A")]), controller)
    view = press(app, "j", "u").view()
    assert "Error: cannot switch" in view


def test_form_escape_cancels():
    app = press(App(Snapshot(), StubController()), "j", "a", "x", "esc")
    view = app.view()
    assert "Info: cancelled" in view
    assert "Add Model" not in view


def test_quit():
    app = App(Snapshot(), None)
    assert app.update("q") is True
    assert app.view() == "Bye."


def test_other_key_does_not_quit():
    app = App(Snapshot(), None)
    assert app.update("j") is False
    assert app.view() != "Bye."
    assert "> Models" in app.view()


@pytest.mark.parametrize(
    "text, expected",
    [("", []), ("   ", []), ("a, b ,,c", ["a", "b", "c"]), ("-y,server", ["-y", "server"])],
)
def test_parse_csv(text, expected):
    assert parse_csv(text) == expected


def test_parse_env_csv():
    assert parse_env_csv(" K = V , BAD, X=1=2") == {"K": "V", "X": "1=2"}


def test_format_env_round_trip():
    env = {"A": "1", "B": "two"}
    assert format_env(env) == "A=1,B=two"
    assert parse_env_csv(format_env(env)) == env
    assert format_env({}) == ""