from datetime import datetime, timedelta, timezone

import pytest

from mcfg.model import (
    SCHEMA_VERSION,
    BackupFile,
    BackupMeta,
    BusinessError,
    ClaudeBinding,
    ConfigRoot,
    MCPServer,
    ModelProfile,
    ParamError,
    Source,
    SystemClock,
    UlidGenerator,
    match_by_prefix,
    new_config_root,
    now_rfc3339,
    parse_config_root,
)


class FixedClock:
    def __init__(self, moment):
        self.moment = moment

    def now(self):
        return self.moment


def sample_config():
    cfg = new_config_root()
    cfg.models.append(
        ModelProfile(
            id="01HQXBF7M6SJHMR6G32P5D1K7Y",
            name="Claude Sonnet",
            env={"ANTHROPIC_MODEL": "claude-sonnet-4-0", "ANTHROPIC_AUTH_TOKEN": "token"},
            source=Source.MANUAL,
            created_at="2026-03-10T10:00:00Z",
            updated_at="2026-03-10T10:00:00Z",
        )
    )
    cfg.mcp_servers.append(
        MCPServer(
            id="01HQXBG84ESB7XJQ9WAAYH54AM",
            name="filesystem",
            command="npx",
            args=["-y", "@modelcontextprotocol/server-filesystem"],
            env={"ROOT": "/tmp"},
            source=Source.IMPORTED,
        )
    )
    cfg.claude_binding = ClaudeBinding(
        current_model_id="01HQXBF7M6SJHMR6G32P5D1K7Y",
        enabled_mcp_ids=["01HQXBG84ESB7XJQ9WAAYH54AM"],
        last_sync_result="success",
    )
    cfg.backup_index.append(
        BackupMeta(
            id="01HQXBG84ESB7XJQ9WAAYH54AN",
            target="claude_code",
            reason="sync",
            created_at="2026-03-10T10:00:00Z",
            files=[BackupFile(target_path="/a", backup_path="/b", exists_before_backup=True)],
        )
    )
    return cfg


def test_new_config_root_is_empty_at_schema_version():
    cfg = new_config_root()
    assert cfg.schema_version == SCHEMA_VERSION == 1
    assert cfg.models == [] and cfg.mcp_servers == [] and cfg.backup_index == []
    assert cfg.claude_binding == ClaudeBinding()


def test_marshal_parse_round_trip():
    cfg = sample_config()
    assert parse_config_root(cfg.marshal()) == cfg


def test_marshal_ends_with_newline_and_uses_snake_case_keys():
    data = new_config_root().marshal()
    assert data.endswith(b"\n")
    text = data.decode()
    assert '"schema_version": 1' in text
    assert '"mcp_servers"' in text


def test_parse_fills_missing_collections():
    cfg = parse_config_root(b'{"schema_version": 1, "models": null}')
    assert cfg.models == []
    assert cfg.mcp_servers == []
    assert cfg.claude_binding.enabled_mcp_ids == []


def test_parse_rejects_malformed_json():
    with pytest.raises(ValueError):
        parse_config_root(b"{")


def test_parse_rejects_non_object():
    with pytest.raises(ValueError):
        parse_config_root(b"[]")


def test_unknown_source_is_preserved():
    profile = ModelProfile.from_dict({"id": "x", "source": "alien"})
    assert profile.source == "alien"
    assert profile.to_dict()["source"] == "alien"


def test_known_source_becomes_enum():
    server = MCPServer.from_dict({"id": "x", "source": "imported"})
    assert server.source is Source.IMPORTED
    assert server.args == []
    assert server.env == {}


def test_now_rfc3339_utc():
    clock = FixedClock(datetime(2026, 3, 10, 10, 0, 0, 123456, tzinfo=timezone.utc))
    assert now_rfc3339(clock) == "2026-03-10T10:00:00Z"


def test_now_rfc3339_naive_treated_as_utc():
    clock = FixedClock(datetime(2026, 3, 10, 10, 0, 0))
    assert now_rfc3339(clock) == "2026-03-10T10:00:00Z"


def test_now_rfc3339_with_offset():
    zone = timezone(timedelta(hours=8))
    clock = FixedClock(datetime(2026, 3, 10, 18, 0, 0, tzinfo=zone))
    assert now_rfc3339(clock) == "2026-03-10T18:00:00+08:00"


def test_system_clock_is_utc():
    assert SystemClock().now().utcoffset() == timedelta(0)


def test_ulid_shape_and_uniqueness():
    gen = UlidGenerator()
    values = {gen.new() for _ in range(50)}
    assert len(values) == 50
    alphabet = set("0123456789ABCDEFGHJKMNPQRSTVWXYZ")
    for value in values:
        assert len(value) == 26
        assert set(value) <= alphabet
        assert value[0] in "01234567"


def test_match_by_prefix_unique():
    ids = ["01HQXBF7M6SJHMR6G32P5D1K7Y", "01HQXBG84ESB7XJQ9WAAYH54AM"]
    assert match_by_prefix("01HQXBF7", ids) == ids[0]
    assert match_by_prefix("01hqxbg8", ids) == ids[1]


def test_match_by_prefix_exact_wins():
    assert match_by_prefix("01AB", ["01AB", "01ABC"]) == "01AB"


def test_match_by_prefix_ambiguous():
    with pytest.raises(BusinessError):
        match_by_prefix("01HQXB", ["01HQXBF7M6SJHMR6G32P5D1K7Y", "01HQXBG84ESB7XJQ9WAAYH54AM"])


def test_match_by_prefix_missing():
    with pytest.raises(BusinessError):
        match_by_prefix("ZZ", ["01HQXBF7M6SJHMR6G32P5D1K7Y"])


def test_match_by_prefix_empty():
    with pytest.raises(ParamError):
        match_by_prefix("  ", ["01HQXBF7M6SJHMR6G32P5D1K7Y"])