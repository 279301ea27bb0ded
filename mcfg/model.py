"""Configuration data model, error types, clocks and identifiers."""

from __future__ import annotations

import json
import secrets
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable, Protocol

SCHEMA_VERSION = 1

_CROCKFORD = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"


class McfgError(Exception):
    """Base class for every error the package raises on purpose."""


class BusinessError(McfgError):
    """A request that conflicts with the current configuration state."""


class ConfigIOError(McfgError):
    """A failure reading or writing files."""


class ParamError(McfgError):
    """An invalid parameter or field value."""


class Source(str, Enum):
    """Where a configuration entry came from."""

    MANUAL = "manual"
    IMPORTED = "imported"

    def __str__(self) -> str:
        return self.value


def _source_from(value: Any) -> Source | str:
    text = "" if value is None else str(value)
    try:
        return Source(text)
    except ValueError:
        return text


def _source_value(source: Source | str) -> str:
    return source.value if isinstance(source, Source) else str(source)


def _require_mapping(data: Any, what: str) -> dict:
    if not isinstance(data, dict):
        raise ValueError(f"{what} must be a JSON object")
    return data


def _text(data: dict, key: str) -> str:
    value = data.get(key)
    return "" if value is None else str(value)


def _string_map(data: dict, key: str) -> dict[str, str]:
    value = data.get(key) or {}
    return {str(k): "" if v is None else str(v) for k, v in _require_mapping(value, key).items()}


def _string_list(data: dict, key: str) -> list[str]:
    value = data.get(key) or []
    if not isinstance(value, list):
        raise ValueError(f"{key} must be a JSON array")
    return [str(item) for item in value]


def _object_list(data: dict, key: str) -> list[dict]:
    value = data.get(key) or []
    if not isinstance(value, list):
        raise ValueError(f"{key} must be a JSON array")
    return [_require_mapping(item, key) for item in value]


@dataclass
class ModelProfile:
    """A model endpoint with the environment it puts into Claude settings."""

    id: str = ""
    name: str = ""
    env: dict[str, str] = field(default_factory=dict)
    source: Source | str = Source.MANUAL
    description: str = ""
    created_at: str = ""
    updated_at: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "env": dict(self.env),
            "source": _source_value(self.source),
            "description": self.description,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Any) -> ModelProfile:
        data = _require_mapping(data, "model")
        return cls(
            id=_text(data, "id"),
            name=_text(data, "name"),
            env=_string_map(data, "env"),
            source=_source_from(data.get("source")),
            description=_text(data, "description"),
            created_at=_text(data, "created_at"),
            updated_at=_text(data, "updated_at"),
        )


@dataclass
class MCPServer:
    """An MCP server started over stdio."""

    id: str = ""
    name: str = ""
    transport: str = "stdio"
    command: str = ""
    args: list[str] = field(default_factory=list)
    env: dict[str, str] = field(default_factory=dict)
    source: Source | str = Source.MANUAL
    description: str = ""
    created_at: str = ""
    updated_at: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "transport": self.transport,
            "command": self.command,
            "args": list(self.args),
            "env": dict(self.env),
            "source": _source_value(self.source),
            "description": self.description,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Any) -> MCPServer:
        data = _require_mapping(data, "mcp server")
        return cls(
            id=_text(data, "id"),
            name=_text(data, "name"),
            transport=_text(data, "transport"),
            command=_text(data, "command"),
            args=_string_list(data, "args"),
            env=_string_map(data, "env"),
            source=_source_from(data.get("source")),
            description=_text(data, "description"),
            created_at=_text(data, "created_at"),
            updated_at=_text(data, "updated_at"),
        )


@dataclass
class ClaudeBinding:
    """Which model and MCP servers are bound to Claude Code."""

    current_model_id: str = ""
    enabled_mcp_ids: list[str] = field(default_factory=list)
    last_sync_at: str = ""
    last_sync_result: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "current_model_id": self.current_model_id,
            "enabled_mcp_ids": list(self.enabled_mcp_ids),
            "last_sync_at": self.last_sync_at,
            "last_sync_result": self.last_sync_result,
        }

    @classmethod
    def from_dict(cls, data: Any) -> ClaudeBinding:
        data = _require_mapping(data or {}, "claude_binding")
        return cls(
            current_model_id=_text(data, "current_model_id"),
            enabled_mcp_ids=_string_list(data, "enabled_mcp_ids"),
            last_sync_at=_text(data, "last_sync_at"),
            last_sync_result=_text(data, "last_sync_result"),
        )


@dataclass
class BackupFile:
    """One file captured by a backup."""

    target_path: str = ""
    backup_path: str = ""
    exists_before_backup: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "target_path": self.target_path,
            "backup_path": self.backup_path,
            "exists_before_backup": self.exists_before_backup,
        }

    @classmethod
    def from_dict(cls, data: Any) -> BackupFile:
        data = _require_mapping(data, "backup file")
        return cls(
            target_path=_text(data, "target_path"),
            backup_path=_text(data, "backup_path"),
            exists_before_backup=bool(data.get("exists_before_backup", False)),
        )


@dataclass
class BackupMeta:
    """Index entry describing one backup."""

    id: str = ""
    target: str = ""
    reason: str = ""
    created_at: str = ""
    files: list[BackupFile] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "target": self.target,
            "reason": self.reason,
            "created_at": self.created_at,
            "files": [item.to_dict() for item in self.files],
        }

    @classmethod
    def from_dict(cls, data: Any) -> BackupMeta:
        data = _require_mapping(data, "backup")
        return cls(
            id=_text(data, "id"),
            target=_text(data, "target"),
            reason=_text(data, "reason"),
            created_at=_text(data, "created_at"),
            files=[BackupFile.from_dict(item) for item in _object_list(data, "files")],
        )


@dataclass
class ConfigRoot:
    """The whole configuration document."""

    schema_version: int = SCHEMA_VERSION
    models: list[ModelProfile] = field(default_factory=list)
    mcp_servers: list[MCPServer] = field(default_factory=list)
    claude_binding: ClaudeBinding = field(default_factory=ClaudeBinding)
    backup_index: list[BackupMeta] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "schema_version": self.schema_version,
            "models": [item.to_dict() for item in self.models],
            "mcp_servers": [item.to_dict() for item in self.mcp_servers],
            "claude_binding": self.claude_binding.to_dict(),
            "backup_index": [item.to_dict() for item in self.backup_index],
        }

    @classmethod
    def from_dict(cls, data: Any) -> ConfigRoot:
        data = _require_mapping(data, "config root")
        version = data.get("schema_version", 0)
        if isinstance(version, bool) or not isinstance(version, int):
            raise ValueError("schema_version must be an integer")
        return cls(
            schema_version=version,
            models=[ModelProfile.from_dict(item) for item in _object_list(data, "models")],
            mcp_servers=[MCPServer.from_dict(item) for item in _object_list(data, "mcp_servers")],
            claude_binding=ClaudeBinding.from_dict(data.get("claude_binding")),
            backup_index=[BackupMeta.from_dict(item) for item in _object_list(data, "backup_index")],
        )

    def marshal(self) -> bytes:
        """Serialise to indented JSON bytes ending in a newline."""
        return (json.dumps(self.to_dict(), indent=2, ensure_ascii=False) + "\n").encode("utf-8")


def new_config_root() -> ConfigRoot:
    """Return an empty configuration at the current schema version."""
    return ConfigRoot()


def parse_config_root(data: bytes | str) -> ConfigRoot:
    """Parse a configuration document; raises ValueError when it is malformed."""
    return ConfigRoot.from_dict(json.loads(data))


class Clock(Protocol):
    def now(self) -> datetime: ...


class IDGenerator(Protocol):
    def new(self) -> str: ...


class SystemClock:
    """Clock reading the current UTC time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


def now_rfc3339(clock: Clock) -> str:
    """Format the clock's current time as RFC 3339 with whole seconds."""
    moment = clock.now()
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.replace(microsecond=0)
    if not moment.utcoffset():
        return moment.strftime("%Y-%m-%dT%H:%M:%SZ")
    return moment.isoformat()


class UlidGenerator:
    """Generates ULIDs: a millisecond timestamp followed by 80 random bits."""

    def new(self) -> str:
        millis = (time.time_ns() // 1_000_000) & ((1 << 48) - 1)
        value = (millis << 80) | secrets.randbits(80)
        return "".join(_CROCKFORD[(value >> shift) & 31] for shift in range(125, -1, -5))


def match_by_prefix(prefix: str, ids: Iterable[str]) -> str:
    """Resolve an identifier from an unambiguous prefix of it."""
    needle = prefix.strip()
    if not needle:
        raise ParamError("id prefix is required")
    candidates = list(dict.fromkeys(ids))
    if needle in candidates:
        return needle
    folded = needle.upper()
    matches = [item for item in candidates if item.upper().startswith(folded)]
    if not matches:
        raise BusinessError(f'no entry matches id prefix "{prefix}"')
    if len(matches) > 1:
        raise BusinessError(f'id prefix "{prefix}" is ambiguous: matches {", ".join(matches)}')
    return matches[0]