"""Create, edit, remove and enable MCP server entries."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Optional, Protocol

from .model import (
    BusinessError,
    Clock,
    ConfigRoot,
    IDGenerator,
    MCPServer,
    Source,
    SystemClock,
    UlidGenerator,
    match_by_prefix,
    now_rfc3339,
)
from .validator import validate_mcp_server


class _ConfigStore(Protocol):
    def load(self) -> ConfigRoot: ...

    def save(self, cfg: ConfigRoot) -> None: ...


@dataclass
class MCPAddInput:
    """Fields accepted when adding an MCP server."""

    name: str
    command: str
    args: list[str] = field(default_factory=list)
    env: dict[str, str] = field(default_factory=dict)
    description: str = ""


@dataclass
class MCPEditInput:
    """Changes to apply to an MCP server; ``None`` leaves a field as it is.

    ``args`` and ``env`` replace the stored values wholesale when given;
    ``clear_args`` and ``clear_env`` empty them and take precedence.
    """

    name: Optional[str] = None
    command: Optional[str] = None
    args: Optional[list[str]] = None
    clear_args: bool = False
    env: Optional[dict[str, str]] = None
    clear_env: bool = False
    description: Optional[str] = None


def _normalize_name(name: str) -> str:
    return name.strip().lower()


def _has_name_conflict(items: list[MCPServer], name: str, skip_id: str = "") -> bool:
    target = _normalize_name(name)
    return any(
        item.id != skip_id and _normalize_name(item.name) == target for item in items
    )


def _find_index(items: list[MCPServer], prefix: str) -> int:
    matched = match_by_prefix(prefix, [item.id for item in items])
    for index, item in enumerate(items):
        if item.id == matched:
            return index
    raise BusinessError(f'mcp "{prefix}" not found')


class MCPService:
    """Manages MCP server entries and their enabled state."""

    def __init__(
        self,
        store: _ConfigStore,
        clock: Optional[Clock] = None,
        ids: Optional[IDGenerator] = None,
    ) -> None:
        self.store = store
        self.clock = clock if clock is not None else SystemClock()
        self.ids = ids if ids is not None else UlidGenerator()

    def add(self, spec: MCPAddInput) -> MCPServer:
        """Add a manually maintained MCP server; only stdio transport is supported."""
        cfg = self.store.load()
        if _has_name_conflict(cfg.mcp_servers, spec.name):
            raise BusinessError(
                f'mcp name "{spec.name}" already exists; choose a different name'
            )
        try:
            new_id = self.ids.new()
        except Exception as exc:
            raise BusinessError(f"generate mcp id: {exc}") from exc
        timestamp = now_rfc3339(self.clock)
        server = MCPServer(
            id=new_id,
            name=spec.name,
            transport="stdio",
            command=spec.command,
            args=list(spec.args),
            env=dict(spec.env),
            source=Source.MANUAL,
            description=spec.description,
            created_at=timestamp,
            updated_at=timestamp,
        )
        validate_mcp_server(server)
        cfg.mcp_servers.append(server)
        self.store.save(cfg)
        return server

    def list(self) -> list[MCPServer]:
        """Return every configured MCP server."""
        return self.store.load().mcp_servers

    def edit(self, prefix: str, spec: MCPEditInput) -> MCPServer:
        """Update the MCP server whose id starts with prefix."""
        cfg = self.store.load()
        index = _find_index(cfg.mcp_servers, prefix)
        current = copy.deepcopy(cfg.mcp_servers[index])

        if spec.name is not None:
            if _has_name_conflict(cfg.mcp_servers, spec.name, current.id):
                raise BusinessError(
                    f'mcp name "{spec.name}" already exists; choose a different name'
                )
            current.name = spec.name
        if spec.command is not None:
            current.command = spec.command
        if spec.description is not None:
            current.description = spec.description
        if spec.clear_args:
            current.args = []
        elif spec.args is not None:
            current.args = list(spec.args)
        if spec.clear_env:
            current.env = {}
        elif spec.env is not None:
            current.env = dict(spec.env)
        current.updated_at = now_rfc3339(self.clock)

        validate_mcp_server(current)
        cfg.mcp_servers[index] = current
        self.store.save(cfg)
        return current

    def remove(self, prefix: str, force: bool = False) -> None:
        """Delete an MCP server; an enabled one needs force, which also disables it."""
        cfg = self.store.load()
        index = _find_index(cfg.mcp_servers, prefix)
        target = cfg.mcp_servers[index]
        binding = cfg.claude_binding
        if target.id in binding.enabled_mcp_ids:
            if not force:
                raise BusinessError(
                    f"mcp {target.id} is enabled; use `mcfg mcp disable {prefix}` "
                    f"or `mcfg mcp remove {prefix} --force`"
                )
            binding.enabled_mcp_ids = [i for i in binding.enabled_mcp_ids if i != target.id]
        del cfg.mcp_servers[index]
        self.store.save(cfg)

    def enable(self, prefix: str) -> tuple[bool, MCPServer]:
        """Enable an MCP server; the flag tells whether it was already enabled."""
        cfg = self.store.load()
        target = cfg.mcp_servers[_find_index(cfg.mcp_servers, prefix)]
        binding = cfg.claude_binding
        if target.id in binding.enabled_mcp_ids:
            return True, target
        binding.enabled_mcp_ids.append(target.id)
        self.store.save(cfg)
        return False, target

    def disable(self, prefix: str) -> tuple[bool, MCPServer]:
        """Disable an MCP server; the flag tells whether it was already disabled."""
        cfg = self.store.load()
        target = cfg.mcp_servers[_find_index(cfg.mcp_servers, prefix)]
        binding = cfg.claude_binding
        if target.id not in binding.enabled_mcp_ids:
            return True, target
        binding.enabled_mcp_ids = [i for i in binding.enabled_mcp_ids if i != target.id]
        self.store.save(cfg)
        return False, target