"""Field and consistency checks for the configuration."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from urllib.parse import urlsplit

from .model import (
    SCHEMA_VERSION,
    ConfigRoot,
    MCPServer,
    ModelProfile,
    ParamError,
    Source,
)

_ENV_KEY = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
_RFC3339 = re.compile(
    r"(\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})(?:\.\d+)?(?:Z|([+-])(\d{2}):(\d{2}))"
)


@dataclass
class Issue:
    """A problem found while validating the configuration tree."""

    path: str
    code: str
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"path": self.path, "code": self.code, "message": self.message}


def validate_source(source: Source | str) -> None:
    """Raise ParamError unless the source is a known value."""
    text = source.value if isinstance(source, Source) else str(source)
    try:
        Source(text)
    except ValueError:
        raise ParamError(f'invalid source "{text}"') from None


def _is_rfc3339(value: str) -> bool:
    match = _RFC3339.fullmatch(value)
    if not match:
        return False
    try:
        datetime.strptime(match.group(1), "%Y-%m-%dT%H:%M:%S")
    except ValueError:
        return False
    if match.group(2):
        return int(match.group(3)) < 24 and int(match.group(4)) < 60
    return True


def validate_rfc3339(path: str, value: str) -> None:
    """Raise ParamError if a non-empty value is not an RFC 3339 timestamp."""
    if value and not _is_rfc3339(value):
        raise ParamError(f"{path} must be RFC3339")


def _is_http_url(value: str) -> bool:
    if any(ord(ch) < 0x20 or ord(ch) == 0x7F for ch in value):
        return False
    try:
        parsed = urlsplit(value)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https")


def validate_model_profile(profile: ModelProfile) -> None:
    """Raise ParamError describing the first problem with a model profile."""
    if not profile.name:
        raise ParamError("model name is required")
    validate_source(profile.source)
    if not profile.env.get("ANTHROPIC_AUTH_TOKEN"):
        raise ParamError("ANTHROPIC_AUTH_TOKEN is required")
    if not profile.env.get("ANTHROPIC_MODEL"):
        raise ParamError("ANTHROPIC_MODEL is required")
    base_url = profile.env.get("ANTHROPIC_BASE_URL", "")
    if not base_url:
        raise ParamError("ANTHROPIC_BASE_URL is required")
    if not _is_http_url(base_url):
        raise ParamError("ANTHROPIC_BASE_URL must be a valid http/https URL")
    validate_rfc3339("created_at", profile.created_at)
    validate_rfc3339("updated_at", profile.updated_at)


def validate_mcp_server(server: MCPServer) -> None:
    """Raise ParamError describing the first problem with an MCP server."""
    if not server.name:
        raise ParamError("mcp name is required")
    validate_source(server.source)
    if server.transport != "stdio":
        raise ParamError("transport must be stdio")
    if not server.command:
        raise ParamError("command is required")
    if any(arg == "" for arg in server.args):
        raise ParamError("args cannot contain empty items")
    for key in server.env:
        if not _ENV_KEY.fullmatch(key):
            raise ParamError(f'invalid env key "{key}"')
    validate_rfc3339("created_at", server.created_at)
    validate_rfc3339("updated_at", server.updated_at)


def validate_config_root(cfg: ConfigRoot) -> list[Issue]:
    """Check the whole tree and return every issue found."""
    issues: list[Issue] = []
    if cfg.schema_version != SCHEMA_VERSION:
        issues.append(Issue("schema_version", "schema_version", "schema_version must be 1"))

    model_ids: set[str] = set()
    for i, profile in enumerate(cfg.models):
        if profile.id in model_ids:
            issues.append(Issue(f"models[{i}].id", "duplicate_id", "duplicate model id"))
        model_ids.add(profile.id)
        try:
            validate_model_profile(profile)
        except ParamError as exc:
            issues.append(Issue(f"models[{i}]", "invalid_model", str(exc)))

    mcp_ids: set[str] = set()
    for i, server in enumerate(cfg.mcp_servers):
        if server.id in mcp_ids:
            issues.append(Issue(f"mcp_servers[{i}].id", "duplicate_id", "duplicate mcp id"))
        mcp_ids.add(server.id)
        try:
            validate_mcp_server(server)
        except ParamError as exc:
            issues.append(Issue(f"mcp_servers[{i}]", "invalid_mcp", str(exc)))

    binding = cfg.claude_binding
    if binding.current_model_id and binding.current_model_id not in model_ids:
        issues.append(
            Issue(
                "claude_binding.current_model_id",
                "missing_ref",
                "current_model_id does not reference an existing model",
            )
        )

    seen: set[str] = set()
    for i, mcp_id in enumerate(binding.enabled_mcp_ids):
        path = f"claude_binding.enabled_mcp_ids[{i}]"
        if mcp_id not in mcp_ids:
            issues.append(
                Issue(path, "missing_ref", "enabled MCP does not reference an existing server")
            )
        if mcp_id in seen:
            issues.append(Issue(path, "duplicate_ref", "duplicate enabled MCP id"))
        seen.add(mcp_id)

    return issues