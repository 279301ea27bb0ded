"""Configuration store, validation, backups and interface state for Claude Code model profiles and MCP servers."""

__version__ = "0.1.0"