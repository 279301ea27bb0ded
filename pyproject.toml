[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "mcfg"
version = "0.1.0"
description = "Configuration store for Claude Code model profiles and MCP servers, with validation, backups and a keyboard-driven interface state machine."
requires-python = ">=3.10"
dependencies = []
keywords = ["configuration", "claude", "mcp", "backup", "validation", "tui"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Operating System :: POSIX",
    "Operating System :: MacOS",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Utilities",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["mcfg"]

[tool.hatch.build.targets.sdist]
include = ["mcfg", "tests"]

[tool.pytest.ini_options]
addopts = "-ra"
