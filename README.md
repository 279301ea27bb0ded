# mcfg

`mcfg` keeps a small configuration store in `~/.mcfg/config.json` for
Claude Code: model profiles (base URL, model name, auth token) and MCP
servers. It validates that configuration, keeps checksummed backups of
`~/.claude/settings.json` and `~/.claude.json`, restores them atomically,
and provides a keyboard-driven interface state machine that renders to
plain text.

It has no third-party dependencies.

## Concepts

- **Store** (`mcfg.store.Store`) — owns `~/.mcfg/`: the config file and
  the `backups/` directory. `init()` creates both (owner-only
  permissions) and an empty config if none exists; `load()` and `save()`
  read and write the config, saving through a temporary file and a
  rename.
- **ConfigRoot** (`mcfg.model`) — the whole configuration:
  `ModelProfile` entries, `MCPServer` entries, the `ClaudeBinding`
  (current model, enabled MCP servers, last sync time and result) and the
  index of `BackupMeta` records. Every class has `to_dict` / `from_dict`;
  `ConfigRoot.marshal()` produces indented JSON and `parse_config_root`
  reads it back.
- **IDs** — `UlidGenerator` produces ULIDs. `match_by_prefix` resolves an
  ID from any unique prefix (case-insensitive); an empty prefix raises
  `ParamError`, an unknown or ambiguous one raises `BusinessError`.
- **Clocks** — `SystemClock` returns the current UTC time;
  `now_rfc3339` formats a clock's time as RFC 3339 with whole seconds.
- **Errors** — everything raised on purpose derives from `McfgError`:
  `ParamError` for bad input, `BusinessError` for rule violations
  (duplicate names, missing targets, external modification detected) and
  `ConfigIOError` for file-system failures.

## Using it from Python

```python
from pathlib import Path

from mcfg.model import SystemClock, UlidGenerator
from mcfg.store import Store
from mcfg.mcp_service import MCPAddInput, MCPService
from mcfg.validator import validate_config_root

home = Path.home()
store = Store(home)
store.init()  # creates ~/.mcfg and an empty config on first run

mcp = MCPService(store, SystemClock(), UlidGenerator())
server = mcp.add(MCPAddInput(
    name="filesystem",
    command="npx",
    args=["-y", "@modelcontextprotocol/server-filesystem"],
    env={"ROOT": "/tmp"},
))
already_enabled, _ = mcp.enable(server.id[:8])

for issue in validate_config_root(store.load()):
    print(issue.path, issue.code, issue.message)
```

### MCP servers

`MCPService` adds, lists, edits, removes, enables and disables servers.
Names are unique regardless of case and surrounding spaces. Only the
`stdio` transport is supported. `edit` takes an `MCPEditInput`: fields
left as `None` are unchanged, `args` and `env` replace the stored values
wholesale, and `clear_args` / `clear_env` empty them. An enabled server
cannot be removed unless `force` is set, in which case it is also dropped
from the enabled list. `enable` and `disable` return a flag telling
whether the server was already in that state, together with the server.

### Backups

`BackupService` snapshots both Claude files into
`~/.mcfg/backups/<id>/`. Both files must exist; a missing one raises
`BusinessError`.

```python
from mcfg.backup_service import BackupService

backups = BackupService(store, home, store.backups_dir, SystemClock(), UlidGenerator(), None)
meta = backups.create("manual")
for record in backups.list():  # newest first, corrupted ones flagged
    print(record.meta.id, record.meta.created_at, record.corrupted)
backups.restore(meta.id[:8])
removed = backups.prune(1)
```

Creating a backup keeps the three most recent ones automatically
(`auto_prune_backups`). `prune(keep)` keeps the newest `keep` intact
backups and deletes every other entry, including those whose files are
missing; `keep` below 1 raises `ParamError`. Restoring records a checksum
of each target first and refuses to overwrite a target whose contents
changed in the meantime: it raises "external modification detected" and
leaves that file as it found it. `BackupHooks` lets a caller run a
function just before each target is checked and replaced.

### Atomic writes

`mcfg.fileops` provides `checksum` (hex SHA-256), `write_atomic` and
`write_atomic_checked`, which writes through a temporary file in the
target's directory and, given an expected checksum, refuses to replace a
target whose current contents no longer match.

### Validation

`validate_model_profile` and `validate_mcp_server` raise `ParamError` for
the first problem found. `validate_config_root` returns a list of `Issue`
records instead: schema version, duplicate IDs, invalid model profiles
(missing name, token or model, a base URL that is not `http`/`https`),
invalid MCP servers (transport other than `stdio`, missing command, empty
arguments, bad environment keys), timestamps that are not RFC 3339, and
dangling or duplicate references in the binding.

### Terminal interface state machine

`mcfg.tui.App` is a keyboard-driven state machine over a `Snapshot` and
an optional `Controller`. Feed it key names with `App.update` (which
returns `True` when the user quits) and render it with `App.view`, which
returns the screen as text. Pages: Overview, Models, MCP Servers, Sync
Preview, Backups.

| Key | Action |
| --- | --- |
| `h` / `l` | previous / next page |
| `j` / `k` | move the cursor, or change page where there is no list |
| `a` / `e` / `d` | add / edit / delete the selected model or MCP server |
| `u` | use the selected model |
| space | enable or disable the selected MCP server |
| `s` | open the sync preview |
| `r` | refresh |
| enter | confirm sync or restore |
| `q` | quit |

In forms, enter or tab moves to the next field and submits on the last
one; backspace deletes a character; esc cancels. MCP arguments are
entered comma separated and the environment as `KEY=VALUE` pairs, parsed
by `parse_csv` and `parse_env_csv`; `format_env` renders them back.

## What this package does not do

- It does not write the managed fields into `~/.claude/settings.json` or
  `~/.claude.json`, compare them with the configuration, or report drift.
  `ClaudeBinding.last_sync_at` and `last_sync_result` are stored but
  nothing in the package sets them.
- It has no service for adding, editing or selecting model profiles, and
  no importer of an existing Claude configuration; model profiles can be
  built and stored directly through `ConfigRoot` and checked with the
  validator.
- It has no command-line program. `App` does not read the terminal
  itself, and the package ships no `Controller` implementation: the
  caller supplies one and drives `App` with key names.

## Running the tests

Install the `test` extra and run `pytest` from the project directory.