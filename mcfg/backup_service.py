"""Create, list, restore and prune backups of the Claude target files."""

from __future__ import annotations

import functools
import os
import shutil
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Optional, Protocol

from .fileops import checksum, write_atomic_checked
from .model import (
    BackupFile,
    BackupMeta,
    BusinessError,
    Clock,
    ConfigIOError,
    ConfigRoot,
    IDGenerator,
    ParamError,
    SystemClock,
    UlidGenerator,
    match_by_prefix,
    now_rfc3339,
)

DEFAULT_BACKUP_KEEP = 3


class _ConfigStore(Protocol):
    def load(self) -> ConfigRoot: ...

    def save(self, cfg: ConfigRoot) -> None: ...


@dataclass
class BackupRecord:
    """A backup index entry together with its on-disk integrity."""

    meta: BackupMeta
    corrupted: bool

    def to_dict(self) -> dict[str, Any]:
        return {"meta": self.meta.to_dict(), "corrupted": self.corrupted}


@dataclass
class BackupHooks:
    """Callbacks run just before each target is checked and replaced during restore."""

    before_restore_settings: Optional[Callable[[], None]] = field(default=None)
    before_restore_claude_json: Optional[Callable[[], None]] = field(default=None)


def _target_paths(home_dir: str | os.PathLike) -> tuple[str, str]:
    home = Path(home_dir)
    return str(home / ".claude" / "settings.json"), str(home / ".claude.json")


def _write_private(path: Path, data: bytes) -> None:
    path.write_bytes(data)
    os.chmod(path, 0o600)


def _read_required(path: str) -> bytes:
    try:
        return Path(path).read_bytes()
    except FileNotFoundError:
        raise BusinessError(f"target missing: {path}") from None
    except OSError as exc:
        raise ConfigIOError(f"read {path}: {exc}") from exc


def _is_corrupted(meta: BackupMeta) -> bool:
    for item in meta.files:
        try:
            os.stat(item.backup_path)
        except OSError:
            return True
    return False


def _remove_backup_dir(meta: BackupMeta) -> None:
    if meta.files:
        shutil.rmtree(os.path.dirname(meta.files[0].backup_path), ignore_errors=True)


def _parse_rfc3339(value: str) -> Optional[datetime]:
    text = value[:-1] + "+00:00" if value.endswith(("Z", "z")) else value
    try:
        moment = datetime.fromisoformat(text)
    except ValueError:
        return None
    return moment if moment.tzinfo is not None else None


def _newest_first(left: BackupRecord, right: BackupRecord) -> int:
    a = _parse_rfc3339(left.meta.created_at)
    b = _parse_rfc3339(right.meta.created_at)
    if a is None or b is None:
        x, y = left.meta.created_at, right.meta.created_at
        return -1 if x > y else (1 if x < y else 0)
    return -1 if a > b else (1 if a < b else 0)


def create_backup_snapshot(
    settings_path: str,
    claude_json_path: str,
    settings_data: bytes,
    claude_json_data: bytes,
    backups_dir: str | os.PathLike,
    clock: Clock,
    ids: IDGenerator,
    reason: str,
) -> BackupMeta:
    """Copy both target files into a fresh backup directory and describe it."""
    try:
        backup_id = ids.new()
    except Exception as exc:
        raise BusinessError(f"generate backup id: {exc}") from exc
    directory = Path(backups_dir) / backup_id
    try:
        directory.mkdir(mode=0o700, parents=True, exist_ok=True)
    except OSError as exc:
        raise ConfigIOError(f"create backup dir: {exc}") from exc

    settings_backup = directory / "settings.json"
    claude_backup = directory / "claude.json"
    try:
        _write_private(settings_backup, settings_data)
    except OSError as exc:
        raise ConfigIOError(f"write settings backup: {exc}") from exc
    try:
        _write_private(claude_backup, claude_json_data)
    except OSError as exc:
        raise ConfigIOError(f"write claude backup: {exc}") from exc

    return BackupMeta(
        id=backup_id,
        target="claude_code",
        reason=reason,
        created_at=now_rfc3339(clock),
        files=[
            BackupFile(str(settings_path), str(settings_backup), True),
            BackupFile(str(claude_json_path), str(claude_backup), True),
        ],
    )


def auto_prune_backups(
    cfg: ConfigRoot, backups_dir: str | os.PathLike, keep: int = DEFAULT_BACKUP_KEEP
) -> None:
    """Keep only the newest ``keep`` index entries, deleting the rest from disk."""
    if keep < 1 or len(cfg.backup_index) <= keep:
        return
    ordered = sorted(cfg.backup_index, key=lambda meta: meta.created_at, reverse=True)
    cfg.backup_index = ordered[:keep]
    for meta in ordered[keep:]:
        _remove_backup_dir(meta)


class BackupService:
    """Backs up, restores and prunes the Claude Code target files."""

    def __init__(
        self,
        store: _ConfigStore,
        home_dir: str | os.PathLike,
        backups_dir: str | os.PathLike,
        clock: Optional[Clock] = None,
        ids: Optional[IDGenerator] = None,
        hooks: Optional[BackupHooks] = None,
    ) -> None:
        self.store = store
        self.home_dir = Path(home_dir)
        self.backups_dir = Path(backups_dir)
        self.clock = clock if clock is not None else SystemClock()
        self.ids = ids if ids is not None else UlidGenerator()
        self.hooks = hooks if hooks is not None else BackupHooks()

    def create(self, reason: str) -> BackupMeta:
        """Back up both managed target files and record the backup."""
        cfg = self.store.load()
        settings_path, claude_json_path = _target_paths(self.home_dir)
        settings_data = _read_required(settings_path)
        claude_json_data = _read_required(claude_json_path)
        meta = create_backup_snapshot(
            settings_path,
            claude_json_path,
            settings_data,
            claude_json_data,
            self.backups_dir,
            self.clock,
            self.ids,
            reason,
        )
        cfg.backup_index.append(meta)
        auto_prune_backups(cfg, self.backups_dir, DEFAULT_BACKUP_KEEP)
        self.store.save(cfg)
        return meta

    def _records(self, cfg: ConfigRoot) -> list[BackupRecord]:
        return [BackupRecord(meta, _is_corrupted(meta)) for meta in cfg.backup_index]

    def list(self) -> list[BackupRecord]:
        """Return every backup, newest first, flagging those missing on disk."""
        records = self._records(self.store.load())
        records.sort(key=lambda record: record.meta.created_at, reverse=True)
        return records

    def restore(self, prefix: str) -> BackupMeta:
        """Write the backup whose id starts with prefix back over its targets."""
        cfg = self.store.load()
        matched = match_by_prefix(prefix, [meta.id for meta in cfg.backup_index])
        meta = next((item for item in cfg.backup_index if item.id == matched), None)
        if meta is None:
            raise BusinessError(f'backup "{prefix}" not found')

        target_checksums: dict[str, str] = {}
        for item in meta.files:
            try:
                data = Path(item.target_path).read_bytes()
            except FileNotFoundError:
                raise BusinessError(f"restore target missing: {item.target_path}") from None
            except OSError as exc:
                raise ConfigIOError(
                    f"read restore target {item.target_path}: {exc}"
                ) from exc
            target_checksums[item.target_path] = checksum(data)

        settings_path, claude_json_path = _target_paths(self.home_dir)
        hooks = {
            settings_path: self.hooks.before_restore_settings,
            claude_json_path: self.hooks.before_restore_claude_json,
        }
        for item in meta.files:
            try:
                data = Path(item.backup_path).read_bytes()
            except OSError as exc:
                raise ConfigIOError(f"read backup file {item.backup_path}: {exc}") from exc
            write_atomic_checked(
                item.target_path,
                data,
                target_checksums[item.target_path],
                hooks.get(item.target_path),
            )
        return meta

    def prune(self, keep: int) -> int:
        """Keep the newest ``keep`` intact backups, delete the rest; return how many went."""
        if keep < 1:
            raise ParamError("keep must be >= 1")
        cfg = self.store.load()
        records = sorted(self._records(cfg), key=functools.cmp_to_key(_newest_first))
        intact = [record.meta.id for record in records if not record.corrupted]
        keep_ids = set(intact[:keep])

        removed = 0
        next_index: list[BackupMeta] = []
        for meta in cfg.backup_index:
            if meta.id in keep_ids:
                next_index.append(meta)
                continue
            removed += 1
            _remove_backup_dir(meta)
        cfg.backup_index = next_index
        self.store.save(cfg)
        return removed