"""On-disk storage of the configuration centre."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path

from .model import ConfigIOError, ConfigRoot, new_config_root, parse_config_root

_DIR_PERM = 0o700
_FILE_PERM = 0o600


class Store:
    """Manages the config file and backup directory under ``~/.mcfg``."""

    def __init__(self, home_dir: str | os.PathLike) -> None:
        self.home_dir = Path(home_dir)
        self.config_dir = self.home_dir / ".mcfg"
        self.config_path = self.config_dir / "config.json"
        self.backups_dir = self.config_dir / "backups"

    def init(self) -> bool:
        """Create directories and a default config; return True if the config was created."""
        try:
            self.backups_dir.mkdir(mode=_DIR_PERM, parents=True, exist_ok=True)
        except OSError as exc:
            raise ConfigIOError(f"create config directories: {exc}") from exc
        for directory, label in ((self.config_dir, "config"), (self.backups_dir, "backups")):
            try:
                os.chmod(directory, _DIR_PERM)
            except OSError as exc:
                raise ConfigIOError(f"chmod {label} directory: {exc}") from exc

        try:
            self.config_path.stat()
            return False
        except FileNotFoundError:
            pass
        except OSError as exc:
            raise ConfigIOError(f"stat config file: {exc}") from exc

        self.save(new_config_root())
        return True

    def load(self) -> ConfigRoot:
        """Read and parse the config file."""
        try:
            data = self.config_path.read_bytes()
        except FileNotFoundError:
            raise ConfigIOError(f"config not found at {self.config_path}") from None
        except OSError as exc:
            raise ConfigIOError(f"read config: {exc}") from exc
        try:
            return parse_config_root(data)
        except ValueError as exc:
            raise ConfigIOError(f"parse config: {exc}") from exc

    def save(self, cfg: ConfigRoot) -> None:
        """Write the config atomically through a temporary file."""
        try:
            self.config_dir.mkdir(mode=_DIR_PERM, parents=True, exist_ok=True)
        except OSError as exc:
            raise ConfigIOError(f"create config directory: {exc}") from exc

        data = cfg.marshal()
        try:
            fd, tmp_path = tempfile.mkstemp(dir=self.config_dir, prefix="config-", suffix=".tmp")
        except OSError as exc:
            raise ConfigIOError(f"create temp config: {exc}") from exc

        replaced = False
        try:
            try:
                with os.fdopen(fd, "wb") as handle:
                    os.chmod(tmp_path, _FILE_PERM)
                    handle.write(data)
                    handle.flush()
                    os.fsync(handle.fileno())
            except OSError as exc:
                raise ConfigIOError(f"write temp config: {exc}") from exc
            try:
                os.replace(tmp_path, self.config_path)
            except OSError as exc:
                raise ConfigIOError(f"replace config: {exc}") from exc
            replaced = True
            try:
                os.chmod(self.config_path, _FILE_PERM)
            except OSError as exc:
                raise ConfigIOError(f"chmod config: {exc}") from exc
        finally:
            if not replaced:
                try:
                    os.remove(tmp_path)
                except OSError:
                    pass