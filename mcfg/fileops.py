"""Atomic file replacement with optional concurrent-change detection."""

from __future__ import annotations

import hashlib
import os
import tempfile
from typing import Callable, Optional

from .model import BusinessError, ConfigIOError


def checksum(data: bytes) -> str:
    """Return the hex SHA-256 digest of data."""
    return hashlib.sha256(data).hexdigest()


def write_atomic(path: str | os.PathLike, data: bytes) -> None:
    """Replace path with data through a temporary file."""
    write_atomic_checked(path, data, "", None)


def write_atomic_checked(
    path: str | os.PathLike,
    data: bytes,
    expected_checksum: str = "",
    before_check: Optional[Callable[[], None]] = None,
) -> None:
    """Replace path with data, refusing if its current contents no longer match.

    ``before_check`` runs after the temporary file is written and before the
    target is re-read; anything it raises aborts the write.
    """
    target = os.fspath(path)
    directory = os.path.dirname(target) or "."
    try:
        fd, tmp_path = tempfile.mkstemp(dir=directory, suffix=".tmp")
    except OSError as exc:
        raise ConfigIOError(f"create temp file: {exc}") from exc

    replaced = False
    try:
        try:
            with os.fdopen(fd, "wb") as handle:
                os.chmod(tmp_path, 0o600)
                handle.write(data)
        except OSError as exc:
            raise ConfigIOError(f"write temp file: {exc}") from exc

        if before_check is not None:
            before_check()

        if expected_checksum:
            try:
                with open(target, "rb") as handle:
                    current = handle.read()
            except FileNotFoundError:
                current = None
            except OSError as exc:
                raise ConfigIOError(f"re-read target file {target}: {exc}") from exc
            if current is None or checksum(current) != expected_checksum:
                raise BusinessError(
                    f"external modification detected for {target}; run `mcfg validate` and retry"
                )

        try:
            os.replace(tmp_path, target)
        except OSError as exc:
            raise ConfigIOError(f"replace target file: {exc}") from exc
        replaced = True
    finally:
        if not replaced:
            try:
                os.remove(tmp_path)
            except OSError:
                pass