"""Filesystem helpers that raise :class:`~skillsync.errors.IoError`."""

from __future__ import annotations

import json
import os
import shutil
import stat
import sys
import tempfile
from pathlib import Path
from typing import Any

from skillsync.errors import IoError


def safe_stat(path: Path) -> os.stat_result | None:
    """Stat *path*, following symlinks. Missing paths return ``None``."""
    try:
        return path.stat()
    except FileNotFoundError:
        return None
    except OSError as e:
        raise IoError(f"Unable to access {path}.", operation="stat", path=path) from e


def safe_lstat(path: Path) -> os.stat_result | None:
    """Stat *path* without following symlinks. Missing paths return ``None``."""
    try:
        return path.lstat()
    except FileNotFoundError:
        return None
    except OSError as e:
        raise IoError(f"Unable to access {path}.", operation="lstat", path=path) from e


def path_exists(path: Path) -> bool:
    """True if anything (including a dangling symlink) exists at *path*."""
    return safe_lstat(path) is not None


def is_file(path: Path) -> bool:
    stats = safe_stat(path)
    return stats is not None and stat.S_ISREG(stats.st_mode)


def is_dir(path: Path) -> bool:
    stats = safe_stat(path)
    return stats is not None and stat.S_ISDIR(stats.st_mode)


def ensure_dir(path: Path) -> None:
    """Create *path* recursively; fail if it exists as a non-directory."""
    if path_exists(path) and not path.is_dir():
        raise IoError(
            f"Expected directory at {path}.", operation="mkdir", path=path
        )
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise IoError(f"Unable to create {path}.", operation="mkdir", path=path) from e


def read_text(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except OSError as e:
        raise IoError(f"Unable to read {path}.", operation="read", path=path) from e


def list_dirs(path: Path) -> list[Path]:
    """Immediate child directories of *path*, sorted by name."""
    try:
        entries = sorted(path.iterdir(), key=lambda p: p.name)
    except OSError as e:
        raise IoError(f"Unable to read {path}.", operation="readdir", path=path) from e
    return [entry for entry in entries if entry.is_dir()]


def remove_path(path: Path) -> None:
    """Remove a file, symlink or directory tree. Missing paths are ignored."""
    stats = safe_lstat(path)
    if stats is None:
        return
    try:
        if path.is_symlink() or not path.is_dir():
            path.unlink()
        else:
            shutil.rmtree(path)
    except OSError as e:
        raise IoError(f"Unable to remove {path}.", operation="remove", path=path) from e


def copy_tree(source: Path, target: Path) -> None:
    try:
        shutil.copytree(source, target, symlinks=True)
    except OSError as e:
        raise IoError(
            f"Unable to copy {source} to {target}.", operation="copy", path=target
        ) from e


def symlink_dir(source: Path, target: Path) -> None:
    """Link *target* to the directory *source* (a junction on Windows)."""
    try:
        if sys.platform == "win32":
            import _winapi

            _winapi.CreateJunction(str(source), str(target))
        else:
            target.symlink_to(source, target_is_directory=True)
    except OSError as e:
        raise IoError(
            f"Unable to link {target} to {source}.", operation="symlink", path=target
        ) from e


def atomic_write_text(path: Path, content: str) -> None:
    """Atomically replace *path* with *content*."""
    ensure_dir(path.parent)
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, suffix=".tmp", prefix=f".{path.stem}-")
    closed = False
    try:
        os.write(fd, content.encode("utf-8"))
        os.fsync(fd)
        os.close(fd)
        closed = True
        os.replace(tmp_path, path)
    except OSError as e:
        if not closed:
            os.close(fd)
        if Path(tmp_path).exists():
            os.unlink(tmp_path)
        raise IoError(f"Unable to write {path}.", operation="write", path=path) from e


def atomic_write_json(path: Path, data: dict[str, Any]) -> None:
    atomic_write_text(path, json.dumps(data, indent=2) + "\n")
