"""
Atomic file replacement.

Readers see either the previous content or the new content, never a
truncated file: content goes to ``<final>.tmp`` first and is renamed over
the target.
"""

import logging
import os
from pathlib import Path
from typing import Union

from todo_mcp.errors import StorageError

log = logging.getLogger(__name__)

FILE_MODE = 0o644
DIR_MODE = 0o755

TMP_SUFFIX = ".tmp"


def tmp_path_for(path: Path) -> Path:
    return path.with_name(path.name + TMP_SUFFIX)


def ensure_dir(path: Path) -> None:
    """Create a directory and any missing parents with mode 0755."""
    try:
        path.mkdir(mode=DIR_MODE, parents=True, exist_ok=True)
    except OSError as e:
        raise StorageError("create directory", path, e) from e


def atomic_write(path: Path, content: Union[str, bytes]) -> None:
    """
    Replace ``path`` with ``content`` via temp file, fsync and rename.

    Text is written as UTF-8 without newline translation; bytes are written
    unchanged.

    Raises:
        StorageError: if any step fails; the temp file is removed first
    """
    path = Path(path)
    tmp = tmp_path_for(path)
    try:
        fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, FILE_MODE)
        if isinstance(content, bytes):
            f = os.fdopen(fd, "wb")
        else:
            f = os.fdopen(fd, "w", encoding="utf-8", newline="")
        with f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)
    except OSError as e:
        try:
            tmp.unlink()
        except FileNotFoundError:
            pass
        except OSError:
            log.warning("Could not remove temp file %s", tmp)
        raise StorageError("write", path, e) from e


def remove_file(path: Path, missing_ok: bool = False) -> None:
    """Unlink a file, wrapping OS failures in StorageError."""
    try:
        Path(path).unlink()
    except FileNotFoundError:
        if not missing_ok:
            raise
    except OSError as e:
        raise StorageError("remove", path, e) from e
