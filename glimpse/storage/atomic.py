"""
Atomic JSON file helpers.

Writes go to a sibling ``.tmp`` file which is fsynced and then renamed over
the target, so readers only ever see the previous or the new complete
document.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

from glimpse.core.errors import PersistenceError

logger = logging.getLogger(__name__)

TEMP_SUFFIX = ".tmp"


def temp_path_for(path: Path) -> Path:
    """Path of the staging file used while writing ``path``."""
    return path.with_name(path.name + TEMP_SUFFIX)


def write_json_atomic(path: str | Path, data: Any, pretty: bool = True) -> Path:
    """Serialize ``data`` to ``path`` via temp file and rename.

    Args:
        path: Destination file
        data: JSON-serializable data
        pretty: Whether to format with indentation

    Returns:
        The destination path

    Raises:
        PersistenceError: If any step fails; the destination is left untouched
    """
    path = Path(path)
    tmp_path = temp_path_for(path)

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(tmp_path, "w", encoding="utf-8") as f:
            if pretty:
                json.dump(data, f, indent=2, ensure_ascii=False)
            else:
                json.dump(data, f, ensure_ascii=False)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except (OSError, TypeError, ValueError) as e:
        try:
            tmp_path.unlink(missing_ok=True)
        except OSError:
            logger.warning(f"Could not remove temp file {tmp_path}")
        raise PersistenceError(f"Failed to write {path}: {e}", path=str(path)) from e

    return path


def read_json(path: str | Path) -> Any:
    """Read and parse a JSON document.

    Raises:
        FileNotFoundError: If the file does not exist (callers treat this as
            "create new")
        json.JSONDecodeError: If the content is not valid JSON
        PersistenceError: For any other I/O failure
    """
    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (FileNotFoundError, json.JSONDecodeError):
        raise
    except UnicodeDecodeError as e:
        raise json.JSONDecodeError(f"Invalid UTF-8: {e.reason}", "", 0) from e
    except OSError as e:
        raise PersistenceError(f"Failed to read {path}: {e}", path=str(path)) from e


def discard_stale_temp(path: str | Path) -> bool:
    """Remove a leftover temp file from an interrupted write.

    Returns:
        True if a stale file was removed
    """
    tmp_path = temp_path_for(Path(path))
    if not tmp_path.exists():
        return False
    try:
        tmp_path.unlink()
    except OSError as e:
        logger.warning(f"Could not remove stale temp file {tmp_path}: {e}")
        return False
    logger.warning(f"Discarded incomplete write {tmp_path}")
    return True
