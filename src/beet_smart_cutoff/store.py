"""Cutoff result storage.

The output file is a single JSON object shared between runs. Each run owns
one top-level key and replaces only that key's value; everything else in the
document is carried over untouched.
"""

import json
import logging
import os
import stat
import tempfile
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from beet_smart_cutoff.models import CutoffDecision, StoreAccessError, StoreCorruptError

logger = logging.getLogger(__name__)


def load_document(path: Path) -> dict[str, Any]:
    """Load the result document, or an empty one if the file does not exist.

    Raises:
        StoreCorruptError: If the file exists but is not a JSON object.
        StoreAccessError: If the file exists but cannot be read.
    """
    try:
        raw = path.read_bytes()
    except FileNotFoundError:
        logger.info("No existing output at %s, starting empty", path)
        return {}
    except OSError as e:
        raise StoreAccessError(f"cannot read {path}: {e}") from e

    try:
        value = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise StoreCorruptError(f"{path} is not valid JSON: {e}") from e

    if not isinstance(value, dict):
        raise StoreCorruptError(
            f"{path} must contain a JSON object, found {type(value).__name__}"
        )

    logger.info("Loaded %d entries from %s", len(value), path)
    return value


def decisions_to_entry(decisions: Iterable[CutoffDecision]) -> dict[str, str | None]:
    """Group name to ISO date (None when skipped), in decision order."""
    return {decision.group: decision.to_json_value() for decision in decisions}


def merge_decisions(
    document: dict[str, Any], key: str, decisions: Iterable[CutoffDecision]
) -> dict[str, Any]:
    """Return a copy of the document with `key` replaced by the decisions.

    Other top-level keys keep their position and value.
    """
    merged = dict(document)
    merged[key] = decisions_to_entry(decisions)
    return merged


def file_mode(path: Path) -> int:
    """Permission bits for a rewrite of `path`.

    An existing file keeps its mode. A new file gets the usual 0666 minus
    the process umask, as `open()` would create it.
    """
    try:
        return stat.S_IMODE(path.stat().st_mode)
    except FileNotFoundError:
        umask = os.umask(0)
        os.umask(umask)
        return 0o666 & ~umask


def write_document(path: Path, document: dict[str, Any]) -> None:
    """Atomically replace the file at `path` with the document.

    The JSON is written to a temporary file in the same directory and renamed
    over the target, so the previous file is never left half written. The
    target's permission bits are carried over to the new file.

    Raises:
        StoreAccessError: If the directory, temporary file or rename fails.
    """
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        mode = file_mode(path)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{path.name}.", suffix=".tmp", dir=path.parent
        )
    except OSError as e:
        raise StoreAccessError(f"cannot write {path}: {e}") from e

    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(document, f, indent=2, ensure_ascii=False)
            f.write("\n")
            f.flush()
            os.fsync(f.fileno())
        os.chmod(tmp_path, mode)
        os.replace(tmp_path, path)
    except OSError as e:
        tmp_path.unlink(missing_ok=True)
        raise StoreAccessError(f"cannot write {path}: {e}") from e
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise

    logger.info("Saved %d entries to %s", len(document), path)


def save_decisions(path: Path, key: str, decisions: Iterable[CutoffDecision]) -> dict[str, Any]:
    """Merge decisions under `key` into the file at `path`.

    The document is re-read right before writing so edits made to other keys
    during the interactive session are kept.

    Returns:
        The document as written.

    Raises:
        StoreCorruptError: If the existing file is not a JSON object.
        StoreAccessError: If the file cannot be read or written.
    """
    document = merge_decisions(load_document(path), key, decisions)
    write_document(path, document)
    return document
