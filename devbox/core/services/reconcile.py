"""
Config reconciliation — converge a JSON document toward a desired patch.

The document usually belongs to a third-party tool and may carry
settings a user added by hand. Reconciliation therefore:

    - touches only the keys and array elements named by the patch
    - matches array elements on an identifying field and merges them
      in place, so re-running never produces duplicates
    - refuses to write over a file it cannot parse
    - writes nothing when the result equals what is already there
    - replaces the file atomically when it does write
"""

from __future__ import annotations

import copy
import json
import logging
from pathlib import Path
from typing import Any

from devbox.core.errors import MalformedExistingDocument, WriteFailure
from devbox.core.models.patch import ArrayUpsert, ConfigPatch
from devbox.core.persistence.atomic import atomic_write_text

logger = logging.getLogger(__name__)

# Documents hold API keys: owner read/write only
DOCUMENT_MODE = 0o600


def _canonical(doc: Any) -> str:
    return json.dumps(doc, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def read_document(path: Path) -> dict[str, Any]:
    """Parse the existing document; a missing or empty file is ``{}``."""
    if not path.exists():
        return {}
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise MalformedExistingDocument(path, f"cannot be read ({e})") from e

    if not raw.strip():
        return {}

    try:
        doc = json.loads(raw)
    except json.JSONDecodeError as e:
        raise MalformedExistingDocument(path, f"not valid JSON ({e})") from e

    if not isinstance(doc, dict):
        raise MalformedExistingDocument(
            path, f"top level is {type(doc).__name__}, expected an object"
        )
    return doc


def _split(key_path: str) -> list[str]:
    parts = [p for p in key_path.split(".") if p]
    if not parts:
        raise ValueError(f"Empty key path: {key_path!r}")
    return parts


def _parent_for(doc: dict[str, Any], parts: list[str], path: Path) -> dict[str, Any]:
    """Walk to the object holding the last key, creating objects on the way."""
    node = doc
    walked: list[str] = []
    for part in parts[:-1]:
        walked.append(part)
        child = node.setdefault(part, {})
        if not isinstance(child, dict):
            raise MalformedExistingDocument(
                path, f"'{'.'.join(walked)}' is {type(child).__name__}, expected an object"
            )
        node = child
    return node


def set_key(doc: dict[str, Any], key_path: str, value: Any, path: Path) -> None:
    """Assign ``value`` at a dotted key path, leaving siblings alone."""
    parts = _split(key_path)
    _parent_for(doc, parts, path)[parts[-1]] = copy.deepcopy(value)


def upsert_element(doc: dict[str, Any], upsert: ArrayUpsert, path: Path) -> None:
    """Merge ``upsert.element`` into the array, matching on ``upsert.key``."""
    parts = _split(upsert.path)
    parent = _parent_for(doc, parts, path)
    array = parent.setdefault(parts[-1], [])
    if not isinstance(array, list):
        raise MalformedExistingDocument(
            path, f"'{upsert.path}' is {type(array).__name__}, expected an array"
        )

    wanted = upsert.element[upsert.key]
    for existing in array:
        if (
            isinstance(existing, dict)
            and upsert.key in existing
            and existing[upsert.key] == wanted
        ):
            existing.update(copy.deepcopy(upsert.element))
            return
    array.append(copy.deepcopy(upsert.element))


def apply_patch(doc: dict[str, Any], patch: ConfigPatch, path: Path) -> dict[str, Any]:
    """Return a new document with ``patch`` merged in; ``doc`` is not modified."""
    result = copy.deepcopy(doc)
    for key_path, value in patch.set.items():
        set_key(result, key_path, value, path)
    for upsert in patch.upserts:
        upsert_element(result, upsert, path)
    return result


def reconcile(path: Path, patch: ConfigPatch) -> bool:
    """Bring the document at ``path`` in line with ``patch``.

    Returns:
        True if the file was written, False if it already matched.

    Raises:
        MalformedExistingDocument: The existing file can't be merged into.
        WriteFailure: The new document could not be persisted.
    """
    current = read_document(path)
    desired = apply_patch(current, patch, path)

    if path.exists() and _canonical(desired) == _canonical(current):
        logger.info("%s is up to date", path)
        return False

    content = json.dumps(desired, indent=2, ensure_ascii=False) + "\n"
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        atomic_write_text(path, content, mode=DOCUMENT_MODE)
    except OSError as e:
        raise WriteFailure(path, e) from e

    logger.info("Updated %s", path)
    return True
