"""Load a worklist from a registry dump."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from pydantic import ValidationError as SchemaError

from npmquality.models.schemas import PackageEntry

logger = logging.getLogger(__name__)


def load_worklist(path: Path, offset: int = 0) -> list[PackageEntry]:
    """Read package entries from a registry dump such as all.json.

    The dump maps package names to entries and may carry an `_updated`
    marker, which is ignored. Entries keep the order of the file.

    Args:
        path: Path to the dump.
        offset: Number of leading entries to skip.

    Returns:
        Package entries, in file order.

    Raises:
        ValueError: If the file is not a JSON object.
    """
    logger.info(f"Loading {path}...")
    try:
        data = json.loads(path.read_text())
    except json.JSONDecodeError as e:
        raise ValueError(f"Could not parse {path}: {e}") from e
    if not isinstance(data, dict):
        raise ValueError(f"{path} must contain a JSON object of package entries")

    data.pop("_updated", None)
    names = list(data)
    logger.info(f"All packages: {len(names)}")
    if offset:
        logger.info(f"Offset {offset}")
        names = names[offset:]

    entries = []
    for name in names:
        raw = data[name]
        if not isinstance(raw, dict):
            logger.warning(f"Skipping malformed entry {name}")
            continue
        raw.setdefault("name", name)
        try:
            entries.append(PackageEntry.model_validate(raw))
        except SchemaError as e:
            logger.warning(f"Skipping invalid entry {name}: {e}")
    logger.info(f"All packages after offset: {len(entries)}")
    return entries
