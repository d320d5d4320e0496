"""Installation id - a random id persisted once per user."""

from __future__ import annotations

import uuid
from pathlib import Path

import structlog

logger = structlog.get_logger()

INSTALLATION_ID_FILE = "installation_id"


def load_installation_id(state_dir: Path) -> str:
    """Return the stored installation id, creating it on first run.

    An unreadable or malformed file is replaced. If the id cannot be
    persisted, a fresh id is still returned for this process.
    """
    path = state_dir / INSTALLATION_ID_FILE
    try:
        existing = path.read_text(encoding="utf-8").strip()
    except FileNotFoundError:
        existing = ""
    except OSError as exc:
        logger.warning("installation_id_unreadable", path=str(path), error=str(exc))
        existing = ""

    if existing:
        try:
            return str(uuid.UUID(existing))
        except ValueError:
            logger.warning("installation_id_malformed", path=str(path))

    new_id = str(uuid.uuid4())
    try:
        state_dir.mkdir(parents=True, exist_ok=True)
        path.write_text(new_id + "\n", encoding="utf-8")
        logger.info("installation_id_created", path=str(path))
    except OSError as exc:
        logger.warning("installation_id_not_persisted", path=str(path), error=str(exc))
    return new_id
