"""JSON file persistence for the incremental-fetch checkpoint."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Any

from cgm_sync.errors import CheckpointWriteError
from cgm_sync.model import Checkpoint
from cgm_sync.timestamps import parse_instant, utc_now

logger = logging.getLogger("cgm_sync.checkpoint")

# Older checkpoint files used these names.
_LEGACY_KEYS: dict[str, str] = {
    "lastGuid": "lastRecordId",
    "patientId": "identity",
}


class CheckpointStore:
    """Read and overwrite the checkpoint file.

    ``load`` never raises: anything unreadable is treated as "no checkpoint",
    which makes the next cycle a full fetch.  ``save`` replaces the file in one
    rename so a crash never leaves a half-written checkpoint behind.
    """

    def __init__(
        self, path: Path, clock: Callable[[], datetime] = utc_now
    ) -> None:
        self._path = path
        self._clock = clock

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> Checkpoint | None:
        """Return the stored checkpoint or None if absent or unreadable."""
        if not self._path.exists():
            logger.info("No checkpoint at %s, next fetch is full", self._path)
            return None
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
            checkpoint = _checkpoint_from_json(raw)
        except (OSError, ValueError, TypeError) as exc:
            logger.warning("Ignoring unreadable checkpoint %s: %s", self._path, exc)
            return None
        if checkpoint.last_reading_time is not None:
            logger.info(
                "Loaded checkpoint: last reading %s",
                checkpoint.last_reading_time.isoformat(),
            )
        return checkpoint

    def save(self, checkpoint: Checkpoint) -> Checkpoint:
        """Stamp ``saved_at`` and overwrite the checkpoint file.

        Args:
            checkpoint: State to persist.

        Returns:
            The checkpoint as written.

        Raises:
            CheckpointWriteError: If the file cannot be written.
        """
        stamped = replace(checkpoint, saved_at=self._clock())
        text = json.dumps(stamped.to_json(), indent=2) + "\n"
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self._path.name}.", dir=self._path.parent
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    fh.write(text)
                os.replace(tmp_name, self._path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise CheckpointWriteError(
                f"Failed to save checkpoint {self._path}: {exc}"
            ) from exc
        logger.debug("Checkpoint saved to %s", self._path)
        return stamped


def _checkpoint_from_json(raw: Any) -> Checkpoint:
    if not isinstance(raw, dict):
        raise ValueError("checkpoint must be a JSON object")
    data = {_LEGACY_KEYS.get(k, k): v for k, v in raw.items()}

    last_time = data.get("lastReadingTime")
    saved_at = data.get("savedAt")
    return Checkpoint(
        last_record_id=_optional_str(data.get("lastRecordId")),
        last_reading_time=parse_instant(last_time) if last_time else None,
        identity=_optional_str(data.get("identity")),
        saved_at=parse_instant(saved_at) if saved_at else utc_now(),
    )


def _optional_str(value: object) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None
