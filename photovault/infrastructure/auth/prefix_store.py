"""
Local persistence for the signed-in account.

The JSON file plays the part of the device's private preferences: it holds
the account label, its identity id, and the storage prefix so the prefix
is computed once and reused across restarts.
"""

import json
import logging
import os
from pathlib import Path
from typing import Optional

from ...core.media.identity import AccountRecord

logger = logging.getLogger(__name__)


class JsonFilePrefixStore:
    """Durable prefix store backed by a small JSON file."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    def load(self) -> Optional[AccountRecord]:
        try:
            with open(self._path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return None
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(
                "Ignoring unreadable account file",
                extra={"path": str(self._path), "error": str(e)}
            )
            return None

        if not data.get("label") or not data.get("prefix"):
            return None

        return AccountRecord(
            label=data["label"],
            prefix=data["prefix"],
            identity_id=data.get("identity_id"),
        )

    def save(self, record: AccountRecord) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(
                {
                    "label": record.label,
                    "prefix": record.prefix,
                    "identity_id": record.identity_id,
                },
                f,
                indent=2,
            )
        # replace atomically so a crash never leaves half a file
        os.replace(tmp_path, self._path)
        logger.debug("Saved account record", extra={"path": str(self._path)})

    def clear(self) -> None:
        try:
            os.remove(self._path)
        except FileNotFoundError:
            pass


class InMemoryPrefixStore:
    """Prefix store for tests and mock mode."""

    def __init__(self, record: Optional[AccountRecord] = None) -> None:
        self._record = record
        self.save_count = 0

    def load(self) -> Optional[AccountRecord]:
        return self._record

    def save(self, record: AccountRecord) -> None:
        self._record = record
        self.save_count += 1

    def clear(self) -> None:
        self._record = None
