"""
Notification id counter.

Every push notification carries an increasing id so the mobile client
does not collapse distinct notifications into one.
"""

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)

# Used by the mobile app for its launch notification
RESERVED_ID = 999


def next_id(current: int) -> int:
    """Return the id following ``current``, skipping the reserved one."""
    value = current + 1
    if value == RESERVED_ID:
        value += 1
    return value


@runtime_checkable
class NotificationCounter(Protocol):
    """Source of notification ids."""

    async def next(self) -> int:
        """
        Advance the counter.

        Returns
        -------
        int
            The new id.
        """
        ...


class MemoryCounter:
    """In-memory counter, lost on restart."""

    def __init__(self, start: int = 0):
        self.value = start
        self._lock = asyncio.Lock()

    async def next(self) -> int:
        async with self._lock:
            self.value = next_id(self.value)
            return self.value


class FileCounter:
    """
    Counter persisted as a ``{"id": n}`` JSON document.

    The read-modify-write cycle is serialized with a lock so concurrent
    senders never hand out the same id.
    """

    def __init__(self, path: str | Path):
        """
        Initialize the counter.

        Parameters
        ----------
        path : str | Path
            Location of the JSON file. Created on first use.
        """
        self.path = Path(path)
        self._lock = asyncio.Lock()

    def _read(self) -> int:
        """Read the stored id, 0 when the file does not exist yet."""
        if not self.path.exists():
            logger.info("Counter file %s not found, starting from 0", self.path)
            return 0

        with open(self.path, encoding="utf-8") as f:
            data = json.load(f)

        if not isinstance(data, dict):
            raise ValueError(f"Counter file {self.path} does not hold a JSON object")
        return int(data.get("id", 0))

    def _write(self, value: int) -> None:
        """Replace the file atomically so a crash never leaves it truncated."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(f"{self.path.name}.tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump({"id": value}, f)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, self.path)

    async def next(self) -> int:
        """
        Advance and persist the counter.

        Returns
        -------
        int
            The new id.

        Raises
        ------
        OSError
            If the file cannot be read or written.
        ValueError
            If the file does not hold a JSON object with an integer id.
        """
        async with self._lock:
            value = next_id(self._read())
            self._write(value)
            logger.debug("Notification id advanced to %d", value)
            return value
