"""
Audit trail storage backends.

Backends are append-only: there is no update or delete operation anywhere in
this module. Write failures surface as AuditWriteFailure; deciding what to do
about them is the recorder's job.
"""

import asyncio
import logging
import os
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterable, List, Union

from pydantic import ValidationError

from agriauth.audit.models import AuditEntry, AuditPage, AuditQuery
from agriauth.core.errors import AuditWriteFailure

logger = logging.getLogger(__name__)


def paginate(newest_first: Iterable[AuditEntry], query: AuditQuery) -> AuditPage:
    """Filter, order most-recent-first and slice one page.

    ``newest_first`` must already be in reverse insertion order so that
    entries sharing a timestamp keep their recording order.
    """
    matching = [entry for entry in newest_first if query.matches(entry)]
    matching.sort(key=lambda entry: entry.timestamp, reverse=True)
    return AuditPage(
        entries=matching[query.offset:query.offset + query.limit],
        total=len(matching),
        page=query.page,
        limit=query.limit,
    )


class AuditStorage(ABC):
    """Persistence port for audit entries."""

    @abstractmethod
    async def append(self, entry: AuditEntry) -> AuditEntry:
        """Durably store ``entry`` and return it.

        Raises:
            AuditWriteFailure: If the entry could not be stored.
        """

    @abstractmethod
    async def query(self, query: AuditQuery) -> AuditPage:
        """Return one page of matching entries, most recent first."""

    @abstractmethod
    async def count(self) -> int:
        """Number of stored entries."""


class InMemoryAuditStorage(AuditStorage):
    """Process-local storage for tests and single-process development.

    Entries are copied in and out, so no caller holds a reference into the
    stored trail.
    """

    def __init__(self):
        self._entries: List[AuditEntry] = []

    async def append(self, entry: AuditEntry) -> AuditEntry:
        self._entries.append(entry.model_copy(deep=True))
        return entry

    async def query(self, query: AuditQuery) -> AuditPage:
        return paginate(reversed(self._entries), query).model_copy(deep=True)

    async def count(self) -> int:
        return len(self._entries)


class JsonLinesAuditStorage(AuditStorage):
    """Append-only JSON Lines file, one entry per line.

    Existing lines are never rewritten. Each append is flushed and fsynced
    before it is reported as stored.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._write_lock = threading.Lock()

    async def append(self, entry: AuditEntry) -> AuditEntry:
        line = entry.model_dump_json() + "\n"
        try:
            await asyncio.to_thread(self._write_line, line)
        except OSError as e:
            raise AuditWriteFailure(f"Cannot append to {self.path}: {e}") from e
        return entry

    async def query(self, query: AuditQuery) -> AuditPage:
        entries = await asyncio.to_thread(self._read_entries)
        return paginate(reversed(entries), query)

    async def count(self) -> int:
        entries = await asyncio.to_thread(self._read_entries)
        return len(entries)

    def _write_line(self, line: str) -> None:
        with self._write_lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "a", encoding="utf-8") as file:
                file.write(line)
                file.flush()
                os.fsync(file.fileno())

    def _read_entries(self) -> List[AuditEntry]:
        if not self.path.exists():
            return []

        entries: List[AuditEntry] = []
        # Raw bytes: invalid UTF-8 fails validation like any other torn line
        with open(self.path, "rb") as file:
            for line_number, line in enumerate(file, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    entries.append(AuditEntry.model_validate_json(line))
                except ValidationError as e:
                    # A torn final line after a crash; keep serving the rest
                    logger.warning(
                        "Skipping unreadable audit line",
                        extra={"path": str(self.path), "line_number": line_number, "error": str(e)},
                    )
        return entries
