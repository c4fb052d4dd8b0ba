"""Nested file/page time ledger and its reconciliation rules."""

from __future__ import annotations

import logging
import math
from typing import Any, Mapping, Optional

from .errors import InvalidElapsed
from .models import FileRecord, PageRecord
from .normalization import normalize_file_name, normalize_page_name

logger = logging.getLogger(__name__)


class TimeLedger:
    """Per-file, per-page accumulated durations.

    File totals are derived data: they are recomputed from the pages after
    every mutation and every load, never trusted as stored.
    """

    def __init__(self) -> None:
        self._files: dict[str, FileRecord] = {}
        self.revision = 0

    def __len__(self) -> int:
        return len(self._files)

    def get_file(self, file_id: str) -> Optional[FileRecord]:
        return self._files.get(file_id)

    def get_page(self, file_id: str, page_id: str) -> Optional[PageRecord]:
        file = self._files.get(file_id)
        if file is None:
            return None
        return file.pages.get(page_id)

    def ensure_target(
        self,
        file_id: str,
        page_id: str,
        file_name: Optional[str],
        page_name: Optional[str],
        now: int,
    ) -> PageRecord:
        file_label = normalize_file_name(file_name)
        page_label = normalize_page_name(page_name)

        changed = False
        file = self._files.get(file_id)
        if file is None:
            file = FileRecord(id=file_id, name=file_label, last_updated=now)
            self._files[file_id] = file
            logger.debug("Created file record %s (%s)", file_id, file_label)
            changed = True
        elif file.name != file_label:
            file.name = file_label
            changed = True

        page = file.pages.get(page_id)
        if page is None:
            page = PageRecord(
                id=page_id,
                name=page_label,
                file_id=file_id,
                total_time_ms=0,
                last_updated=now,
            )
            file.pages[page_id] = page
            logger.debug("Created page record %s in file %s", page_id, file_id)
            changed = True
        elif page.name != page_label:
            page.name = page_label
            changed = True
        if page.file_id != file_id:
            page.file_id = file_id
            changed = True
        if changed:
            self.revision += 1
        return page

    def apply_elapsed(self, file_id: str, page_id: str, delta_ms: int, now: int) -> int:
        """Credit ``delta_ms`` to a page and return the file's new total."""
        if delta_ms <= 0:
            raise InvalidElapsed(delta_ms)
        file = self._files.get(file_id)
        if file is None or page_id not in file.pages:
            raise KeyError(f"No ledger entry for {file_id}/{page_id}")
        page = file.pages[page_id]
        page.total_time_ms = int(page.total_time_ms) + int(delta_ms)
        page.last_updated = now
        page.file_id = file_id
        file.last_updated = now
        self.revision += 1
        return file.recompute_total()

    def cleanup_orphans(self) -> int:
        """Drop orphaned or malformed records and return how many went away."""
        removed = 0
        for file_key in list(self._files):
            file = self._files[file_key]
            if not _valid_identifier(file.id) or file.id != file_key:
                logger.warning("Dropping malformed file entry %r", file_key)
                removed += 1 + len(file.pages)
                del self._files[file_key]
                continue

            removed += _reconcile_pages(file)
            if not file.pages:
                logger.info("Dropping file %s with no valid pages", file_key)
                removed += 1
                del self._files[file_key]
                continue
            if not isinstance(file.name, str):
                file.name = normalize_file_name(None)
            file.recompute_total()
        if removed:
            self.revision += 1
        return removed

    def recompute_totals(self) -> None:
        for file in self._files.values():
            file.recompute_total()

    def grand_total_ms(self) -> int:
        return sum(file.recompute_total() for file in self._files.values())

    def snapshot(self) -> dict[str, Any]:
        self.recompute_totals()
        return {key: file.to_dict() for key, file in self._files.items()}

    def replace(self, raw: Any) -> int:
        """Load a wire-format ledger, returning the count of unreadable entries.

        Structurally readable records are kept as found so that
        :meth:`cleanup_orphans` can judge them; callers run it afterwards.
        """
        self._files = {}
        self.revision += 1
        if not isinstance(raw, Mapping):
            if raw is not None:
                logger.warning("Ignoring stored ledger of type %s", type(raw).__name__)
            return 0
        skipped = 0
        for file_key, file_raw in raw.items():
            if not isinstance(file_raw, Mapping):
                skipped += 1
                continue
            pages_raw = file_raw.get("pages")
            pages: dict[str, PageRecord] = {}
            if isinstance(pages_raw, Mapping):
                for page_key, page_raw in pages_raw.items():
                    if isinstance(page_raw, Mapping):
                        pages[str(page_key)] = PageRecord.from_raw(page_raw)
                    else:
                        skipped += 1
            last_updated = file_raw.get("lastUpdated")
            self._files[str(file_key)] = FileRecord(
                id=file_raw.get("id"),
                name=file_raw.get("name"),
                last_updated=last_updated if isinstance(last_updated, int) else 0,
                pages=pages,
            )
        return skipped

    def clear(self) -> None:
        self._files = {}
        self.revision += 1


def _reconcile_pages(file: FileRecord) -> int:
    removed = 0
    composite_prefix = f"{file.id}_"
    for page_key in list(file.pages):
        page = file.pages.get(page_key)
        if page is None:
            continue
        if not _valid_page(page) or page.file_id != file.id:
            logger.warning("Dropping orphaned page %r from file %s", page_key, file.id)
            del file.pages[page_key]
            removed += 1
            continue
        page.total_time_ms = int(page.total_time_ms)
        if page_key == page.id:
            continue
        if page_key == composite_prefix + page.id:
            # Legacy "<fileId>_<pageId>" key: keep the larger of the duplicates.
            del file.pages[page_key]
            existing = file.pages.get(page.id)
            if existing is None:
                file.pages[page.id] = page
                continue
            removed += 1
            if (
                not _valid_page(existing)
                or existing.file_id != file.id
                or page.total_time_ms > int(existing.total_time_ms)
            ):
                file.pages[page.id] = page
            continue
        logger.warning("Dropping page stored under mismatched key %r", page_key)
        del file.pages[page_key]
        removed += 1
    return removed


def _valid_identifier(value: Any) -> bool:
    return isinstance(value, str) and bool(value)


def _valid_page(page: PageRecord) -> bool:
    total = page.total_time_ms
    return (
        _valid_identifier(page.id)
        and isinstance(page.name, str)
        and isinstance(total, (int, float))
        and not isinstance(total, bool)
        and math.isfinite(total)
        and total >= 0
    )
