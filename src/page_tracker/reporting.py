"""Simple reporting utilities for CLI output."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Any, Mapping, Optional

from .db import LAST_UPDATE_KEY, LEDGER_KEY, database_connection, fetch_value
from .ledger import TimeLedger


class SummaryPrinter:
    """Render human-readable ledger summaries in the console."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)

    def load_ledger(self) -> TimeLedger:
        with database_connection(self.db_path) as conn:
            raw = fetch_value(conn, LEDGER_KEY)
        ledger = TimeLedger()
        ledger.replace(raw if isinstance(raw, Mapping) else None)
        ledger.cleanup_orphans()
        return ledger

    def print_summary(self, limit: int = 5) -> None:
        ledger = self.load_ledger()
        if not len(ledger):
            print("No time recorded yet.")
            return

        snapshot = ledger.snapshot()
        print("Tracked time")
        print("-" * 40)
        print(f"Total: {format_duration(ledger.grand_total_ms() / 1000)}")
        saved_at = self.last_saved_at()
        if saved_at:
            print(f"Last saved: {saved_at.strftime('%Y-%m-%d %H:%M:%S')}")
        print()

        print("Top files:")
        for file in aggregate_by_file(snapshot)[:limit]:
            print(f"  {file['name'][:30]:<30} {format_duration(file['totalTimeMs'] / 1000)}")

        top_pages = aggregate_top_pages(snapshot)
        if top_pages:
            print()
            print("Top pages:")
            for file_name, page_name, total_ms in top_pages[:limit]:
                print(f"  {file_name[:20]:<20} {page_name[:30]:<30} {format_duration(total_ms / 1000)}")

    def last_saved_at(self) -> Optional[datetime]:
        with database_connection(self.db_path) as conn:
            value = fetch_value(conn, LAST_UPDATE_KEY)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return None
        return datetime.fromtimestamp(value / 1000)


def aggregate_by_file(snapshot: Mapping[str, Any]) -> list[dict[str, Any]]:
    return sorted(snapshot.values(), key=lambda item: item["totalTimeMs"], reverse=True)


def aggregate_top_pages(snapshot: Mapping[str, Any]) -> list[tuple[str, str, int]]:
    rows = [
        (file["name"], page["name"], page["totalTimeMs"])
        for file in snapshot.values()
        for page in file["pages"].values()
        if page["totalTimeMs"] > 0
    ]
    return sorted(rows, key=lambda item: item[2], reverse=True)


def format_duration(seconds: float) -> str:
    total_seconds = int(round(seconds))
    hours, remainder = divmod(total_seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def format_hours_minutes(milliseconds: int) -> str:
    total_minutes = max(0, int(milliseconds)) // 60000
    hours, minutes = divmod(total_minutes, 60)
    return f"{hours}h {minutes}m"
