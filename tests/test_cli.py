from datetime import date

from typer.testing import CliRunner

from page_tracker.cli import app
from page_tracker.db import LAST_UPDATE_KEY, LEDGER_KEY, LocalCache
from page_tracker.ledger import TimeLedger

runner = CliRunner()


def _seed(db_path):
    ledger = TimeLedger()
    ledger.ensure_target("F1", "P1", "Design System", "Buttons", 0)
    ledger.ensure_target("F1", "P2", "Design System", "Forms", 0)
    ledger.apply_elapsed("F1", "P1", 3_600_000, 1)
    ledger.apply_elapsed("F1", "P2", 61_000, 2)
    cache = LocalCache(db_path)
    try:
        cache.set(LEDGER_KEY, ledger.snapshot())
        cache.set(LAST_UPDATE_KEY, 1_700_000_000_000)
    finally:
        cache.close()


def test_summary_on_empty_database(tmp_path):
    result = runner.invoke(app, ["summary", "--db", str(tmp_path / "ledger.sqlite3")])

    assert result.exit_code == 0
    assert "No time recorded yet." in result.output


def test_summary_lists_files_and_pages(tmp_path):
    db_path = tmp_path / "ledger.sqlite3"
    _seed(db_path)

    result = runner.invoke(app, ["summary", "--db", str(db_path)])

    assert result.exit_code == 0
    assert "Total: 01:01:01" in result.output
    assert "Design System" in result.output
    assert "Buttons" in result.output
    assert "Last saved:" in result.output


def test_reset_archives_and_clears(tmp_path):
    db_path = tmp_path / "ledger.sqlite3"
    _seed(db_path)

    result = runner.invoke(app, ["reset", "--db", str(db_path), "--yes"])

    assert result.exit_code == 0
    cache = LocalCache(db_path)
    try:
        assert cache.get(LEDGER_KEY) == {}
        archived = cache.get(f"archive:{date.today().isoformat()}")
        assert archived["F1"]["totalTimeMs"] == 3_661_000
    finally:
        cache.close()


def test_reset_aborts_without_confirmation(tmp_path):
    db_path = tmp_path / "ledger.sqlite3"
    _seed(db_path)

    result = runner.invoke(app, ["reset", "--db", str(db_path)], input="n\n")

    assert result.exit_code != 0
    cache = LocalCache(db_path)
    try:
        assert cache.get(LEDGER_KEY)["F1"]["totalTimeMs"] == 3_661_000
    finally:
        cache.close()
