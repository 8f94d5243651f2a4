"""
End-to-end tests of the mealdesk command line against a file database.
"""

import logging

import pytest

from mealdesk.__main__ import main, parse_args
from mealdesk.core.config import reset_settings
from mealdesk.core.isolation import IsolationLevel

CSV_CONTENT = """SoupName,MainCourseName,DessertName,Date,MaxOrderDate,Price
Tomato soup,Goulash,Pancakes,24/11/2099,24/11/2099 10:00,4.50
"""


@pytest.fixture
def database(tmp_path, monkeypatch):
    """Point the CLI at a fresh shared-cache SQLite file and restore logging afterwards."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///file:{tmp_path / 'cli.db'}?cache=shared&uri=true")
    monkeypatch.setenv("ADMIN_PASSWORD", "admin")
    reset_settings()
    yield tmp_path
    reset_settings()
    for handler in root.handlers[:]:
        if handler not in handlers:
            root.removeHandler(handler)
    root.setLevel(level)


def test_parse_isolation_levels():
    args = parse_args(["demo", "--isolation-level", "read committed", "--isolation-level", "SERIALIZABLE"])

    assert args.isolation_level == [IsolationLevel.READ_COMMITTED, IsolationLevel.SERIALIZABLE]


def test_rejects_bad_date():
    with pytest.raises(SystemExit):
        parse_args(["week", "2025-11-24"])


def test_invalid_configuration(monkeypatch, capsys):
    monkeypatch.setenv("LOG_LEVEL", "LOUD")
    reset_settings()
    try:
        assert main(["init-db"]) == 1
    finally:
        reset_settings()

    assert "Configuration error" in capsys.readouterr().err


def test_init_db_and_demo(database, capsys):
    """Test creating a store and running the demonstration at two levels."""
    assert main(["init-db"]) == 0
    assert "Database initialized" in capsys.readouterr().out

    status = main([
        "demo", "--isolation-level", "READ_COMMITTED",
        "--isolation-level", "REPEATABLE_READ", "--stall", "0",
    ])

    out = capsys.readouterr().out
    assert status == 0
    assert "[READ COMMITTED]" in out
    assert "[REPEATABLE READ]" in out


def test_order_flow(database, capsys):
    """Test importing a menu, ordering, picking up and reporting."""
    csv_path = database / "lunches.csv"
    csv_path.write_text(CSV_CONTENT, encoding="utf-8")

    assert main(["init-db"]) == 0
    assert main(["import-csv", str(csv_path)]) == 0
    assert main(["order", "--username", "admin", "--password", "admin", "24/11/2099"]) == 0
    assert main(["pick", "--username", "admin", "--password", "admin", "24/11/2099"]) == 0
    assert main(["week", "24/11/2099"]) == 0

    out = capsys.readouterr().out
    assert "Imported 1 lunches" in out
    assert "Ordered lunch 1 from date 24/11/2099" in out
    assert "Lunch for 24/11/2099 is now picked" in out
    assert "Soup: Tomato soup" in out


def test_rejected_request(database, capsys):
    assert main(["init-db"]) == 0

    status = main(["order", "--username", "admin", "--password", "wrong", "24/11/2099"])

    assert status == 1
    assert "Incorrect password!" in capsys.readouterr().err


def test_missing_csv(database, capsys):
    assert main(["init-db"]) == 0

    assert main(["import-csv", str(database / "missing.csv")]) == 1
    assert "File not found" in capsys.readouterr().err


def test_unreachable_database(database, monkeypatch, capsys):
    """Test that a store that cannot be opened fails the command up front."""
    # A directory cannot be opened as an SQLite database
    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{database}")
    reset_settings()

    assert main(["week", "24/11/2099"]) == 1

    assert "Database unreachable" in capsys.readouterr().err
