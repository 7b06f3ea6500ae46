"""Tests for the settings seeding script."""
from decimal import Decimal

from tipbot import crud, models
from tipbot.database import db_session
from tipbot.seed import _parse_admins, ensure_settings


def test_parse_admins():
    assert _parse_admins(" 1, 2,,3 ") == ["1", "2", "3"]
    assert _parse_admins(None) == []


def test_creates_default_row(session_factory):
    with db_session(session_factory) as db:
        ensure_settings(db, admins=["42"])

    with db_session(session_factory) as db:
        row = crud.get_settings(db)
        assert row.daily_limit == 10
        assert Decimal(row.tip_amount) == Decimal("0.01")
        assert crud.admin_ids(db) == ["42"]


def test_rerun_keeps_single_row_and_custom_values(session_factory):
    with db_session(session_factory) as db:
        row = ensure_settings(db)
        row.daily_limit = 3

    with db_session(session_factory) as db:
        ensure_settings(db, admins=["1", "2"])

    with db_session(session_factory) as db:
        assert db.query(models.Settings).count() == 1
        assert crud.get_settings(db).daily_limit == 3
        assert crud.admin_ids(db) == ["1", "2"]
