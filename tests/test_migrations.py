import importlib.util
from pathlib import Path

import pytest
from alembic import command
from alembic.config import Config
from alembic.migration import MigrationContext
from alembic.operations import Operations
from sqlalchemy import create_engine, inspect, text
from sqlalchemy.exc import IntegrityError

from coachspace.config import get_settings
from coachspace.db import models

VERSIONS = Path(__file__).resolve().parents[1] / "coachspace/db/migrations/versions"
REVISIONS = ["0001_initial", "0002_booking_reminded_at"]


def load_migration(revision):
    path = VERSIONS / f"{revision}.py"
    spec = importlib.util.spec_from_file_location(f"migration_{revision}", path)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.fixture()
def connection(tmp_path):
    engine = create_engine(f"sqlite+pysqlite:///{tmp_path / 'migrations.db'}", future=True)
    with engine.begin() as conn:
        yield conn
    engine.dispose()


def run(connection, step):
    context = MigrationContext.configure(connection)
    with Operations.context(context):
        step()


def upgrade_all(connection):
    for revision in REVISIONS:
        run(connection, load_migration(revision).upgrade)


def test_revisions_form_a_chain():
    previous = None
    for revision in REVISIONS:
        migration = load_migration(revision)
        assert migration.revision == revision
        assert migration.down_revision == previous
        previous = revision


def test_upgrade_matches_models(connection):
    upgrade_all(connection)

    inspector = inspect(connection)
    assert {"classes", "bookings", "audit_logs"} <= set(inspector.get_table_names())
    for table in models.Booking.__table__, models.FitnessClass.__table__:
        columns = {column["name"] for column in inspector.get_columns(table.name)}
        assert columns == set(table.columns.keys())
    indexes = {index["name"] for index in inspector.get_indexes("bookings")}
    assert {"uq_booking_active_user_class", "ix_booking_class_status_created"} <= indexes


def test_active_booking_index_ignores_cancelled_rows(connection):
    upgrade_all(connection)
    connection.execute(
        text(
            "INSERT INTO classes (id, name, instructor_id, category, max_participants, "
            "current_participants) VALUES ('c1', 'Yoga', 'coach', 'yoga', 2, 0)"
        )
    )
    insert_booking = text(
        "INSERT INTO bookings (id, class_id, user_id, status, created_at) "
        "VALUES (:id, 'c1', 'u1', :status, '2026-01-01 10:00:00')"
    )
    connection.execute(insert_booking, {"id": "b1", "status": "cancelled"})
    connection.execute(insert_booking, {"id": "b2", "status": "confirmed"})

    with pytest.raises(IntegrityError):
        connection.execute(insert_booking, {"id": "b3", "status": "waitlisted"})


def test_reminded_at_downgrade_keeps_bookings(connection):
    upgrade_all(connection)

    run(connection, load_migration("0002_booking_reminded_at").downgrade)

    columns = {column["name"] for column in inspect(connection).get_columns("bookings")}
    assert "reminded_at" not in columns
    assert "cancellation_reason" in columns


def test_downgrade_drops_schema(connection):
    upgrade_all(connection)

    for revision in reversed(REVISIONS):
        run(connection, load_migration(revision).downgrade)

    assert inspect(connection).get_table_names() == []


def test_alembic_upgrade_with_percent_in_url(tmp_path, monkeypatch):
    url = f"sqlite+pysqlite:///{tmp_path / '100%.db'}"
    monkeypatch.setenv("DATABASE_URL", url)
    get_settings.cache_clear()
    config = Config()
    config.set_main_option("script_location", str(VERSIONS.parent))
    try:
        command.upgrade(config, "head")
    finally:
        get_settings.cache_clear()

    engine = create_engine(url, future=True)
    try:
        with engine.connect() as conn:
            assert MigrationContext.configure(conn).get_current_revision() == REVISIONS[-1]
    finally:
        engine.dispose()
