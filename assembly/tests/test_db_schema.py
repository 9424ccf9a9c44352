"""Schema integrity tests for the migrated database."""
from __future__ import annotations

from pathlib import Path

import pytest

sqlalchemy = pytest.importorskip("sqlalchemy")
alembic_command = pytest.importorskip("alembic.command")
alembic_config_module = pytest.importorskip("alembic.config")

sa = sqlalchemy
command = alembic_command
Config = alembic_config_module.Config


@pytest.fixture(scope="session")
def alembic_config(tmp_path_factory: pytest.TempPathFactory) -> Config:
    """Provide Alembic config bound to a temporary SQLite database."""

    project_root = Path(__file__).resolve().parents[2]
    db_path = tmp_path_factory.mktemp("db") / "schema.db"

    config = Config(str(project_root / "alembic.ini"))
    config.set_main_option("sqlalchemy.url", f"sqlite:///{db_path}")
    config.set_main_option("script_location", str(project_root / "migrations"))
    return config


@pytest.fixture(scope="session")
def migrated_engine(alembic_config: Config):
    """Run migrations against SQLite and yield an engine."""

    command.upgrade(alembic_config, "head")
    engine = sa.create_engine(alembic_config.get_main_option("sqlalchemy.url"))
    try:
        yield engine
    finally:
        engine.dispose()


def test_tables_exist(migrated_engine: sa.Engine) -> None:
    tables = set(sa.inspect(migrated_engine).get_table_names())
    assert {
        "assemblies",
        "members",
        "units",
        "proxies",
        "proxy_units",
        "verification_challenges",
        "attendance_records",
        "votes",
        "vote_options",
        "ballots",
    }.issubset(tables)


def test_unique_constraints(migrated_engine: sa.Engine) -> None:
    inspector = sa.inspect(migrated_engine)
    unique_expectations = {
        "members": {"uq_members_assembly_document": {"assembly_id", "document_number"}},
        "units": {"uq_units_assembly_number": {"assembly_id", "number"}},
        "attendance_records": {"uq_attendance_records_unit": {"unit_id"}},
        "ballots": {"uq_ballots_vote_unit": {"vote_id", "unit_id"}},
        "vote_options": {"uq_vote_options_vote_position": {"vote_id", "position"}},
    }

    for table, expected in unique_expectations.items():
        found = {
            constraint["name"]: set(constraint["column_names"])
            for constraint in inspector.get_unique_constraints(table)
        }
        for name, columns in expected.items():
            assert found.get(name) == columns


def test_single_approved_proxy_index(migrated_engine: sa.Engine) -> None:
    indexes = {index["name"]: index for index in sa.inspect(migrated_engine).get_indexes("proxies")}
    index = indexes["uq_proxies_principal_approved"]
    assert index["unique"]
    assert index["column_names"] == ["principal_id"]


def test_partial_index_allows_history(migrated_engine: sa.Engine) -> None:
    with migrated_engine.begin() as connection:
        connection.execute(sa.text("INSERT INTO assemblies (id, name) VALUES ('a', 'A')"))
        connection.execute(
            sa.text(
                "INSERT INTO members (id, assembly_id, full_name, document_number)"
                " VALUES ('p', 'a', 'P', 'D-1'), ('r', 'a', 'R', 'D-2')"
            )
        )
        for proxy_id, status in (("x1", "REVOKED"), ("x2", "REVOKED"), ("x3", "APPROVED")):
            connection.execute(
                sa.text(
                    "INSERT INTO proxies (id, assembly_id, principal_id, representative_kind,"
                    " representative_member_id, type, status)"
                    " VALUES (:id, 'a', 'p', 'INTERNAL', 'r', 'PDF', :status)"
                ),
                {"id": proxy_id, "status": status},
            )

    with pytest.raises(sa.exc.IntegrityError):
        with migrated_engine.begin() as connection:
            connection.execute(
                sa.text(
                    "INSERT INTO proxies (id, assembly_id, principal_id, representative_kind,"
                    " representative_member_id, type, status)"
                    " VALUES ('x4', 'a', 'p', 'INTERNAL', 'r', 'PDF', 'APPROVED')"
                )
            )


def test_unit_rights_holder_check(migrated_engine: sa.Engine) -> None:
    with pytest.raises(sa.exc.IntegrityError):
        with migrated_engine.begin() as connection:
            connection.execute(sa.text("INSERT OR IGNORE INTO assemblies (id, name) VALUES ('b', 'B')"))
            connection.execute(
                sa.text(
                    "INSERT OR IGNORE INTO members (id, assembly_id, full_name, document_number)"
                    " VALUES ('o', 'b', 'O', 'D-9')"
                )
            )
            connection.execute(
                sa.text(
                    "INSERT INTO units (id, assembly_id, number, coefficient, owner_id,"
                    " holder_kind, holder_member_id, holder_external_name)"
                    " VALUES ('u', 'b', '1', 0.5, 'o', 'INTERNAL', 'o', 'Someone')"
                )
            )
