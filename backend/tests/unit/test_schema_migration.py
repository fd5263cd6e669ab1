from __future__ import annotations

import importlib.util
from pathlib import Path

from alembic.migration import MigrationContext
from alembic.operations import Operations
from sqlalchemy import UniqueConstraint, create_engine, inspect

from membership.db.base import Base

VERSIONS_DIR = Path(__file__).resolve().parents[2] / "migrations" / "versions"
TABLES = ("users", "sessions", "posts", "attachments")


def _load_migration():
    path = next(VERSIONS_DIR.glob("*_create_membership_tables.py"))
    module_spec = importlib.util.spec_from_file_location("create_membership_tables", path)
    module = importlib.util.module_from_spec(module_spec)
    module_spec.loader.exec_module(module)
    return module


def _unique_shape(engine):
    insp = inspect(engine)
    shape = {}
    for table in TABLES:
        indexes = {
            (ix["name"], tuple(ix["column_names"]), bool(ix["unique"]))
            for ix in insp.get_indexes(table)
        }
        uniques = {tuple(uc["column_names"]) for uc in insp.get_unique_constraints(table)}
        shape[table] = (indexes, uniques)
    return shape


def test_migration_and_metadata_build_the_same_indexes(tmp_path):
    migrated = create_engine(f"sqlite:///{tmp_path/'migrated.sqlite'}")
    declared = create_engine(f"sqlite:///{tmp_path/'declared.sqlite'}")
    try:
        with migrated.begin() as conn:
            with Operations.context(MigrationContext.configure(conn)):
                _load_migration().upgrade()
        Base.metadata.create_all(bind=declared)

        assert _unique_shape(migrated) == _unique_shape(declared)
    finally:
        migrated.dispose()
        declared.dispose()


def test_email_is_unique_through_a_single_index():
    users = Base.metadata.tables["users"]
    email_indexes = [ix for ix in users.indexes if "email" in ix.columns]
    assert [(ix.name, ix.unique) for ix in email_indexes] == [("ix_users_email", True)]
    assert not [c for c in users.constraints if isinstance(c, UniqueConstraint)]
