"""
Alembic migrations applied to a scratch SQLite file.
"""

from pathlib import Path

import pytest
from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, inspect
from sqlalchemy.orm import sessionmaker

from iplookup.services.rate_limit import increment

pytestmark = pytest.mark.integration

MIGRATIONS_DIR = Path(__file__).resolve().parents[1] / "migrations"


def _alembic_config(url):
    config = Config()
    config.set_main_option("script_location", str(MIGRATIONS_DIR))
    config.set_main_option("sqlalchemy.url", url)
    return config


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite:///{tmp_path / 'migrated.sqlite'}"


def test_upgrade_creates_both_tables(database_url):
    command.upgrade(_alembic_config(database_url), "head")

    engine = create_engine(database_url)
    inspector = inspect(engine)
    assert {"rdap_cache", "rate_limit"} <= set(inspector.get_table_names())
    assert inspector.get_pk_constraint("rdap_cache")["constrained_columns"] == ["ip"]
    assert inspector.get_pk_constraint("rate_limit")["constrained_columns"] == ["client", "day"]
    engine.dispose()


def test_quota_upsert_works_on_migrated_schema(database_url):
    command.upgrade(_alembic_config(database_url), "head")

    engine = create_engine(database_url)
    Session = sessionmaker(bind=engine)
    with Session() as session:
        assert increment(session, "198.51.100.23", "2026-10-19") == 1
        assert increment(session, "198.51.100.23", "2026-10-19") == 2
    engine.dispose()


def test_downgrade_drops_tables(database_url):
    config = _alembic_config(database_url)
    command.upgrade(config, "head")
    command.downgrade(config, "base")

    engine = create_engine(database_url)
    tables = set(inspect(engine).get_table_names())
    assert "rdap_cache" not in tables
    assert "rate_limit" not in tables
    engine.dispose()
