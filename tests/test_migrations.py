from pathlib import Path

import sqlalchemy as sa
from alembic import command
from alembic.config import Config
from sqlalchemy.orm import Session

import backend.config as app_config
from backend.models.models import Fee, Payment, Poll, PollVote, Resident

ROOT = Path(__file__).resolve().parents[1]


def _alembic_config() -> Config:
    config = Config(str(ROOT / "backend" / "alembic.ini"))
    config.set_main_option("script_location", str(ROOT / "backend" / "migrations"))
    return config


def test_baseline_migration_creates_portal_tables(tmp_path, monkeypatch):
    db_url = f"sqlite:///{tmp_path / 'migrations.db'}"
    monkeypatch.setattr(app_config.settings, "database_url", db_url, raising=False)

    command.upgrade(_alembic_config(), "0001_baseline")

    engine = sa.create_engine(db_url)
    try:
        inspector = sa.inspect(engine)
        assert {"residents", "polls", "poll_votes", "fees", "payments", "audit_logs"} <= set(inspector.get_table_names())
        vote_constraints = {item["name"] for item in inspector.get_unique_constraints("poll_votes")}
        vote_indexes = {item["name"] for item in inspector.get_indexes("poll_votes") if item.get("unique")}
        assert "uq_poll_votes_poll_user" in vote_constraints | vote_indexes
        payment_columns = {column["name"] for column in inspector.get_columns("payments")}
        assert "metadata" in payment_columns

        with Session(engine) as session:
            for model in (Resident, Poll, PollVote, Fee, Payment):
                session.query(model).all()
    finally:
        engine.dispose()


def test_baseline_migration_is_reversible(tmp_path, monkeypatch):
    db_url = f"sqlite:///{tmp_path / 'reversible.db'}"
    monkeypatch.setattr(app_config.settings, "database_url", db_url, raising=False)
    config = _alembic_config()

    command.upgrade(config, "head")
    command.downgrade(config, "base")

    engine = sa.create_engine(db_url)
    try:
        assert set(sa.inspect(engine).get_table_names()) <= {"alembic_version"}
    finally:
        engine.dispose()
