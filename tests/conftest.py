import sys
from collections.abc import Callable, Generator
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional, Sequence

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from backend.config import Base  # noqa: E402
import backend.config as app_config  # noqa: E402
import backend.main as app_main  # noqa: E402
from backend.api.dependencies import get_db  # noqa: E402
from backend.auth.jwt import get_current_resident  # noqa: E402
from backend.core.clock import get_now  # noqa: E402
# Import the full models module so all tables (including audit_logs) register with Base metadata.
from backend.models import models as _all_models  # noqa: E402,F401
from backend.models.models import Poll, Resident  # noqa: E402
from backend.services import polls as poll_service  # noqa: E402
from backend.services import residents as resident_service  # noqa: E402

FROZEN_NOW = datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc)


def _sqlite_engine(path: Path):
    return create_engine(f"sqlite:///{path}", connect_args={"check_same_thread": False})


@pytest.fixture(scope="session", autouse=True)
def _configure_global_test_db(tmp_path_factory):
    """Configure the app-wide SessionLocal/engine so TestClient uses a DB with all tables."""
    db_dir = tmp_path_factory.mktemp("globaldb")
    engine = _sqlite_engine(db_dir / "app.db")
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine)
    app_config.SessionLocal = SessionLocal
    app_config.engine = engine
    app_main.SessionLocal = SessionLocal
    app_main.engine = engine
    yield
    engine.dispose()


@pytest.fixture
def db_session(tmp_path) -> Generator[Session, None, None]:
    """Provide a fresh SQLite database for each test."""
    engine = _sqlite_engine(tmp_path / "test.db")
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture
def now() -> datetime:
    return FROZEN_NOW


@pytest.fixture
def create_resident(db_session: Session) -> Callable[..., Resident]:
    counter = {"value": 0}

    def _create(
        email: Optional[str] = None,
        *,
        is_resident: bool = True,
        is_renter: bool = False,
        is_board_member: bool = False,
        is_dev: bool = False,
        password: Optional[str] = "changeme123",
        first_name: str = "Test",
        last_name: Optional[str] = None,
    ) -> Resident:
        counter["value"] += 1
        resident = resident_service.create_resident(
            db_session,
            first_name=first_name,
            last_name=last_name or f"Resident {counter['value']}",
            email=email or f"resident{counter['value']}@example.com",
            address=f"{counter['value']} Main Street",
            is_resident=is_resident,
            is_renter=is_renter,
            is_board_member=is_board_member,
            is_dev=is_dev,
            password=password,
        )
        db_session.commit()
        return resident

    return _create


@pytest.fixture
def create_poll(db_session: Session, now: datetime) -> Callable[..., Poll]:
    def _create(
        options: Sequence[str] = ("A", "B", "C"),
        *,
        title: str = "Community poll",
        allow_multiple_votes: bool = False,
        expires_at: Optional[datetime] = None,
        category: Optional[str] = None,
        created_by: str = "board",
        created_at: Optional[datetime] = None,
    ) -> Poll:
        poll = poll_service.create_poll(
            db_session,
            title=title,
            options=list(options),
            allow_multiple_votes=allow_multiple_votes,
            expires_at=expires_at if expires_at is not None else now + timedelta(days=7),
            category=category,
            created_by=created_by,
            now=created_at or now,
        )
        db_session.commit()
        return poll

    return _create


@pytest.fixture
def api_client(db_session: Session, now: datetime):
    """TestClient bound to the per-test session and frozen clock.

    Call it with the resident that should be treated as authenticated.
    """
    from fastapi.testclient import TestClient

    from backend.main import app

    clients: list[TestClient] = []

    def _override_get_db():
        try:
            yield db_session
        finally:
            pass

    def _build(resident: Optional[Resident] = None) -> TestClient:
        app.dependency_overrides[get_db] = _override_get_db
        app.dependency_overrides[get_now] = lambda: now
        if resident is not None:
            app.dependency_overrides[get_current_resident] = lambda: resident
        else:
            app.dependency_overrides.pop(get_current_resident, None)
        client = TestClient(app)
        clients.append(client)
        return client

    yield _build

    for client in clients:
        client.close()
    app.dependency_overrides.clear()
