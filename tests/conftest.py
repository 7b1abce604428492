import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from panel_mapper.core.settings import settings
from panel_mapper.db import Base, get_db, make_engine, seed_default_data
from panel_mapper.main import app
from panel_mapper.repository import FloorPlanRepository


@pytest.fixture
def engine():
    """Fresh in-memory database per test; StaticPool keeps the single connection alive."""
    eng = make_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def session(session_factory):
    db = session_factory()
    seed_default_data(db)
    yield db
    db.close()


@pytest.fixture
def repo(session):
    return FloorPlanRepository(session)


@pytest.fixture
def client(session, session_factory, monkeypatch):
    monkeypatch.setattr(settings, "IP_FILTER_ENABLED", False)

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()
