# tests/conftest.py
import os
import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

ADMIN_KEY = "test-admin-key"

# Настройки читаются при импорте приложения, поэтому задаём их заранее
os.environ["TESTING"] = "true"
os.environ["ADMIN_KEY"] = ADMIN_KEY
os.environ["ADMIN_KEY_HASH"] = ""
os.environ["DATABASE_URL"] = "sqlite://"

# fmt: off
from lookmax import database, models  # noqa: E402
from lookmax.main import app  # noqa: E402

# fmt: on


@pytest.fixture
def test_engine():
    """Отдельная SQLite-база в памяти на каждый тест."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    models.Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(test_engine):
    """Сессия для подготовки данных и проверок в обход API."""
    Session = sessionmaker(bind=test_engine)
    session = Session()
    yield session
    session.close()


@pytest.fixture
def client(test_engine):
    """Переопределяет зависимость get_db для использования тестовой базы."""
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)

    def override_get_db():
        db = TestingSession()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[database.get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def admin_key():
    return ADMIN_KEY
