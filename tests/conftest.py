"""Pytest configuration and shared fixtures for billing tests."""

import os
from datetime import date

# Point settings at an in-memory database and disable the log file BEFORE any
# snt_billing import builds the engine
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["LOG_FILE"] = ""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from snt_billing.api.app import app
from snt_billing.models import Base
from snt_billing.services import get_db
from snt_billing.services.period_service import BillingPeriodService
from snt_billing.services.plot_directory import PlotRegistryService

test_engine = create_engine(
    "sqlite:///:memory:",
    poolclass=StaticPool,
    connect_args={"check_same_thread": False},
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


@pytest.fixture(scope="function")
def db_session():
    """Provide a test database session with all tables created."""
    Base.metadata.create_all(bind=test_engine)
    session = TestingSessionLocal()

    yield session

    session.close()
    Base.metadata.drop_all(bind=test_engine)


@pytest.fixture
def client(db_session):
    """Provide a FastAPI test client bound to the test session."""

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def plots(db_session) -> dict:
    """Three plots: two on Берёзовая, one on Сосновая sharing number 12."""
    registry = PlotRegistryService(db_session)
    return {
        "b12": registry.create_plot(
            "Берёзовая", "12", owner_name="Иванов Иван Иванович", phone="+7 (916) 123-45-67"
        ),
        "b14": registry.create_plot(
            "Берёзовая", "14", owner_name="Петрова Анна Сергеевна", phone="8 903 555-12-34"
        ),
        "s12": registry.create_plot("Сосновая", "12", owner_name="Сидоров Пётр"),
    }


@pytest.fixture
def period(db_session):
    """Draft period covering January 2025."""
    return BillingPeriodService(db_session).create_period(
        "Январь 2025", date(2025, 1, 1), date(2025, 1, 31)
    )


@pytest.fixture
def build_statement():
    """Render statement rows as semicolon CSV with the usual bank header."""

    def _build(rows: list[list[str]], header: list[str] | None = None, bom: bool = False) -> str:
        header = header or ["Дата", "Сумма", "Участок", "Плательщик", "Назначение", "Номер"]
        lines = [";".join(header)] + [";".join(row) for row in rows]
        text = "\r\n".join(lines) + "\r\n"
        return ("\ufeff" + text) if bom else text

    return _build
