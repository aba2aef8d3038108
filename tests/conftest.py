import os
import sys
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

# Ensure project root is on sys.path when pytest runs from a different CWD.
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if project_root not in sys.path:
    sys.path.insert(0, project_root)

from country_gdp import crud, models  # noqa: E402
from country_gdp.config import Settings  # noqa: E402
from country_gdp.schemas import CatalogEntry, MergedCountry  # noqa: E402
from country_gdp.services.refresh import RefreshOrchestrator  # noqa: E402


SAMPLE_CATALOG = [
    CatalogEntry(name="Nigeria", capital="Abuja", region="Africa", population=206139589,
                 flag="https://flagcdn.com/ng.svg", currency_codes=["NGN"]),
    CatalogEntry(name="Ghana", capital="Accra", region="Africa", population=31072940,
                 flag="https://flagcdn.com/gh.svg", currency_codes=["GHS"]),
    CatalogEntry(name="Germany", capital="Berlin", region="Europe", population=83240525,
                 flag="https://flagcdn.com/de.svg", currency_codes=["EUR"]),
    CatalogEntry(name="Antarctica", region="Polar", population=1000, currency_codes=[]),
    CatalogEntry(name="Unknownia", capital="Nowhere", region="Oceania", population=5000, currency_codes=["XYZ"]),
]

SAMPLE_RATES = {"NGN": 1600.0, "GHS": 15.0, "EUR": 0.92, "USD": 1.0}


class FakeUpstream:
    """Stands in for the parallel fetch of both sources."""

    def __init__(self, catalog=None, rates=None):
        self.catalog = list(SAMPLE_CATALOG if catalog is None else catalog)
        self.rates = dict(SAMPLE_RATES if rates is None else rates)
        self.error = None
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return list(self.catalog), dict(self.rates)


def seed_countries(session_factory, records, refreshed_at=None):
    refreshed_at = refreshed_at or datetime(2024, 1, 1, tzinfo=timezone.utc)
    with session_factory() as db, db.begin():
        crud.upsert_countries(db, records, refreshed_at)
        crud.RefreshMetadataStore(db).set(crud.count_countries(db), refreshed_at)


def make_records(n, prefix="Country"):
    return [
        MergedCountry(
            name=f"{prefix} {i:03d}",
            region="Africa" if i % 2 else "Europe",
            population=1000 * (i + 1),
            currency_code="USD",
            exchange_rate=1.0,
            estimated_gdp=1_000_000.0 * (i + 1),
        )
        for i in range(n)
    ]


@pytest.fixture
def test_settings(tmp_path):
    return Settings(
        DATABASE_URL=f"sqlite:///{tmp_path / 'test.db'}",
        CACHE_DIR=tmp_path / "cache",
        REFRESH_COMPLETE_THRESHOLD=250,
    )


@pytest.fixture
def session_factory(test_settings):
    engine = create_engine(test_settings.DATABASE_URL, connect_args={"check_same_thread": False})
    models.Base.metadata.create_all(bind=engine)
    yield sessionmaker(bind=engine, autoflush=False)
    engine.dispose()


@pytest.fixture
def upstream():
    return FakeUpstream()


@pytest.fixture
def orchestrator(session_factory, test_settings, upstream):
    orch = RefreshOrchestrator(
        session_factory,
        test_settings,
        fetcher=upstream,
        executor=ThreadPoolExecutor(max_workers=1, thread_name_prefix="test-refresh"),
    )
    yield orch
    orch.shutdown(wait=True)


@pytest.fixture
def client(session_factory, test_settings, orchestrator):
    from fastapi.testclient import TestClient

    from country_gdp.config import get_settings
    from country_gdp.database import get_db
    from country_gdp.main import app
    from country_gdp.services.refresh import get_orchestrator

    def _get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_settings] = lambda: test_settings
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    yield TestClient(app)
    app.dependency_overrides.clear()
