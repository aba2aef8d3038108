from country_gdp.exceptions import UpstreamFetchFailure
from country_gdp.schemas import MergedCountry

from conftest import SAMPLE_CATALOG, make_records, seed_countries


def seed_small(session_factory):
    seed_countries(
        session_factory,
        [
            MergedCountry(name="Alpha", capital="A", region="Africa", population=100,
                          currency_code="AAA", exchange_rate=2.0, estimated_gdp=1000.0),
            MergedCountry(name="Bravo", capital="B", region="Europe", population=200,
                          currency_code="BBB", exchange_rate=1.5, estimated_gdp=None),
            MergedCountry(name="Charlie", capital="C", region="Africa", population=300,
                          currency_code="BBB", exchange_rate=3.0, estimated_gdp=1500.0),
            MergedCountry(name="Nigeria", capital="Abuja", region="Africa", population=400,
                          currency_code="NGN", exchange_rate=1600.0, estimated_gdp=500.0),
        ],
    )


def test_root_ok(client):
    r = client.get("/")
    assert r.status_code == 200
    assert "message" in r.json()


def test_filters_sorts_and_pagination(client, session_factory):
    seed_small(session_factory)

    r = client.get("/countries", params={"region": "AFRICA"})
    assert r.status_code == 200
    assert {c["name"] for c in r.json()} == {"Alpha", "Charlie", "Nigeria"}

    r = client.get("/countries", params={"currency": "BBB"})
    assert {c["name"] for c in r.json()} == {"Bravo", "Charlie"}

    r = client.get("/countries", params={"sort": "gdp_desc"})
    names = [c["name"] for c in r.json()]
    assert names == ["Charlie", "Alpha", "Nigeria", "Bravo"]

    r = client.get("/countries", params={"sort": "name_asc", "limit": 1, "offset": 1})
    assert [c["name"] for c in r.json()] == ["Bravo"]


def test_unknown_sort_is_ignored(client, session_factory):
    seed_small(session_factory)
    r = client.get("/countries", params={"sort": "shoe_size"})
    assert r.status_code == 200
    assert len(r.json()) == 4


def test_invalid_limit_is_validation_error(client):
    r = client.get("/countries", params={"limit": 0})
    assert r.status_code == 400
    assert r.json()["error"] == "Validation failed"


def test_country_record_shape(client, session_factory):
    seed_small(session_factory)
    r = client.get("/countries/nIgErIa")
    assert r.status_code == 200
    body = r.json()
    assert body["name"] == "Nigeria"
    assert set(body) >= {
        "id", "name", "capital", "region", "population", "currency_code",
        "exchange_rate", "estimated_gdp", "flag_url", "last_refreshed_at",
    }


def test_country_not_found_error_shape(client):
    r = client.get("/countries/does-not-exist")
    assert r.status_code == 404
    assert r.json() == {"error": "Country not found"}


def test_delete_decrements_status(client, session_factory):
    seed_small(session_factory)
    assert client.get("/status").json()["total_countries"] == 4

    r = client.delete("/countries/nigeria")
    assert r.status_code == 200
    assert "message" in r.json()
    assert client.get("/status").json()["total_countries"] == 3
    assert client.get("/countries/Nigeria").status_code == 404


def test_delete_missing_leaves_status_unchanged(client, session_factory):
    seed_small(session_factory)
    before = client.get("/status").json()

    r = client.delete("/countries/Atlantis")
    assert r.status_code == 404
    assert r.json()["error"] == "Country not found"
    assert client.get("/status").json() == before


def test_status_on_empty_store(client):
    r = client.get("/status")
    assert r.status_code == 200
    assert r.json() == {"total_countries": 0, "last_refreshed_at": None}


def test_refresh_on_empty_store_is_synchronous(client, upstream):
    r = client.post("/countries/refresh")
    assert r.status_code == 200
    body = r.json()
    assert body["message"] == "Countries data refreshed successfully"
    assert body["total_countries"] == len(SAMPLE_CATALOG)
    assert body["last_refreshed_at"]

    status = client.get("/status").json()
    assert status["total_countries"] == len(SAMPLE_CATALOG)

    r = client.get("/countries/image")
    assert r.status_code == 200
    assert r.headers["content-type"] == "image/png"
    assert r.content.startswith(b"\x89PNG")


def test_refresh_with_partial_store_starts_background(client, session_factory, orchestrator):
    seed_countries(session_factory, make_records(10))
    r = client.post("/countries/refresh")
    assert r.status_code == 200
    body = r.json()
    assert body["message"] == "Countries data refresh started in background"
    assert body["total_countries"] == 10

    orchestrator.shutdown(wait=True)
    assert client.get("/status").json()["total_countries"] == 10 + len(SAMPLE_CATALOG)


def test_refresh_upstream_failure_is_503(client, upstream):
    upstream.error = UpstreamFetchFailure("Countries API", "timed out after 10s")
    r = client.post("/countries/refresh")
    assert r.status_code == 503
    assert r.json() == {
        "error": "External data source unavailable",
        "details": "Could not fetch data from Countries API",
    }
    assert client.get("/countries").json() == []


def test_image_404_when_never_rendered(client):
    r = client.get("/countries/image")
    assert r.status_code == 404
    assert r.headers.get("content-type", "").startswith("application/json")
    assert r.json().get("error") == "Summary image not found"


def test_non_ascii_country_lookup_and_delete(client, session_factory):
    seed_countries(session_factory, [
        MergedCountry(name="Åland Islands", region="Europe", population=28875, currency_code="EUR",
                      exchange_rate=0.92, estimated_gdp=40_000_000.0),
    ])

    r = client.get("/countries/Åland Islands")
    assert r.status_code == 200
    assert r.json()["name"] == "Åland Islands"

    r = client.delete("/countries/Åland Islands")
    assert r.status_code == 200
    assert client.get("/status").json()["total_countries"] == 0
    assert client.get("/countries/Åland Islands").status_code == 404


def test_oversized_upstream_value_is_503(client, session_factory, test_settings, monkeypatch):
    from country_gdp.config import get_settings
    from country_gdp.main import app
    from country_gdp.services.refresh import RefreshOrchestrator, get_orchestrator

    from test_fetch_data import COUNTRY_URL, EXCHANGE_URL, fake_get_factory

    config = test_settings.model_copy(update={"COUNTRY_API": COUNTRY_URL, "EXCHANGE_API": EXCHANGE_URL})
    countries = [{"name": "Longcoin", "population": 10, "currencies": [{"code": "ABCDEFGHIJK"}]}]
    monkeypatch.setattr("requests.get", fake_get_factory(countries=countries))

    orch = RefreshOrchestrator(session_factory, config)
    app.dependency_overrides[get_orchestrator] = lambda: orch
    app.dependency_overrides[get_settings] = lambda: config
    try:
        r = client.post("/countries/refresh")
    finally:
        orch.shutdown(wait=True)

    assert r.status_code == 503
    assert r.json()["details"] == "Could not fetch data from Countries API"
    assert client.get("/status").json()["total_countries"] == 0


def test_refresh_and_status_report_the_same_timestamp(client, session_factory):
    r = client.post("/countries/refresh")
    refreshed = r.json()["last_refreshed_at"]

    status = client.get("/status").json()
    assert status["last_refreshed_at"] == refreshed
    assert refreshed.endswith(("+00:00", "Z"))

    country = client.get("/countries/Nigeria").json()
    assert country["last_refreshed_at"] == refreshed
