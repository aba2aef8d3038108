import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Tuple

import requests

from country_gdp.exceptions import UpstreamFetchFailure
from country_gdp.schemas import CatalogEntry

logger = logging.getLogger("country_gdp.fetch")

COUNTRY_SOURCE = "Countries API"
EXCHANGE_SOURCE = "Exchange rates API"


def _get_json(source: str, url: str, timeout: float):
    try:
        resp = requests.get(url, timeout=timeout)
        resp.raise_for_status()
        return resp.json()
    except requests.Timeout as exc:
        raise UpstreamFetchFailure(source, f"timed out after {timeout}s") from exc
    except requests.RequestException as exc:
        raise UpstreamFetchFailure(source, str(exc)) from exc
    except ValueError as exc:
        raise UpstreamFetchFailure(source, "response was not valid JSON") from exc


def _parse_entry(raw) -> CatalogEntry:
    if not isinstance(raw, dict):
        raise ValueError("entry is not an object")
    name = raw.get("name")
    population = raw.get("population")
    if not name or not isinstance(name, str):
        raise ValueError("entry has no name")
    if isinstance(population, bool) or not isinstance(population, int) or population < 0:
        raise ValueError(f"{name!r} has no valid population")

    codes = []
    for cur in raw.get("currencies") or []:
        code = (cur or {}).get("code") if isinstance(cur, dict) else None
        if code and isinstance(code, str):
            codes.append(code.strip().upper())

    return CatalogEntry(
        name=name,
        capital=raw.get("capital") or None,
        region=raw.get("region") or None,
        population=population,
        flag=raw.get("flag") or None,
        currency_codes=codes,
    )


def fetch_catalog(url: str, timeout: float) -> List[CatalogEntry]:
    """Fetch the country catalog snapshot."""
    payload = _get_json(COUNTRY_SOURCE, url, timeout)
    if not isinstance(payload, list):
        raise UpstreamFetchFailure(COUNTRY_SOURCE, "expected a list of countries")
    try:
        return [_parse_entry(raw) for raw in payload]
    except ValueError as exc:
        raise UpstreamFetchFailure(COUNTRY_SOURCE, f"malformed entry: {exc}") from exc


def fetch_rates(url: str, timeout: float) -> Dict[str, float]:
    """Fetch the exchange-rate snapshot as {currency code: rate vs base}."""
    payload = _get_json(EXCHANGE_SOURCE, url, timeout)
    rates = payload.get("rates") if isinstance(payload, dict) else None
    if not isinstance(rates, dict):
        raise UpstreamFetchFailure(EXCHANGE_SOURCE, "payload has no 'rates' object")

    snapshot: Dict[str, float] = {}
    for code, value in rates.items():
        try:
            rate = float(value)
        except (TypeError, ValueError):
            logger.debug("Dropping non-numeric rate for %s: %r", code, value)
            continue
        if rate > 0:
            snapshot[str(code).upper()] = rate
    return snapshot


def fetch_snapshots(country_url: str, exchange_url: str, timeout: float) -> Tuple[List[CatalogEntry], Dict[str, float]]:
    """Fetch both sources in parallel. Either failing fails the whole fetch."""
    with ThreadPoolExecutor(max_workers=2, thread_name_prefix="fetch") as pool:
        catalog_future = pool.submit(fetch_catalog, country_url, timeout)
        rates_future = pool.submit(fetch_rates, exchange_url, timeout)
        catalog = catalog_future.result()
        rates = rates_future.result()
    logger.info("Fetched %d countries and %d exchange rates", len(catalog), len(rates))
    return catalog, rates
