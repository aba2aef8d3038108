import random
from typing import Callable, Dict, Iterable, List, Optional

from country_gdp.schemas import CatalogEntry, MergedCountry

GDP_MULTIPLIER_MIN = 1000.0
GDP_MULTIPLIER_MAX = 2000.0

# OS entropy; unaffected by random.seed()
_rng = random.SystemRandom()


def gdp_multiplier() -> float:
    """Uniform draw from [1000, 2000)."""
    return GDP_MULTIPLIER_MIN + _rng.random() * (GDP_MULTIPLIER_MAX - GDP_MULTIPLIER_MIN)


def merge_entry(
    entry: CatalogEntry,
    rates: Dict[str, float],
    multiplier: Callable[[], float] = gdp_multiplier,
) -> MergedCountry:
    currency_code: Optional[str] = entry.currency_codes[0] if entry.currency_codes else None
    exchange_rate: Optional[float] = None
    estimated_gdp: Optional[float]

    if currency_code is None:
        estimated_gdp = 0
    else:
        exchange_rate = rates.get(currency_code)
        if exchange_rate:
            estimated_gdp = entry.population * multiplier() / exchange_rate
        else:
            exchange_rate = None
            estimated_gdp = None

    return MergedCountry(
        name=entry.name,
        capital=entry.capital,
        region=entry.region,
        population=entry.population,
        currency_code=currency_code,
        exchange_rate=exchange_rate,
        estimated_gdp=estimated_gdp,
        flag_url=entry.flag,
    )


def merge_snapshots(
    catalog: Iterable[CatalogEntry],
    rates: Dict[str, float],
    multiplier: Callable[[], float] = gdp_multiplier,
) -> List[MergedCountry]:
    """Combine a catalog snapshot and a rate snapshot into one record per country.

    Records are independent: the currency is the first one the country lists,
    GDP is population * U / rate with a fresh U per record, 0 for countries
    without a currency and None when the currency has no known rate.
    """
    return [merge_entry(entry, rates, multiplier) for entry in catalog]
