from datetime import datetime, timezone
from typing import Annotated, List, Optional

from pydantic import BaseModel, Field, field_validator

CurrencyCode = Annotated[str, Field(min_length=1, max_length=10)]


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; every stored timestamp is UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class CatalogEntry(BaseModel):
    """One raw country from the catalog source, reduced to the fields we merge.

    Length limits match the countries table, so an oversized upstream value is
    rejected while parsing the fetch rather than during the merge.
    """
    name: str = Field(..., min_length=1, max_length=255)
    capital: Optional[str] = Field(None, max_length=255)
    region: Optional[str] = Field(None, max_length=100)
    population: int = Field(..., ge=0)
    flag: Optional[str] = Field(None, max_length=500)
    currency_codes: List[CurrencyCode] = Field(default_factory=list)


class CountryBase(BaseModel):
    name: str = Field(..., max_length=255)
    capital: Optional[str] = Field(None, max_length=255)
    region: Optional[str] = Field(None, max_length=100)
    population: int = Field(..., ge=0)
    currency_code: Optional[str] = Field(None, max_length=10)
    exchange_rate: Optional[float] = Field(None, gt=0)
    estimated_gdp: Optional[float] = Field(None, ge=0)
    flag_url: Optional[str] = Field(None, max_length=500)


class MergedCountry(CountryBase):
    """Output of the merge step, ready to be upserted."""


class CountryOut(CountryBase):
    id: int
    last_refreshed_at: Optional[datetime] = None

    model_config = {"from_attributes": True}

    @field_validator("last_refreshed_at")
    @classmethod
    def normalize_refreshed_at(cls, value):
        return as_utc(value)


class StatusOut(BaseModel):
    total_countries: int
    last_refreshed_at: Optional[datetime] = None

    @field_validator("last_refreshed_at")
    @classmethod
    def normalize_refreshed_at(cls, value):
        return as_utc(value)


class RefreshOut(StatusOut):
    message: str


class MessageOut(BaseModel):
    message: str
