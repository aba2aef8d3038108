from datetime import datetime
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import delete, func, literal, select
from sqlalchemy.orm import Session

from country_gdp import models, schemas

SORT_COLUMNS = {
    "gdp_desc": (models.Country.estimated_gdp, "desc"),
    "gdp_asc": (models.Country.estimated_gdp, "asc"),
    "population_desc": (models.Country.population, "desc"),
    "population_asc": (models.Country.population, "asc"),
    "name_asc": (models.Country.name, "asc"),
    "name_desc": (models.Country.name, "desc"),
}


def _ci_equals(column, value: str):
    # Fold both sides in SQL; SQLite lower() only folds ASCII
    return func.lower(column) == func.lower(literal(value.strip()))


def _name_matches(name: str):
    return _ci_equals(models.Country.name, name)


def get_country(db: Session, name: str) -> Optional[models.Country]:
    return db.scalars(select(models.Country).where(_name_matches(name)).limit(1)).first()


def get_countries(db: Session, region=None, currency=None, sort=None, limit=None, offset=None) -> List[models.Country]:
    query = select(models.Country)
    if region:
        query = query.where(_ci_equals(models.Country.region, region))
    if currency:
        query = query.where(_ci_equals(models.Country.currency_code, currency))

    # Unknown sort keys fall through to the store's default order
    if sort in SORT_COLUMNS:
        column, direction = SORT_COLUMNS[sort]
        ordering = column.desc() if direction == "desc" else column.asc()
        if sort.startswith("gdp_"):
            # NULL GDP always last, whichever the direction
            query = query.order_by(column.is_(None), ordering)
        else:
            query = query.order_by(ordering)

    if offset is not None:
        query = query.offset(offset)
    if limit is not None:
        query = query.limit(limit)
    return list(db.scalars(query).all())


def top_by_gdp(db: Session, n: int) -> List[models.Country]:
    query = (
        select(models.Country)
        .where(models.Country.estimated_gdp.is_not(None))
        .order_by(models.Country.estimated_gdp.desc())
        .limit(n)
    )
    return list(db.scalars(query).all())


def count_countries(db: Session) -> int:
    return db.scalar(select(func.count(models.Country.id))) or 0


def delete_country(db: Session, name: str) -> int:
    """Delete every country whose name matches case-insensitively. Caller owns the transaction."""
    result = db.execute(delete(models.Country).where(_name_matches(name)).execution_options(synchronize_session=False))
    return result.rowcount or 0


def upsert_countries(db: Session, records: Iterable[schemas.MergedCountry], refreshed_at: datetime) -> Tuple[int, int]:
    """Insert or update countries keyed by exact name. Caller owns the transaction.

    Returns (inserted, updated).
    """
    existing = {c.name: c for c in db.scalars(select(models.Country)).all()}
    inserted = updated = 0
    for record in records:
        values = record.model_dump()
        country = existing.get(record.name)
        if country is None:
            country = models.Country(**values, last_refreshed_at=refreshed_at)
            db.add(country)
            existing[record.name] = country
            inserted += 1
        else:
            for field, value in values.items():
                setattr(country, field, value)
            country.last_refreshed_at = refreshed_at
            updated += 1
    db.flush()
    return inserted, updated


# -----------------------------
# App-level metadata operations
# -----------------------------
class RefreshMetadataStore:
    """Accessor for the singleton refresh metadata row."""

    def __init__(self, db: Session):
        self.db = db

    def _row(self) -> Optional[models.RefreshMeta]:
        return self.db.get(models.RefreshMeta, models.RefreshMeta.SINGLETON_ID)

    def get(self) -> schemas.StatusOut:
        meta = self._row()
        if meta is None:
            return schemas.StatusOut(total_countries=0, last_refreshed_at=None)
        return schemas.StatusOut(total_countries=meta.total_countries or 0, last_refreshed_at=meta.last_refreshed_at)

    def set(self, total: int, refreshed_at: Optional[datetime] = None) -> schemas.StatusOut:
        """Write the cached count, and the refresh time when given. Caller owns the transaction."""
        meta = self._row()
        if meta is None:
            meta = models.RefreshMeta(id=models.RefreshMeta.SINGLETON_ID, total_countries=total)
            self.db.add(meta)
        meta.total_countries = total
        if refreshed_at is not None:
            meta.last_refreshed_at = refreshed_at
        self.db.flush()
        return schemas.StatusOut(total_countries=meta.total_countries, last_refreshed_at=meta.last_refreshed_at)
