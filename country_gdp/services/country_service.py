import logging
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from country_gdp import crud, models, schemas
from country_gdp.exceptions import CountryNotFound, StoreFailure

logger = logging.getLogger("country_gdp")

VALID_SORTS = set(crud.SORT_COLUMNS)


def list_countries(
    db: Session,
    region: Optional[str] = None,
    currency: Optional[str] = None,
    sort: Optional[str] = None,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
) -> List[models.Country]:
    if sort is not None and sort not in VALID_SORTS:
        logger.debug("Ignoring unknown sort key %r", sort)
        sort = None
    return crud.get_countries(db, region, currency, sort, limit, offset)


def get_country_by_name(db: Session, name: str) -> models.Country:
    country = crud.get_country(db, name)
    if not country:
        raise CountryNotFound(name)
    return country


def delete_country_by_name(db: Session, name: str) -> dict:
    """Delete a country and rewrite the cached count in the same transaction."""
    try:
        with db.begin():
            affected = crud.delete_country(db, name)
            if affected:
                crud.RefreshMetadataStore(db).set(crud.count_countries(db))
    except SQLAlchemyError as exc:
        raise StoreFailure(f"Could not delete {name!r}") from exc

    if not affected:
        raise CountryNotFound(name)
    logger.info("Deleted %d row(s) matching %r", affected, name)
    return {"message": "Country deleted successfully"}


def get_status(db: Session) -> schemas.StatusOut:
    return crud.RefreshMetadataStore(db).get()
