from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session

from country_gdp import schemas
from country_gdp.config import Settings, get_settings, settings
from country_gdp.database import get_db
from country_gdp.limiter import rate_limit
from country_gdp.services import country_service
from country_gdp.services.refresh import RefreshOrchestrator, get_orchestrator

router = APIRouter()


@router.post(
    "/refresh",
    response_model=schemas.RefreshOut,
    summary="Refresh country, currency, and exchange data",
    description=(
        "Fetches countries and USD exchange rates, recomputes estimated GDP and upserts every country. "
        "An empty database is refreshed synchronously; a partially filled one is refreshed in the "
        "background; a complete one is left alone. The summary image is redrawn after each refresh."
    ),
)
def refresh_countries(
    orchestrator: RefreshOrchestrator = Depends(get_orchestrator),
    _: None = rate_limit(settings.RATE_LIMIT_REFRESH_TIMES, settings.RATE_LIMIT_REFRESH_SECONDS),
):
    outcome = orchestrator.request_refresh()
    return schemas.RefreshOut(
        message=outcome.message,
        total_countries=outcome.total_countries,
        last_refreshed_at=outcome.last_refreshed_at,
    )


@router.get(
    "",
    response_model=List[schemas.CountryOut],
    summary="List countries",
    description=(
        "Returns countries with optional filtering, sorting, and pagination.\n\n"
        "Filters:\n"
        "- region: case-insensitive exact region match (e.g., 'Europe')\n"
        "- currency: currency code (e.g., 'USD', 'NGN')\n\n"
        "Sorting options (sort): name_asc|name_desc|population_asc|population_desc|gdp_asc|gdp_desc. "
        "Countries without an estimated GDP are listed last for GDP sorts; unknown values are ignored.\n\n"
        "Pagination: use limit and offset."
    ),
    response_description="List of countries",
)
def get_all(
    region: Optional[str] = Query(default=None, description="Filter by region (case-insensitive exact match)", examples=["Europe"]),
    currency: Optional[str] = Query(default=None, description="Filter by currency code", examples=["NGN"], max_length=10),
    sort: Optional[str] = Query(default=None, description="Sort order", examples=["gdp_desc"]),
    limit: Optional[int] = Query(default=None, ge=1, le=500, description="Maximum number of records to return (1-500)"),
    offset: Optional[int] = Query(default=None, ge=0, description="Number of records to skip"),
    db: Session = Depends(get_db),
    _: None = rate_limit(settings.RATE_LIMIT_DEFAULT_TIMES, settings.RATE_LIMIT_DEFAULT_SECONDS),
):
    return country_service.list_countries(db, region, currency, sort, limit, offset)


@router.get(
    "/image",
    summary="Get generated summary image",
    description="Returns a PNG summarizing the top 5 GDP countries, total count and last refresh time.",
)
def get_image(
    config: Settings = Depends(get_settings),
    _: None = rate_limit(settings.RATE_LIMIT_IMAGE_TIMES, settings.RATE_LIMIT_IMAGE_SECONDS),
):
    img_path = config.summary_image_path
    if not img_path.exists():
        raise HTTPException(status_code=404, detail="Summary image not found")
    return FileResponse(str(img_path), media_type="image/png")


@router.get(
    "/{name}",
    response_model=schemas.CountryOut,
    summary="Get country by name",
    description="Case-insensitive exact country name match.",
)
def get_one(
    name: str = Path(..., description="Country name", examples=["Nigeria"]),
    db: Session = Depends(get_db),
    _: None = rate_limit(settings.RATE_LIMIT_DEFAULT_TIMES, settings.RATE_LIMIT_DEFAULT_SECONDS),
):
    return country_service.get_country_by_name(db, name)


@router.delete(
    "/{name}",
    response_model=schemas.MessageOut,
    summary="Delete a country by name",
    description="Deletes a country (case-insensitive name match) and updates the cached total.",
)
def delete_country(
    name: str = Path(..., description="Country name", examples=["Nigeria"]),
    db: Session = Depends(get_db),
    _: None = rate_limit(settings.RATE_LIMIT_DEFAULT_TIMES, settings.RATE_LIMIT_DEFAULT_SECONDS),
):
    return country_service.delete_country_by_name(db, name)
