from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from country_gdp import schemas
from country_gdp.config import settings
from country_gdp.database import get_db
from country_gdp.limiter import rate_limit
from country_gdp.services import country_service

router = APIRouter()


@router.get(
    "",
    response_model=schemas.StatusOut,
    summary="API/data status",
    description="Returns the number of countries recorded at the last refresh or delete, and the last refresh time.",
)
def get_status(
    db: Session = Depends(get_db),
    _: None = rate_limit(settings.RATE_LIMIT_DEFAULT_TIMES, settings.RATE_LIMIT_DEFAULT_SECONDS),
):
    return country_service.get_status(db)
