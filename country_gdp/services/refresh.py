import logging
import threading
import time
from concurrent.futures import Executor, ThreadPoolExecutor
from datetime import datetime, timezone
from enum import Enum
from functools import lru_cache
from typing import Callable, Dict, List, Optional, Tuple

from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from country_gdp import crud, schemas
from country_gdp.config import Settings, get_settings
from country_gdp.database import SessionLocal
from country_gdp.exceptions import CountryApiError, RenderFailure, StoreFailure
from country_gdp.services.fetch_data import fetch_snapshots
from country_gdp.services.image_generator import render_summary_from_store
from country_gdp.services.merge import merge_snapshots

logger = logging.getLogger("country_gdp.refresh")

Fetcher = Callable[[], Tuple[List[schemas.CatalogEntry], Dict[str, float]]]


class RefreshMode(str, Enum):
    ALREADY_UP_TO_DATE = "already-up-to-date"
    BACKGROUND_STARTED = "background-started"
    IN_PROGRESS = "in-progress"
    SYNCHRONOUS = "synchronous"


MESSAGES = {
    RefreshMode.ALREADY_UP_TO_DATE: "Countries data already up to date",
    RefreshMode.BACKGROUND_STARTED: "Countries data refresh started in background",
    RefreshMode.IN_PROGRESS: "Countries data refresh already in progress",
    RefreshMode.SYNCHRONOUS: "Countries data refreshed successfully",
}


class RefreshOutcome(BaseModel):
    mode: RefreshMode
    total_countries: int
    last_refreshed_at: Optional[datetime] = None

    @property
    def message(self) -> str:
        return MESSAGES[self.mode]


class RefreshOrchestrator:
    """Decide whether and how to refresh, then drive fetch, merge and the upsert transaction.

    Policy, by the number of stored countries:
      * >= REFRESH_COMPLETE_THRESHOLD: nothing to do.
      * > 0: reply with the current metadata and refresh on the background executor.
      * 0: refresh synchronously and reply with the new metadata.

    Only one pipeline run is in flight per orchestrator. A background request
    arriving during a run is reported as in progress; a synchronous one waits.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        config: Settings,
        fetcher: Optional[Fetcher] = None,
        renderer: Optional[Callable[[], object]] = None,
        executor: Optional[Executor] = None,
    ):
        self.session_factory = session_factory
        self.config = config
        self.fetcher = fetcher or self._fetch_upstream
        self.renderer = renderer or (lambda: render_summary_from_store(session_factory, config))
        self._executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix="refresh")
        self._in_flight = threading.Lock()

    def _fetch_upstream(self):
        return fetch_snapshots(self.config.COUNTRY_API, self.config.EXCHANGE_API, self.config.FETCH_TIMEOUT_SECONDS)

    def _current_state(self) -> Tuple[int, schemas.StatusOut]:
        with self.session_factory() as db:
            return crud.count_countries(db), crud.RefreshMetadataStore(db).get()

    def request_refresh(self) -> RefreshOutcome:
        count, meta = self._current_state()
        threshold = self.config.REFRESH_COMPLETE_THRESHOLD

        if count >= threshold:
            logger.info("Refresh skipped: %d countries stored (threshold %d)", count, threshold)
            return RefreshOutcome(
                mode=RefreshMode.ALREADY_UP_TO_DATE, total_countries=count, last_refreshed_at=meta.last_refreshed_at
            )

        if count > 0:
            if not self._in_flight.acquire(blocking=False):
                logger.info("Refresh requested while another run is in flight; not scheduling")
                return RefreshOutcome(
                    mode=RefreshMode.IN_PROGRESS, total_countries=count, last_refreshed_at=meta.last_refreshed_at
                )
            try:
                self._executor.submit(self._run_in_background)
            except RuntimeError:
                self._in_flight.release()
                raise
            logger.info("Background refresh scheduled (%d countries stored)", count)
            return RefreshOutcome(
                mode=RefreshMode.BACKGROUND_STARTED, total_countries=count, last_refreshed_at=meta.last_refreshed_at
            )

        with self._in_flight:
            result = self.run_pipeline()
        return RefreshOutcome(
            mode=RefreshMode.SYNCHRONOUS,
            total_countries=result.total_countries,
            last_refreshed_at=result.last_refreshed_at,
        )

    def _run_in_background(self) -> None:
        try:
            self.run_pipeline()
        except CountryApiError as exc:
            logger.error("Background refresh failed: %s", exc)
        except Exception:
            logger.exception("Background refresh crashed")
        finally:
            self._in_flight.release()

    def run_pipeline(self) -> schemas.StatusOut:
        """Fetch both sources, merge, and upsert everything plus metadata in one transaction.

        Raises UpstreamFetchFailure or StoreFailure; in both cases nothing is written.
        The summary image is redrawn after commit and its failure is only logged.
        """
        started = time.monotonic()
        catalog, rates = self.fetcher()
        records = merge_snapshots(catalog, rates)
        refreshed_at = datetime.now(timezone.utc)

        try:
            with self.session_factory() as db, db.begin():
                inserted, updated = crud.upsert_countries(db, records, refreshed_at)
                total = crud.count_countries(db)
                meta = crud.RefreshMetadataStore(db).set(total, refreshed_at)
        except SQLAlchemyError as exc:
            logger.error("Refresh transaction rolled back: %s", exc)
            raise StoreFailure("Could not save refreshed countries") from exc

        logger.info(
            "Refresh committed: %d inserted, %d updated, %d total (%.0f ms)",
            inserted,
            updated,
            total,
            (time.monotonic() - started) * 1000,
        )
        self._render_summary()
        return meta

    def _render_summary(self) -> None:
        try:
            self.renderer()
        except RenderFailure as exc:
            logger.warning("Summary image not updated: %s", exc)
        except Exception:
            logger.exception("Unexpected error while rendering summary image")

    def shutdown(self, wait: bool = False) -> None:
        self._executor.shutdown(wait=wait)


@lru_cache(maxsize=1)
def get_orchestrator() -> RefreshOrchestrator:
    return RefreshOrchestrator(SessionLocal, get_settings())
