"""Catalog records, the render session and the catalog fetcher."""

import logging
import math
from datetime import date
from typing import Any, Iterable, Optional

import httpx
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from ..core.config import ClientSettings, client_settings
from .api import ApiClient
from .errors import CatalogFetchError

logger = logging.getLogger(__name__)

# Undated tours sort ahead of every dated one
UNDATED = date.min


def _blank_to_none(v: Any) -> Any:
    if isinstance(v, str) and not v.strip():
        return None
    return v


def _parse_date(v: Any) -> Optional[date]:
    """ISO date or datetime text to a date; anything unreadable is treated as missing."""
    v = _blank_to_none(v)
    if v is None or isinstance(v, date):
        return v
    if isinstance(v, str):
        try:
            return date.fromisoformat(v.strip()[:10])
        except ValueError:
            return None
    return None


def _parse_amount(v: Any) -> Optional[float]:
    v = _blank_to_none(v)
    if v is None or isinstance(v, bool):
        return None
    try:
        amount = float(v)
    except (TypeError, ValueError):
        return None
    if math.isnan(amount) or math.isinf(amount):
        return None
    return amount


class PriceOption(BaseModel):
    """One labelled price of a tour."""

    model_config = ConfigDict(extra="ignore")

    price: Optional[float] = None
    description: Optional[str] = None
    price_order: int = 0

    @field_validator("price", mode="before")
    @classmethod
    def tolerant_price(cls, v: Any) -> Optional[float]:
        return _parse_amount(v)

    @field_validator("price_order", mode="before")
    @classmethod
    def tolerant_order(cls, v: Any) -> int:
        amount = _parse_amount(v)
        return 0 if amount is None else int(amount)


class ProgramDay(BaseModel):
    """One itinerary day of a tour."""

    model_config = ConfigDict(extra="ignore")

    day: Optional[int] = None
    programm: str = ""
    image_url: Optional[str] = None


class Inclusion(BaseModel):
    model_config = ConfigDict(extra="ignore")

    item: str = ""
    type: str = "included"


class TourRecord(BaseModel):
    """
    A catalog entry as the backend returns it.

    Parsing is tolerant: unknown keys are ignored, empty strings become
    ``None`` and unreadable dates or prices count as missing. Only the id
    is mandatory.
    """

    model_config = ConfigDict(extra="ignore")

    id: int
    title: str = ""
    description: Optional[str] = None
    short_description: Optional[str] = None
    image_url: Optional[str] = None
    price: Optional[float] = None
    prices: list[PriceOption] = []
    programs: list[ProgramDay] = []
    inclusions: list[Inclusion] = []
    duration: Optional[str] = None
    location: Optional[str] = None
    date_start: Optional[date] = None
    date_end: Optional[date] = None
    max_participants: Optional[int] = None
    current_participants: Optional[int] = None
    status: Optional[str] = None

    @field_validator("title", mode="before")
    @classmethod
    def title_text(cls, v: Any) -> str:
        return "" if v is None else str(v)

    @field_validator("description", "short_description", "image_url", "duration", "location", "status", mode="before")
    @classmethod
    def optional_text(cls, v: Any) -> Any:
        return _blank_to_none(v)

    @field_validator("date_start", "date_end", mode="before")
    @classmethod
    def tolerant_date(cls, v: Any) -> Optional[date]:
        return _parse_date(v)

    @field_validator("price", mode="before")
    @classmethod
    def tolerant_price(cls, v: Any) -> Optional[float]:
        return _parse_amount(v)

    @field_validator("prices", "programs", "inclusions", mode="before")
    @classmethod
    def record_list(cls, v: Any) -> list:
        if not isinstance(v, list):
            return []
        return [item for item in v if isinstance(item, dict)]

    @field_validator("max_participants", "current_participants", mode="before")
    @classmethod
    def tolerant_count(cls, v: Any) -> Optional[int]:
        amount = _parse_amount(v)
        return None if amount is None else int(amount)

    @property
    def display_price(self) -> Optional[float]:
        """The cheapest listed price, else the legacy single price."""
        listed = [option.price for option in self.prices if option.price is not None]
        if listed:
            return min(listed)
        return self.price


def coerce_tour(raw: Any) -> Optional[TourRecord]:
    """
    A :class:`TourRecord` from a record or a raw mapping.

    Returns ``None`` for a missing, id-less or malformed record.
    """
    if raw is None:
        return None
    if isinstance(raw, TourRecord):
        return raw
    if not isinstance(raw, dict):
        return None
    try:
        return TourRecord.model_validate(raw)
    except ValidationError:
        return None


def sort_tours(tours: Iterable[TourRecord]) -> list[TourRecord]:
    """Stable ascending sort by start date; undated tours first."""
    return sorted(tours, key=lambda tour: tour.date_start or UNDATED)


class RenderSession:
    """
    The sorted catalog and the grid's current page for one catalog load.

    ``current_page`` is 1-based and always within ``[1, max(1, page_count)]``.
    """

    def __init__(self, tours: Iterable[TourRecord], tours_per_page: int = 6, current_page: int = 1):
        if tours_per_page < 1:
            raise ValueError("tours_per_page must be positive")
        self.tours = sort_tours(tours)
        self.tours_per_page = tours_per_page
        self._current_page = 1
        self.current_page = current_page

    @property
    def page_count(self) -> int:
        return math.ceil(len(self.tours) / self.tours_per_page)

    @property
    def current_page(self) -> int:
        return self._current_page

    @current_page.setter
    def current_page(self, page: int) -> None:
        self._current_page = min(max(1, int(page)), max(1, self.page_count))

    def page_slice(self, page: Optional[int] = None) -> list[TourRecord]:
        """Tours shown on ``page`` (the current page by default)."""
        if page is None:
            page = self.current_page
        start = (page - 1) * self.tours_per_page
        if start < 0:
            return []
        return self.tours[start:start + self.tours_per_page]

    @property
    def tour_ids(self) -> list[int]:
        return [tour.id for tour in self.tours]

    def __len__(self) -> int:
        return len(self.tours)

    def __repr__(self) -> str:
        return f"<RenderSession(tours={len(self.tours)}, page={self.current_page}/{self.page_count})>"


class CatalogFetcher:
    """Fetches the active catalog from the backend."""

    def __init__(self, api: Optional[ApiClient] = None, settings: Optional[ClientSettings] = None):
        self.settings = settings or (api.settings if api else client_settings)
        self.api = api or ApiClient(self.settings)

    async def fetch_catalog(self) -> list[TourRecord]:
        """
        Fetch active tours, sorted by start date.

        Records that cannot be read are skipped and logged.

        Raises:
            CatalogFetchError: On network failure, non-2xx status or a body that is not a list
        """
        try:
            response = await self.api.get("tours", params={"status": "active"})
        except httpx.HTTPError as e:
            logger.error("Catalog request failed", extra={"error": str(e)})
            raise CatalogFetchError(f"Catalog request failed: {e}") from e

        if not response.ok:
            logger.error("Catalog request rejected", extra={"status_code": response.status_code})
            raise CatalogFetchError(
                f"Catalog request returned HTTP {response.status_code}",
                status_code=response.status_code,
            )

        if not isinstance(response.data, list):
            logger.error("Catalog response is not a list", extra={"body_type": type(response.data).__name__})
            raise CatalogFetchError("Catalog response is not a list of tours")

        tours = []
        for raw in response.data:
            tour = coerce_tour(raw)
            if tour is None:
                logger.error("Skipping unreadable catalog record", extra={"record": repr(raw)[:200]})
                continue
            tours.append(tour)

        logger.info("Catalog fetched", extra={"count": len(tours)})
        return sort_tours(tours)

    async def load_session(self) -> RenderSession:
        """Fetch the catalog into a fresh session positioned on page 1."""
        tours = await self.fetch_catalog()
        return RenderSession(tours, tours_per_page=self.settings.tours_per_page)

    async def fetch_tour(self, tour_id: int) -> TourRecord:
        """
        Fetch one tour with its itinerary, inclusions and prices.

        Raises:
            CatalogFetchError: On network failure, non-2xx status or an unreadable body
        """
        try:
            response = await self.api.get(f"tours/{tour_id}")
        except httpx.HTTPError as e:
            raise CatalogFetchError(f"Tour request failed: {e}") from e

        if not response.ok:
            raise CatalogFetchError(
                f"Tour request returned HTTP {response.status_code}",
                status_code=response.status_code,
            )

        tour = coerce_tour(response.data)
        if tour is None:
            raise CatalogFetchError(f"Tour {tour_id} response is not a tour")
        return tour
