"""
Catalog page runtime: wires the client components onto one page load.

``CatalogPage.load_tours`` is the single entry point that renders the
catalog. It fetches once, renders both surfaces independently, then builds
pagination and the view-all link after short pauses that let the CMS finish
its own layout pass, and ends with a guard pass.
"""

import asyncio
import logging
from typing import Any, Iterable, Optional

import httpx
from bs4 import Tag

from ..core.config import ClientSettings, client_settings
from ..core.observability import metrics_collector
from .api import ApiClient
from .cards import build_grid_card, build_slide_card
from .catalog import CatalogFetcher, RenderSession, TourRecord, coerce_tour
from .currency import PriceLocalizer
from .dom import Page
from .errors import CatalogFetchError, ContainerNotFoundError
from .forms import FormSubmissionGuard, SubscriptionForm
from .guard import CAROUSEL_CONTAINER_SELECTOR, GRID_CONTAINER_SELECTOR, ReconciliationGuard
from .pagination import PaginationController, add_view_all_button
from .renderers import CarouselRenderer, GridRenderer
from .session import SessionStore, TourCardButtons

logger = logging.getLogger(__name__)

READY_HOOK = "t_onReady"
PAGE_API = "tourAPI"


class CatalogPage:
    """Everything the site scripts install on a catalog page."""

    build_slide_card = staticmethod(build_slide_card)
    build_grid_card = staticmethod(build_grid_card)

    def __init__(
        self,
        page: Page,
        settings: Optional[ClientSettings] = None,
        api: Optional[ApiClient] = None,
        rates_transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.page = page
        self.settings = settings or client_settings
        self.api = api or ApiClient(self.settings)

        self.fetcher = CatalogFetcher(self.api, self.settings)
        self.guard = ReconciliationGuard(page, self.settings)
        self.carousel = CarouselRenderer(page, self.guard, self.settings)
        self.grid = GridRenderer(page, self.guard, self.settings)
        self.store = SessionStore(page, self.settings)
        self.card_buttons = TourCardButtons(page, self.store)
        self.forms = FormSubmissionGuard(page, self.api, self.store, self.settings)
        self.subscription = SubscriptionForm(page, self.api, self.settings)
        self.prices = PriceLocalizer(page, self.settings, transport=rates_transport)

        self.session: Optional[RenderSession] = None
        self.pagination: Optional[PaginationController] = None
        self._load_task: Optional[asyncio.Task] = None
        self._poll_timer = None
        self._started = False

    # Lifecycle

    def start(self) -> None:
        if self._started:
            return
        self._started = True

        self.guard.start()
        self.card_buttons.install()
        self.forms.install()
        self.subscription.install()
        self.prices.install()
        self.store.start()
        self.page.globals[PAGE_API] = {
            "loadTours": self.load_tours,
            "createPreorderCard": build_slide_card,
            "createTravelCard": build_grid_card,
            "loadToursToSwiper": self.load_tours_to_carousel,
            "loadToursToGrid": self.load_tours_to_grid,
        }

        self._schedule_poll(self.settings.initial_load_delay_seconds)
        ready = self.page.globals.get(READY_HOOK)
        if callable(ready):
            self.page.invoke(ready, self._on_cms_ready)

        logger.info("Catalog page started")

    async def stop(self) -> None:
        if not self._started:
            return
        self._started = False

        self.page.clear_timeout(self._poll_timer)
        self._poll_timer = None
        if self._load_task is not None and not self._load_task.done():
            self._load_task.cancel()
            await asyncio.gather(self._load_task, return_exceptions=True)

        await self.guard.stop()
        self.card_buttons.uninstall()
        self.forms.uninstall()
        self.subscription.uninstall()
        self.prices.uninstall()
        self.store.stop()
        self.page.globals.pop(PAGE_API, None)
        await self.api.aclose()
        logger.info("Catalog page stopped")

    def _on_cms_ready(self) -> None:
        self._schedule_poll(self.settings.container_poll_seconds)

    def _schedule_poll(self, delay: float) -> None:
        self.page.clear_timeout(self._poll_timer)
        self._poll_timer = self.page.set_timeout(delay, self._poll_containers)

    def containers_present(self) -> bool:
        return (
            self.page.select_one(CAROUSEL_CONTAINER_SELECTOR) is not None
            or self.page.select_one(GRID_CONTAINER_SELECTOR) is not None
        )

    def _poll_containers(self) -> None:
        self._poll_timer = None
        if self.session is not None:
            return
        if self.containers_present():
            self.page.spawn(self.load_tours())
        else:
            logger.debug("Render containers not on the page yet")
            self._schedule_poll(self.settings.container_poll_seconds)

    # Rendering

    async def load_tours(self) -> Optional[RenderSession]:
        """
        Fetch the catalog and render it, once per page load.

        Concurrent callers share one load and later callers get the session
        it produced. A failed fetch leaves nothing behind, so a later call
        tries again. Never raises.

        Returns:
            The rendered session, or None when the catalog could not be fetched
        """
        if self.session is not None:
            return self.session
        if self._load_task is None:
            self._load_task = asyncio.ensure_future(self._load())
        task = self._load_task
        try:
            return await asyncio.shield(task)
        finally:
            if task.done() and self._load_task is task and self.session is None:
                self._load_task = None

    async def _load(self) -> Optional[RenderSession]:
        try:
            return await self._render_cycle()
        except Exception as e:
            logger.error("Catalog render failed", extra={"error": str(e)}, exc_info=True)
            metrics_collector.record_render_cycle("failed")
            return self.session

    async def _render_cycle(self) -> Optional[RenderSession]:
        try:
            session = await self.fetcher.load_session()
        except CatalogFetchError as e:
            logger.error("Catalog render aborted", extra={"error": str(e)})
            metrics_collector.record_render_cycle("failed")
            return None

        if not session.tours:
            logger.info("Catalog is empty, nothing to render")
            metrics_collector.record_render_cycle("empty")
            self.session = session
            return session

        self.session = session
        self.render_carousel(session)
        self.render_grid(session)

        self.pagination = PaginationController(self.page, session, self.grid, self.settings)
        await asyncio.sleep(self.settings.pagination_delay_seconds)
        if session.page_count > 1:
            self.build_pagination()
            await asyncio.sleep(self.settings.view_all_delay_seconds)
        add_view_all_button(self.page, self.settings)

        self.guard.run_pass("render")
        metrics_collector.record_render_cycle("rendered")
        logger.info(
            "Catalog rendered",
            extra={"tours": len(session.tours), "pages": session.page_count}
        )
        return session

    def render_carousel(self, session: RenderSession) -> None:
        try:
            self.carousel.render(session.tours)
        except ContainerNotFoundError as e:
            logger.warning("Carousel skipped", extra={"error": str(e)})

    def render_grid(self, session: RenderSession) -> None:
        try:
            self.grid.render(session)
        except ContainerNotFoundError as e:
            logger.warning("Grid skipped", extra={"error": str(e)})

    def load_tours_to_carousel(self, tours: Iterable[Any]) -> list[Tag]:
        """Render raw catalog records into the carousel, in start-date order."""
        session = RenderSession(self._records(tours), self.settings.tours_per_page)
        try:
            return self.carousel.render(session.tours)
        except ContainerNotFoundError as e:
            logger.warning("Carousel skipped", extra={"error": str(e)})
            return []

    def load_tours_to_grid(self, tours: Iterable[Any], page: int = 1) -> list[Tag]:
        """Render grid page ``page`` of raw catalog records, without touching the loaded session."""
        session = RenderSession(self._records(tours), self.settings.tours_per_page, current_page=page)
        try:
            return self.grid.render(session)
        except ContainerNotFoundError as e:
            logger.warning("Grid skipped", extra={"error": str(e)})
            return []

    @staticmethod
    def _records(tours: Iterable[Any]) -> list[TourRecord]:
        records = []
        for raw in tours or []:
            record = coerce_tour(raw)
            if record is None:
                logger.error("Skipping unreadable catalog record", extra={"record": repr(raw)[:200]})
                continue
            records.append(record)
        return records

    def build_pagination(self) -> None:
        try:
            self.pagination.build()
        except ContainerNotFoundError as e:
            logger.warning("Pagination skipped", extra={"error": str(e)})

    def select_page(self, number: int) -> Optional[int]:
        """Show grid page ``number``; None before the catalog is loaded."""
        if self.pagination is None:
            return None
        return self.pagination.select_page(number)
