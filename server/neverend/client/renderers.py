"""Surface renderers: the carousel and the paginated grid."""

import logging
from typing import Iterable, Optional, Protocol

from bs4 import Tag

from ..core.config import ClientSettings, client_settings
from .cards import build_grid_card, build_slide_card
from .catalog import RenderSession, TourRecord
from .dom import Event, Page
from .errors import ContainerNotFoundError
from .guard import (
    CAROUSEL_CONTAINER_SELECTOR,
    GRID_CONTAINER_SELECTOR,
    INVARIANTS,
    MANAGED_CARD_SELECTOR,
    MANAGED_SLIDE_SELECTOR,
    SLIDE,
    ReconciliationGuard,
)

logger = logging.getLogger(__name__)

GRID_LAYOUT_ID = "molecule-175278397639235650"
PAGINATION_ID = "tours-pagination"
TOURS_LOADED_EVENT = "toursLoaded"
CURRENCY_HOOK = "updateCurrencyPrices"
LAZY_IMAGE_SELECTOR = ".lazy-image[data-bg]"


def load_lazy_image(page: Page, node: Tag) -> bool:
    """
    Resolve a lazy image's ``data-bg`` into its background and show it.

    The page has no viewport to watch, so every lazy image loads at once.
    """
    url = node.get("data-bg")
    if not url:
        return False
    return page.set_styles(node, {"background-image": f"url('{url}')", "opacity": "1"})


class CarouselWidget(Protocol):
    """The slider the page builder attaches to the carousel container."""

    def update(self) -> None:
        ...

    def slide_to(self, index: int) -> None:
        ...


class CarouselRenderer:
    """Renders one slide card per tour into the carousel."""

    def __init__(
        self,
        page: Page,
        guard: Optional[ReconciliationGuard] = None,
        settings: Optional[ClientSettings] = None,
    ):
        self.page = page
        self.guard = guard
        self.settings = settings or client_settings

    def container(self) -> Tag:
        wrapper = self.page.select_one(CAROUSEL_CONTAINER_SELECTOR)
        if wrapper is None:
            raise ContainerNotFoundError("carousel", CAROUSEL_CONTAINER_SELECTOR)
        return wrapper

    def widget_host(self, wrapper: Tag) -> Tag:
        return self.page.closest(wrapper, ".swiper") or wrapper.parent or wrapper

    def clear(self, wrapper: Tag) -> None:
        """Drop page-builder placeholder cards and everything a previous render added."""
        for card in self.page.select(f'.preorderCard:not({MANAGED_CARD_SELECTOR})', wrapper):
            slide = self.page.closest(card, ".swiper-slide")
            if slide is not None and self.page.contains(wrapper, slide) and slide is not wrapper:
                self.page.remove(slide)
            else:
                self.page.remove(card)
        for slide in self.page.select(MANAGED_SLIDE_SELECTOR, wrapper):
            self.page.remove(slide)
        for card in self.page.select(MANAGED_CARD_SELECTOR, wrapper):
            self.page.remove(card)

    def render(self, tours: Iterable[TourRecord]) -> list[Tag]:
        """
        Replace the carousel content with cards for ``tours`` (already sorted).

        Returns:
            The managed cards now in the carousel

        Raises:
            ContainerNotFoundError: If the page has no carousel
        """
        wrapper = self.container()
        host = self.widget_host(wrapper)
        outer = self.page.closest(host, ".uc-preorder") or host.parent
        if outer is not None and outer is not self.page.soup:
            self.page.add_class(outer, "uc-preorder")

        self.clear(wrapper)

        cards = []
        for tour in tours:
            card = build_slide_card(tour, settings=self.settings)
            if card is None:
                logger.error("Skipping tour in carousel", extra={"tour_id": getattr(tour, "id", None)})
                continue

            slide = self.page.create_element(
                "div",
                {"data-slide-id": card["data-tour-id"], "data-dynamic-slide": "true"},
                classes=["swiper-slide"],
            )
            self.page.set_styles(slide, INVARIANTS[SLIDE], priority="important")
            slide.append(card)
            self.page.append_child(wrapper, slide)

            if self.guard is not None:
                self.guard.register(slide)
                self.guard.register(card)
            cards.append(card)

        logger.info("Carousel rendered", extra={"cards": len(cards)})
        self.refresh_widget(host)
        return cards

    def refresh_widget(self, host: Tag, retry: bool = True) -> bool:
        """Tell the slider about the new slides; retries once if it is not up yet."""
        widget: Optional[CarouselWidget] = self.page.widget_for(host)
        if widget is not None:
            widget.update()
            widget.slide_to(0)
            return True
        if retry:
            self.page.set_timeout(
                self.settings.carousel_retry_delay_seconds,
                lambda: self.refresh_widget(host, retry=False),
            )
        else:
            logger.debug("Carousel widget still not initialized after retry")
        return False


class GridRenderer:
    """Renders the session's current page of tours into the grid."""

    def __init__(
        self,
        page: Page,
        guard: Optional[ReconciliationGuard] = None,
        settings: Optional[ClientSettings] = None,
    ):
        self.page = page
        self.guard = guard
        self.settings = settings or client_settings
        self._refresh_timer = None

    def container(self) -> Tag:
        container = self.page.select_one(GRID_CONTAINER_SELECTOR)
        if container is None:
            raise ContainerNotFoundError("grid", GRID_CONTAINER_SELECTOR)
        return container

    def layout_node(self, container: Tag) -> Tag:
        """The nested layout node cards go into, created when the page lacks it."""
        layout = self.page.select_one(f'.tn-molecule[id="{GRID_LAYOUT_ID}"]', container)
        if layout is None:
            layout = self.page.create_element("div", {"id": GRID_LAYOUT_ID}, classes=["tn-molecule"])
            self.page.append_child(container, layout)
        return layout

    def render(self, session: RenderSession) -> list[Tag]:
        """
        Replace the grid content with the cards of the session's current page.

        Raises:
            ContainerNotFoundError: If the page has no grid container
        """
        container = self.container()

        for card in self.page.select(f'.travelCard:not({MANAGED_CARD_SELECTOR})', container):
            self.page.remove(card)
        for card in self.page.select(MANAGED_CARD_SELECTOR, container):
            self.page.remove(card)

        layout = self.layout_node(container)

        # Pagination lives beside the cards, never among them
        pagination = self.page.get_element_by_id(PAGINATION_ID)
        if pagination is not None and self.page.contains(layout, pagination):
            self.page.append_child(container, pagination)

        cards = []
        for tour in session.page_slice():
            card = build_grid_card(tour, settings=self.settings)
            if card is None:
                logger.error("Skipping tour in grid", extra={"tour_id": getattr(tour, "id", None)})
                continue
            self.page.add_event_listener(card, "click", self._open_tour)
            self.page.append_child(layout, card)
            for image in self.page.select(LAZY_IMAGE_SELECTOR, card):
                load_lazy_image(self.page, image)
            if self.guard is not None:
                self.guard.register(card)
            cards.append(card)

        logger.info(
            "Grid rendered",
            extra={"page": session.current_page, "pages": session.page_count, "cards": len(cards)}
        )
        self.schedule_price_refresh()
        return cards

    def _open_tour(self, event: Event) -> None:
        card = event.current_target
        target = event.target
        control = self.page.closest(target, "a, button")
        if control is not None and self.page.contains(card, control):
            return
        self.page.navigate(card.get("data-tour-url"))

    def schedule_price_refresh(self) -> None:
        """Let the currency switcher re-render prices once the cards settle."""
        self.page.clear_timeout(self._refresh_timer)
        self._refresh_timer = self.page.set_timeout(
            self.settings.currency_refresh_delay_seconds,
            self._refresh_prices,
        )

    def _refresh_prices(self) -> None:
        self._refresh_timer = None
        hook = self.page.globals.get(CURRENCY_HOOK)
        if callable(hook):
            self.page.invoke(hook)
        else:
            self.page.dispatch_window_event(TOURS_LOADED_EVENT)
