"""Pagination controller for the grid, and the view-all link in the catalog header."""

import logging
from typing import Optional

from bs4 import Tag

from ..core.config import ClientSettings, client_settings
from .catalog import RenderSession
from .dom import Event, Page
from .errors import ContainerNotFoundError
from .renderers import PAGINATION_ID, GridRenderer

logger = logging.getLogger(__name__)

CATALOG_SECTION_ID = "rec1170228026"
BUTTON_CLASS = "pagination-page-btn"

BUTTON_BASE_STYLE = {
    "min-width": "40px",
    "height": "40px",
    "padding": "8px 12px",
    "color": "#ffffff",
    "border-radius": "8px",
    "cursor": "pointer",
    "font-size": "14px",
    "position": "relative",
    "z-index": "1001",
    "pointer-events": "auto",
}

SELECTED_STYLE = {
    "background-color": "rgba(255, 47, 75, 0.8)",
    "border": "1px solid rgba(255, 47, 75, 0.5)",
    "font-weight": "600",
}

IDLE_STYLE = {
    "background-color": "rgba(31, 31, 31, 0.8)",
    "border": "1px solid rgba(255, 255, 255, 0.1)",
    "font-weight": "400",
}

VIEW_ALL_ID = "view-all-tours-btn"
VIEW_ALL_LABEL = "Смотреть все"
HEADER_GROUP_SELECTOR = '[data-group-id="174827010347951270"]'
HEADER_LAYOUT_ID = "molecule-174827010347951270"
# Decorative arrow the view-all link replaces
HEADER_ARROW_SELECTORS = ('[data-elem-id="1748270103491"]', ".tn-elem__11702280261748270103491")


class PaginationController:
    """
    Page buttons under the grid.

    Selecting a page moves the session, re-renders the grid and restyles the
    buttons so exactly one reads as selected. Nothing is built for a single
    page.
    """

    def __init__(
        self,
        page: Page,
        session: RenderSession,
        grid: GridRenderer,
        settings: Optional[ClientSettings] = None,
    ):
        self.page = page
        self.session = session
        self.grid = grid
        self.settings = settings or client_settings

    @property
    def element(self) -> Optional[Tag]:
        return self.page.get_element_by_id(PAGINATION_ID)

    def buttons(self) -> list[Tag]:
        element = self.element
        if element is None:
            return []
        return self.page.select(f"button.{BUTTON_CLASS}", element)

    def build(self) -> Optional[Tag]:
        """
        Replace any pagination with buttons for the session's pages.

        Raises:
            ContainerNotFoundError: If the page has no grid container
        """
        existing = self.element
        if existing is not None:
            self.page.remove(existing)

        page_count = self.session.page_count
        if page_count <= 1:
            return None

        container = self.grid.container()

        pagination = self.page.create_element("div", {"id": PAGINATION_ID})
        for number in range(1, page_count + 1):
            button = self.page.create_element(
                "button",
                {"type": "button", "data-page": str(number)},
                classes=[BUTTON_CLASS],
                text=str(number),
            )
            self.page.set_styles(button, {**BUTTON_BASE_STYLE, **self._style_for(number)})
            self.page.add_event_listener(button, "click", self._on_click)
            pagination.append(button)

        section = self.page.closest(container, f"#{CATALOG_SECTION_ID}")
        self.page.append_child(section if section is not None else container, pagination)

        logger.info("Pagination built", extra={"pages": page_count})
        return pagination

    def _style_for(self, number: int) -> dict[str, str]:
        return SELECTED_STYLE if number == self.session.current_page else IDLE_STYLE

    def _on_click(self, event: Event) -> None:
        event.prevent_default()
        event.stop_propagation()
        self.select_page(int(event.current_target["data-page"]))

    def select_page(self, number: int) -> int:
        """Show page ``number`` (clamped) and return the page actually shown."""
        self.session.current_page = number
        try:
            self.grid.render(self.session)
        except ContainerNotFoundError as e:
            logger.warning("Grid vanished before page change", extra={"error": str(e)})
        self.restyle()
        return self.session.current_page

    def restyle(self) -> None:
        for index, button in enumerate(self.buttons(), start=1):
            self.page.set_styles(button, self._style_for(index))


def add_view_all_button(page: Page, settings: Optional[ClientSettings] = None) -> Optional[Tag]:
    """Insert the link to the full catalog into the catalog header group."""
    settings = settings or client_settings

    existing = page.get_element_by_id(VIEW_ALL_ID)
    if existing is not None:
        page.remove(existing)

    for selector in HEADER_ARROW_SELECTORS:
        arrow = page.select_one(selector)
        if arrow is not None:
            page.set_style_property(arrow, "display", "none")

    header = page.select_one(HEADER_GROUP_SELECTOR)
    if header is None:
        logger.warning("Catalog header group not found, view-all link skipped")
        return None

    button = page.create_element("a", {"id": VIEW_ALL_ID, "href": settings.view_all_url}, text=VIEW_ALL_LABEL)
    page.set_styles(button, {
        "display": "inline-flex",
        "align-items": "center",
        "justify-content": "center",
        "padding": "14px 32px",
        "background": "linear-gradient(135deg, rgba(255, 47, 75, 0.8) 0%, rgba(255, 47, 75, 0.6) 100%)",
        "color": "#ffffff",
        "text-decoration": "none",
        "border-radius": "24px",
        "white-space": "nowrap",
        "z-index": "1000",
    })

    def follow(event: Event) -> None:
        event.prevent_default()
        event.stop_propagation()
        page.navigate(settings.view_all_url)

    page.add_event_listener(button, "click", follow, capture=True)

    layout = page.select_one(f"#{HEADER_LAYOUT_ID}", header)
    if layout is not None:
        page.append_child(layout, button)
        page.set_styles(layout, {
            "display": "flex",
            "flex-direction": "row",
            "align-items": "center",
            "justify-content": "space-between",
            "width": "100%",
        }, priority="important")
    else:
        page.append_child(header, button)

    return button
