"""Per-page session storage and the tour-card booking buttons that write to it."""

import logging
from typing import Optional

from ..core.config import ClientSettings, client_settings
from .dom import Event, Page

logger = logging.getLogger(__name__)

SELECTED_TOUR_KEY = "selectedTourId"
PREORDER_BUTTON_SELECTOR = 'a[href="#preorder"]'
TOUR_CARD_SELECTOR = ".preorderCard, .travelCard"


class SessionStore:
    """
    Transient key/value storage that lives as long as the page.

    Backed by the page's session storage. The selected tour id left over
    from a previous page load is dropped once the grace period after
    :meth:`start` runs out.
    """

    def __init__(self, page: Page, settings: Optional[ClientSettings] = None):
        self.page = page
        self.settings = settings or client_settings
        self._grace_timer = None

    def get(self, key: str) -> Optional[str]:
        return self.page.session_storage.get(key)

    def set(self, key: str, value: str) -> None:
        self.page.session_storage[key] = str(value)

    def remove(self, key: str) -> None:
        self.page.session_storage.pop(key, None)

    @property
    def selected_tour_id(self) -> Optional[int]:
        """The tour the visitor picked on a card, if it is still a usable id."""
        raw = self.get(SELECTED_TOUR_KEY)
        if raw is None:
            return None
        try:
            return int(raw)
        except ValueError:
            logger.warning("Ignoring malformed selected tour id", extra={"value": raw})
            return None

    def select_tour(self, tour_id: str) -> None:
        self.set(SELECTED_TOUR_KEY, tour_id)

    def start(self) -> None:
        self.page.clear_timeout(self._grace_timer)
        self._grace_timer = self.page.set_timeout(self.settings.session_grace_seconds, self._expire_selection)

    def stop(self) -> None:
        self.page.clear_timeout(self._grace_timer)
        self._grace_timer = None

    def _expire_selection(self) -> None:
        self._grace_timer = None
        if self.get(SELECTED_TOUR_KEY) is not None:
            self.remove(SELECTED_TOUR_KEY)
            logger.debug("Selected tour id expired")


class TourCardButtons:
    """Remembers which tour's booking button was clicked, for the booking form."""

    def __init__(self, page: Page, store: SessionStore):
        self.page = page
        self.store = store
        self._installed = False

    def install(self) -> None:
        if self._installed:
            return
        self.page.add_event_listener(self.page.soup, "click", self._on_click)
        self._installed = True

    def uninstall(self) -> None:
        if not self._installed:
            return
        self.page.remove_event_listener(self.page.soup, "click", self._on_click)
        self._installed = False

    def _on_click(self, event: Event) -> None:
        button = self.page.closest(event.target, PREORDER_BUTTON_SELECTOR)
        if button is None:
            return

        tour_id = button.get("data-tour-id")
        if not tour_id:
            card = self.page.closest(button, TOUR_CARD_SELECTOR)
            tour_id = card.get("data-tour-id") if card is not None else None

        if tour_id:
            self.store.select_tour(tour_id)
            logger.debug("Tour selected for booking", extra={"tour_id": tour_id})
