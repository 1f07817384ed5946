"""
Reconciliation guard for the cards this client renders.

The page builder re-initializes its layout out of band and overwrites the
inline geometry of our cards. The guard holds the desired declarations in
one table and re-asserts them, with ``!important``, on every managed node
whenever something may have drifted: on a fixed timer, on mutations inside
the render containers and after scrolling or resizing settles.
"""

import logging
from typing import Optional

from bs4 import Tag

from ..core.config import ClientSettings, client_settings
from ..core.observability import metrics_collector
from ..workers.base import BaseWorker
from .dom import Event, MutationObserver, MutationRecord, Page, class_list

logger = logging.getLogger(__name__)

MANAGED_CARD_SELECTOR = '[data-dynamic-card="true"]'
MANAGED_SLIDE_SELECTOR = '[data-dynamic-slide="true"]'
CAROUSEL_CONTAINER_SELECTOR = ".swiper-wrapper"
GRID_CONTAINER_SELECTOR = '[data-group-id="175278397639235650"]'
WATCHED_CONTAINERS = (CAROUSEL_CONTAINER_SELECTOR, GRID_CONTAINER_SELECTOR)
WATCHED_ATTRIBUTES = ("style", "class")

SLIDE = "slide"
SLIDE_CARD = "slide_card"
GRID_CARD = "grid_card"

_CARD_COMMON = {
    "opacity": "1",
    "visibility": "visible",
    "flex-shrink": "0",
    "margin": "0",
}

INVARIANTS: dict[str, dict[str, str]] = {
    SLIDE: {
        "width": "350px",
        "flex-shrink": "0",
        "margin-right": "10px",
        "margin-top": "0",
        "margin-bottom": "0",
        "top": "auto",
        "left": "auto",
        "transform": "none",
        "box-sizing": "border-box",
        "align-self": "flex-start",
    },
    SLIDE_CARD: {
        "width": "350px",
        "height": "520px",
        "position": "relative",
        "top": "0",
        "left": "0",
        "right": "auto",
        "bottom": "auto",
        "transform": "none",
        "border-radius": "24px",
        "overflow": "hidden",
        "margin-top": "0",
        "margin-bottom": "0",
        **_CARD_COMMON,
    },
    GRID_CARD: {
        "position": "relative",
        "width": "100%",
        "max-width": "353px",
        "height": "auto",
        "min-height": "520px",
        "top": "auto",
        "left": "auto",
        "background-color": "#393a3f",
        "border-radius": "24px",
        "overflow": "hidden",
        **_CARD_COMMON,
    },
}


def variant_of(node: Tag) -> Optional[str]:
    """Which row of the invariant table governs ``node``, if any."""
    if node.get("data-dynamic-slide") == "true":
        return SLIDE
    if node.get("data-dynamic-card") != "true":
        return None
    classes = class_list(node)
    if "travelCard" in classes:
        return GRID_CARD
    if "preorderCard" in classes:
        return SLIDE_CARD
    return None


def managed_nodes(page: Page, root: Optional[Tag] = None) -> list[tuple[Tag, str]]:
    """Every managed slide and card under ``root`` (inclusive) with its variant."""
    scope = root if root is not None else page.soup
    candidates: list[Tag] = []
    if isinstance(scope, Tag) and scope is not page.soup and variant_of(scope):
        candidates.append(scope)
    candidates.extend(page.select(f"{MANAGED_SLIDE_SELECTOR}, {MANAGED_CARD_SELECTOR}", scope))

    nodes = []
    for node in candidates:
        variant = variant_of(node)
        if variant:
            nodes.append((node, variant))
    return nodes


def reapply(page: Page) -> int:
    """
    Assert the invariant table on every managed node.

    Declarations that already hold are left alone, so a converged page sees
    no writes at all.

    Returns:
        Number of nodes that needed at least one correction
    """
    corrected: dict[str, int] = {}
    for node, variant in managed_nodes(page):
        if page.set_styles(node, INVARIANTS[variant], priority="important"):
            corrected[variant] = corrected.get(variant, 0) + 1

    for variant, count in corrected.items():
        metrics_collector.record_guard_correction(variant, count)

    return sum(corrected.values())


class GuardTimer(BaseWorker):
    """Periodic trigger of the guard."""

    def __init__(self, guard: "ReconciliationGuard", interval_seconds: float):
        super().__init__("reconciliation-guard", interval_seconds)
        self.guard = guard

    async def process(self) -> None:
        self.guard.watch_containers()
        self.guard.run_pass("timer")


class ReconciliationGuard:
    """
    Keeps the managed cards converged on :data:`INVARIANTS`.

    All three triggers end in :func:`reapply`. Mutation records caused by
    the guard's own writes are drained right after each pass so they never
    trigger another one.
    """

    def __init__(self, page: Page, settings: Optional[ClientSettings] = None):
        self.page = page
        self.settings = settings or client_settings
        self.observer = MutationObserver(page, self._on_mutations)
        self.timer = GuardTimer(self, self.settings.guard_interval_seconds)
        self.passes = 0
        self.corrections = 0
        self._viewport_timer = None
        self._started = False

    def start(self) -> None:
        if self._started:
            return
        self._started = True
        self.watch_containers()
        for node, _ in managed_nodes(self.page):
            self.register(node)
        self.page.on_window("scroll", self._on_viewport)
        self.page.on_window("resize", self._on_viewport)
        self.timer.start()
        logger.info("Reconciliation guard started", extra={"interval": self.settings.guard_interval_seconds})

    async def stop(self) -> None:
        if not self._started:
            return
        self._started = False
        await self.timer.stop()
        self.page.clear_timeout(self._viewport_timer)
        self._viewport_timer = None
        self.page.off_window("scroll", self._on_viewport)
        self.page.off_window("resize", self._on_viewport)
        self.observer.disconnect()
        logger.info(
            "Reconciliation guard stopped",
            extra={"passes": self.passes, "corrections": self.corrections}
        )

    def watch_containers(self) -> None:
        """Observe the render containers that exist right now."""
        for selector in WATCHED_CONTAINERS:
            for container in self.page.select(selector):
                if self.observer.is_observing(container):
                    continue
                self.observer.observe(
                    container,
                    child_list=True,
                    subtree=True,
                    attribute_filter=WATCHED_ATTRIBUTES,
                )

    def register(self, node: Tag) -> None:
        """Watch a managed node's style and class directly, wherever it sits."""
        if not self.observer.is_observing(node):
            self.observer.observe(node, attribute_filter=WATCHED_ATTRIBUTES)

    def run_pass(self, trigger: str) -> int:
        corrected = reapply(self.page)
        self.observer.take_records()
        self.passes += 1
        if corrected:
            self.corrections += corrected
            logger.debug(
                "Guard corrected drifted nodes",
                extra={"trigger": trigger, "corrected": corrected}
            )
        return corrected

    def _on_mutations(self, records: list[MutationRecord], observer: MutationObserver) -> None:
        relevant = False
        for record in records:
            if record.type == "attributes":
                if variant_of(record.target):
                    relevant = True
            elif record.added_nodes:
                for added in record.added_nodes:
                    for node, _ in managed_nodes(self.page, added):
                        self.register(node)
                        relevant = True
        if relevant:
            self.run_pass("mutation")

    def _on_viewport(self, event: Event) -> None:
        self.page.clear_timeout(self._viewport_timer)
        self._viewport_timer = self.page.set_timeout(
            self.settings.viewport_debounce_seconds,
            self._viewport_settled,
        )

    def _viewport_settled(self) -> None:
        self._viewport_timer = None
        self.run_pass("viewport")
