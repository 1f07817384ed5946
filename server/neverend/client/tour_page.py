"""
Tour detail page: one tour at ``/tour/<id>``.

``TourPage.load`` reads the id from the page location, fetches the tour and
fills the page's placeholders: hero image, title, meta line, prices,
descriptions, the details grid and the day-by-day programme carousel. The
booking form on the page is tied to the tour so the application carries
its ``tour_id``.
"""

import asyncio
import logging
import re
from datetime import date, timedelta
from typing import Optional
from urllib.parse import urlsplit

import httpx
from bs4 import Tag

from ..core.config import ClientSettings, client_settings
from .api import ApiClient
from .cards import (
    MONTHS_GENITIVE,
    TOUR_FALLBACK_TITLE,
    format_date_range,
    format_price,
    group_thousands,
    resolve_image_url,
)
from .catalog import CatalogFetcher, ProgramDay, TourRecord
from .currency import PriceLocalizer
from .dom import Page
from .errors import CatalogFetchError
from .forms import TOUR_ID_FIELD, FormSubmissionGuard, is_subscription_form
from .renderers import CarouselWidget
from .session import SessionStore

logger = logging.getLogger(__name__)

TOUR_PATH = re.compile(r"/tour/(\d+)")
SITE_TITLE = "MARK INVEST TOUR"

INVALID_TOUR_ID = "Неверный ID тура"
TOUR_NOT_FOUND = "Тур не найден"
TOUR_SERVER_ERROR = "Ошибка сервера при загрузке тура"
TOUR_LOAD_FAILED = "Ошибка загрузки данных тура ({status})"
TOUR_CONNECTION_FAILED = "Ошибка подключения к серверу. Проверьте, запущен ли сервер."
TOUR_BAD_DATA = "Получены некорректные данные тура"
TOUR_LOAD_ERROR = "Произошла ошибка при загрузке тура"

BOOKING_FORM_ID = "tour-booking-form"
BOOKING_SUBMIT_LABEL = "Отправить заявку"


def tour_id_from_location(location: Optional[str]) -> Optional[int]:
    """
    The tour id of a ``/tour/<id>`` URL or path.

    >>> tour_id_from_location("https://neverend.travel/tour/12?utm=1")
    12
    """
    if not location:
        return None
    match = TOUR_PATH.search(urlsplit(location).path)
    return int(match.group(1)) if match else None


def format_day_month(value: date) -> str:
    return f"{value.day} {MONTHS_GENITIVE[value.month - 1]}"


def load_error_message(error: CatalogFetchError) -> str:
    """What the visitor is told when the tour could not be loaded."""
    if error.status_code == 404:
        return TOUR_NOT_FOUND
    if error.status_code == 500:
        return TOUR_SERVER_ERROR
    if error.status_code is not None:
        return TOUR_LOAD_FAILED.format(status=error.status_code)
    if isinstance(error.__cause__, httpx.HTTPError):
        return TOUR_CONNECTION_FAILED
    return TOUR_BAD_DATA


class TourPage:
    """Everything the site scripts install on a tour detail page."""

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
        self.store = SessionStore(page, self.settings)
        self.forms = FormSubmissionGuard(page, self.api, self.store, self.settings)
        self.prices = PriceLocalizer(page, self.settings, transport=rates_transport)

        self.tour: Optional[TourRecord] = None
        self._load_task: Optional[asyncio.Task] = None
        self._started = False

    def start(self) -> None:
        if self._started:
            return
        self._started = True
        self.forms.install()
        self.prices.install()
        self._load_task = self.page.spawn(self.load())
        logger.info("Tour page started")

    async def stop(self) -> None:
        if not self._started:
            return
        self._started = False
        if self._load_task is not None and not self._load_task.done():
            self._load_task.cancel()
            await asyncio.gather(self._load_task, return_exceptions=True)
        await self.forms.wait_idle()
        self.forms.uninstall()
        self.prices.uninstall()
        await self.api.aclose()
        logger.info("Tour page stopped")

    async def load(self) -> Optional[TourRecord]:
        """
        Fetch the tour named by the page location and display it.

        Failures are shown in the page's error block. Never raises.

        Returns:
            The displayed tour, or None when it could not be loaded
        """
        tour_id = tour_id_from_location(self.page.location)
        if tour_id is None:
            logger.error("No tour id in page location", extra={"location": self.page.location})
            self.show_error(INVALID_TOUR_ID)
            return None

        try:
            tour = await self.fetcher.fetch_tour(tour_id)
        except CatalogFetchError as e:
            logger.error("Tour load failed", extra={"tour_id": tour_id, "error": str(e)})
            self.show_error(load_error_message(e))
            return None

        if not self.display(tour):
            return None
        self.tour = tour
        await self.prices.update_prices()
        return tour

    def show_error(self, message: str) -> None:
        loading = self.page.get_element_by_id("loading")
        content = self.page.get_element_by_id("tour-content")
        error = self.page.get_element_by_id("error")
        for node in (loading, content):
            if node is not None:
                self.page.set_style_property(node, "display", "none")
        if error is None:
            self.page.alert(message or TOUR_LOAD_ERROR)
            return
        self.page.set_style_property(error, "display", "block")
        self.page.set_text(error, message or TOUR_LOAD_ERROR)

    # Display

    def display(self, tour: TourRecord) -> bool:
        """Fill the page placeholders; False when the page lacks its loading, error or content blocks."""
        loading = self.page.get_element_by_id("loading")
        error = self.page.get_element_by_id("error")
        content = self.page.get_element_by_id("tour-content")
        if loading is None or error is None or content is None:
            logger.error("Tour page placeholders missing")
            return False

        self.page.set_style_property(loading, "display", "none")
        self.page.set_style_property(error, "display", "none")
        self.page.set_style_property(content, "display", "block")

        if self.page.soup.title is not None:
            self.page.set_text(self.page.soup.title, f"{tour.title} | {SITE_TITLE}")

        self.display_hero(tour)
        title = self.page.get_element_by_id("tour-title")
        if title is not None:
            self.page.set_text(title, tour.title or TOUR_FALLBACK_TITLE)
        self.display_meta(tour)
        self.display_price(tour)
        self.display_text_block("tour-short-description", tour.short_description)
        self.display_text_block("tour-description", tour.description, title_id="tour-description-title")
        self.display_details(tour)
        self.display_programs(tour)
        self.setup_booking_form(tour.id)

        logger.info("Tour displayed", extra={"tour_id": tour.id, "programs": len(tour.programs)})
        return True

    def display_hero(self, tour: TourRecord) -> None:
        hero = self.page.get_element_by_id("tour-hero-section")
        if hero is None:
            return
        image_url = resolve_image_url(tour.image_url, self.settings)
        self.page.set_style_property(hero, "background-image", f"url('{image_url}')")
        self.page.add_class(hero, "loaded")

    def display_meta(self, tour: TourRecord) -> None:
        container = self.page.get_element_by_id("tour-meta")
        if container is None:
            return
        items = [
            format_date_range(tour.date_start, tour.date_end),
            tour.duration,
            tour.location,
        ]
        if tour.max_participants:
            items.append(f"{tour.current_participants or 0}/{tour.max_participants} участников")
        self.page.replace_children(container, [
            self.page.create_element("div", classes=["tour-meta-item"], text=item)
            for item in items if item
        ])

    def display_price(self, tour: TourRecord) -> None:
        """
        Every labelled price, else the single price in the display currency,
        else nothing.
        """
        container = self.page.get_element_by_id("tour-price")
        if container is None:
            return

        if tour.prices:
            items = []
            for option in tour.prices:
                text = f"{group_thousands(option.price or 0)} ₽"
                if option.description:
                    text += f" - {option.description}"
                items.append(self.page.create_element("div", classes=["tour-price-item"], text=text))
            self.page.replace_children(container, items)
            self.page.set_attribute(container, "class", "tour-price tour-price-multiple")
            self.page.set_style_property(container, "display", "block")
        elif tour.price:
            amount = int(tour.price) if float(tour.price).is_integer() else tour.price
            self.page.set_attribute(container, "data-price-rub", str(amount))
            self.page.set_text(container, format_price(tour.price))
            self.page.set_attribute(container, "class", "tour-price")
            self.page.set_style_property(container, "display", "block")
        else:
            self.page.set_style_property(container, "display", "none")

    def display_text_block(self, element_id: str, text: Optional[str], title_id: Optional[str] = None) -> None:
        container = self.page.get_element_by_id(element_id)
        if container is None:
            return
        title = self.page.get_element_by_id(title_id) if title_id else None
        display = "block" if text else "none"
        if text:
            self.page.set_text(container, text)
        self.page.set_style_property(container, "display", display)
        if title is not None:
            self.page.set_style_property(title, "display", display)

    def _detail(self, label: str, value: str, full: bool = False) -> Tag:
        classes = ["tour-detail-item", "tour-detail-item-full"] if full else ["tour-detail-item"]
        item = self.page.create_element("div", classes=classes)
        item.append(self.page.create_element("div", classes=["tour-detail-label"], text=label))
        item.append(self.page.create_element("div", classes=["tour-detail-value"], text=value))
        return item

    def _detail_list(self, label: str, entries: list[str]) -> Tag:
        item = self._detail(label, "", full=True)
        value = item.select_one(".tour-detail-value")
        value.clear()
        bullets = self.page.create_element("ul")
        for entry in entries:
            bullets.append(self.page.create_element("li", text=entry))
        value.append(bullets)
        return item

    def display_details(self, tour: TourRecord) -> None:
        container = self.page.get_element_by_id("tour-details")
        if container is None:
            return

        details = []
        if tour.duration:
            details.append(self._detail("Длительность", tour.duration))
        if tour.location:
            details.append(self._detail("Место", tour.location))
        if tour.max_participants:
            available = tour.max_participants - (tour.current_participants or 0)
            details.append(self._detail("Доступно мест", f"{available} из {tour.max_participants}"))
        if tour.date_start and tour.date_end:
            details.append(self._detail("Количество дней", str((tour.date_end - tour.date_start).days)))

        included = [inclusion.item for inclusion in tour.inclusions if inclusion.type == "included"]
        excluded = [inclusion.item for inclusion in tour.inclusions if inclusion.type == "excluded"]
        if included:
            details.append(self._detail_list("Что входит в тур", included))
        if excluded:
            details.append(self._detail_list("Не входит в тур", excluded))

        self.page.replace_children(container, details)
        display = "grid" if details else "none"
        self.page.set_style_property(container, "display", display)
        title = self.page.get_element_by_id("tour-details-title")
        if title is not None:
            self.page.set_style_property(title, "display", "block" if details else "none")

    def display_programs(self, tour: TourRecord) -> list[Tag]:
        """One carousel slide per itinerary day, in day order."""
        container = self.page.get_element_by_id("tour-programs")
        if container is None:
            return []
        if not tour.programs:
            self.page.set_style_property(container, "display", "none")
            return []

        wrapper = self.page.get_element_by_id("programs-swiper-wrapper")
        if wrapper is None:
            logger.error("Programme carousel wrapper missing")
            return []

        programs = sorted(tour.programs, key=lambda program: program.day or 0)
        default_image = resolve_image_url(tour.image_url, self.settings)
        slides = [
            self._program_slide(program, index, tour, default_image)
            for index, program in enumerate(programs)
        ]
        self.page.replace_children(wrapper, slides)

        widget: Optional[CarouselWidget] = self.page.widget_for(self.page.get_element_by_id("programs-swiper"))
        if widget is not None:
            widget.update()
            widget.slide_to(0)
        return slides

    def _program_slide(self, program: ProgramDay, index: int, tour: TourRecord, default_image: str) -> Tag:
        day = program.day or index + 1
        slide = self.page.create_element("div", {"data-slide-id": str(day)}, classes=["swiper-slide"])
        card = self.page.create_element("div", classes=["tour-program-day"])

        image_url = resolve_image_url(program.image_url, self.settings) if program.image_url else default_image
        image = self.page.create_element(
            "div",
            {"style": f"background-image: url('{image_url}');"},
            classes=["tour-program-day-image"],
        )
        badges = self.page.create_element("div", classes=["tour-program-day-badges"])
        badges.append(self.page.create_element("div", classes=["tour-program-day-badge"], text=f"День {day}"))
        if tour.date_start is not None:
            day_date = tour.date_start + timedelta(days=day - 1)
            badges.append(self.page.create_element(
                "div", classes=["tour-program-day-badge"], text=format_day_month(day_date),
            ))
        image.append(badges)
        card.append(image)

        content = self.page.create_element("div", classes=["tour-program-day-content"])
        description = self.page.create_element("div", classes=["tour-program-day-description"])
        paragraphs = [line.strip() for line in program.programm.splitlines() if line.strip()]
        for paragraph in paragraphs or [program.programm]:
            description.append(self.page.create_element("p", text=paragraph))
        content.append(description)
        card.append(content)

        slide.append(card)
        return slide

    # Booking

    def setup_booking_form(self, tour_id: int) -> Optional[Tag]:
        """
        Tie the page's booking form to ``tour_id``, building a plain form when
        the page has none.
        """
        form = next((f for f in self.page.select("form") if not is_subscription_form(f)), None)
        if form is not None:
            field = form.select_one(f'input[name="{TOUR_ID_FIELD}"]')
            if field is None:
                field = self.page.create_element("input", {"type": "hidden", "name": TOUR_ID_FIELD})
                self.page.append_child(form, field)
            self.page.set_field_value(field, str(tour_id))
            self.store.select_tour(str(tour_id))
            return form

        container = self.page.get_element_by_id("booking-form-container")
        if container is None:
            logger.warning("Tour page has no booking form or form container")
            return None

        form = self.page.create_element("form", {"id": BOOKING_FORM_ID}, classes=["tour-form"])
        form.append(self.page.create_element(
            "input", {"type": "hidden", "name": TOUR_ID_FIELD, "value": str(tour_id)},
        ))
        fields = [
            ("input", {"type": "text", "name": "name", "placeholder": "Ваше имя", "required": ""}),
            ("input", {"type": "tel", "name": "phone", "placeholder": "Ваш телефон", "required": ""}),
            ("input", {"type": "email", "name": "email", "placeholder": "Ваш email (необязательно)"}),
            ("textarea", {"name": "message", "rows": "4", "placeholder": "Дополнительная информация (необязательно)"}),
        ]
        for tag_name, attrs in fields:
            group = self.page.create_element("div", classes=["tour-form-group"])
            group.append(self.page.create_element(tag_name, attrs, classes=[f"tour-form-{tag_name}"]))
            form.append(group)
        form.append(self.page.create_element(
            "button", {"type": "submit"}, classes=["tour-form-button"], text=BOOKING_SUBMIT_LABEL,
        ))
        self.page.replace_children(container, [form])
        return form
