"""Card builders: one catalog record in, one detached card element out."""

import logging
from datetime import date
from typing import Any, Optional

from bs4 import BeautifulSoup, Tag

from ..core.config import ClientSettings, client_settings
from .catalog import TourRecord, coerce_tour
from .dom import serialize_style
from .guard import GRID_CARD, INVARIANTS, SLIDE_CARD

logger = logging.getLogger(__name__)

MONTHS_GENITIVE = (
    "января", "февраля", "марта", "апреля", "мая", "июня",
    "июля", "августа", "сентября", "октября", "ноября", "декабря",
)

TOUR_FALLBACK_TITLE = "Тур"
PRICE_PREFIX = "от"
PREORDER_LABEL = "Предзаказ"
DATE_SEPARATOR = " • "


def format_full_date(value: date) -> str:
    return f"{value.day} {MONTHS_GENITIVE[value.month - 1]} {value.year}"


def format_date_range(start: Optional[date], end: Optional[date]) -> str:
    """
    Card date text in the site locale.

    >>> format_date_range(date(2025, 3, 1), date(2025, 3, 8))
    '1 - 8 марта 2025'
    """
    if start is None:
        return ""
    if end is None:
        return format_full_date(start)
    if (start.year, start.month) == (end.year, end.month):
        return f"{start.day} - {end.day} {MONTHS_GENITIVE[end.month - 1]} {end.year}"
    return f"{format_full_date(start)} - {format_full_date(end)}"


def group_thousands(amount: float) -> str:
    """``12500`` -> ``'12 500'``; fractions are rounded away."""
    return f"{int(round(amount)):,}".replace(",", " ")


def format_price(amount: Optional[float], symbol: str = "₽") -> str:
    """Card price text, empty when there is no positive price."""
    if amount is None or amount <= 0:
        return ""
    return f"{PRICE_PREFIX} {group_thousands(amount)} {symbol}"


def resolve_image_url(image_url: Optional[str], settings: Optional[ClientSettings] = None) -> str:
    """Site-absolute image path, falling back to the hero image."""
    settings = settings or client_settings
    if not image_url:
        return settings.default_tour_image
    if image_url.startswith(("/", "http://", "https://", "data:")):
        return image_url
    return f"/{image_url}"


def _price_attribute(amount: float) -> str:
    return str(int(amount)) if float(amount).is_integer() else str(amount)


def _valid_tour(raw: Any, kind: str) -> Optional[TourRecord]:
    tour = coerce_tour(raw)
    if tour is None:
        logger.error(
            f"Cannot build {kind} card from record",
            extra={"record": repr(raw)[:200]}
        )
    return tour


def _fragment() -> BeautifulSoup:
    return BeautifulSoup("", "html.parser")


def _tag(soup: BeautifulSoup, name: str, classes: str = "", text: Optional[str] = None, **attrs: str) -> Tag:
    attributes = {key.replace("_", "-"): value for key, value in attrs.items()}
    if classes:
        attributes["class"] = classes
    node = soup.new_tag(name, attrs=attributes)
    if text is not None:
        node.string = text
    return node


def _managed(card: Tag, tour: TourRecord, variant: str) -> None:
    card["data-tour-id"] = str(tour.id)
    card["data-dynamic-card"] = "true"
    card["data-tilda-ignore"] = "true"
    card["style"] = serialize_style({
        prop: (value, "important") for prop, value in INVARIANTS[variant].items()
    })


def build_slide_card(tour: Any, *, settings: Optional[ClientSettings] = None) -> Optional[Tag]:
    """
    Carousel card for one tour.

    Returns ``None`` (and logs) when the record is missing, has no id or
    cannot be read. Never raises.
    """
    record = _valid_tour(tour, "slide")
    if record is None:
        return None

    soup = _fragment()
    image_url = resolve_image_url(record.image_url, settings)
    date_text = format_date_range(record.date_start, record.date_end)

    card = _tag(soup, "div", "t396__group tn-group preorderCard t396__group-flex")
    _managed(card, record, SLIDE_CARD)
    card["data-group-width-value"] = "350"
    card["data-group-height-value"] = "520"

    background = _tag(
        soup, "div", "tn-molecule t-bgimg",
        data_original=image_url,
        style=(
            f"width: 100%; height: 100%; position: relative; "
            f"background-image: url('{image_url}'); background-position: center center; "
            f"background-size: cover; background-repeat: no-repeat; border-radius: 24px;"
        ),
    )
    card.append(background)

    content = _tag(soup, "div", "preorder-card__content")
    if date_text:
        content.append(_tag(soup, "div", "tn-atom preorder-card__date", text=date_text))
    content.append(_tag(soup, "div", "tn-atom preorder-card__title", text=record.title or TOUR_FALLBACK_TITLE))
    background.append(content)

    button = _tag(soup, "a", "tn-atom preorder-card__button", href="#preorder", data_tour_id=str(record.id))
    label = _tag(soup, "div", "tn-atom__button-content")
    label.append(_tag(soup, "span", text=PREORDER_LABEL))
    button.append(label)
    background.append(button)

    return card


def build_grid_card(tour: Any, *, settings: Optional[ClientSettings] = None) -> Optional[Tag]:
    """
    Grid card for one tour.

    The image is lazy (``data-bg``), the meta line joins date and price and
    the price node carries ``data-price-rub`` for the currency switcher.
    Returns ``None`` (and logs) for an unusable record. Never raises.
    """
    record = _valid_tour(tour, "grid")
    if record is None:
        return None

    soup = _fragment()
    date_text = format_date_range(record.date_start, record.date_end)
    amount = record.display_price
    price_text = format_price(amount)

    card = _tag(soup, "div", "travelCard", data_tour_url=f"/tour/{record.id}")
    _managed(card, record, GRID_CARD)

    card.append(_tag(
        soup, "div", "tour-card-image lazy-image",
        data_bg=resolve_image_url(record.image_url, settings),
    ))

    content = _tag(soup, "div", "tour-card-content")
    meta = _tag(soup, "div", "tour-card-meta")
    if date_text:
        meta.append(_tag(soup, "span", "tour-card-date", text=date_text))
    if date_text and price_text:
        meta.append(_tag(soup, "span", "tour-card-separator", text=DATE_SEPARATOR))
    if price_text:
        meta.append(_tag(
            soup, "span", "tour-card-price price",
            text=price_text,
            data_price_rub=_price_attribute(amount),
        ))
    content.append(meta)

    content.append(_tag(soup, "div", "tour-card-title", text=record.title or TOUR_FALLBACK_TITLE))
    if record.short_description:
        content.append(_tag(soup, "div", "tour-card-description", text=record.short_description))
    card.append(content)

    return card
