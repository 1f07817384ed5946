"""Tests for the tour detail page."""

import json

import httpx
import pytest
import pytest_asyncio

from helpers import TOUR_HTML, make_tour, wait_for
from neverend.client.dom import Page, class_list
from neverend.client.forms import APPLICATION_SENT
from neverend.client.tour_page import (
    BOOKING_FORM_ID,
    INVALID_TOUR_ID,
    TOUR_BAD_DATA,
    TOUR_CONNECTION_FAILED,
    TOUR_NOT_FOUND,
    TOUR_SERVER_ERROR,
    TourPage,
    tour_id_from_location,
)


class FakeSlider:
    def __init__(self):
        self.calls = []

    def update(self):
        self.calls.append("update")

    def slide_to(self, index):
        self.calls.append(("slide_to", index))


@pytest_asyncio.fixture
async def tour_dom():
    page = Page(TOUR_HTML)
    page.location = "/tour/5"
    yield page
    await page.close()


@pytest_asyncio.fixture
async def tour_page(tour_dom, api, client_config):
    tour_page = TourPage(tour_dom, client_config, api)
    yield tour_page
    await tour_page.stop()


def altai_tour(**fields):
    record = make_tour(
        5, "2025-07-10",
        date_end="2025-07-17",
        title="Алтай",
        image_url="uploads/altai.jpg",
        duration="8 дней",
        location="Горный Алтай",
        max_participants=12,
        current_participants=4,
        short_description="Водопады и перевалы",
        description="Неделя в горах",
        price=89000,
        prices=[{"price": 95000, "description": "Двухместное"}, {"price": 89000}],
        inclusions=[
            {"item": "Трансфер", "type": "included"},
            {"item": "Проживание", "type": "included"},
            {"item": "Авиабилеты", "type": "excluded"},
        ],
        programs=[
            {"day": 2, "programm": "Перевал Кату-Ярык\n\nТелецкое озеро"},
            {"day": 1, "programm": "Встреча в Горно-Алтайске", "image_url": "/uploads/day1.jpg"},
        ],
    )
    record.update(fields)
    return record


def texts(page, selector):
    return [node.get_text() for node in page.select(selector)]


def display(page, element_id):
    return page.get_style_property(page.get_element_by_id(element_id), "display")


@pytest.mark.parametrize("location, expected", [
    ("/tour/5", 5),
    ("https://neverend.travel/tour/12?utm_source=mail", 12),
    ("/tour/abc", None),
    ("/all-tours.html", None),
    (None, None),
])
def test_tour_id_from_location(location, expected):
    assert tour_id_from_location(location) == expected


@pytest.mark.asyncio
async def test_load_displays_tour(tour_dom, backend, tour_page):
    """Test that every placeholder of the page is filled from the tour."""
    backend.tour_details[5] = altai_tour()

    tour = await tour_page.load()

    assert tour.id == 5
    assert display(tour_dom, "loading") == "none"
    assert display(tour_dom, "error") == "none"
    assert display(tour_dom, "tour-content") == "block"
    assert tour_dom.soup.title.get_text() == "Алтай | MARK INVEST TOUR"

    hero = tour_dom.get_element_by_id("tour-hero-section")
    assert tour_dom.get_style_property(hero, "background-image") == "url('/uploads/altai.jpg')"
    assert "loaded" in class_list(hero)

    assert tour_dom.get_element_by_id("tour-title").get_text() == "Алтай"
    assert texts(tour_dom, "#tour-meta .tour-meta-item") == [
        "10 - 17 июля 2025", "8 дней", "Горный Алтай", "4/12 участников",
    ]
    assert tour_dom.get_element_by_id("tour-short-description").get_text() == "Водопады и перевалы"
    assert tour_dom.get_element_by_id("tour-description").get_text() == "Неделя в горах"


@pytest.mark.asyncio
async def test_labelled_prices_are_listed(tour_dom, backend, tour_page):
    backend.tour_details[5] = altai_tour()

    await tour_page.load()

    price = tour_dom.get_element_by_id("tour-price")
    assert texts(tour_dom, "#tour-price .tour-price-item") == ["95 000 ₽ - Двухместное", "89 000 ₽"]
    assert class_list(price) == ["tour-price", "tour-price-multiple"]
    assert display(tour_dom, "tour-price") == "block"


@pytest.mark.asyncio
async def test_single_price_is_localized(tour_dom, api, backend, client_config):
    """Test that a tour without labelled prices shows its price in the display currency."""
    backend.tour_details[5] = altai_tour(prices=[], price=12500)
    rates = httpx.MockTransport(lambda request: httpx.Response(200, json={"data": {"usd": 80}}))
    config = client_config.model_copy(update={"currency": "USD"})
    tour_page = TourPage(tour_dom, config, api, rates_transport=rates)

    await tour_page.load()

    price = tour_dom.get_element_by_id("tour-price")
    assert price["data-price-rub"] == "12500"
    assert price.get_text() == "от 156 $"


@pytest.mark.asyncio
async def test_details_grid(tour_dom, backend, tour_page):
    backend.tour_details[5] = altai_tour()

    await tour_page.load()

    assert texts(tour_dom, ".tour-detail-label") == [
        "Длительность", "Место", "Доступно мест", "Количество дней", "Что входит в тур", "Не входит в тур",
    ]
    values = texts(tour_dom, ".tour-detail-item:not(.tour-detail-item-full) .tour-detail-value")
    assert values == ["8 дней", "Горный Алтай", "8 из 12", "7"]
    assert texts(tour_dom, ".tour-detail-item-full li") == ["Трансфер", "Проживание", "Авиабилеты"]
    assert display(tour_dom, "tour-details") == "grid"


@pytest.mark.asyncio
async def test_programs_carousel(tour_dom, backend, tour_page):
    """Test one slide per itinerary day, in day order, with badges and paragraphs."""
    slider = FakeSlider()
    tour_dom.register_widget(tour_dom.get_element_by_id("programs-swiper"), slider)
    backend.tour_details[5] = altai_tour()

    await tour_page.load()

    slides = tour_dom.select("#programs-swiper-wrapper .swiper-slide")
    assert [slide["data-slide-id"] for slide in slides] == ["1", "2"]
    assert "Static day" not in tour_dom.get_element_by_id("programs-swiper-wrapper").get_text()
    assert texts(tour_dom, '[data-slide-id="2"] .tour-program-day-badge') == ["День 2", "11 июля"]
    assert texts(tour_dom, '[data-slide-id="2"] p') == ["Перевал Кату-Ярык", "Телецкое озеро"]

    first_image = slides[0].select_one(".tour-program-day-image")
    second_image = slides[1].select_one(".tour-program-day-image")
    assert tour_dom.get_style_property(first_image, "background-image") == "url('/uploads/day1.jpg')"
    assert tour_dom.get_style_property(second_image, "background-image") == "url('/uploads/altai.jpg')"
    assert slider.calls == ["update", ("slide_to", 0)]


@pytest.mark.asyncio
async def test_empty_sections_are_hidden(tour_dom, backend, tour_page):
    backend.tour_details[5] = make_tour(5)

    await tour_page.load()

    for element_id in (
        "tour-price", "tour-short-description", "tour-description", "tour-description-title",
        "tour-details", "tour-details-title", "tour-programs",
    ):
        assert display(tour_dom, element_id) == "none", element_id
    assert tour_dom.select(".tour-meta-item") == []


@pytest.mark.asyncio
@pytest.mark.parametrize("status, message", [
    (404, TOUR_NOT_FOUND),
    (500, TOUR_SERVER_ERROR),
    (503, "Ошибка загрузки данных тура (503)"),
])
async def test_load_failure_is_shown(tour_dom, backend, tour_page, status, message):
    backend.tour_details[5] = altai_tour()
    backend.tour_status = status

    assert await tour_page.load() is None

    assert display(tour_dom, "error") == "block"
    assert tour_dom.get_element_by_id("error").get_text() == message
    assert display(tour_dom, "tour-content") == "none"
    assert display(tour_dom, "loading") == "none"


@pytest.mark.asyncio
async def test_connection_failure_is_shown(tour_dom, backend, tour_page):
    backend.fail_with = httpx.ConnectError("connection refused")

    await tour_page.load()

    assert tour_dom.get_element_by_id("error").get_text() == TOUR_CONNECTION_FAILED


@pytest.mark.asyncio
async def test_unreadable_tour_is_shown(tour_dom, backend, tour_page):
    backend.tour_details[5] = {"title": "без id"}

    await tour_page.load()

    assert tour_dom.get_element_by_id("error").get_text() == TOUR_BAD_DATA


@pytest.mark.asyncio
async def test_bad_location_sends_nothing(tour_dom, backend, tour_page):
    tour_dom.location = "/all-tours.html"

    assert await tour_page.load() is None

    assert backend.requests == []
    assert tour_dom.get_element_by_id("error").get_text() == INVALID_TOUR_ID


@pytest.mark.asyncio
async def test_failure_without_error_block_alerts(api, backend, client_config):
    page = Page("<div></div>")
    page.location = "/tour/404"
    try:
        assert await TourPage(page, client_config, api).load() is None
        assert page.alerts == [TOUR_NOT_FOUND]
    finally:
        await page.close()


@pytest.mark.asyncio
async def test_existing_form_is_tied_to_tour(api, backend, client_config):
    """Test that the page's own booking form gets a hidden tour_id, once."""
    page = Page(TOUR_HTML.replace(
        '<div id="booking-form-container"></div>',
        '<div id="booking-form-container"><form id="lead"><input name="name"><input name="phone"></form></div>',
    ))
    page.location = "/tour/5"
    backend.tour_details[5] = altai_tour()
    tour_page = TourPage(page, client_config, api)
    try:
        await tour_page.load()
        tour_page.setup_booking_form(5)

        fields = page.select('#lead input[name="tour_id"]')
        assert len(fields) == 1
        assert fields[0]["type"] == "hidden"
        assert page.field_value(fields[0]) == "5"
        assert page.session_storage["selectedTourId"] == "5"
        assert page.get_element_by_id(BOOKING_FORM_ID) is None
    finally:
        await page.close()


@pytest.mark.asyncio
async def test_built_form_books_the_tour(tour_dom, backend, tour_page):
    """Test the whole flow: load, fill the built form, send an application for this tour."""
    backend.tour_details[5] = altai_tour()
    tour_page.start()
    assert await wait_for(lambda: tour_page.tour is not None)

    form = tour_dom.get_element_by_id(BOOKING_FORM_ID)
    tour_dom.set_field_value(form.select_one('[name="name"]'), "Анна")
    tour_dom.set_field_value(form.select_one('[name="phone"]'), "+79000000000")

    assert tour_dom.click(form.select_one('button[type="submit"]')) is False
    await tour_page.forms.wait_idle()

    payloads = [json.loads(request.content) for request in backend.calls("/api/applications")]
    assert len(payloads) == 1
    assert payloads[0]["tour_id"] == 5
    assert payloads[0]["name"] == "Анна"
    assert tour_dom.alerts == [APPLICATION_SENT]


@pytest.mark.asyncio
async def test_stop_releases_the_form(tour_dom, backend, tour_page):
    backend.tour_details[5] = altai_tour()
    tour_page.start()
    assert await wait_for(lambda: tour_page.tour is not None)

    await tour_page.stop()

    assert tour_dom.submit(tour_dom.get_element_by_id(BOOKING_FORM_ID)) is True
