"""Tests for the catalog fetcher and render session."""

from datetime import date

import httpx
import pytest

from helpers import make_catalog, make_tour
from neverend.client.api import ApiClient
from neverend.client.catalog import CatalogFetcher, RenderSession, coerce_tour
from neverend.client.errors import CatalogFetchError


@pytest.mark.asyncio
async def test_fetch_catalog_sorts_by_start_date(api, backend):
    """Test that the catalog comes back ordered by start date."""
    backend.tours = [make_tour(1, date(2025, 3, 1)), make_tour(2, date(2025, 1, 10))]
    fetcher = CatalogFetcher(api)

    tours = await fetcher.fetch_catalog()

    assert [t.id for t in tours] == [2, 1]
    request = backend.calls("/api/tours")[0]
    assert request.url.params["status"] == "active"


@pytest.mark.asyncio
async def test_fetch_catalog_skips_unreadable_records(api, backend):
    """Test that malformed records are dropped and the rest kept."""
    backend.tours = [make_tour(1, "2025-02-01"), {"title": "без id"}, "junk", make_tour(2, "not a date")]

    tours = await CatalogFetcher(api).fetch_catalog()

    assert [t.id for t in tours] == [2, 1]
    assert tours[0].date_start is None


@pytest.mark.asyncio
async def test_fetch_catalog_http_error(api, backend):
    """Test that a failed response aborts with CatalogFetchError."""
    backend.tours_status = 500

    with pytest.raises(CatalogFetchError) as exc_info:
        await CatalogFetcher(api).fetch_catalog()

    assert exc_info.value.status_code == 500


@pytest.mark.asyncio
async def test_fetch_catalog_network_error(api, backend):
    """Test that a transport failure aborts with CatalogFetchError."""
    backend.fail_with = httpx.ConnectError("connection refused")

    with pytest.raises(CatalogFetchError):
        await CatalogFetcher(api).fetch_catalog()


@pytest.mark.asyncio
async def test_fetch_catalog_rejects_non_list(api, backend):
    """Test that a body that is not a list aborts the fetch."""
    backend.tours = {"error": "maintenance"}

    with pytest.raises(CatalogFetchError):
        await CatalogFetcher(api).fetch_catalog()


@pytest.mark.asyncio
async def test_load_session_uses_page_size(api, backend, client_config):
    """Test that the session is built with the configured page size."""
    backend.tours = make_catalog(13)

    session = await CatalogFetcher(api, client_config).load_session()

    assert session.tours_per_page == 6
    assert session.page_count == 3
    assert session.current_page == 1


def test_session_single_page():
    """Test that two tours fit on one page in date order."""
    session = RenderSession(
        [coerce_tour(make_tour(1, "2025-03-01")), coerce_tour(make_tour(2, "2025-01-10"))],
        tours_per_page=6,
    )

    assert session.page_count == 1
    assert [t.id for t in session.page_slice()] == [2, 1]


def test_session_last_page_is_partial():
    """Test that page 3 of 13 tours holds one tour."""
    session = RenderSession([coerce_tour(t) for t in make_catalog(13)], tours_per_page=6)

    assert [t.id for t in session.page_slice(3)] == [13]
    session.current_page = 99
    assert session.current_page == 3


def test_empty_session():
    """Test that an empty catalog has no pages and stays on page 1."""
    session = RenderSession([], tours_per_page=6)

    assert session.page_count == 0
    assert session.current_page == 1
    assert session.page_slice() == []


def test_session_rejects_bad_page_size():
    with pytest.raises(ValueError):
        RenderSession([], tours_per_page=0)


def test_display_price_prefers_price_options():
    tour = coerce_tour(make_tour(1, price=1000, prices=[{"price": "500"}, {"price": 300}, {"price": None}]))

    assert tour.display_price == 300


def test_undated_tours_sort_first():
    session = RenderSession(
        [coerce_tour(make_tour(1, "2025-01-01")), coerce_tour(make_tour(2)), coerce_tour(make_tour(3, ""))],
    )

    assert session.tour_ids == [2, 3, 1]


@pytest.mark.asyncio
async def test_fetch_tour_detail(client_config):
    """Test reading one tour with its itinerary."""
    def handler(request):
        assert request.url.path == "/api/tours/5"
        return httpx.Response(200, json=make_tour(
            5, "2025-07-10",
            programs=[{"day": 1, "programm": "Прилёт"}],
            inclusions=[{"item": "Трансфер", "type": "included"}],
        ))

    api = ApiClient(client_config, transport=httpx.MockTransport(handler))
    try:
        tour = await CatalogFetcher(api).fetch_tour(5)
    finally:
        await api.aclose()

    assert tour.id == 5
    assert tour.date_start == date(2025, 7, 10)
    assert len(tour.programs) == 1
    assert len(tour.inclusions) == 1


@pytest.mark.asyncio
async def test_fetch_missing_tour(api):
    with pytest.raises(CatalogFetchError) as exc_info:
        await CatalogFetcher(api).fetch_tour(404)

    assert exc_info.value.status_code == 404
