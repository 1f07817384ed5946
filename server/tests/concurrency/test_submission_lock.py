"""Concurrency tests for booking form submission and catalog loading."""

import asyncio
import json

import httpx
import pytest
import pytest_asyncio

from helpers import make_catalog, wait_for
from neverend.client.api import ApiClient
from neverend.client.errors import RequestInterceptedError
from neverend.client.forms import FormSubmissionGuard, SubmissionLock
from neverend.client.runtime import CatalogPage


@pytest_asyncio.fixture
async def guard(page, api, client_config):
    page.globals["tildaForm"] = {}
    page.globals["fetch"] = lambda url, options=None: None
    guard = FormSubmissionGuard(page, api, settings=client_config)
    guard.install()
    yield guard
    await guard.wait_idle()
    guard.uninstall()


def fill_preorder(page):
    form = page.get_element_by_id("preorder-form")
    page.set_field_value(form.select_one('[name="name"]'), "Анна")
    page.set_field_value(form.select_one('[name="phone"]'), "+79000000000")
    return form


@pytest.mark.asyncio
async def test_every_trigger_path_at_once_sends_one_request(page, backend, guard):
    """Test that click, native submit, the CMS hook and the CMS request together send once."""
    form = fill_preorder(page)

    page.click(form.select_one("button"))
    assert page.submit(form) is False
    assert page.globals["tildaForm"]["beforeSubmit"](form) is False
    with pytest.raises(RequestInterceptedError):
        page.globals["fetch"]("https://forms.tilda.cc/procces/")
    await guard.wait_idle()

    assert len(backend.calls("/api/applications")) == 1
    assert guard.requests_sent == 1


@pytest.mark.asyncio
async def test_repeated_clicks_while_in_flight(page, backend, guard):
    form = fill_preorder(page)
    button = form.select_one("button")

    for _ in range(5):
        page.click(button)
    await guard.wait_idle()

    assert len(backend.calls("/api/applications")) == 1


@pytest.mark.asyncio
async def test_late_duplicate_after_success_is_swallowed(page, backend, guard, client_config):
    """Test that a trigger arriving in the settle period after success sends nothing."""
    form = fill_preorder(page)
    page.submit(form)
    await guard.wait_idle()

    fill_preorder(page)
    page.submit(form)
    await guard.wait_idle()
    assert len(backend.calls("/api/applications")) == 1

    await asyncio.sleep(client_config.submission_lock_seconds + 0.03)
    assert len(guard.lock) == 0

    page.submit(form)
    await guard.wait_idle()
    assert len(backend.calls("/api/applications")) == 2


@pytest.mark.asyncio
async def test_lock_released_after_failure(page, backend, guard):
    """Test that the visitor can retry right after a failed request."""
    backend.application_status = 500
    backend.application_body = {"error": "Внутренняя ошибка сервера"}
    form = fill_preorder(page)

    page.submit(form)
    await guard.wait_idle()
    assert len(guard.lock) == 0

    backend.application_status = 201
    backend.application_body = {"id": 1, "message": "ok"}
    page.submit(form)
    await guard.wait_idle()

    assert len(backend.calls("/api/applications")) == 2
    assert page.alerts[-1].startswith("Спасибо")


@pytest.mark.asyncio
async def test_two_forms_are_locked_independently(page, backend, guard):
    form = fill_preorder(page)
    other = page.create_element("form", {"id": "second"}, classes=["js-form-proccess"])
    for name, value in (("name", "Олег"), ("phone", "+79000000001")):
        other.append(page.create_element("input", {"name": name, "value": value}))
    page.append_child(page.body, other)

    page.submit(form)
    page.submit(other)
    await guard.wait_idle()

    names = sorted(json.loads(r.content)["name"] for r in backend.calls("/api/applications"))
    assert names == ["Анна", "Олег"]


@pytest.mark.asyncio
async def test_concurrent_catalog_loads_fetch_once(page, api, backend, client_config):
    backend.tours = make_catalog(7)
    catalog_page = CatalogPage(page, client_config, api)
    try:
        sessions = await asyncio.gather(*(catalog_page.load_tours() for _ in range(5)))

        assert all(session is sessions[0] for session in sessions)
        assert len(backend.calls("/api/tours")) == 1
        assert len(page.select(".swiper-wrapper .swiper-slide")) == 7
    finally:
        await catalog_page.stop()


@pytest.mark.asyncio
async def test_hung_request_releases_lock_at_expiry(page, client_config):
    """Test that a request that never returns cannot keep the form locked."""
    gate = asyncio.Event()
    requests = []

    async def hanging(request):
        requests.append(request)
        await gate.wait()
        return httpx.Response(201, json={"id": len(requests), "message": "ok"})

    config = client_config.model_copy(update={"submission_expiry_seconds": 0.05})
    api = ApiClient(config, transport=httpx.MockTransport(hanging))
    guard = FormSubmissionGuard(page, api, settings=config)
    guard.install()
    try:
        form = fill_preorder(page)
        page.submit(form)
        assert guard.lock.is_held(form)

        assert await wait_for(lambda: not guard.lock.is_held(form))
        assert len(requests) == 1

        page.submit(form)
        assert await wait_for(lambda: len(requests) == 2)
        assert guard.lock.is_held(form)
    finally:
        gate.set()
        await guard.wait_idle()
        guard.uninstall()
        await api.aclose()


@pytest.mark.asyncio
async def test_stale_release_keeps_newer_hold(page, client_config):
    """Test that the release of an expired hold does not free the hold that replaced it."""
    lock = SubmissionLock(page, settle_seconds=0.01, expiry_seconds=0.02)
    form = page.get_element_by_id("preorder-form")

    first = lock.acquire(form)
    assert lock.acquire(form) is None
    assert await wait_for(lambda: not lock.is_held(form))

    second = lock.acquire(form)
    lock.release(form, first)
    lock.release_later(form, first)
    assert lock.ticket(form) == second

    lock.release(form, second)
    assert len(lock) == 0
