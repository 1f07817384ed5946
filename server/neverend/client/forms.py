"""
Form submission guard.

The CMS posts its lead forms to its own endpoints. The guard takes every
booking form over and sends it to the site backend instead. A form can be
submitted along several paths at once: the native submit event, a click on
its submit control and the CMS's own AJAX call. All of them end in
:meth:`FormSubmissionGuard.submit`, and the per-form :class:`SubmissionLock`
lets exactly one of them through.
"""

import asyncio
import itertools
import logging
import re
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional, Sequence, Union

import httpx
from bs4 import Tag

from ..core.config import ClientSettings, client_settings
from ..core.observability import metrics_collector
from .api import ApiClient, ApiResponse
from .dom import Event, MutationObserver, MutationRecord, Page
from .errors import RequestInterceptedError, SubmissionError
from .session import SessionStore

logger = logging.getLogger(__name__)

SUBSCRIPTION_FORM_ID = "subscription-form"
SUBSCRIPTION_FORM_CLASS = "subscription-form"
SUBMIT_BUTTON_SELECTOR = 'button[type="submit"], input[type="submit"]'
SUBMIT_CONTROL_SELECTOR = (
    'button[type="submit"], input[type="submit"], .t-submit, '
    'button[class*="submit" i], [onclick*="submit" i]'
)
CMS_HOSTS = ("tilda.cc", "tilda.ws", "tildacdn.com")

SENDING_LABEL = "Отправка..."
DEFAULT_SUBMIT_LABEL = "Отправить"
APPLICATION_SENT = "Спасибо! Ваша заявка успешно отправлена. Мы свяжемся с вами в ближайшее время."
APPLICATION_FAILED = "Ошибка отправки заявки: {error}"
APPLICATION_FAILED_DEFAULT = "Попробуйте позже"
CONNECTION_FAILED = "Ошибка подключения к серверу. Пожалуйста, попробуйте позже."
NAME_AND_PHONE_REQUIRED = "Пожалуйста, заполните имя и телефон"

SUBSCRIBING_LABEL = "Подписка..."
SUBSCRIBED = "Спасибо! Вы успешно подписались на уведомления о новых турах."
SUBSCRIPTION_FAILED = "Ошибка при подписке"
SUBSCRIPTION_CONNECTION_FAILED = "Ошибка подключения к серверу"
INVALID_EMAIL = "Введите корректный email адрес"
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

FIELD_ERROR_CLASS = "field-error"
TOUR_ID_FIELD = "tour_id"


@dataclass(frozen=True)
class ManagedForm:
    """A CMS lead form this client sends to the backend."""

    form: Tag
    reason: str


@dataclass(frozen=True)
class ForeignForm:
    """A form left to whoever else handles it."""

    form: Tag
    reason: str


FormClass = Union[ManagedForm, ForeignForm]


def is_subscription_form(form: Tag) -> bool:
    return form.get("id") == SUBSCRIPTION_FORM_ID or Page.matches(form, f".{SUBSCRIPTION_FORM_CLASS}")


def classify_form(form: Tag) -> FormClass:
    """
    Decide whether ``form`` is a booking form the guard takes over.

    The subscription form is always foreign. Any other form is managed when
    it sits inside a CMS popup or form block, carries CMS form markup or
    classes, or has a name or phone field.
    """
    if is_subscription_form(form):
        return ForeignForm(form, "subscription form")
    if Page.closest(form, ".t-popup") is not None:
        return ManagedForm(form, "inside popup")
    if Page.closest(form, "[data-tilda-formskey]") is not None:
        return ManagedForm(form, "inside CMS form block")
    if form.select_one(".tn-atom__form") is not None:
        return ManagedForm(form, "contains CMS form atom")
    if Page.closest(form, '[data-elem-type="form"]') is not None:
        return ManagedForm(form, "inside form element")
    if form.select_one('[name="name"], [name="Name"], [name="phone"], [name="Phone"]') is not None:
        return ManagedForm(form, "has contact fields")
    if Page.matches(form, ".js-form-proccess, .js-send-form-error"):
        return ManagedForm(form, "CMS form class")
    return ForeignForm(form, "no booking markers")


def find_form_field(
    form: Tag,
    names: Sequence[str],
    types: Sequence[str] = (),
    placeholders: Sequence[str] = (),
) -> Optional[Tag]:
    """First field by name, then by input type, then by placeholder text."""
    for name in names:
        field = form.select_one(f'[name="{name}"]')
        if field is not None:
            return field
    for kind in types:
        field = form.select_one(f'input[type="{kind}"]')
        if field is not None:
            return field
    for placeholder in placeholders:
        field = form.select_one(f'input[placeholder*="{placeholder}" i]')
        if field is not None:
            return field
    return None


def _value(field: Optional[Tag]) -> str:
    return Page.field_value(field).strip() if field is not None else ""


def extract_application(form: Tag) -> dict[str, str]:
    """The contact fields of a booking form, trimmed; missing fields are empty."""
    return {
        "name": _value(find_form_field(form, ("name", "Name", "NAME"), ("text",), ("имя", "name"))),
        "phone": _value(find_form_field(form, ("phone", "Phone", "PHONE"), ("tel",), ("телефон", "phone"))),
        "email": _value(find_form_field(form, ("email", "Email", "EMAIL"), ("email",))),
        "direction": _value(form.select_one(
            '[name*="direction" i], select[data-name="direction"], select[id*="direction" i]'
        )),
        "message": _value(form.select_one('[name*="message" i], textarea')),
    }


def notify(page: Page, kind: str, message: str) -> None:
    """Show a message through the site's toast hooks, or a plain alert."""
    hook = page.globals.get(f"show{kind.capitalize()}")
    if callable(hook):
        page.invoke(hook, message)
    else:
        page.alert(message)


class SubmitControl:
    """The submit control of a form, disabled and relabelled while a request is in flight."""

    def __init__(self, page: Page, form: Tag):
        self.page = page
        self.node = form.select_one(SUBMIT_BUTTON_SELECTOR)
        self.label = self._read_label() or DEFAULT_SUBMIT_LABEL

    def _read_label(self) -> str:
        if self.node is None:
            return ""
        if self.node.name == "input":
            return self.node.get("value") or ""
        return self.node.get_text()

    def _write_label(self, text: str) -> None:
        if self.node.name == "input":
            self.page.set_attribute(self.node, "value", text)
        else:
            self.page.set_text(self.node, text)

    def busy(self, label: str) -> None:
        if self.node is None:
            return
        self.page.set_attribute(self.node, "disabled", "disabled")
        self._write_label(label)

    def restore(self) -> None:
        if self.node is None:
            return
        self.page.remove_attribute(self.node, "disabled")
        self._write_label(self.label)


class SubmissionLock:
    """
    Per-form in-flight marker.

    Held from acquisition until the response is handled. A failed request
    releases it at once; a successful one keeps it for a short settle period
    so late duplicate triggers of the same submission are still swallowed.
    A hard expiry armed at acquisition releases a hold whose request never
    comes back.

    Every hold gets a ticket. Releasing with a stale ticket is a no-op, so a
    request that outlived its expired hold cannot free a newer one.
    """

    def __init__(self, page: Page, settle_seconds: float, expiry_seconds: float):
        self.page = page
        self.settle_seconds = settle_seconds
        self.expiry_seconds = expiry_seconds
        self._held: dict[int, tuple[Tag, int, Optional[asyncio.TimerHandle]]] = {}
        self._tickets = itertools.count(1)

    def is_held(self, form: Tag) -> bool:
        return id(form) in self._held

    def acquire(self, form: Tag) -> Optional[int]:
        """Take the lock; returns the hold's ticket, or None when already held."""
        if self.is_held(form):
            return None
        ticket = next(self._tickets)
        handle = self.page.set_timeout(self.expiry_seconds, lambda: self._expire(form, ticket))
        self._held[id(form)] = (form, ticket, handle)
        return ticket

    def _expire(self, form: Tag, ticket: int) -> None:
        if self.ticket(form) == ticket:
            logger.warning("Submission lock expired before the request finished")
            self.release(form, ticket)

    def ticket(self, form: Tag) -> Optional[int]:
        entry = self._held.get(id(form))
        return entry[1] if entry is not None else None

    def release(self, form: Tag, ticket: Optional[int] = None) -> None:
        entry = self._held.get(id(form))
        if entry is None or (ticket is not None and entry[1] != ticket):
            return
        del self._held[id(form)]
        self.page.clear_timeout(entry[2])

    def release_later(self, form: Tag, ticket: Optional[int] = None) -> None:
        """Release after the settle period."""
        entry = self._held.get(id(form))
        if entry is None or (ticket is not None and entry[1] != ticket):
            return
        held_ticket = entry[1]
        self.page.clear_timeout(entry[2])
        handle = self.page.set_timeout(self.settle_seconds, lambda: self.release(form, held_ticket))
        self._held[id(form)] = (form, held_ticket, handle)

    def release_all(self) -> None:
        for form, _, _ in list(self._held.values()):
            self.release(form)

    def __len__(self) -> int:
        return len(self._held)


class SubmitInterceptor(ABC):
    """Diverts one of the CMS's own ways of sending a form into the guard."""

    def __init__(self, guard: "FormSubmissionGuard"):
        self.guard = guard

    @property
    def page(self) -> Page:
        return self.guard.page

    @abstractmethod
    def install(self) -> bool:
        """Hook into the host; returns False when the host lacks the hook point."""

    @abstractmethod
    def uninstall(self) -> None:
        ...


class BeforeSubmitHookInterceptor(SubmitInterceptor):
    """
    Uses the CMS form API's ``beforeSubmit`` hook when the host exposes one.

    The hook receives the form about to be sent; returning False cancels the
    CMS request.
    """

    HOST_OBJECT = "tildaForm"
    HOOK_NAME = "beforeSubmit"

    def __init__(self, guard: "FormSubmissionGuard"):
        super().__init__(guard)
        self._previous: Any = None
        self._host: Optional[dict] = None

    def install(self) -> bool:
        host = self.page.globals.get(self.HOST_OBJECT)
        if not isinstance(host, dict):
            return False
        self._host = host
        self._previous = host.get(self.HOOK_NAME)
        host[self.HOOK_NAME] = self.before_submit
        return True

    def uninstall(self) -> None:
        if self._host is None:
            return
        if self._previous is None:
            self._host.pop(self.HOOK_NAME, None)
        else:
            self._host[self.HOOK_NAME] = self._previous
        self._host = None

    def before_submit(self, form: Tag) -> bool:
        if self.guard.submit(form):
            return False
        if callable(self._previous):
            return self._previous(form)
        return True


class RequestOverrideInterceptor(SubmitInterceptor):
    """
    Wraps the host's outbound request function.

    Calls to the CMS form endpoints are answered by submitting the active
    form through the guard and failing the CMS call with
    :class:`RequestInterceptedError`; everything else goes through untouched.
    """

    HOST_FUNCTION = "fetch"

    def __init__(self, guard: "FormSubmissionGuard"):
        super().__init__(guard)
        self._original: Any = None

    def install(self) -> bool:
        original = self.page.globals.get(self.HOST_FUNCTION)
        if not callable(original):
            return False
        self._original = original
        self.page.globals[self.HOST_FUNCTION] = self.fetch
        return True

    def uninstall(self) -> None:
        if self._original is None:
            return
        if self.page.globals.get(self.HOST_FUNCTION) == self.fetch:
            self.page.globals[self.HOST_FUNCTION] = self._original
        self._original = None

    @staticmethod
    def targets_cms(url: Any) -> bool:
        text = str(url or "")
        return any(host in text for host in CMS_HOSTS)

    def fetch(self, url: Any, options: Any = None) -> Any:
        if self.targets_cms(url):
            form = self.guard.active_form or self.guard.first_managed_form()
            if form is not None:
                logger.debug("CMS form request diverted", extra={"url": str(url)})
                self.guard.submit(form)
                raise RequestInterceptedError(str(url))
        return self._original(url, options)


class FormSubmissionGuard:
    """
    Sends booking forms to ``POST /applications`` exactly once per submission.

    ``submit`` does the synchronous part (lock, event suppression, field
    extraction, validation) and hands the request to a page task; await
    :meth:`wait_idle` to join the requests in flight.
    """

    def __init__(
        self,
        page: Page,
        api: Optional[ApiClient] = None,
        store: Optional[SessionStore] = None,
        settings: Optional[ClientSettings] = None,
    ):
        self.page = page
        self.settings = settings or client_settings
        self.api = api or ApiClient(self.settings)
        self.store = store or SessionStore(page, self.settings)
        self.lock = SubmissionLock(
            page,
            self.settings.submission_lock_seconds,
            self.settings.submission_expiry_seconds,
        )
        self.interceptors: list[SubmitInterceptor] = [
            BeforeSubmitHookInterceptor(self),
            RequestOverrideInterceptor(self),
        ]
        self.active_form: Optional[Tag] = None
        self.requests_sent = 0
        self._active_timer = None
        self._in_flight: set[asyncio.Task] = set()
        self._form_observer = MutationObserver(page, self._on_mutations)
        self._installed = False

    def install(self) -> None:
        if self._installed:
            return
        self._installed = True
        self.page.add_event_listener(self.page.soup, "submit", self._on_submit, capture=True)
        self.page.add_event_listener(self.page.soup, "click", self._on_click, capture=True)
        active = [type(i).__name__ for i in self.interceptors if i.install()]
        self.neutralize_forms()
        self._form_observer.observe(self.page.body, child_list=True, subtree=True)
        logger.info("Form submission guard installed", extra={"interceptors": active})

    def uninstall(self) -> None:
        if not self._installed:
            return
        self._installed = False
        self.page.remove_event_listener(self.page.soup, "submit", self._on_submit, capture=True)
        self.page.remove_event_listener(self.page.soup, "click", self._on_click, capture=True)
        for interceptor in self.interceptors:
            interceptor.uninstall()
        self._form_observer.disconnect()
        self.page.clear_timeout(self._active_timer)
        self.lock.release_all()

    def first_managed_form(self) -> Optional[Tag]:
        for form in self.page.select("form"):
            if isinstance(classify_form(form), ManagedForm):
                return form
        return None

    def neutralize_forms(self) -> int:
        """Strip CMS endpoints from the ``action`` of managed forms."""
        count = 0
        for form in self.page.select("form[action]"):
            if "tilda" in form["action"] and isinstance(classify_form(form), ManagedForm):
                self.page.remove_attribute(form, "action")
                count += 1
        return count

    def _on_mutations(self, records: list[MutationRecord], observer: MutationObserver) -> None:
        for record in records:
            for node in record.added_nodes:
                if node.name == "form" or node.select_one("form") is not None:
                    self.neutralize_forms()
                    return

    # Trigger paths

    def _on_submit(self, event: Event) -> None:
        form = event.target
        if isinstance(form, Tag) and form.name == "form":
            self.submit(form, event)

    def _on_click(self, event: Event) -> None:
        control = self.page.closest(event.target, SUBMIT_CONTROL_SELECTOR)
        if control is None:
            return

        form = self.page.closest(control, "form")
        if form is None and control.name == "button" and (control.get("type") or "submit") != "button":
            form = self.page.select_one("form")
        if form is None:
            return

        self._mark_active(form)
        if self.lock.is_held(form) or isinstance(classify_form(form), ManagedForm):
            self.submit(form, event)

    def _mark_active(self, form: Tag) -> None:
        self.active_form = form
        self.page.clear_timeout(self._active_timer)
        self._active_timer = self.page.set_timeout(self.settings.active_form_window_seconds, self._clear_active)

    def _clear_active(self) -> None:
        self.active_form = None
        self._active_timer = None

    @staticmethod
    def _suppress(event: Optional[Event]) -> None:
        if event is not None:
            event.prevent_default()
            event.stop_propagation()

    # Submission

    def submit(self, form: Tag, event: Optional[Event] = None) -> bool:
        """
        Handle one trigger of ``form``.

        Returns:
            True when the guard owns the form (the trigger was suppressed),
            False when the form is foreign and left alone
        """
        if self.lock.is_held(form):
            self._suppress(event)
            metrics_collector.record_form_submission("suppressed")
            logger.debug("Duplicate submission suppressed")
            return True

        classification = classify_form(form)
        if isinstance(classification, ForeignForm):
            return False

        self._suppress(event)

        payload: dict[str, Any] = extract_application(form)
        if not payload["name"] or not payload["phone"]:
            if any(payload.values()):
                notify(self.page, "warning", NAME_AND_PHONE_REQUIRED)
                metrics_collector.record_form_submission("invalid")
            else:
                metrics_collector.record_form_submission("ignored")
            return True

        tour_id = self.resolve_tour_id(form)
        if tour_id is not None:
            payload["tour_id"] = tour_id

        ticket = self.lock.acquire(form)
        control = SubmitControl(self.page, form)
        control.busy(SENDING_LABEL)

        task = self.page.spawn(self._send(form, payload, control, ticket))
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)
        logger.info(
            "Booking form submitted",
            extra={"reason": classification.reason, "tour_id": tour_id}
        )
        return True

    def resolve_tour_id(self, form: Tag) -> Optional[int]:
        """
        The tour of the card the visitor booked from, else the form's own
        ``tour_id`` field (tour pages), else the one kept in the session.
        """
        submit_button = form.select_one(SUBMIT_BUTTON_SELECTOR)
        for origin in (self.page.active_element, submit_button):
            card = self.page.closest(origin, "[data-tour-id]")
            if card is None:
                continue
            try:
                return int(card["data-tour-id"])
            except ValueError:
                logger.warning("Ignoring malformed tour id", extra={"value": card["data-tour-id"]})
        field = form.select_one(f'input[name="{TOUR_ID_FIELD}"]')
        if field is not None:
            try:
                return int(Page.field_value(field))
            except ValueError:
                logger.warning("Ignoring malformed tour id", extra={"value": Page.field_value(field)})
        return self.store.selected_tour_id

    async def _post_application(self, payload: dict[str, Any]) -> ApiResponse:
        """
        Raises:
            SubmissionError: On network failure or a rejected application
        """
        self.requests_sent += 1
        try:
            response = await self.api.post(
                "applications",
                payload,
                headers={"Idempotency-Key": str(uuid.uuid4())},
            )
        except httpx.HTTPError as e:
            logger.error("Application request failed", extra={"error": str(e)})
            raise SubmissionError(CONNECTION_FAILED) from e

        if not response.ok:
            logger.warning("Application rejected", extra={"status_code": response.status_code})
            raise SubmissionError(
                APPLICATION_FAILED.format(error=response.error_message(APPLICATION_FAILED_DEFAULT)),
                status_code=response.status_code,
            )
        return response

    async def _send(
        self,
        form: Tag,
        payload: dict[str, Any],
        control: SubmitControl,
        ticket: Optional[int],
    ) -> None:
        settled = False
        try:
            await self._post_application(payload)
            self._on_success(form)
            settled = True
            metrics_collector.record_form_submission("success")
        except SubmissionError as e:
            notify(self.page, "error", e.message)
            metrics_collector.record_form_submission("failed")
        finally:
            control.restore()
            if settled:
                self.lock.release_later(form, ticket)
            else:
                self.lock.release(form, ticket)

    def _on_success(self, form: Tag) -> None:
        self.page.reset_form(form)
        clear_field_errors(self.page, form)
        modal = self.page.closest(form, ".t-popup")
        if modal is not None:
            close_popup(self.page, modal)
        notify(self.page, "success", APPLICATION_SENT)

    async def wait_idle(self) -> None:
        """Wait for every request in flight."""
        while self._in_flight:
            await asyncio.gather(*list(self._in_flight), return_exceptions=True)


def clear_field_errors(page: Page, root: Tag) -> None:
    hook = page.globals.get("clearFieldError")
    for field in page.select(f".{FIELD_ERROR_CLASS}", root):
        if callable(hook):
            page.invoke(hook, field)
        else:
            page.remove_class(field, FIELD_ERROR_CLASS)


def close_popup(page: Page, modal: Tag) -> None:
    """Close a CMS popup with the CMS's own routine when it knows the popup as open."""
    close = page.globals.get("t1093__closePopup")
    if callable(close):
        hook = modal.get("data-tooltip-hook") or "#preorder"
        popups = page.globals.get("tPopupObj") or {}
        open_list = list(popups.get("openPopUpList") or [])
        if hook in open_list:
            page.invoke(close, False, open_list.index(hook), True)
            return
    close_popup_manually(page, modal)


def close_popup_manually(page: Page, modal: Tag) -> None:
    page.remove_class(modal, "t-popup_show")
    page.set_style_property(modal, "display", "none")

    background = modal.find_next_sibling()
    if background is None or not page.has_class(background, "t-popup__bg"):
        container = page.closest(modal, ".t1093")
        background = page.select_one(".t-popup__bg", container) if container is not None else None
    if background is not None:
        page.remove_class(background, "t-popup__bg-active")
        page.set_style_property(background, "display", "none")

    page.remove_style_property(page.body, "overflow")
    page.remove_class(page.body, "t-body_scroll-lock")


class SubscriptionForm:
    """The newsletter form: one email field posted to ``/subscriptions``."""

    def __init__(
        self,
        page: Page,
        api: Optional[ApiClient] = None,
        settings: Optional[ClientSettings] = None,
    ):
        self.page = page
        self.settings = settings or client_settings
        self.api = api or ApiClient(self.settings)
        self.form: Optional[Tag] = None

    def install(self) -> bool:
        self.form = self.page.get_element_by_id(SUBSCRIPTION_FORM_ID)
        if self.form is None:
            return False
        self.page.add_event_listener(self.form, "submit", self._on_submit)
        return True

    def uninstall(self) -> None:
        if self.form is not None:
            self.page.remove_event_listener(self.form, "submit", self._on_submit)
            self.form = None

    def _on_submit(self, event: Event) -> None:
        event.prevent_default()
        event.stop_propagation()
        self.page.spawn(self.submit(event.current_target))

    def _show_field_error(self, field: Optional[Tag], message: str) -> None:
        hook = self.page.globals.get("showFieldError")
        if callable(hook) and field is not None:
            self.page.invoke(hook, field, message)
            return
        if field is not None:
            self.page.add_class(field, FIELD_ERROR_CLASS)
        notify(self.page, "warning", message)

    async def submit(self, form: Tag) -> bool:
        """
        Validate and post the email.

        Returns:
            True when the backend accepted the subscription
        """
        field = form.select_one('input[type="email"]')
        email = _value(field)
        if not EMAIL_PATTERN.match(email):
            self._show_field_error(field, INVALID_EMAIL)
            return False

        control = SubmitControl(self.page, form)
        control.busy(SUBSCRIBING_LABEL)
        try:
            response = await self.api.post("subscriptions", {"email": email})
        except httpx.HTTPError as e:
            logger.error("Subscription request failed", extra={"error": str(e)})
            notify(self.page, "error", SUBSCRIPTION_CONNECTION_FAILED)
            return False
        finally:
            control.restore()

        if not response.ok:
            notify(self.page, "error", response.error_message(SUBSCRIPTION_FAILED))
            return False

        notify(self.page, "success", SUBSCRIBED)
        self.page.reset_form(form)
        clear_field_errors(self.page, form)
        logger.info("Subscription accepted")
        return True
