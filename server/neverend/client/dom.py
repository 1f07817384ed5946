"""
In-process model of the browser page the site scripts run in.

The document is a BeautifulSoup tree. Every structural or attribute change
made through :class:`Page` is reported to :class:`MutationObserver`
instances the way the browser reports it: records are queued and delivered
on the next turn of the event loop, and ``take_records()`` drains the queue
without delivering it. Writes that would not change anything produce no
record.

Tags are compared by identity throughout (``is`` and ``id()``); bs4 Tags
compare equal by structure, so two identical cards would otherwise be
indistinguishable. Tables keyed by ``id()`` keep a reference to their node
and are pruned when the node is removed from the document, so a key never
outlives the Tag it was taken from.
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable, Optional, Union

from bs4 import BeautifulSoup, Tag

logger = logging.getLogger(__name__)

Handler = Callable[["Event"], Union[None, Awaitable[None]]]

_VALUE_FIELDS = ("input", "textarea", "select")
_RESETTABLE_INPUT_TYPES = {"submit", "button", "hidden", "reset", "image"}


def parse_style(text: Optional[str]) -> dict[str, tuple[str, str]]:
    """Parse an inline style attribute into ``{property: (value, priority)}``, keeping order."""
    declarations: dict[str, tuple[str, str]] = {}
    if not text:
        return declarations
    for chunk in text.split(";"):
        if ":" not in chunk:
            continue
        prop, value = chunk.split(":", 1)
        prop = prop.strip().lower()
        value = value.strip()
        priority = ""
        if value.lower().endswith("!important"):
            value = value[: -len("!important")].strip()
            priority = "important"
        if prop:
            declarations[prop] = (value, priority)
    return declarations


def serialize_style(declarations: dict[str, tuple[str, str]]) -> str:
    parts = []
    for prop, (value, priority) in declarations.items():
        suffix = " !important" if priority == "important" else ""
        parts.append(f"{prop}: {value}{suffix};")
    return " ".join(parts)


def class_list(node: Tag) -> list[str]:
    value = node.get("class")
    if value is None:
        return []
    if isinstance(value, str):
        return value.split()
    return list(value)


def _attribute_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        return " ".join(value)
    return str(value)


@dataclass
class MutationRecord:
    """One observed change: an attribute write or a child list change."""

    type: str
    target: Tag
    attribute_name: Optional[str] = None
    old_value: Optional[str] = None
    added_nodes: list[Tag] = field(default_factory=list)
    removed_nodes: list[Tag] = field(default_factory=list)


@dataclass
class _Registration:
    node: Tag
    attributes: bool
    attribute_filter: Optional[frozenset[str]]
    child_list: bool
    subtree: bool


class MutationObserver:
    """
    Receives batches of :class:`MutationRecord` for the nodes it observes.

    The callback is called as ``callback(records, observer)`` on a later
    turn of the event loop.
    """

    def __init__(self, page: "Page", callback: Callable[[list[MutationRecord], "MutationObserver"], None]):
        self.page = page
        self.callback = callback
        self._registrations: list[_Registration] = []
        self._pending: list[MutationRecord] = []
        self._scheduled = False

    def observe(
        self,
        node: Tag,
        *,
        attributes: bool = False,
        attribute_filter: Optional[Iterable[str]] = None,
        child_list: bool = False,
        subtree: bool = False,
    ) -> None:
        """Start (or re-configure) observing ``node``."""
        registration = _Registration(
            node=node,
            attributes=attributes or attribute_filter is not None,
            attribute_filter=frozenset(attribute_filter) if attribute_filter is not None else None,
            child_list=child_list,
            subtree=subtree,
        )
        for index, existing in enumerate(self._registrations):
            if existing.node is node:
                self._registrations[index] = registration
                break
        else:
            self._registrations.append(registration)
        self.page._attach_observer(self)

    def is_observing(self, node: Tag) -> bool:
        return any(r.node is node for r in self._registrations)

    def disconnect(self) -> None:
        self._registrations.clear()
        self._pending.clear()
        self.page._detach_observer(self)

    def take_records(self) -> list[MutationRecord]:
        """Drain the queued records without invoking the callback."""
        records, self._pending = self._pending, []
        return records

    def _matches(self, record: MutationRecord) -> bool:
        for registration in self._registrations:
            if record.target is not registration.node:
                if not registration.subtree or not self.page.contains(registration.node, record.target):
                    continue
            if record.type == "attributes":
                if not registration.attributes:
                    continue
                if registration.attribute_filter is not None and record.attribute_name not in registration.attribute_filter:
                    continue
                return True
            if record.type == "childList" and registration.child_list:
                return True
        return False

    def _enqueue(self, record: MutationRecord) -> None:
        if not self._matches(record):
            return
        self._pending.append(record)
        if self._scheduled:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop: records wait for Page.flush_mutations() or take_records()
            return
        self._scheduled = True
        loop.call_soon(self._deliver)

    def _deliver(self) -> None:
        self._scheduled = False
        records = self.take_records()
        if records:
            self.callback(records, self)


class Event:
    """A dispatched DOM or window event."""

    def __init__(self, type: str, target: Any = None, detail: Any = None, bubbles: bool = True):
        self.type = type
        self.target = target
        self.current_target: Any = None
        self.detail = detail
        self.bubbles = bubbles
        self.default_prevented = False
        self.propagation_stopped = False

    def prevent_default(self) -> None:
        self.default_prevented = True

    def stop_propagation(self) -> None:
        self.propagation_stopped = True

    def __repr__(self) -> str:
        return f"<Event(type='{self.type}')>"


class Page:
    """
    The document, the window event bus and the host globals of one page load.

    ``globals`` stands in for the properties the CMS and the site scripts hang
    off ``window``: ``updateCurrencyPrices``, ``t_onReady``,
    ``t1093__closePopup``, ``tPopupObj``, ``showSuccess``, ``showError``,
    ``showWarning``, ``tildaForm`` and ``fetch``.
    """

    def __init__(self, html: str = ""):
        self.soup = BeautifulSoup(html, "html.parser")
        self.globals: dict[str, Any] = {}
        self.session_storage: dict[str, str] = {}
        self.alerts: list[str] = []
        self.active_element: Optional[Tag] = None
        self.location: Optional[str] = None
        self._observers: list[MutationObserver] = []
        self._listeners: dict[int, tuple[Any, list[tuple[str, Handler, bool]]]] = {}
        self._window_listeners: dict[str, list[Handler]] = {}
        self._widgets: dict[int, tuple[Tag, Any]] = {}
        self._tasks: set[asyncio.Task] = set()
        self._timers: set[asyncio.TimerHandle] = set()

    # Queries

    @property
    def body(self) -> Tag:
        return self.soup.body or self.soup

    def select(self, selector: str, root: Optional[Tag] = None) -> list[Tag]:
        return (root or self.soup).select(selector)

    def select_one(self, selector: str, root: Optional[Tag] = None) -> Optional[Tag]:
        return (root or self.soup).select_one(selector)

    def get_element_by_id(self, element_id: str) -> Optional[Tag]:
        return self.soup.find(id=element_id)

    @staticmethod
    def closest(node: Optional[Tag], selector: str) -> Optional[Tag]:
        """Nearest inclusive ancestor of ``node`` matching ``selector``."""
        if node is None or not isinstance(node, Tag):
            return None
        return node.css.closest(selector)

    @staticmethod
    def matches(node: Tag, selector: str) -> bool:
        return node.css.match(selector)

    @staticmethod
    def contains(ancestor: Tag, node: Optional[Tag]) -> bool:
        """Inclusive containment by identity."""
        current = node
        while current is not None:
            if current is ancestor:
                return True
            current = current.parent
        return False

    def is_connected(self, node: Tag) -> bool:
        return self.contains(self.soup, node)

    def create_element(
        self,
        tag_name: str,
        attrs: Optional[dict[str, str]] = None,
        *,
        classes: Iterable[str] = (),
        text: Optional[str] = None,
    ) -> Tag:
        """A detached element owned by this document."""
        attributes = dict(attrs or {})
        class_names = list(classes)
        if class_names:
            attributes["class"] = " ".join(class_names)
        node = self.soup.new_tag(tag_name, attrs=attributes)
        if text is not None:
            node.string = text
        return node

    # Mutations

    def set_attribute(self, node: Tag, name: str, value: str) -> bool:
        """Write an attribute; returns False and records nothing when unchanged."""
        old = _attribute_text(node.get(name))
        if old == value:
            return False
        node[name] = value
        self._record(MutationRecord(type="attributes", target=node, attribute_name=name, old_value=old))
        return True

    def remove_attribute(self, node: Tag, name: str) -> bool:
        if name not in node.attrs:
            return False
        old = _attribute_text(node.attrs.pop(name))
        self._record(MutationRecord(type="attributes", target=node, attribute_name=name, old_value=old))
        return True

    def has_class(self, node: Tag, name: str) -> bool:
        return name in class_list(node)

    def add_class(self, node: Tag, *names: str) -> bool:
        current = class_list(node)
        missing = [n for n in names if n not in current]
        if not missing:
            return False
        return self.set_attribute(node, "class", " ".join(current + missing))

    def remove_class(self, node: Tag, *names: str) -> bool:
        current = class_list(node)
        kept = [n for n in current if n not in names]
        if len(kept) == len(current):
            return False
        if not kept:
            return self.remove_attribute(node, "class")
        return self.set_attribute(node, "class", " ".join(kept))

    def get_style(self, node: Tag) -> dict[str, tuple[str, str]]:
        return parse_style(_attribute_text(node.get("style")))

    def get_style_property(self, node: Tag, prop: str) -> Optional[str]:
        entry = self.get_style(node).get(prop)
        return entry[0] if entry else None

    def set_style_property(self, node: Tag, prop: str, value: str, priority: str = "") -> bool:
        """``style.setProperty``; no write happens when the declaration already holds."""
        declarations = self.get_style(node)
        if declarations.get(prop) == (value, priority):
            return False
        declarations[prop] = (value, priority)
        return self.set_attribute(node, "style", serialize_style(declarations))

    def remove_style_property(self, node: Tag, prop: str) -> bool:
        declarations = self.get_style(node)
        if prop not in declarations:
            return False
        del declarations[prop]
        if not declarations:
            return self.remove_attribute(node, "style")
        return self.set_attribute(node, "style", serialize_style(declarations))

    def set_styles(self, node: Tag, styles: dict[str, str], priority: str = "") -> bool:
        """Apply several declarations in a single attribute write."""
        declarations = self.get_style(node)
        changed = False
        for prop, value in styles.items():
            if declarations.get(prop) != (value, priority):
                declarations[prop] = (value, priority)
                changed = True
        if not changed:
            return False
        return self.set_attribute(node, "style", serialize_style(declarations))

    def set_text(self, node: Tag, text: str) -> bool:
        if node.get_text() == text:
            return False
        removed = [child for child in node.contents if isinstance(child, Tag)]
        for child in removed:
            self._forget(child)
        node.clear()
        node.append(text)
        self._record(MutationRecord(type="childList", target=node, removed_nodes=removed))
        return True

    def append_child(self, parent: Tag, child: Tag) -> Tag:
        """Append ``child`` to ``parent``, moving it when it already has a parent."""
        if child.parent is not None:
            self._detach(child)
        parent.append(child)
        self._record(MutationRecord(type="childList", target=parent, added_nodes=[child]))
        return child

    def insert_before(self, parent: Tag, child: Tag, reference: Optional[Tag]) -> Tag:
        if reference is None or reference.parent is not parent:
            return self.append_child(parent, child)
        if child.parent is not None:
            self._detach(child)
        reference.insert_before(child)
        self._record(MutationRecord(type="childList", target=parent, added_nodes=[child]))
        return child

    def replace_children(self, parent: Tag, children: Iterable[Tag] = ()) -> None:
        """Drop every child of ``parent``, text included, then append ``children``."""
        for child in list(parent.contents):
            if isinstance(child, Tag):
                self.remove(child)
            else:
                child.extract()
        for child in children:
            self.append_child(parent, child)

    def remove(self, node: Tag) -> None:
        """Take ``node`` out of the document and drop the listeners and widgets of its subtree."""
        if self._detach(node):
            self._forget(node)

    def _forget(self, node: Tag) -> None:
        for descendant in [node, *node.find_all(True)]:
            self._listeners.pop(id(descendant), None)
            self._widgets.pop(id(descendant), None)

    def _detach(self, node: Tag) -> bool:
        parent = node.parent
        if parent is None:
            return False
        node.extract()
        self._record(MutationRecord(type="childList", target=parent, removed_nodes=[node]))
        return True

    def _record(self, record: MutationRecord) -> None:
        for observer in list(self._observers):
            observer._enqueue(record)

    def _attach_observer(self, observer: MutationObserver) -> None:
        if not any(o is observer for o in self._observers):
            self._observers.append(observer)

    def _detach_observer(self, observer: MutationObserver) -> None:
        self._observers = [o for o in self._observers if o is not observer]

    def flush_mutations(self) -> None:
        """Deliver every queued mutation record now."""
        for observer in list(self._observers):
            observer._deliver()

    # Form fields

    @staticmethod
    def field_value(node: Tag) -> str:
        if node.name == "textarea":
            return node.get_text()
        if node.name == "select":
            option = node.find("option", selected=True) or node.find("option")
            if option is None:
                return ""
            value = option.get("value")
            return _attribute_text(value) if value is not None else option.get_text()
        return _attribute_text(node.get("value")) or ""

    def set_field_value(self, node: Tag, value: str) -> None:
        if node.name == "textarea":
            self.set_text(node, value)
        else:
            self.set_attribute(node, "value", value)

    def reset_form(self, form: Tag) -> None:
        """Clear the visitor-entered values of every field in ``form``."""
        for node in form.find_all(_VALUE_FIELDS):
            if node.name == "input" and (node.get("type") or "text").lower() in _RESETTABLE_INPUT_TYPES:
                continue
            if node.name == "select":
                continue
            self.set_field_value(node, "")

    def focus(self, node: Optional[Tag]) -> None:
        self.active_element = node

    # Events

    def add_event_listener(self, node: Any, type: str, handler: Handler, capture: bool = False) -> None:
        self._listeners.setdefault(id(node), (node, []))[1].append((type, handler, capture))

    def remove_event_listener(self, node: Any, type: str, handler: Handler, capture: bool = False) -> None:
        # Bound methods are recreated on every attribute access, so match by equality
        _, entries = self._listeners.get(id(node), (node, []))
        entries[:] = [
            entry for entry in entries
            if not (entry[0] == type and entry[1] == handler and entry[2] == capture)
        ]
        if not entries:
            self._listeners.pop(id(node), None)

    def listener_count(self, node: Any, type: Optional[str] = None) -> int:
        _, entries = self._listeners.get(id(node), (node, []))
        return sum(1 for entry in entries if type is None or entry[0] == type)

    def dispatch_event(self, node: Tag, event: Event) -> bool:
        """
        Capture from the document down to ``node``, then bubble back up.

        Returns False when a listener called ``prevent_default()``.
        """
        event.target = node
        path: list[Any] = []
        current: Any = node
        while current is not None:
            path.append(current)
            current = current.parent

        for target in reversed(path):
            if event.propagation_stopped:
                break
            self._invoke(target, event, capture=True)

        if event.bubbles:
            bubble_path = path
        else:
            bubble_path = path[:1]
        for target in bubble_path:
            if event.propagation_stopped:
                break
            self._invoke(target, event, capture=False)

        return not event.default_prevented

    def click(self, node: Tag) -> bool:
        """
        Dispatch a click; an unprevented click on a submit control submits its form.
        """
        proceed = self.dispatch_event(node, Event("click"))
        if proceed and node.name in ("button", "input"):
            kind = (node.get("type") or ("submit" if node.name == "button" else "text")).lower()
            form = self.closest(node, "form")
            if kind == "submit" and form is not None:
                self.submit(form)
        return proceed

    def submit(self, form: Tag) -> bool:
        """Dispatch a native submit event on ``form``."""
        return self.dispatch_event(form, Event("submit"))

    def _invoke(self, target: Any, event: Event, capture: bool) -> None:
        owner, entries = self._listeners.get(id(target), (target, []))
        if owner is not target:
            return
        for type, handler, is_capture in list(entries):
            if type != event.type or is_capture != capture:
                continue
            event.current_target = target
            self.invoke(handler, event)

    def on_window(self, type: str, handler: Handler) -> None:
        self._window_listeners.setdefault(type, []).append(handler)

    def off_window(self, type: str, handler: Handler) -> None:
        self._window_listeners[type] = [h for h in self._window_listeners.get(type, []) if h != handler]

    def dispatch_window_event(self, type: str, detail: Any = None) -> Event:
        event = Event(type, target="window", detail=detail, bubbles=False)
        for handler in list(self._window_listeners.get(type, [])):
            self.invoke(handler, event)
        return event

    def invoke(self, handler: Callable, *args: Any) -> Any:
        """Call a listener or host hook; an awaitable result runs as a page task."""
        result = handler(*args)
        if inspect.isawaitable(result):
            self.spawn(result)
        return result

    # Scheduling

    def spawn(self, awaitable: Awaitable[Any]) -> asyncio.Task:
        """Run ``awaitable`` as a task owned by the page."""
        task = asyncio.ensure_future(awaitable)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Page task failed", exc_info=exc)

    def set_timeout(self, delay: float, callback: Callable[[], Any]) -> asyncio.TimerHandle:
        """Run ``callback`` after ``delay`` seconds; coroutine results become page tasks."""
        loop = asyncio.get_running_loop()
        handle: Optional[asyncio.TimerHandle] = None

        def fire() -> None:
            self._timers.discard(handle)
            self.invoke(callback)

        handle = loop.call_later(delay, fire)
        self._timers.add(handle)
        return handle

    def clear_timeout(self, handle: Optional[asyncio.TimerHandle]) -> None:
        if handle is None:
            return
        handle.cancel()
        self._timers.discard(handle)

    async def close(self) -> None:
        """Cancel every pending timer and task of this page load."""
        for handle in list(self._timers):
            handle.cancel()
        self._timers.clear()
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        for observer in list(self._observers):
            observer.disconnect()

    # Host integration

    def register_widget(self, node: Tag, widget: Any) -> None:
        """Attach a third-party widget instance (the carousel) to its container."""
        self._widgets[id(node)] = (node, widget)

    def widget_for(self, node: Optional[Tag]) -> Any:
        if node is None:
            return None
        owner, widget = self._widgets.get(id(node), (None, None))
        return widget if owner is node else None

    def navigate(self, url: str) -> None:
        logger.info("Navigation requested", extra={"url": url})
        self.location = url

    def alert(self, message: str) -> None:
        logger.info("Alert shown", extra={"alert_message": message})
        self.alerts.append(message)

    def html(self) -> str:
        return str(self.soup)
