"""Shared test data: page markup, catalog records and a fake backend."""

import asyncio
from datetime import date, timedelta

import httpx

CATALOG_HTML = """
<html>
<body>
  <div class="t396" id="rec1170228026">
    <div class="t396__group" data-group-id="174827010347951270">
      <div class="tn-molecule" id="molecule-174827010347951270">
        <div class="tn-elem" data-elem-id="1748270103491">&rarr;</div>
      </div>
    </div>
    <div class="uc-preorder">
      <div class="swiper">
        <div class="swiper-wrapper">
          <div class="swiper-slide"><div class="preorderCard">Static slide</div></div>
        </div>
      </div>
    </div>
    <div class="t396__group" data-group-id="175278397639235650">
      <div class="tn-molecule" id="molecule-175278397639235650">
        <div class="travelCard">Static card</div>
      </div>
    </div>
  </div>
  <div class="t1093">
    <div class="t-popup t-popup_show" data-tooltip-hook="#preorder" style="display: block;">
      <form id="preorder-form" class="js-form-proccess" action="https://forms.tilda.cc/procces/">
        <input type="text" name="name" value="">
        <input type="tel" name="phone" value="">
        <input type="email" name="email" value="">
        <select name="direction"><option value="">-</option><option value="altai">Алтай</option></select>
        <textarea name="message"></textarea>
        <button type="submit" class="t-submit">Отправить</button>
      </form>
    </div>
    <div class="t-popup__bg t-popup__bg-active"></div>
  </div>
  <form id="subscription-form" class="subscription-form">
    <input type="email" name="email" value="">
    <button type="submit">Подписаться</button>
  </form>
</body>
</html>
"""


TOUR_HTML = """
<html>
<head><title>Тур</title></head>
<body>
  <section id="tour-hero-section"></section>
  <div id="loading">Загрузка...</div>
  <div id="error" style="display: none;"></div>
  <div id="tour-content" style="display: none;">
    <h1 id="tour-title"></h1>
    <div id="tour-meta"></div>
    <div id="tour-price"></div>
    <div id="tour-short-description"></div>
    <h2 id="tour-description-title">Описание</h2>
    <div id="tour-description"></div>
    <h2 id="tour-details-title">Детали</h2>
    <div id="tour-details"></div>
    <div id="tour-programs">
      <div class="swiper" id="programs-swiper">
        <div class="swiper-wrapper" id="programs-swiper-wrapper">
          <div class="swiper-slide">Static day</div>
        </div>
      </div>
    </div>
    <div id="booking-form-container"></div>
  </div>
</body>
</html>
"""


def make_tour(tour_id, start=None, **fields) -> dict:
    """A catalog record as ``GET /api/tours`` returns it."""
    record = {
        "id": tour_id,
        "title": f"Тур {tour_id}",
        "short_description": None,
        "image_url": None,
        "price": None,
        "date_start": start.isoformat() if isinstance(start, date) else start,
        "date_end": None,
        "status": "active",
        "prices": [],
    }
    record.update(fields)
    return record


def make_catalog(count: int, first: date = date(2025, 1, 1)) -> list[dict]:
    return [make_tour(i + 1, first + timedelta(days=i)) for i in range(count)]


class FakeBackend:
    """Records requests and answers them from canned responses."""

    def __init__(self, tours=None):
        self.tours = tours if tours is not None else []
        self.requests: list[httpx.Request] = []
        self.tours_status = 200
        self.tour_details = {}
        self.tour_status = 200
        self.application_status = 201
        self.application_body = {"id": 1, "message": "ok"}
        self.subscription_status = 201
        self.subscription_body = {"id": 1, "email": "anna@example.com", "message": "ok"}
        self.fail_with = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_with is not None:
            raise self.fail_with
        path = request.url.path
        if path == "/api/tours":
            return httpx.Response(self.tours_status, json=self.tours)
        if path.startswith("/api/tours/"):
            return self.tour_detail(path.rsplit("/", 1)[-1])
        if path == "/api/applications":
            return httpx.Response(self.application_status, json=self.application_body)
        if path == "/api/subscriptions":
            return httpx.Response(self.subscription_status, json=self.subscription_body)
        return httpx.Response(404, json={"error": "not found"})

    def tour_detail(self, segment: str) -> httpx.Response:
        if self.tour_status != 200:
            return httpx.Response(self.tour_status, json={"error": "Внутренняя ошибка сервера"})
        tour_id = int(segment) if segment.isdigit() else segment
        if tour_id not in self.tour_details:
            return httpx.Response(404, json={"error": "Тур не найден"})
        return httpx.Response(200, json=self.tour_details[tour_id])

    def calls(self, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]


async def wait_for(predicate, timeout: float = 1.0, interval: float = 0.005) -> bool:
    """Poll ``predicate`` on the running loop until it holds or ``timeout`` passes."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            return False
        await asyncio.sleep(interval)
    return True
