"""Price localizer: re-renders grid prices in the visitor's display currency."""

import logging
from typing import Any, Optional

import httpx

from ..core.config import ClientSettings, client_settings
from .cards import format_price
from .dom import Event, Page
from .renderers import CURRENCY_HOOK, TOURS_LOADED_EVENT

logger = logging.getLogger(__name__)

PRICE_SELECTOR = "[data-price-rub]"
SYMBOLS = {"RUB": "₽", "USD": "$"}


def parse_usd_rate(payload: Any) -> Optional[float]:
    """Rubles per dollar from a ``{"data": {"usd": rate}}`` body, or ``None``."""
    if not isinstance(payload, dict):
        return None
    data = payload.get("data")
    if not isinstance(data, dict):
        return None
    rate = data.get("usd")
    if isinstance(rate, bool) or not isinstance(rate, (int, float)) or rate <= 0:
        return None
    return float(rate)


class PriceLocalizer:
    """
    Keeps every ``[data-price-rub]`` node rendered in the selected currency.

    Runs on the grid's ``toursLoaded`` notification and through the
    ``updateCurrencyPrices`` host hook. When the dollar rate cannot be
    fetched the ruble price stays on screen.
    """

    def __init__(
        self,
        page: Page,
        settings: Optional[ClientSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.page = page
        self.settings = settings or client_settings
        self.currency = self.settings.currency
        self._transport = transport
        self._usd_rate: Optional[float] = None

    def install(self) -> None:
        self.page.on_window(TOURS_LOADED_EVENT, self._on_tours_loaded)
        self.page.globals[CURRENCY_HOOK] = self.update_prices

    def uninstall(self) -> None:
        self.page.off_window(TOURS_LOADED_EVENT, self._on_tours_loaded)
        if self.page.globals.get(CURRENCY_HOOK) == self.update_prices:
            del self.page.globals[CURRENCY_HOOK]

    def set_currency(self, currency: str) -> None:
        currency = currency.upper()
        if currency not in SYMBOLS:
            raise ValueError(f"Unsupported currency: {currency}")
        self.currency = currency

    async def _on_tours_loaded(self, event: Event) -> None:
        await self.update_prices()

    async def fetch_usd_rate(self) -> Optional[float]:
        """The current rate, fetched once per page and then reused."""
        if self._usd_rate is not None:
            return self._usd_rate
        try:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(self.settings.request_timeout_seconds),
                transport=self._transport,
            ) as client:
                response = await client.get(self.settings.currency_rates_url, headers={"Cache-Control": "no-store"})
                response.raise_for_status()
                rate = parse_usd_rate(response.json())
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Currency rate unavailable, keeping ruble prices", extra={"error": str(e)})
            return None

        if rate is None:
            logger.warning("Currency rate response has no usd rate")
            return None
        self._usd_rate = rate
        return rate

    async def update_prices(self) -> int:
        """
        Re-render every price node on the page.

        Returns:
            Number of price nodes rendered
        """
        nodes = self.page.select(PRICE_SELECTOR)
        if not nodes:
            return 0

        rate = None
        if self.currency == "USD":
            rate = await self.fetch_usd_rate()

        rendered = 0
        for node in nodes:
            try:
                rub = float(node["data-price-rub"])
            except ValueError:
                logger.warning("Unreadable ruble price", extra={"value": node.get("data-price-rub")})
                continue
            if rate:
                text = format_price(round(rub / rate), SYMBOLS["USD"])
            else:
                text = format_price(rub, SYMBOLS["RUB"])
            self.page.set_text(node, text)
            rendered += 1

        shown = "USD" if rate else "RUB"
        logger.debug("Prices localized", extra={"currency": shown, "count": rendered})
        return rendered
