"""
services/market_service/price_oracle.py
---------------------------------------
Precio actual de un par vía API pública de Bybit v5 (market/tickers).

fetch_price() nunca lanza: si el precio no está disponible devuelve None
y el tracker se salta ese par hasta el siguiente tick.
"""

import asyncio
import logging
from decimal import Decimal
from typing import Optional

import aiohttp

from core.exceptions import PriceUnavailable
from utils.helpers import pair_to_symbol, safe_decimal

logger = logging.getLogger("price_oracle")


class BybitPriceOracle:
    def __init__(self, base_url: str = "https://api.bybit.com", category: str = "linear", timeout: float = 5.0):
        self.base_url = base_url.rstrip("/")
        self.category = category
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.session: Optional[aiohttp.ClientSession] = None
        self.total_api_calls = 0
        self.failed_api_calls = 0

    async def _get_session(self) -> aiohttp.ClientSession:
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession(timeout=self.timeout)
        return self.session

    async def close(self) -> None:
        if self.session is not None and not self.session.closed:
            await self.session.close()

    async def get_price(self, pair: str) -> Decimal:
        """Como fetch_price(), pero lanza PriceUnavailable con el motivo."""
        symbol = pair_to_symbol(pair)
        url = f"{self.base_url}/v5/market/tickers"
        params = {"category": self.category, "symbol": symbol}

        self.total_api_calls += 1
        try:
            session = await self._get_session()
            async with session.get(url, params=params) as response:
                if response.status != 200:
                    raise PriceUnavailable(pair, f"HTTP {response.status}")
                data = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise PriceUnavailable(pair, str(e) or type(e).__name__) from e

        rows = (data.get("result") or {}).get("list") or []
        if data.get("retCode") != 0 or not rows:
            raise PriceUnavailable(pair, data.get("retMsg") or "no ticker")

        price = safe_decimal(rows[0].get("lastPrice"))
        if price is None or price <= 0:
            raise PriceUnavailable(pair, f"invalid lastPrice {rows[0].get('lastPrice')!r}")

        logger.debug(f"💹 {pair} = {price}")
        return price

    async def fetch_price(self, pair: str) -> Optional[Decimal]:
        try:
            return await self.get_price(pair)
        except PriceUnavailable as e:
            self.failed_api_calls += 1
            logger.warning(f"⚠️ {e}")
            return None
