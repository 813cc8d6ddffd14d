"""Pay-per-event charging.

Usage:
    manager = ChargingManager(PricingInfo(max_total_charge_usd=5.0))
    result = await manager.charge("actor-start")
    if result.event_charge_limit_reached:
        ...

A charge that would push total spend over `max_total_charge_usd` is refused
and reported with `event_charge_limit_reached=True`; callers stop the run on
that signal.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from leadrun.config import DEFAULT_EVENT_PRICES, Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PricingInfo:
    max_total_charge_usd: float = float("inf")
    event_prices: Dict[str, float] = field(default_factory=lambda: dict(DEFAULT_EVENT_PRICES))
    is_pay_per_event: bool = True


@dataclass(frozen=True)
class ChargeResult:
    event_charge_limit_reached: bool
    charged_usd: float = 0.0
    accepted: bool = True


class ChargingManager:
    def __init__(self, pricing: PricingInfo) -> None:
        self._pricing = pricing
        self._lock = asyncio.Lock()
        self.total_charged_usd = 0.0
        self.events: List[str] = []

    def get_pricing_info(self) -> PricingInfo:
        return self._pricing

    async def charge(self, event_name: str) -> ChargeResult:
        price = self._pricing.event_prices.get(event_name, 0.0) if self._pricing.is_pay_per_event else 0.0
        async with self._lock:
            # small epsilon so float accumulation cannot refuse an exact fit
            if self.total_charged_usd + price > self._pricing.max_total_charge_usd + 1e-9:
                logger.warning(
                    "Charge for %s refused: total %.4f USD would exceed the %.4f USD limit",
                    event_name, self.total_charged_usd + price, self._pricing.max_total_charge_usd,
                )
                return ChargeResult(event_charge_limit_reached=True, accepted=False)
            self.total_charged_usd += price
            self.events.append(event_name)
            limit_reached = self._remaining() + 1e-9 < self._cheapest_price()
        logger.debug("Charged %s (%.4f USD), total %.4f USD", event_name, price, self.total_charged_usd)
        return ChargeResult(event_charge_limit_reached=limit_reached, charged_usd=price)

    def _remaining(self) -> float:
        return self._pricing.max_total_charge_usd - self.total_charged_usd

    def _cheapest_price(self) -> float:
        prices = [p for p in self._pricing.event_prices.values() if p > 0]
        if not prices or not self._pricing.is_pay_per_event:
            return 0.0
        return min(prices)


def pricing_from_settings(settings: Settings) -> PricingInfo:
    ceiling: Optional[float] = settings.max_total_charge_usd
    return PricingInfo(
        max_total_charge_usd=ceiling if ceiling is not None else float("inf"),
        event_prices=dict(settings.event_prices),
    )
