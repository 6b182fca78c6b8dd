"""
Promotion Candidate Scorer
Ranks in-stock and incoming models for a marketing push.

Regular candidates are scored on three factors:
    stock pressure  (weeks of cover)       up to 40
    aging stock     (days since last sale) up to 30
    value at risk   (share of max value)   up to 30

Models with little stock but a large valuable inbound shipment are flagged
Pre-Launch instead of being scored.
"""

import logging
from typing import Iterable, List, Optional, Tuple

from .config import Config, default_config
from .models import InventoryItem, PromotionCandidate, PromotionPriority

logger = logging.getLogger(__name__)

PRIORITY_RANK = {
    PromotionPriority.URGENT: 4,
    PromotionPriority.PRE_LAUNCH: 3,
    PromotionPriority.RECOMMENDED: 2,
    PromotionPriority.OPTIONAL: 1,
}

DEFAULT_REASON = "Healthy stock levels. Suitable for brand-building campaigns."


def _compact_money(value: float) -> str:
    """$1.2K / $3.4M style amounts for reasoning text."""
    for threshold, suffix in ((1e9, "B"), (1e6, "M"), (1e3, "K")):
        if abs(value) >= threshold:
            return f"${value / threshold:.1f}".rstrip("0").rstrip(".") + suffix
    return f"${value:,.0f}"


class PromotionScorer:
    """Select and rank promotion candidates from inventory health rows."""

    def __init__(self, config: Config = None):
        self.config = config or default_config

    def _is_pre_launch(self, item: InventoryItem) -> bool:
        config = self.config
        return (
            item.on_hand_qty <= config.pre_launch_max_on_hand
            and item.otw_qty > config.pre_launch_min_otw_qty
            and item.otw_value > config.pre_launch_min_otw_value
        )

    @staticmethod
    def _stock_pressure(weeks: Optional[int]) -> Tuple[float, str]:
        if weeks is None:
            return 40, "Untapped potential; this item has never been sold."
        if weeks > 52:
            return 35, f"High inventory ({weeks} weeks) presents a major market penetration opportunity."
        if weeks > 26:
            return 25, f"Significant stock ({weeks} weeks) allows for a sustained marketing campaign."
        if weeks > 12:
            return 15, f"Healthy stock level ({weeks} weeks) can support a promotional push."
        return 0, ""

    @staticmethod
    def _aging(days_since_sale: Optional[int], days_since_arrival: Optional[int]) -> Tuple[float, str]:
        if days_since_sale is None:
            if (days_since_arrival or 0) > 30:
                return 30, "New stock needs a launch campaign to build momentum."
            return 0, ""
        if days_since_sale > 90:
            return 25, "Stagnant sales require a market re-activation campaign."
        if days_since_sale > 60:
            return 15, "Slowing sales suggest a need for a marketing boost."
        if days_since_sale > 30:
            return 5, "Proactive push can prevent sales from stagnating."
        return 0, ""

    def _priority(self, score: float) -> PromotionPriority:
        if score >= self.config.promotion_urgent_score:
            return PromotionPriority.URGENT
        if score >= self.config.promotion_recommended_score:
            return PromotionPriority.RECOMMENDED
        return PromotionPriority.OPTIONAL

    def analyze(self, inventory: Iterable[InventoryItem]) -> List[PromotionCandidate]:
        """
        Build the ranked candidate list.

        Sorted by priority rank (Urgent, Pre-Launch, Recommended, Optional),
        then by the value at stake: OTW value for Pre-Launch, in-stock value
        otherwise.
        """
        config = self.config
        pool = [
            item for item in inventory
            if item.on_hand_qty > 0
            or (item.on_hand_qty <= config.pre_launch_max_on_hand and item.otw_qty > config.pre_launch_min_otw_qty)
        ]
        if not pool:
            return []

        max_value = max([item.on_hand_value for item in pool] + [1])

        candidates = []
        for item in pool:
            if self._is_pre_launch(item):
                candidates.append(PromotionCandidate(
                    mtm=item.mtm,
                    model_name=item.model_name,
                    in_stock_qty=item.on_hand_qty,
                    otw_qty=item.otw_qty,
                    in_stock_value=item.on_hand_value,
                    otw_value=item.otw_value,
                    weeks_of_inventory=None,
                    days_since_last_sale=item.days_since_last_sale,
                    priority=PromotionPriority.PRE_LAUNCH,
                    score=None,
                    reasoning=(
                        f"Key opportunity to build market hype with {item.otw_qty} "
                        "incoming units and capture early adopters."
                    ),
                ))
                continue

            if item.on_hand_qty <= 0:
                continue

            pressure = self._stock_pressure(item.weeks_of_inventory)
            aging = self._aging(item.days_since_last_sale, item.days_since_last_arrival)
            value_at_risk = (
                min(30, item.on_hand_value / max_value * 30),
                f"Significant capital tied to this stock ({_compact_money(item.on_hand_value)}) "
                "justifies a strategic marketing push.",
            )
            total = pressure[0] + aging[0] + value_at_risk[0]

            reasons = sorted(
                [r for r in (pressure, aging, value_at_risk) if r[1]],
                key=lambda r: -r[0],
            )
            reasoning = reasons[0][1] if reasons else DEFAULT_REASON
            if len(reasons) > 1 and reasons[1][0] > 10:
                second = reasons[1][1]
                reasoning += f" Additionally: {second[0].lower()}{second[1:]}"

            candidates.append(PromotionCandidate(
                mtm=item.mtm,
                model_name=item.model_name,
                in_stock_qty=item.on_hand_qty,
                otw_qty=item.otw_qty,
                in_stock_value=item.on_hand_value,
                otw_value=item.otw_value,
                weeks_of_inventory=item.weeks_of_inventory,
                days_since_last_sale=item.days_since_last_sale,
                priority=self._priority(total),
                score=total,
                reasoning=reasoning,
            ))

        def _sort_key(candidate: PromotionCandidate):
            value = candidate.otw_value if candidate.priority == PromotionPriority.PRE_LAUNCH else candidate.in_stock_value
            return (-PRIORITY_RANK[candidate.priority], -value)

        candidates.sort(key=_sort_key)
        logger.debug("%d promotion candidates", len(candidates))
        return candidates
