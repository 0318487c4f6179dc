"""
Commission Calculator

Turns an order total into a commission amount using the referrer's tier rate
from CommissionConfig. Pure: no database access.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Dict, List

from referral_core.config import CommissionConfig
from referral_core.models.referrer import Referrer, ReferrerKind, InfluencerTier


CENT = Decimal("0.01")


def round_money(value: Decimal) -> Decimal:
    """Round to the smallest currency unit, half-up."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


class CommissionCalculator:
    """Tiered percentage commission."""

    def __init__(self, config: CommissionConfig):
        self.config = config

    def rate_for_tier(self, tier: Optional[str]) -> Decimal:
        """Percentage for a tier name; None means the regular-user base rate."""
        if tier is None:
            return self.config.base_rate
        key = tier.lower()
        if key not in self.config.tier_rates:
            raise ValueError(f"No commission rate configured for tier '{tier}'")
        return self.config.tier_rates[key]

    def rate_for(self, referrer: Referrer) -> Decimal:
        if referrer.kind == ReferrerKind.USER:
            return self.config.base_rate
        return self.rate_for_tier(referrer.tier)

    def compute(
        self,
        referrer: Referrer,
        order_total: Decimal,
        reversal: bool = False,
    ) -> Decimal:
        """
        Commission for an order total.

        amount = order_total * rate / 100, rounded half-up to 0.01.
        With ``reversal=True`` the same amount is returned negated, i.e. the
        effect to undo on the ledger.
        """
        order_total = Decimal(str(order_total))
        if order_total < 0:
            raise ValueError("Order total cannot be negative")

        amount = round_money(order_total * self.rate_for(referrer) / Decimal("100"))
        return -amount if reversal else amount

    def tier_for_conversions(self, converted_count: int) -> str:
        """Highest tier whose threshold the conversion count reaches."""
        reached = InfluencerTier.BRONZE.value
        for tier in InfluencerTier:
            threshold = self.config.tier_thresholds.get(tier.value)
            if threshold is not None and converted_count >= threshold:
                reached = tier.value
        return reached

    def rate_table(self) -> List[Dict]:
        """Rate table for display, lowest tier first."""
        rows = [{
            "tier": "base",
            "applies_to": ReferrerKind.USER.value,
            "rate": self.config.base_rate,
            "min_conversions": None,
        }]
        for tier in InfluencerTier:
            if tier.value not in self.config.tier_rates:
                continue
            rows.append({
                "tier": tier.value,
                "applies_to": ReferrerKind.INFLUENCER.value,
                "rate": self.config.tier_rates[tier.value],
                "min_conversions": self.config.tier_thresholds.get(tier.value),
            })
        return rows
