from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from trendseeker.config import AllocationPolicy
from trendseeker.models import (
    AllocationRecommendation,
    RiskProfile,
    Signal,
    SignalStrength,
    SignalType,
)


def risk_multiplier(risk_profile: RiskProfile, policy: AllocationPolicy) -> float:
    return {
        RiskProfile.CONSERVATIVE: policy.conservative_multiplier,
        RiskProfile.MODERATE: policy.moderate_multiplier,
        RiskProfile.AGGRESSIVE: policy.aggressive_multiplier,
    }[RiskProfile(risk_profile)]


def base_percentage(strong_buy: int, strong_sell: int, policy: AllocationPolicy) -> float:
    if strong_buy > strong_sell:
        return min(policy.bullish_base + policy.bullish_step * strong_buy, policy.bullish_ceiling)
    if strong_sell > strong_buy:
        return max(policy.bearish_base - policy.bearish_step * strong_sell, 0.0)
    return policy.neutral


def round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def score_allocation(
    signals: list[Signal],
    risk_profile: RiskProfile = RiskProfile.MODERATE,
    policy: AllocationPolicy | None = None,
) -> AllocationRecommendation:
    """Fold STRONG signals into a portfolio percentage for the risk profile.

    Decimal arithmetic keeps half-way cases exact: 15 x 0.7 rounds to 11.
    Results above the bullish ceiling are kept unless ``clamp_to_ceiling``.
    """
    policy = policy or AllocationPolicy()
    risk_profile = RiskProfile(risk_profile)
    strong = [s for s in signals if s.strength == SignalStrength.STRONG]
    strong_buy = sum(1 for s in strong if s.type == SignalType.BUY)
    strong_sell = sum(1 for s in strong if s.type == SignalType.SELL)

    base = base_percentage(strong_buy, strong_sell, policy)
    scaled = Decimal(str(base)) * Decimal(str(risk_multiplier(risk_profile, policy)))
    percentage = round_half_up(scaled)
    if policy.clamp_to_ceiling:
        percentage = max(0, min(percentage, int(policy.bullish_ceiling)))

    return AllocationRecommendation(
        percentage=percentage,
        risk_profile=risk_profile,
        strong_buy=strong_buy,
        strong_sell=strong_sell,
        base_percentage=base,
    )
