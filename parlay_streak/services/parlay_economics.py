"""
Parlay payout and insurance pricing.

Payout doubles with each leg; a single (non-parlay) win is worth the
one-leg entry. Insurance is priced by leg count and by the streak tier the
user is in when the cost is computed, and exists only for 4+ leg parlays.
"""
from typing import Dict, Tuple

PARLAY_VALUES: Dict[int, int] = {
    1: 1,
    2: 2,
    3: 4,
    4: 8,
    5: 16,
}

SINGLE_BET_VALUE = PARLAY_VALUES[1]
MIN_PARLAY_LEGS = 2
MIN_INSURED_LEGS = 4

# (lower streak bound, cost for 4 legs, cost for 5 legs), highest tier first
INSURANCE_TIERS: Tuple[Tuple[int, int, int], ...] = (
    (45, 9, 15),
    (35, 8, 13),
    (25, 6, 10),
    (15, 5, 8),
    (0, 3, 5),
)


def parlay_value(bet_count: int) -> int:
    """Streak points a parlay of ``bet_count`` legs is worth (0 for a 1-leg draft)."""
    if bet_count < MIN_PARLAY_LEGS:
        return 0
    return PARLAY_VALUES[min(bet_count, max(PARLAY_VALUES))]


def insurance_cost(bet_count: int, current_streak: int) -> int:
    if bet_count < MIN_INSURED_LEGS:
        return 0
    streak = max(0, current_streak)
    for floor, four_legs, five_legs in INSURANCE_TIERS:
        if streak >= floor:
            return four_legs if bet_count == 4 else five_legs
    return 0


def can_insure(bet_count: int) -> bool:
    return bet_count >= MIN_INSURED_LEGS
