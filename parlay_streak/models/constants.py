"""
String constants stored in status/outcome/type columns.
"""


class GameStatus:
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    POSTPONED = "postponed"
    CANCELED = "canceled"

    # Resolution is not defined for these
    UNRESOLVABLE = (POSTPONED, CANCELED)


class BetOutcome:
    PENDING = "pending"
    WIN = "win"
    LOSS = "loss"
    PUSH = "push"
    VOID = "void"

    TERMINAL = (WIN, LOSS, PUSH, VOID)
    # Legs with these outcomes do not count toward win/loss
    NEUTRAL = (PUSH, VOID)


class SelectionStatus:
    SELECTED = "selected"
    LOCKED = "locked"
    RESOLVED = "resolved"


class ParlayStatus:
    BUILDING = "building"
    LOCKED = "locked"
    WON = "won"
    LOST = "lost"
    PUSH = "push"

    OPEN = (BUILDING, LOCKED)
    TERMINAL = (WON, LOST, PUSH)


class StreakEventType:
    PARLAY_WIN = "parlay_win"
    PARLAY_LOSS = "parlay_loss"
    INSURANCE_DEDUCTED = "insurance_deducted"
    BET_WIN = "bet_win"
    BET_LOSS = "bet_loss"

    # Events that zero the streak and close a streak group
    RESETS = (PARLAY_LOSS, BET_LOSS)


class BetType:
    COMPARISON = "COMPARISON"
    THRESHOLD = "THRESHOLD"
    EVENT = "EVENT"


# Side a user can pick, per bet type
SELECTABLE_SIDES = {
    BetType.COMPARISON: ("participant_1", "participant_2"),
    BetType.THRESHOLD: ("over", "under"),
    BetType.EVENT: ("yes", "no"),
}
