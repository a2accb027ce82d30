"""Daily affinity-loss budget enforcement."""

from __future__ import annotations


class DailyLossBudget:
    """Tracks how much affinity one character may still lose today.

    Amounts are positive magnitudes. The budget is seeded from what the loss
    log already holds for the day so separate scheduler runs share one cap.
    """

    def __init__(self, max_daily_loss: int, already_lost: int = 0) -> None:
        self.max_daily_loss = int(max_daily_loss)
        self.lost_today = max(0, int(already_lost))

    @property
    def remaining(self) -> int:
        return max(0, self.max_daily_loss - self.lost_today)

    def charge(self, amount: int) -> int:
        """Charge as much of amount as the cap allows and return what was charged."""
        granted = min(max(0, int(amount)), self.remaining)
        self.lost_today += granted
        return granted

    def refund(self, amount: int) -> None:
        """Give back part of a charge that was never applied."""
        self.lost_today = max(0, self.lost_today - max(0, int(amount)))
