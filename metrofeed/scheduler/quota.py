"""
Quota Policy
============

Per-source daily quota and batch sizing.
"""

from dataclasses import dataclass

from ..database.models import Source


@dataclass(frozen=True)
class QuotaDecision:
    """How many items to request from a source this cycle."""

    source_id: str
    stored_today: int
    daily_quota: int
    allowance: int

    @property
    def should_fetch(self) -> bool:
        return self.allowance > 0


class QuotaPolicy:
    """Computes fetch allowances from quotas and today's stored counts."""

    def allowance(self, source: Source, stored_today: int) -> int:
        """``max(0, min(batch_size, daily_quota - stored_today))``."""
        remaining = source.daily_quota - max(0, stored_today)
        return max(0, min(source.batch_size, remaining))

    def decide(self, source: Source, stored_today: int) -> QuotaDecision:
        return QuotaDecision(
            source_id=source.id,
            stored_today=stored_today,
            daily_quota=source.daily_quota,
            allowance=self.allowance(source, stored_today),
        )
