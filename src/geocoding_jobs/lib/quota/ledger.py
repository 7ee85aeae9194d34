"""Quota and billing arithmetic for geocoding jobs.

Everything here is pure: callers load a ``QuotaSnapshot`` for the tenant (or
organization) pool and the functions derive remaining rows, billed credits,
and price from it. Serializing the load-and-bill sequence per pool is the
caller's job.
"""

from dataclasses import dataclass

from geocoding_jobs.lib.jobs.states import BILLABLE_KIND


@dataclass(frozen=True)
class QuotaSnapshot:
    """State of a quota pool at one point in time.

    Attributes:
        quota: Rows the pool may geocode before credits are billed.
        soft_limit: When True, geocoding past the quota is allowed (and billed).
        prior_usage: Rows attempted by the pool's other billable, non-cancelled jobs.
        block_price: Price of one block of credits.
        block_size: Number of credits in one block.
    """

    quota: int
    soft_limit: bool
    prior_usage: int
    block_price: int = 0
    block_size: int = 1000

    @property
    def hard_limit(self) -> bool:
        return not self.soft_limit

    @property
    def remaining(self) -> int:
        return max(0, self.quota - self.prior_usage)


def max_geocodable_rows(snapshot: QuotaSnapshot) -> int | None:
    """Return how many more rows the pool may geocode.

    Args:
        snapshot: The pool's quota state.

    Returns:
        Remaining quota for hard-limited pools, None (unbounded) for soft-limited ones.
    """
    if snapshot.soft_limit:
        return None
    return snapshot.remaining


def calculate_used_credits(kind: str, attempted: int, snapshot: QuotaSnapshot) -> int:
    """Compute the credits billed for a job's attempted rows.

    Only the part of this job's rows that takes the pool's cumulative usage
    past its quota is billed, and never more than the job itself attempted.

    Args:
        kind: The job's geocoding kind.
        attempted: Rows attempted by the job (processed rows plus cache hits).
        snapshot: The pool's quota state, excluding this job.

    Returns:
        Billed credits; 0 for non-billable kinds.
    """
    if kind != BILLABLE_KIND or attempted <= 0:
        return 0
    total = snapshot.prior_usage + attempted
    return max(0, min(attempted, total - snapshot.quota))


def price(used_credits: float, block_price: float, block_size: int) -> float:
    """Convert billed credits to a price at ``block_price`` per ``block_size`` credits.

    Fractional prices are returned as-is.
    """
    if used_credits <= 0:
        return 0.0
    return used_credits * block_price / float(block_size)


def failed_rows(processable_rows: int | None, real_rows: int | None) -> int:
    """Rows that were eligible for geocoding but got no geometry."""
    return max(0, (processable_rows or 0) - (real_rows or 0))


def successful_rows(real_rows: int | None) -> int:
    """Rows that received a usable geometry."""
    return real_rows or 0
