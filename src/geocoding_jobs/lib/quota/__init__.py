"""Quota library: remaining rows, billed credits, and price for geocoding jobs.

Public API:
    - QuotaSnapshot: Quota state of a tenant or organization pool
    - max_geocodable_rows: Remaining rows (None when soft-limited)
    - calculate_used_credits: Credits billed for a job's attempted rows
    - price: Credits to price conversion
    - failed_rows / successful_rows: Row outcome counts
"""

from geocoding_jobs.lib.quota.ledger import (
    QuotaSnapshot,
    calculate_used_credits,
    failed_rows,
    max_geocodable_rows,
    price,
    successful_rows,
)

__all__ = [
    "QuotaSnapshot",
    "calculate_used_credits",
    "failed_rows",
    "max_geocodable_rows",
    "price",
    "successful_rows",
]
