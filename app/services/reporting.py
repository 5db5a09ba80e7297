"""
Read-only donation history for one donor.

Returns a page of donations (newest first) plus per-state counts and the
total amount successfully donated.
"""
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from app import models


MAX_PAGE_SIZE = 100


class DonationStats:
    def __init__(self):
        self.total = 0
        self.pending = 0
        self.success = 0
        self.failed = 0
        self.total_donated = Decimal("0")


class DonationHistory:
    def __init__(self, donations: List[models.Donation], total: int, page: int, limit: int, stats: DonationStats):
        self.donations = donations
        self.total = total
        self.page = page
        self.limit = limit
        self.pages = (total + limit - 1) // limit if total else 0
        self.stats = stats


def donation_stats(owner_id: str, db: Session) -> DonationStats:
    stats = DonationStats()
    rows = db.query(
        models.Donation.state,
        func.count(models.Donation.id),
        func.sum(models.Donation.amount),
    ).filter(
        models.Donation.owner_id == owner_id
    ).group_by(models.Donation.state).all()

    for state, count, amount in rows:
        stats.total += count
        if state == models.PENDING:
            stats.pending = count
        elif state == models.SUCCESS:
            stats.success = count
            stats.total_donated = Decimal(str(amount or 0))
        elif state == models.FAILED:
            stats.failed = count
    return stats


def list_donations(
    owner_id: str,
    db: Session,
    state: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
) -> DonationHistory:
    if state is not None and state not in (models.PENDING,) + models.TERMINAL_STATES:
        raise ValueError(f"Unknown donation state: {state}")
    page = max(page, 1)
    limit = min(max(limit, 1), MAX_PAGE_SIZE)

    query = db.query(models.Donation).filter(models.Donation.owner_id == owner_id)
    if state is not None:
        query = query.filter(models.Donation.state == state)

    total = query.count()
    donations = query.order_by(
        models.Donation.attempted_at.desc()
    ).offset((page - 1) * limit).limit(limit).all()

    return DonationHistory(
        donations=donations,
        total=total,
        page=page,
        limit=limit,
        stats=donation_stats(owner_id, db),
    )
