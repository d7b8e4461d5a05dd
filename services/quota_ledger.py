"""Quota ledger: the only writer of ``subscriptions.sessions_used``.

Reservations use a compare-and-swap on the stored counter, so two handlers
racing for the last session cannot both win. There are no in-process locks;
the conditional UPDATE is the whole concurrency story.
"""
import logging

from sqlalchemy import case, select, update

from models import db
from models.subscription import Subscription
from services.errors import ConcurrentModification, NoActiveSubscription, NotFound, QuotaExceeded
from utils.timeutil import utcnow

logger = logging.getLogger(__name__)


def get_active_subscription(student_id: int, now=None) -> Subscription:
    """Most recently created active, unexpired subscription of the student."""
    now = now or utcnow()
    sub = (
        Subscription.query
        .filter(
            Subscription.student_id == student_id,
            Subscription.status == "active",
            Subscription.ends_at >= now,
        )
        .order_by(Subscription.created_at.desc(), Subscription.id.desc())
        .first()
    )
    if sub is None:
        raise NoActiveSubscription()
    return sub


def reserve(subscription_id: int, count: int, expected_used: int) -> int:
    """Set sessions_used = expected_used + count iff it still equals expected_used.

    Returns the new value. Raises QuotaExceeded before writing when the
    reservation would overshoot, ConcurrentModification when another writer
    got there first. Commits on success.
    """
    if count <= 0:
        raise ValueError("count must be positive")

    sub = db.session.get(Subscription, subscription_id)
    if sub is None:
        raise NotFound("Subscription not found")

    if expected_used + count > sub.sessions_total:
        available = max(sub.sessions_total - expected_used, 0)
        raise QuotaExceeded(
            f"Not enough sessions remaining. Tried to schedule {count}, but only {available} available.",
            requested=count,
            available=available,
        )

    result = db.session.execute(
        update(Subscription)
        .where(
            Subscription.id == subscription_id,
            Subscription.sessions_used == expected_used,
        )
        .values(sessions_used=expected_used + count, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.session.rollback()
        logger.warning(
            "quota CAS lost on subscription %s (expected used=%s, +%s)",
            subscription_id, expected_used, count,
        )
        raise ConcurrentModification(
            "Concurrency error: the subscription changed while booking, please retry"
        )

    db.session.commit()
    logger.info("reserved %s session(s) on subscription %s -> used=%s",
                count, subscription_id, expected_used + count)
    return expected_used + count


def current_used(subscription_id: int) -> int:
    """Committed value of sessions_used, bypassing the identity map."""
    used = db.session.execute(
        select(Subscription.sessions_used).where(Subscription.id == subscription_id)
    ).scalar_one_or_none()
    if used is None:
        raise NotFound("Subscription not found")
    return used


def release(subscription_id: int, count: int = 1) -> None:
    """Give back `count` sessions, floored at zero. Commits."""
    if count <= 0:
        return
    db.session.execute(
        update(Subscription)
        .where(Subscription.id == subscription_id)
        .values(
            sessions_used=case(
                (Subscription.sessions_used >= count, Subscription.sessions_used - count),
                else_=0,
            ),
            updated_at=utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    sub = db.session.get(Subscription, subscription_id)
    if sub is not None:
        db.session.refresh(sub)
    logger.info("released %s session(s) on subscription %s", count, subscription_id)
