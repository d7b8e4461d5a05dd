from datetime import timedelta

import pytest

from models import db
from models.subscription import Subscription
from services import quota_ledger
from services.errors import ConcurrentModification, NoActiveSubscription, QuotaExceeded
from utils.timeutil import utcnow


def _used(sub_id):
    db.session.expire_all()
    return db.session.get(Subscription, sub_id).sessions_used


def test_reserve_advances_counter(student, make_subscription):
    sub = make_subscription(student, total=10, used=2)
    assert quota_ledger.reserve(sub.id, 1, expected_used=2) == 3
    assert _used(sub.id) == 3


def test_reserve_many_at_once(student, make_subscription):
    sub = make_subscription(student, total=10, used=2)
    assert quota_ledger.reserve(sub.id, 5, expected_used=2) == 7
    assert _used(sub.id) == 7


def test_stale_expected_value_loses(student, make_subscription):
    # two callers both read sessions_used == 0; only the first may win
    sub = make_subscription(student, total=10, used=0)
    quota_ledger.reserve(sub.id, 1, expected_used=0)
    with pytest.raises(ConcurrentModification):
        quota_ledger.reserve(sub.id, 1, expected_used=0)
    assert _used(sub.id) == 1


def test_last_session_race_has_one_winner(student, make_subscription):
    sub = make_subscription(student, total=5, used=4)
    assert quota_ledger.reserve(sub.id, 1, expected_used=4) == 5
    with pytest.raises((ConcurrentModification, QuotaExceeded)):
        quota_ledger.reserve(sub.id, 1, expected_used=4)
    assert _used(sub.id) == 5


def test_reserve_over_total_is_rejected_without_write(student, make_subscription):
    sub = make_subscription(student, total=5, used=4)
    with pytest.raises(QuotaExceeded) as exc:
        quota_ledger.reserve(sub.id, 2, expected_used=4)
    assert exc.value.details["available"] == 1
    assert _used(sub.id) == 4


def test_reserve_rejects_non_positive_count(student, make_subscription):
    sub = make_subscription(student)
    with pytest.raises(ValueError):
        quota_ledger.reserve(sub.id, 0, expected_used=0)


def test_release_gives_back_and_floors_at_zero(student, make_subscription):
    sub = make_subscription(student, total=10, used=3)
    quota_ledger.release(sub.id, 1)
    assert _used(sub.id) == 2
    quota_ledger.release(sub.id, 5)
    assert _used(sub.id) == 0
    quota_ledger.release(sub.id, 1)
    assert _used(sub.id) == 0


def test_active_subscription_picks_newest_usable(student, make_subscription):
    make_subscription(student, total=4, status="cancelled")
    older = make_subscription(student, total=8)
    newer = make_subscription(student, total=12)
    older.created_at = utcnow() - timedelta(days=10)
    db.session.commit()

    assert quota_ledger.get_active_subscription(student.id).id == newer.id


def test_expired_or_inactive_subscription_is_not_active(student, make_subscription):
    make_subscription(student, status="paused")
    expired = make_subscription(student)
    expired.ends_at = utcnow() - timedelta(minutes=1)
    db.session.commit()

    with pytest.raises(NoActiveSubscription):
        quota_ledger.get_active_subscription(student.id)


def test_no_subscription_at_all(student):
    with pytest.raises(NoActiveSubscription):
        quota_ledger.get_active_subscription(student.id)


def test_current_used_reads_committed_counter(student, make_subscription):
    sub = make_subscription(student, total=10, used=3)
    quota_ledger.reserve(sub.id, 2, expected_used=3)
    assert quota_ledger.current_used(sub.id) == 5


def test_is_usable(student, make_subscription):
    now = utcnow()
    assert make_subscription(student).is_usable(now)
    assert not make_subscription(student, status="paused").is_usable(now)
    expired = make_subscription(student)
    expired.ends_at = now - timedelta(days=1)
    assert not expired.is_usable(now)
