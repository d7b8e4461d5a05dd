from types import SimpleNamespace

import pytest

from security.rbac import ADMIN, STUDENT, TEACHER, Caller, can_create_booking, can_perform, can_view_session

SESSION = SimpleNamespace(student_id=1, teacher_id=2)


@pytest.mark.parametrize("caller, teacher_id, allowed", [
    (Caller(2, TEACHER), 2, True),
    (Caller(2, TEACHER), 3, False),
    (Caller(9, ADMIN), 3, True),
    (Caller(1, STUDENT), 2, False),
])
def test_can_create_booking(caller, teacher_id, allowed):
    assert can_create_booking(caller, teacher_id) is allowed


@pytest.mark.parametrize("action", ["cancel", "complete", "no_show", "update_notes"])
def test_owning_teacher_and_admin_may_do_anything(action):
    assert can_perform(Caller(2, TEACHER), SESSION, action)
    assert can_perform(Caller(9, ADMIN), SESSION, action)


@pytest.mark.parametrize("action, allowed", [
    ("cancel", True),
    ("complete", False),
    ("no_show", False),
    ("update_notes", False),
])
def test_owning_student_may_only_cancel(action, allowed):
    assert can_perform(Caller(1, STUDENT), SESSION, action) is allowed


def test_strangers_get_nothing():
    for caller in (Caller(5, TEACHER), Caller(6, STUDENT)):
        assert not can_view_session(caller, SESSION)
        assert not can_perform(caller, SESSION, "cancel")
    assert can_view_session(Caller(1, STUDENT), SESSION)
    assert can_view_session(Caller(9, ADMIN), SESSION)
