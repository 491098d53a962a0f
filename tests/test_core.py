import logging

import pytest

from propmgr.core.audit import log_audit
from propmgr.core.database import on_commit, on_rollback, transaction, transactional
from propmgr.core.errors import ConflictError, NotFoundError
from propmgr.core.notifications import frontend_link, send_notification
from propmgr.models.audit_log import AuditLog
from propmgr.models.notification import Notification
from propmgr.models.user import User
from propmgr.services import notifications


def test_nested_transactions_commit_once(db):
    calls = []

    @transactional
    def inner(db):
        db.add(User(email="inner@example.com"))
        on_commit(db, lambda: calls.append("commit"))

    with transaction(db):
        db.add(User(email="outer@example.com"))
        inner(db)
        assert calls == []
    assert calls == ["commit"]
    assert db.query(User).count() == 2


def test_rollback_runs_compensation_only(db):
    calls = []
    with pytest.raises(NotFoundError):
        with transaction(db):
            db.add(User(email="doomed@example.com"))
            on_commit(db, lambda: calls.append("commit"))
            on_rollback(db, lambda: calls.append("rollback"))
            raise NotFoundError("gone")
    assert calls == ["rollback"]
    assert db.query(User).count() == 0


def test_unique_violation_becomes_conflict(db, make):
    make.user("tenant", email="dup@example.com")
    with pytest.raises(ConflictError):
        with transaction(db):
            db.add(User(email="dup@example.com"))


def test_failing_hook_is_logged_not_raised(db, caplog):
    def broken():
        raise RuntimeError("blob store down")

    with caplog.at_level(logging.ERROR, logger="propmgr.core.database"):
        with transaction(db):
            on_commit(db, broken)
    assert "Transaction commit hook failed" in caplog.text


def test_audit_write_failure_does_not_fail_the_caller(db, make, caplog):
    actor = make.user("landlord")
    with caplog.at_level(logging.ERROR, logger="propmgr.core.audit"):
        with transaction(db):
            db.add(User(email="kept@example.com"))
            # entity_type is NOT NULL
            assert log_audit(db, actor=actor, action="CREATE", entity_type=None, entity_id=1) is None
    assert "Audit write failed" in caplog.text
    assert db.query(User).filter(User.email == "kept@example.com").count() == 1
    assert db.query(AuditLog).count() == 0


def test_audit_rows_roll_back_with_the_operation(db, make):
    actor = make.user("landlord")
    with pytest.raises(RuntimeError):
        with transaction(db):
            log_audit(db, actor=actor, action="DELETE", entity_type="Property", entity_id=1)
            raise RuntimeError("primary operation failed")
    assert db.query(AuditLog).count() == 0


def test_audit_picks_up_client_ip(db, make):
    actor = make.user("landlord")
    db.info["client_ip"] = "10.0.0.7"
    with transaction(db):
        log_audit(db, actor=actor, action="UPDATE", entity_type="User", entity_id=actor.id)
    assert db.query(AuditLog).one().ip_address == "10.0.0.7"


def test_notification_failure_is_swallowed(db, make, caplog):
    user = make.user("tenant")
    with caplog.at_level(logging.WARNING, logger="propmgr.core.notifications"):
        with transaction(db):
            db.add(User(email="still-here@example.com"))
            # no such recipient; the foreign key rejects the row
            assert send_notification(db, recipient_id=99999, type="message", message="hi") is None
            assert send_notification(db, recipient_id=user.id, type="message", message="hi") is not None
    assert "not sent" in caplog.text
    assert db.query(User).filter(User.email == "still-here@example.com").count() == 1
    assert db.query(Notification).count() == 1


def test_frontend_links_are_absolute():
    assert frontend_link("/messages?otherUserId=3") == "http://frontend.test/messages?otherUserId=3"


def test_notification_inbox(db, make):
    user, other = make.user("tenant"), make.user("tenant")
    with transaction(db):
        first = send_notification(db, recipient_id=user.id, type="rent", message="one")
        send_notification(db, recipient_id=user.id, type="rent", message="two")
        foreign = send_notification(db, recipient_id=other.id, type="rent", message="three")

    assert len(notifications.list_notifications(db, user)) == 2
    notifications.mark_notification_read(db, user, first.id)
    assert [n.message for n in notifications.list_notifications(db, user, unread_only=True)] == ["two"]

    with pytest.raises(NotFoundError):
        notifications.mark_notification_read(db, user, foreign.id)
    assert notifications.mark_all_read(db, user) == 1
    assert notifications.mark_all_read(db, user) == 0
