from database.models import AuditLog, Enrollment
from services.audit_service import AUDIT_SINK_KEY, PENDING_EVENTS_KEY, AuditService, AuditSink
from services.enrollment_service import EnrollmentService


class ExplodingSink:
    def __init__(self):
        self.calls = 0

    def deliver(self, events):
        self.calls += 1
        raise RuntimeError("audit store unavailable")


class RecordingSink:
    def __init__(self):
        self.events = []

    def deliver(self, events):
        self.events.extend(events)


def test_events_are_written_only_after_commit(db_session, admin):
    AuditService.record(db_session, admin.id, "TEST", "THING", 7, "pending")

    assert db_session.query(AuditLog).count() == 0

    db_session.commit()

    log = db_session.query(AuditLog).one()
    assert (log.action, log.entity, log.entity_id, log.details) == ("TEST", "THING", "7", "pending")
    assert PENDING_EVENTS_KEY not in db_session.info
    assert (log.ip_address, log.user_agent) == (None, None)


def test_bound_request_context_is_stored_with_the_entry(db_session, admin):
    AuditService.bind_request(db_session, "203.0.113.9", "Mozilla/5.0")
    AuditService.record(db_session, admin.id, "TEST", "THING", 1)
    db_session.commit()

    log = db_session.query(AuditLog).one()
    assert log.ip_address == "203.0.113.9"
    assert log.user_agent == "Mozilla/5.0"


def test_rollback_discards_pending_events(db_session, admin):
    AuditService.record(db_session, admin.id, "TEST", "THING", 1)
    db_session.rollback()
    db_session.commit()

    assert db_session.query(AuditLog).count() == 0


def test_sink_failure_does_not_affect_the_mutation(db_session, admin_identity, student_identity, make_course):
    course = make_course()
    enrollment = EnrollmentService.enroll(db_session, student_identity, course.id)
    sink = ExplodingSink()
    db_session.info[AUDIT_SINK_KEY] = sink

    result = EnrollmentService.assign_grade(db_session, admin_identity, enrollment.id, "A")

    assert result.grade == "A"
    assert sink.calls == 1
    db_session.expire_all()
    assert db_session.get(Enrollment, enrollment.id).grade == "A"
    assert db_session.query(AuditLog).count() == 0


def test_store_failure_inside_sink_is_swallowed(db_session, admin):
    def broken_session():
        raise RuntimeError("cannot connect")

    db_session.info[AUDIT_SINK_KEY] = AuditSink(broken_session)
    AuditService.record(db_session, admin.id, "TEST", "THING")
    db_session.commit()

    assert db_session.query(AuditLog).count() == 0


def test_custom_sink_receives_events_in_order(db_session, admin):
    sink = RecordingSink()
    db_session.info[AUDIT_SINK_KEY] = sink

    AuditService.record(db_session, admin.id, "FIRST", "THING")
    AuditService.record(db_session, admin.id, "SECOND", "THING")
    db_session.commit()

    assert [e.action for e in sink.events] == ["FIRST", "SECOND"]
    assert all(e.actor_id == admin.id for e in sink.events)


def test_rejected_audit_row_is_swallowed(db_session, admin):
    # Unknown actor violates the audit_logs foreign key
    AuditService.record(db_session, 999999, "TEST", "THING")
    db_session.commit()

    assert db_session.query(AuditLog).count() == 0
