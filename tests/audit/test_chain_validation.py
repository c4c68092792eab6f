"""Hash-chained audit trail: linkage, validation and tamper detection."""

import pytest
from sqlalchemy import select, update

from stock_kernel.domain.dtos import StocktakingScope
from stock_kernel.exceptions import AuditChainBrokenError
from stock_kernel.models.audit_event import AuditAction, AuditEvent
from stock_kernel.utils.hashing import hash_audit_event, hash_payload


@pytest.fixture
def audited_history(workflow, eko, make_item, warehouse, test_actor_id):
    """Receipt, issue, start, count and complete through the workflow."""
    item = make_item(eko, "A", "Apple")
    workflow.receive(eko.id, item.id, warehouse.id, 10, test_actor_id)
    workflow.issue(eko.id, item.id, warehouse.id, 2, test_actor_id)
    started = workflow.start(eko.id, test_actor_id, StocktakingScope(location_id=warehouse.id))
    workflow.record_count(eko.id, started.session.id, item.id, warehouse.id, 6, test_actor_id)
    workflow.complete(eko.id, started.session.id, test_actor_id)
    return started.session


def _events(session):
    return session.execute(select(AuditEvent).order_by(AuditEvent.seq)).scalars().all()


class TestChainLinkage:
    def test_empty_chain_is_valid(self, auditor_service):
        assert auditor_service.validate_chain() is True

    def test_events_link_to_predecessor(self, session, audited_history):
        events = _events(session)

        assert [e.action for e in events] == [
            AuditAction.STOCK_RECEIPT.value,
            AuditAction.STOCK_ISSUE.value,
            AuditAction.STOCKTAKING_START.value,
            AuditAction.STOCKTAKING_COMPLETE.value,
        ]
        assert events[0].is_genesis
        for previous, current in zip(events, events[1:]):
            assert current.prev_hash == previous.hash
            assert current.seq > previous.seq

    def test_hash_covers_payload(self, session, audited_history):
        event = _events(session)[-1]
        assert event.payload_hash == hash_payload(event.payload)
        assert event.hash == hash_audit_event(
            event.entity_type,
            str(event.entity_id),
            event.action,
            event.payload_hash,
            event.prev_hash,
        )

    def test_validate_chain(self, auditor_service, audited_history):
        assert auditor_service.validate_chain() is True


class TestTamperDetection:
    def test_payload_tampering_detected(self, session, auditor_service, audited_history):
        target = _events(session)[1]
        session.execute(
            update(AuditEvent.__table__)
            .where(AuditEvent.__table__.c.id == str(target.id))
            .values(payload={"quantity": 1})
        )
        session.expire_all()

        with pytest.raises(AuditChainBrokenError) as exc_info:
            auditor_service.validate_chain()
        assert exc_info.value.audit_event_id == str(target.id)

    def test_broken_link_detected(self, session, auditor_service, audited_history):
        target = _events(session)[2]
        session.execute(
            update(AuditEvent.__table__)
            .where(AuditEvent.__table__.c.id == str(target.id))
            .values(prev_hash="0" * 64)
        )
        session.expire_all()

        with pytest.raises(AuditChainBrokenError):
            auditor_service.validate_chain()


class TestTrace:
    def test_session_trace(self, auditor_service, audited_history):
        trace = auditor_service.get_trace("StocktakingSession", audited_history.id)

        assert not trace.is_empty
        assert trace.first_action is AuditAction.STOCKTAKING_START
        assert trace.last_action is AuditAction.STOCKTAKING_COMPLETE
        assert trace.entries[-1].payload["lines_adjusted"] == 1

    def test_unknown_entity_trace_is_empty(self, auditor_service, audited_history, eko):
        assert auditor_service.get_trace("StocktakingSession", eko.id).is_empty

    def test_recent_events_are_tenant_scoped(self, auditor_service, audited_history, eko, zoo):
        recent = auditor_service.get_recent_events(eko.id, limit=2)

        assert [e.action for e in recent] == [
            AuditAction.STOCKTAKING_COMPLETE.value,
            AuditAction.STOCKTAKING_START.value,
        ]
        assert auditor_service.get_recent_events(zoo.id) == []
