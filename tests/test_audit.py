"""
Test suite for the hash-chained audit trail
"""

import pytest
from decimal import Decimal
from datetime import datetime, timezone

from saxon_bank.audit import AuditEvent, AuditEventType, AuditTrail
from saxon_bank.storage import InMemoryStorage


class TestAuditEvent:
    """Test individual audit events"""

    def make_event(self, **overrides):
        fields = dict(
            id="EVT001",
            created_at=datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc),
            updated_at=datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc),
            event_type=AuditEventType.DEPOSIT_POSTED,
            entity_type="transaction",
            entity_id="TXN001",
            sequence=1,
            previous_hash="",
            current_hash="",
            metadata={"amount": Decimal("100.00")},
            user_id="ACC001"
        )
        fields.update(overrides)
        return AuditEvent(**fields)

    def test_metadata_serialization(self):
        event = self.make_event(metadata={
            "amount": Decimal("12.50"),
            "when": datetime(2026, 1, 1, tzinfo=timezone.utc),
            "event": AuditEventType.BILL_PAID,
            "nested": {"values": [Decimal("1.00")]}
        })
        assert event.metadata == {
            "amount": "12.50",
            "when": "2026-01-01T00:00:00+00:00",
            "event": "bill_paid",
            "nested": {"values": ["1.00"]}
        }

    def test_hash_verification(self):
        event = self.make_event()
        event.current_hash = event.calculate_hash()
        assert len(event.current_hash) == 64
        assert event.verify_hash()

        event.metadata["amount"] = "1000000.00"
        assert not event.verify_hash()

    def test_hash_covers_user_and_chain(self):
        base = self.make_event()
        assert base.calculate_hash() != self.make_event(user_id="ACC002").calculate_hash()
        assert base.calculate_hash() != self.make_event(previous_hash="abc").calculate_hash()
        assert base.calculate_hash() != self.make_event(sequence=2).calculate_hash()


class TestAuditTrail:
    """Test AuditTrail functionality"""

    def setup_method(self):
        """Set up test fixtures"""
        self.storage = InMemoryStorage()
        self.audit_trail = AuditTrail(self.storage)

    def log(self, event_type=AuditEventType.DEPOSIT_POSTED, entity_id="TXN001", **kwargs):
        return self.audit_trail.log_event(
            event_type=event_type,
            entity_type=kwargs.pop("entity_type", "transaction"),
            entity_id=entity_id,
            **kwargs
        )

    def test_log_first_event(self):
        event = self.log(metadata={"amount": Decimal("5.00")}, user_id="ACC001")

        assert event.sequence == 1
        assert event.previous_hash == ""
        assert len(event.current_hash) == 64
        assert event.user_id == "ACC001"
        assert self.audit_trail.count_events() == 1

    def test_events_chain(self):
        event1 = self.log(entity_id="TXN001")
        event2 = self.log(entity_id="TXN002")
        event3 = self.log(entity_id="TXN003")

        assert event2.previous_hash == event1.current_hash
        assert event3.previous_hash == event2.current_hash
        assert [e.sequence for e in self.audit_trail.get_all_events()] == [1, 2, 3]

    def test_get_events_for_entity(self):
        self.log(AuditEventType.TRANSFER_SUBMITTED, entity_id="TXN001")
        self.log(AuditEventType.DEPOSIT_POSTED, entity_id="TXN002")
        self.log(AuditEventType.TRANSFER_APPROVED, entity_id="TXN001")

        events = self.audit_trail.get_events_for_entity("transaction", "TXN001")
        assert [e.event_type for e in events] == [
            AuditEventType.TRANSFER_SUBMITTED, AuditEventType.TRANSFER_APPROVED
        ]

    def test_get_events_by_type(self):
        self.log(AuditEventType.BILL_PAID, entity_id="TXN001")
        self.log(AuditEventType.DEPOSIT_POSTED, entity_id="TXN002")
        self.log(AuditEventType.BILL_PAID, entity_id="TXN003")

        events = self.audit_trail.get_events_by_type(AuditEventType.BILL_PAID)
        assert [e.entity_id for e in events] == ["TXN001", "TXN003"]

    def test_get_all_events_with_limit(self):
        for i in range(5):
            self.log(entity_id=f"TXN{i}")

        latest = self.audit_trail.get_all_events(limit=2)
        assert [e.entity_id for e in latest] == ["TXN3", "TXN4"]

    def test_verify_integrity_valid_chain(self):
        for i in range(5):
            self.log(entity_id=f"TXN{i}", metadata={"amount": Decimal(i)})

        result = self.audit_trail.verify_integrity()
        assert result["valid"]
        assert result["total_events"] == 5
        assert result["hash_errors"] == []
        assert result["chain_breaks"] == []

    def test_verify_integrity_detects_hash_tampering(self):
        event1 = self.log(entity_id="TXN001", metadata={"amount": "10.00"})
        self.log(entity_id="TXN002")

        tampered = self.storage.load(self.audit_trail.table_name, event1.id)
        tampered["metadata"]["amount"] = "10000.00"
        self.storage.save(self.audit_trail.table_name, event1.id, tampered)

        result = self.audit_trail.verify_integrity()
        assert not result["valid"]
        assert [e["event_id"] for e in result["hash_errors"]] == [event1.id]

    def test_verify_integrity_detects_chain_break(self):
        event1 = self.log(entity_id="TXN001")
        event2 = self.log(entity_id="TXN002")

        tampered = self.storage.load(self.audit_trail.table_name, event2.id)
        tampered["previous_hash"] = "broken_chain_hash"
        self.storage.save(self.audit_trail.table_name, event2.id, tampered)

        result = self.audit_trail.verify_integrity()
        assert not result["valid"]
        assert len(result["chain_breaks"]) == 1
        chain_break = result["chain_breaks"][0]
        assert chain_break["event_id"] == event2.id
        assert chain_break["expected_previous_hash"] == event1.current_hash

    def test_verify_integrity_empty_trail(self):
        result = self.audit_trail.verify_integrity()
        assert result["valid"]
        assert result["total_events"] == 0

    def test_event_rolls_back_with_enclosing_block(self):
        with pytest.raises(RuntimeError):
            with self.storage.atomic():
                self.log(entity_id="TXN001")
                raise RuntimeError("operation failed")

        assert self.audit_trail.count_events() == 0
        assert self.log(entity_id="TXN002").sequence == 1

    def test_disabled_trail_logs_nothing(self):
        trail = AuditTrail(self.storage, enabled=False)
        assert trail.log_event(AuditEventType.DEPOSIT_POSTED, "transaction", "TXN001") is None
        assert trail.count_events() == 0
