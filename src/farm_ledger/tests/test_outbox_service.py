"""
Tests for the offline outbox: queueing while unreachable and replay.
"""

import json
import sqlite3
from contextlib import contextmanager
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from farm_ledger.models import (
    Batch,
    DailyLogRecord,
    ExpenseCategory,
    OperationType,
    PendingOperation,
    SaleRecord,
)
from farm_ledger.services import database as db_module
from farm_ledger.services import outbox_service, sale_service
from farm_ledger.services.exceptions import (
    ConcurrencyConflict,
    InsufficientPopulation,
    ValidationError,
)


@contextmanager
def _unreachable_scope():
    raise OperationalError("SELECT 1", {}, sqlite3.OperationalError("unable to open database file"))
    yield


@pytest.fixture
def network(monkeypatch):
    """Switch the ledger store connection off and on again."""
    real_scope = db_module.session_scope

    class Network:
        def down(self):
            monkeypatch.setattr(db_module, "session_scope", _unreachable_scope)

        def up(self):
            monkeypatch.setattr(db_module, "session_scope", real_scope)

    return Network()


def sale_payload(batch_id, quantity):
    return {
        "batch_id": batch_id,
        "quantity": quantity,
        "unit_price": Decimal("5.00"),
        "customer": "Carlos",
        "payment_method": "EFECTIVO",
    }


class TestSubmit:
    def test_online_submit_applies_immediately(self, sample_batch, load):
        result = outbox_service.submit(
            OperationType.RECORD_DAILY_LOG,
            {"batch_id": sample_batch.id, "mortality_count": 2},
            operation_id="log-1",
        )

        assert result.queued is False
        assert result.result.id == "log-1"
        assert load(Batch, sample_batch.id).current_population == 98
        assert outbox_service.pending_count() == 0

    def test_offline_submit_is_queued(self, sample_batch, network, load):
        network.down()
        result = outbox_service.submit(
            OperationType.RECORD_DAILY_LOG,
            {"batch_id": sample_batch.id, "mortality_count": 3, "log_date": date(2025, 3, 1)},
            operation_id="log-1",
        )

        assert result.queued is True
        assert result.operation_id == "log-1"
        assert outbox_service.pending_count() == 1
        assert load(Batch, sample_batch.id).current_population == 100

        network.up()
        report = outbox_service.replay_all()

        assert report.synced == ["log-1"]
        assert report.all_synced
        log = load(DailyLogRecord, "log-1")
        assert log.log_date == date(2025, 3, 1)
        assert load(Batch, sample_batch.id).current_population == 97
        assert outbox_service.pending_count() == 0

    def test_domain_errors_are_not_queued(self, sample_batch):
        with pytest.raises(InsufficientPopulation):
            outbox_service.submit(OperationType.RECORD_SALE, sale_payload(sample_batch.id, 101))
        assert outbox_service.pending_count() == 0

    def test_unknown_operation_type(self, test_db):
        with pytest.raises(ValidationError):
            outbox_service.dispatch("TRANSFER_BIRDS", {}, "op-1")


class TestReplay:
    def test_replay_is_idempotent(self, sample_batch, load):
        outbox_service.enqueue(OperationType.RECORD_SALE, sale_payload(sample_batch.id, 10), "sale-1")
        # Applied before a crash, never marked synced
        sale_service.record_sale(sample_batch.id, 10, "5.00", "Carlos", "EFECTIVO", record_id="sale-1")

        report = outbox_service.replay_all()

        assert report.synced == ["sale-1"]
        assert load(Batch, sample_batch.id).current_population == 90
        assert len(sale_service.list_sales(sample_batch.id)) == 1

    def test_delete_of_missing_target_counts_as_applied(self, test_db):
        outbox_service.enqueue(OperationType.DELETE_SALE, {"record_id": "gone"}, "op-del")

        report = outbox_service.replay_all()

        assert report.synced == ["op-del"]
        assert outbox_service.pending_count() == 0

    def test_update_and_delete_replay(self, sample_batch, load):
        sale_service.record_sale(sample_batch.id, 10, "5.00", "Carlos", "EFECTIVO", record_id="sale-1")
        outbox_service.enqueue(
            OperationType.UPDATE_SALE, {"record_id": "sale-1", "changes": {"quantity": 4}}, "op-upd"
        )
        outbox_service.enqueue(OperationType.DELETE_SALE, {"record_id": "sale-1"}, "op-del")

        report = outbox_service.replay_all()

        assert report.synced == ["op-upd", "op-del"]
        assert load(SaleRecord, "sale-1") is None
        assert load(Batch, sample_batch.id).current_population == 100

    def test_failed_entry_does_not_block_later_entries(self, sample_batch, load):
        outbox_service.enqueue(OperationType.RECORD_SALE, sale_payload(sample_batch.id, 500), "too-many")
        outbox_service.enqueue(
            OperationType.RECORD_DAILY_LOG, {"batch_id": sample_batch.id, "mortality_count": 2}, "log-1"
        )

        report = outbox_service.replay_all()

        assert report.failed == ["too-many"]
        assert report.synced == ["log-1"]
        assert "insufficient population" in report.errors["too-many"]
        assert load(Batch, sample_batch.id).current_population == 98

        outbox_service.replay_all()
        [entry] = outbox_service.pending_operations()
        assert entry.operation_id == "too-many"
        assert entry.attempts == 2
        assert "insufficient population" in entry.last_error

    def test_empty_outbox(self, test_db):
        report = outbox_service.replay_all()
        assert report.synced == []
        assert report.all_synced

    def test_expense_replay(self, test_db):
        outbox_service.enqueue(
            OperationType.RECORD_EXPENSE,
            {"concept": "Luz", "category": ExpenseCategory.OPERATING, "amount": Decimal("120.50")},
            "exp-1",
        )

        assert outbox_service.replay_all().synced == ["exp-1"]


class TestQueueManagement:
    def test_enqueue_deduplicates(self, test_db):
        outbox_service.enqueue(OperationType.DELETE_SALE, {"record_id": "s"}, "op-1")
        outbox_service.enqueue(OperationType.DELETE_SALE, {"record_id": "s"}, "op-1")
        assert outbox_service.pending_count() == 1

    def test_pending_operations_filter_and_order(self, test_db):
        outbox_service.enqueue(OperationType.DELETE_SALE, {"record_id": "a"}, "op-1")
        outbox_service.enqueue(OperationType.DELETE_DAILY_LOG, {"record_id": "b"}, "op-2")
        outbox_service.enqueue(OperationType.DELETE_SALE, {"record_id": "c"}, "op-3")

        assert [e.operation_id for e in outbox_service.pending_operations()] == ["op-1", "op-2", "op-3"]
        sales = outbox_service.pending_operations(OperationType.DELETE_SALE)
        assert [e.data["record_id"] for e in sales] == ["a", "c"]

    def test_discard(self, test_db):
        outbox_service.enqueue(OperationType.DELETE_SALE, {"record_id": "s"}, "op-1")

        assert outbox_service.discard("op-1") is True
        assert outbox_service.discard("op-1") is False
        assert outbox_service.pending_count() == 0

    def test_encode_payload(self):
        encoded = outbox_service.encode_payload(
            {
                "amount": Decimal("12.50"),
                "expense_date": date(2025, 3, 10),
                "category": ExpenseCategory.INVESTMENT,
            }
        )
        assert json.loads(encoded) == {
            "amount": "12.50",
            "category": "INVESTMENT",
            "expense_date": "2025-03-10",
        }


class TestPayloadShape:
    def test_enqueue_rejects_missing_keys(self, test_db):
        with pytest.raises(ValidationError, match="missing"):
            outbox_service.enqueue(OperationType.RECORD_SALE, {"batch_id": "b"}, "op-1")
        assert outbox_service.pending_count() == 0

    def test_enqueue_rejects_unexpected_keys(self, test_db):
        with pytest.raises(ValidationError, match="unexpected"):
            outbox_service.enqueue(
                OperationType.DELETE_SALE, {"record_id": "s", "reason": "typo"}, "op-1"
            )
        assert outbox_service.pending_count() == 0

    def test_enqueue_rejects_non_mapping(self, test_db):
        with pytest.raises(ValidationError):
            outbox_service.enqueue(OperationType.DELETE_SALE, ["s"], "op-1")
        with pytest.raises(ValidationError):
            outbox_service.enqueue(
                OperationType.UPDATE_SALE, {"record_id": "s", "changes": 4}, "op-2"
            )

    def test_offline_submit_rejects_bad_payload_instead_of_queueing(self, sample_batch, network):
        network.down()
        with pytest.raises(ValidationError):
            outbox_service.submit(OperationType.RECORD_DAILY_LOG, {"mortality_count": 1})
        assert outbox_service.pending_count() == 0

    def test_malformed_entries_do_not_block_later_entries(self, sample_batch, load):
        # Written straight to the outbox, as an older client might have left them
        with db_module.outbox_session_scope() as session:
            session.add(
                PendingOperation(
                    operation_id="not-json",
                    operation_type=OperationType.RECORD_SALE,
                    payload="{batch_id",
                )
            )
            session.add(
                PendingOperation(
                    operation_id="bad-keys",
                    operation_type=OperationType.RECORD_DAILY_LOG,
                    payload=json.dumps({"batch_id": sample_batch.id, "deaths": 2}),
                )
            )
            session.add(
                PendingOperation(
                    operation_id="bad-value",
                    operation_type=OperationType.UPDATE_SALE,
                    payload=json.dumps(["sale-1"]),
                )
            )
        outbox_service.enqueue(
            OperationType.RECORD_DAILY_LOG, {"batch_id": sample_batch.id, "mortality_count": 2}, "log-1"
        )

        report = outbox_service.replay_all()

        assert report.failed == ["not-json", "bad-keys", "bad-value"]
        assert report.synced == ["log-1"]
        assert "malformed payload" in report.errors["not-json"]
        assert load(Batch, sample_batch.id).current_population == 98
        remaining = {e.operation_id: e for e in outbox_service.pending_operations()}
        assert set(remaining) == {"not-json", "bad-keys", "bad-value"}
        assert all(e.attempts == 1 for e in remaining.values())


class TestDeleteBehindQueuedCreate:
    def test_delete_waits_for_its_create(self, sample_batch, load, monkeypatch):
        outbox_service.enqueue(OperationType.RECORD_SALE, sale_payload(sample_batch.id, 10), "sale-1")
        outbox_service.enqueue(OperationType.DELETE_SALE, {"record_id": "sale-1"}, "op-del")

        record_sale = outbox_service._DISPATCH[OperationType.RECORD_SALE]
        calls = []

        def conflicts_once(payload, operation_id, context):
            calls.append(operation_id)
            if len(calls) == 1:
                raise ConcurrencyConflict("record_sale", 3)
            return record_sale(payload, operation_id, context)

        monkeypatch.setitem(outbox_service._DISPATCH, OperationType.RECORD_SALE, conflicts_once)
        report = outbox_service.replay_all()

        assert report.failed == ["sale-1", "op-del"]
        assert "still queued" in report.errors["op-del"]
        assert outbox_service.pending_count() == 2

        report = outbox_service.replay_all()

        assert report.synced == ["sale-1", "op-del"]
        assert load(SaleRecord, "sale-1") is None
        assert load(Batch, sample_batch.id).current_population == 100
        assert outbox_service.pending_count() == 0

    def test_create_and_delete_in_one_replay(self, sample_batch, load):
        outbox_service.enqueue(OperationType.RECORD_SALE, sale_payload(sample_batch.id, 10), "sale-1")
        outbox_service.enqueue(OperationType.DELETE_SALE, {"record_id": "sale-1"}, "op-del")

        report = outbox_service.replay_all()

        assert report.synced == ["sale-1", "op-del"]
        assert load(Batch, sample_batch.id).current_population == 100
