"""
Tests for run_atomic(): commit, rollback, conflict retry and error mapping.
"""

import logging
import sqlite3

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from farm_ledger.models import Batch, Farm
from farm_ledger.services import batch_service, ledger_store
from farm_ledger.services.exceptions import (
    BatchNotFound,
    ConcurrencyConflict,
    DatabaseError,
    NetworkUnavailable,
    ValidationError,
)


def _operational(message):
    return OperationalError("UPDATE batches", {}, sqlite3.OperationalError(message))


class TestErrorClassification:
    def test_stale_data_is_conflict(self):
        assert ledger_store.is_conflict_error(StaleDataError("version mismatch"))

    def test_locked_database_is_conflict(self):
        assert ledger_store.is_conflict_error(_operational("database is locked"))

    def test_unreachable_database_is_unavailable(self):
        error = _operational("unable to open database file")
        assert ledger_store.is_unavailable_error(error)
        assert not ledger_store.is_conflict_error(error)

    def test_integrity_error_is_neither(self):
        error = IntegrityError("INSERT", {}, sqlite3.IntegrityError("CHECK constraint failed"))
        assert not ledger_store.is_conflict_error(error)
        assert not ledger_store.is_unavailable_error(error)


class TestRunAtomic:
    def test_commits_work(self, test_db):
        def work(session):
            farm = Farm(name="La Esperanza")
            session.add(farm)
            session.flush()
            return farm.id

        farm_id = ledger_store.run_atomic("create_farm", work)
        session = test_db()
        assert session.get(Farm, farm_id) is not None
        session.close()

    def test_domain_error_rolls_back_without_retry(self, test_db):
        calls = []

        def work(session):
            calls.append(1)
            session.add(Farm(name="Never committed"))
            session.flush()
            raise ValidationError("bad input")

        with pytest.raises(ValidationError):
            ledger_store.run_atomic("create_farm", work)

        assert len(calls) == 1
        session = test_db()
        assert session.query(Farm).count() == 0
        session.close()

    def test_conflict_is_retried_from_a_fresh_session(self, test_db, caplog):
        sessions = []

        def work(session):
            sessions.append(session)
            if len(sessions) == 1:
                raise StaleDataError("UPDATE statement on table 'batches' expected to update 1 row(s)")
            return "done"

        with caplog.at_level(logging.WARNING):
            assert ledger_store.run_atomic("record_sale", work) == "done"

        assert len(sessions) == 2
        assert sessions[0] is not sessions[1]
        retries = [r for r in caplog.records if getattr(r, "outcome", None) == "conflict_retry"]
        assert len(retries) == 1
        assert retries[0].operation == "record_sale"
        assert retries[0].attempt == 1

    def test_exhausted_retries_raise_concurrency_conflict(self, test_db):
        def work(session):
            raise StaleDataError("conflict")

        with pytest.raises(ConcurrencyConflict) as exc:
            ledger_store.run_atomic("record_sale", work, max_attempts=3)
        assert exc.value.attempts == 3
        assert exc.value.operation == "record_sale"

    def test_default_attempts_come_from_config(self, test_db, monkeypatch):
        from farm_ledger.utils.config import reset_config

        monkeypatch.setenv("FARM_LEDGER_MAX_ATTEMPTS", "2")
        reset_config()
        calls = []

        def work(session):
            calls.append(1)
            raise StaleDataError("conflict")

        with pytest.raises(ConcurrencyConflict):
            ledger_store.run_atomic("record_sale", work)
        assert len(calls) == 2

    def test_unreachable_store_raises_network_unavailable(self, test_db):
        def work(session):
            raise _operational("unable to open database file")

        with pytest.raises(NetworkUnavailable) as exc:
            ledger_store.run_atomic("record_daily_log", work)
        assert exc.value.operation == "record_daily_log"
        assert exc.value.original_error is not None

    def test_other_store_errors_become_database_error(self, test_db):
        def work(session):
            raise IntegrityError("INSERT", {}, sqlite3.IntegrityError("CHECK constraint failed"))

        with pytest.raises(DatabaseError):
            ledger_store.run_atomic("record_sale", work)

    def test_caller_session_runs_once_without_commit(self, test_db):
        session = test_db()
        ledger_store.run_atomic("create_farm", lambda s: s.add(Farm(name="Pending")), session=session)
        session.rollback()
        assert session.query(Farm).count() == 0
        session.close()


class TestFetch:
    def test_fetch_missing_raises_not_found(self, test_db):
        session = test_db()
        with pytest.raises(BatchNotFound) as exc:
            ledger_store.fetch(session, Batch, "missing", BatchNotFound)
        assert exc.value.batch_id == "missing"
        session.close()

    def test_find_replayed_without_id(self, test_db):
        session = test_db()
        assert ledger_store.find_replayed(session, Batch, None) is None
        session.close()


class TestVersionConflict:
    """A concurrent write between read and write is detected and retried."""

    def test_concurrent_update_is_retried_with_fresh_values(self, file_db):
        batch = batch_service.create_batch(name="Lote 9", initial_population=100)
        attempts = []

        def work(session):
            attempts.append(1)
            current = session.get(Batch, batch.id)
            if len(attempts) == 1:
                # Another device sells 10 birds after our read
                other = file_db()
                other_batch = other.get(Batch, batch.id)
                other_batch.current_population -= 10
                other.commit()
                other.close()
            current.current_population -= 5
            session.flush()
            return current.current_population

        result = ledger_store.run_atomic("record_daily_log", work)

        assert len(attempts) == 2
        assert result == 85
        session = file_db()
        stored = session.get(Batch, batch.id)
        assert stored.current_population == 85
        assert stored.version == 3
        session.close()
