"""Tests for PredictionLedger."""

import itertools
import sqlite3
import threading

import pytest

from cli.retry import commit_retry
from ledger import (
    AlreadyResolved,
    LedgerUnavailableError,
    NotFound,
    PredictionLedger,
    SystemPaused,
    TooEarly,
    Unauthorized,
    ValidationError,
)
from observability import metrics
from shared_types import EventType
from stats.projection import StatsTables

from conftest import ADMIN, ALICE, BOB, E18, START


def test_submit_assigns_sequential_ids(submit, ledger):
    assert [submit(), submit(), submit()] == [1, 2, 3]
    assert ledger.prediction_counter == 3


def test_submit_stores_record_verbatim(submit, ledger, clock):
    pid = submit(metadata='{"confidence": 0.8}', target_time=clock() + 60)
    p = ledger.get(pid)

    assert p.predictor == ALICE
    assert p.asset == "BTC"
    assert p.current_price == 50_000 * E18
    assert p.predicted_price == 52_000 * E18
    assert p.created_at == clock()
    assert p.target_time == clock() + 60
    assert p.metadata == '{"confidence": 0.8}'
    assert p.resolved is False
    assert p.actual_price is None
    assert p.was_accurate is None
    assert p.accuracy_score is None


def test_prices_beyond_64_bits_round_trip(submit, ledger):
    huge = 2**100
    pid = submit(current_price=huge, predicted_price=huge + 1)
    assert ledger.get(pid).predicted_price == huge + 1


class TestSubmitValidation:
    def test_empty_asset(self, submit):
        with pytest.raises(ValidationError) as exc:
            submit(asset="")
        assert exc.value.field == "asset"

    def test_non_positive_prices(self, submit):
        with pytest.raises(ValidationError) as exc:
            submit(current_price=0)
        assert exc.value.field == "current_price"
        with pytest.raises(ValidationError) as exc:
            submit(predicted_price=-5)
        assert exc.value.field == "predicted_price"

    def test_target_time_must_be_future(self, submit, clock):
        with pytest.raises(ValidationError) as exc:
            submit(target_time=clock())
        assert exc.value.field == "target_time"
        with pytest.raises(ValidationError):
            submit(target_time=clock() - 1)

    def test_empty_model_type(self, submit):
        with pytest.raises(ValidationError) as exc:
            submit(model_type="   ")
        assert exc.value.field == "model_type"

    def test_first_failing_check_wins(self, submit):
        with pytest.raises(ValidationError) as exc:
            submit(asset="", current_price=0, model_type="")
        assert exc.value.field == "asset"

    def test_rejection_writes_nothing(self, submit, ledger):
        with pytest.raises(ValidationError):
            submit(current_price=0)
        assert ledger.prediction_counter == 0
        assert ledger.all() == []
        assert ledger.events() == []


class TestPause:
    def test_paused_rejects_submit(self, submit, ledger):
        ledger.set_paused(True)
        with pytest.raises(SystemPaused):
            submit()
        assert ledger.prediction_counter == 0

    def test_validation_reported_before_pause(self, submit, ledger):
        ledger.set_paused(True)
        with pytest.raises(ValidationError):
            submit(asset="")

    def test_resolve_unaffected_by_pause(self, submit, ledger, clock):
        pid = submit()
        ledger.set_paused(True)
        clock.advance(3600)
        assert ledger.resolve(pid, 52_000 * E18, ALICE).accuracy_score == 10_000

    def test_pause_is_idempotent(self, ledger):
        assert ledger.set_paused(True) is True
        assert ledger.set_paused(True) is False
        assert [e.type for e in ledger.events()] == [EventType.PAUSED]


class TestResolve:
    def test_btc_lstm_scenario(self, ledger, stats, clock):
        pid = ledger.submit(ALICE, "BTC", 50_000 * E18, 55_000 * E18, clock() + 3600, "LSTM")
        assert pid == 1
        assert stats.user_stats(ALICE).total_predictions == 1

        clock.advance(3601)
        result = ledger.resolve(pid, 54_000 * E18, ALICE)

        assert result.accuracy_score == 9815
        assert result.was_accurate is True
        p = ledger.get(pid)
        assert p.resolved and p.actual_price == 54_000 * E18 and p.accuracy_score == 9815

    def test_resolve_at_exact_target_time(self, submit, ledger, clock):
        pid = submit()
        clock.advance(3600)
        ledger.resolve(pid, 50_000 * E18, ALICE)

    def test_too_early_even_for_predictor(self, submit, ledger, clock):
        pid = submit()
        clock.advance(3599)
        with pytest.raises(TooEarly):
            ledger.resolve(pid, 50_000 * E18, ALICE)
        assert ledger.get(pid).resolved is False

    def test_not_found(self, ledger):
        with pytest.raises(NotFound):
            ledger.resolve(99, 1, ALICE)
        with pytest.raises(NotFound):
            ledger.get(99)

    def test_write_once(self, submit, ledger, clock):
        pid = submit()
        clock.advance(7200)
        first = ledger.resolve(pid, 52_000 * E18, ALICE)
        with pytest.raises(AlreadyResolved):
            ledger.resolve(pid, 10 * E18, ALICE)
        p = ledger.get(pid)
        assert p.accuracy_score == first.accuracy_score
        assert p.actual_price == 52_000 * E18

    def test_already_resolved_checked_before_authorization(self, submit, ledger, clock):
        pid = submit()
        clock.advance(7200)
        ledger.resolve(pid, 52_000 * E18, ALICE)
        with pytest.raises(AlreadyResolved):
            ledger.resolve(pid, 52_000 * E18, BOB)

    def test_stranger_is_unauthorized(self, submit, ledger, clock):
        pid = submit()
        clock.advance(7200)
        with pytest.raises(Unauthorized):
            ledger.resolve(pid, 52_000 * E18, BOB)

    def test_authorization_checked_before_price(self, submit, ledger, clock):
        pid = submit()
        with pytest.raises(Unauthorized):
            ledger.resolve(pid, 0, BOB)

    def test_price_checked_before_time(self, submit, ledger):
        pid = submit()
        with pytest.raises(ValidationError):
            ledger.resolve(pid, 0, ALICE)

    def test_authorized_resolution_skips_membership_check(self, submit, ledger, clock):
        pid = submit()
        clock.advance(7200)
        result = ledger.resolve(pid, 52_000 * E18, BOB, authorized=True)
        assert result.accuracy_score == 10_000
        assert ledger.get(pid).resolved

    def test_authorized_resolution_still_waits_for_target(self, submit, ledger):
        pid = submit()
        with pytest.raises(TooEarly):
            ledger.resolve(pid, 52_000 * E18, BOB, authorized=True)

    def test_oracle_may_resolve(self, submit, ledger, clock):
        pid = submit()
        clock.advance(7200)
        assert ledger.is_oracle(ADMIN)
        ledger.resolve(pid, 52_000 * E18, ADMIN)
        assert ledger.get(pid).resolved

    def test_threshold_applies_at_resolution(self, submit, ledger, clock):
        low, high = submit(), submit()
        clock.advance(7200)
        # 52000 vs 54000: 10000 - floor(2000*10000/54000) = 9630
        assert ledger.resolve(low, 54_000 * E18, ALICE).was_accurate is True
        ledger.set_accuracy_threshold(100)
        result = ledger.resolve(high, 54_000 * E18, ALICE)
        assert result.accuracy_score == 9630
        assert result.was_accurate is False


class TestReads:
    def test_indexes_in_creation_order(self, submit, ledger):
        submit(asset="BTC", model_type="LSTM")
        submit(predictor=BOB, asset="ETH", model_type="LSTM")
        submit(asset="ETH", model_type="ARIMA")

        assert [p.id for p in ledger.by_predictor(ALICE)] == [1, 3]
        assert [p.id for p in ledger.by_asset("ETH")] == [2, 3]
        assert [p.id for p in ledger.by_model("LSTM")] == [1, 2]
        assert ledger.by_asset("DOGE") == []

    def test_keys_are_case_sensitive(self, submit, ledger):
        submit(asset="BTC")
        assert ledger.by_asset("btc") == []

    def test_recent_is_newest_first_and_paginated(self, submit, ledger):
        for _ in range(5):
            submit()
        assert [p.id for p in ledger.recent(page=1, limit=2)] == [5, 4]
        assert [p.id for p in ledger.recent(page=3, limit=2)] == [1]
        assert ledger.recent(page=4, limit=2) == []

    def test_assets_and_models(self, submit, ledger):
        submit(asset="ETH", model_type="ARIMA")
        submit(asset="BTC", model_type="LSTM")
        submit(asset="BTC", model_type="LSTM")
        assert ledger.assets() == ["BTC", "ETH"]
        assert ledger.model_types() == ["ARIMA", "LSTM"]

    def test_summary(self, ledger, submit):
        submit()
        summary = ledger.summary()
        assert summary["prediction_counter"] == 1
        assert summary["accuracy_threshold"] == 500
        assert summary["accuracy_threshold_percent"] == 5.0
        assert summary["paused"] is False
        assert summary["oracles"] == [ADMIN]


class TestEvents:
    def test_event_log_records_lifecycle(self, submit, ledger, clock):
        pid = submit()
        clock.advance(3600)
        ledger.resolve(pid, 52_000 * E18, ALICE)

        events = ledger.events()
        assert [e.type for e in events] == [
            EventType.PREDICTION_CREATED,
            EventType.PREDICTION_RESOLVED,
            EventType.USER_STATS_UPDATED,
        ]
        assert events[0].payload["current_price"] == str(50_000 * E18)
        assert events[1].payload["accuracy_score"] == 10_000
        assert events[2].payload == {
            "predictor": ALICE,
            "total_predictions": 1,
            "accurate_predictions": 1,
            "total_accuracy_score": 10_000,
        }
        assert ledger.events(since=events[1].seq) == events[2:]

    def test_events_filtered_by_type(self, submit, ledger):
        submit()
        ledger.set_accuracy_threshold(250)
        changes = ledger.events(event_type=EventType.ACCURACY_THRESHOLD_UPDATED)
        assert len(changes) == 1
        assert changes[0].payload == {"old": 500, "new": 250}

    def test_listeners_see_committed_events(self, submit, ledger, clock):
        seen = []
        ledger.subscribe(lambda e: seen.append((e.type, ledger.prediction_counter)))
        submit()
        assert seen == [(EventType.PREDICTION_CREATED, 1)]

    def test_broken_listener_does_not_undo_commit(self, submit, ledger):
        def boom(event):
            raise RuntimeError("listener bug")

        ledger.subscribe(boom)
        assert submit() == 1
        assert ledger.get(1).asset == "BTC"


class TestGlobalSettings:
    def test_threshold_bounds(self, ledger):
        with pytest.raises(ValidationError):
            ledger.set_accuracy_threshold(10_001)
        assert ledger.set_accuracy_threshold(10_000) == (500, 10_000)
        assert ledger.set_accuracy_threshold(0) == (10_000, 0)

    def test_oracle_grant_and_revoke_idempotent(self, ledger):
        assert ledger.set_oracle(BOB, granted=True) is True
        assert ledger.set_oracle(BOB, granted=True) is False
        assert ledger.is_oracle(BOB)
        assert ledger.set_oracle(BOB, granted=False) is True
        assert ledger.set_oracle(BOB, granted=False) is False
        assert not ledger.is_oracle(BOB)

    def test_bootstrap_only_on_first_open(self, db_path, clock):
        PredictionLedger(db_path, clock=clock, bootstrap_oracles=[ADMIN], accuracy_threshold=300)
        reopened = PredictionLedger(
            db_path, clock=clock, bootstrap_oracles=[BOB], accuracy_threshold=900
        )
        config = reopened.config()
        assert config.oracle_addresses == {ADMIN}
        assert config.accuracy_threshold == 300

    def test_state_survives_reopen(self, db_path, clock, submit, ledger):
        submit()
        ledger.set_paused(True)
        reopened = PredictionLedger(db_path, clock=clock)
        assert reopened.prediction_counter == 1
        assert reopened.config().paused is True


class TestConcurrency:
    def test_concurrent_submits_are_dense(self, db_path, clock, ledger):
        # Separate instances share only the database file.
        ledgers = [ledger] + [PredictionLedger(db_path, clock=clock) for _ in range(3)]
        ids, errors = [], []
        lock = threading.Lock()

        def worker(instance, n):
            for _ in range(n):
                try:
                    pid = instance.submit(
                        ALICE, "BTC", 50_000 * E18, 51_000 * E18, clock() + 3600, "LSTM"
                    )
                except Exception as e:  # collected for the assertion below
                    errors.append(e)
                    continue
                with lock:
                    ids.append(pid)

        threads = [threading.Thread(target=worker, args=(lg, 10)) for lg in ledgers]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert sorted(ids) == list(range(1, 41))
        assert ledger.prediction_counter == 40

    def test_creation_time_ascends_with_id(self, db_path):
        ticks = itertools.count(START)
        ledger = PredictionLedger(db_path, clock=lambda: next(ticks))

        def worker():
            for _ in range(10):
                ledger.submit(ALICE, "BTC", 50_000 * E18, 51_000 * E18, START + 10**6, "LSTM")

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        created = [p.created_at for p in ledger.all()]
        assert len(created) == 40
        assert created == sorted(created)
        assert len(set(created)) == 40

    def test_concurrent_resolves_single_winner(self, db_path, clock, submit, ledger, stats):
        pid = submit()
        clock.advance(3600)
        ledgers = [ledger] + [PredictionLedger(db_path, clock=clock) for _ in range(5)]
        outcomes = []
        barrier = threading.Barrier(len(ledgers))

        def worker(instance):
            barrier.wait()
            try:
                instance.resolve(pid, 52_000 * E18, ALICE)
                outcomes.append("ok")
            except AlreadyResolved:
                outcomes.append("already")

        threads = [threading.Thread(target=worker, args=(lg,)) for lg in ledgers]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert outcomes.count("ok") == 1
        assert outcomes.count("already") == len(ledgers) - 1
        user = stats.user_stats(ALICE)
        assert user.accurate_predictions == 1
        assert user.total_accuracy_score == 10_000


class _LockedProjection(StatsTables):
    calls = 0

    def apply(self, conn, event):
        type(self).calls += 1
        raise sqlite3.OperationalError("database is locked")


def test_storage_failure_rolls_back_and_is_transient(db_path, clock):
    _LockedProjection.calls = 0
    ledger = PredictionLedger(
        db_path,
        clock=clock,
        projection=_LockedProjection(),
        retry_policy=commit_retry(max_attempts=2, min_wait=0, max_wait=0),
    )
    with pytest.raises(LedgerUnavailableError) as exc:
        ledger.submit(ALICE, "BTC", 1, 2, clock() + 10, "LSTM")

    assert exc.value.transient is True
    assert _LockedProjection.calls == 2
    assert ledger.prediction_counter == 0
    assert ledger.all() == []
    assert metrics.get("ledger.commit_failed") == 1
