"""SQLite-backed prediction ledger, the single source of truth.

All writes go through one BEGIN IMMEDIATE transaction per operation: the
prediction row, the event log entry and the statistics projection commit
together or not at all.
"""

import sqlite3
import threading
import time
from contextlib import closing
from dataclasses import replace
from pathlib import Path
from typing import Callable, Iterable, Optional

import structlog

from cli.retry import commit_retry
from db import read_snapshot, wal_connect, write_transaction
from observability import metrics
from shared_types import EventType

from .accuracy import BASIS_POINTS, DEFAULT_ACCURACY_THRESHOLD, calculate_accuracy, is_accurate
from .errors import (
    AlreadyResolved,
    LedgerUnavailableError,
    NotFound,
    SystemPaused,
    TooEarly,
    Unauthorized,
    ValidationError,
)
from .models import (
    GlobalConfig,
    LedgerEvent,
    Prediction,
    ResolutionResult,
    prediction_created,
    prediction_resolved,
    user_stats_updated,
)

logger = structlog.get_logger()

Clock = Callable[[], int]
Listener = Callable[[LedgerEvent], None]


def system_clock() -> int:
    return int(time.time())


def _is_positive_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def _require_text(value, field: str, message: str) -> None:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(message, field=field)


class PredictionLedger:
    """Append-only store of predictions, resolutions and global settings."""

    def __init__(
        self,
        db_path: Path,
        clock: Optional[Clock] = None,
        projection=None,
        accuracy_threshold: int = DEFAULT_ACCURACY_THRESHOLD,
        bootstrap_oracles: Iterable[str] = (),
        retry_policy=None,
    ):
        self.db_path = Path(db_path).expanduser()
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.clock = clock or system_clock
        if projection is None:
            from stats.projection import StatsTables

            projection = StatsTables()
        self.projection = projection
        self._write_lock = threading.Lock()
        self._listeners: list[Listener] = []
        self._run_transaction = (retry_policy or commit_retry())(self._transaction)
        self._init_tables(accuracy_threshold, list(bootstrap_oracles))

    def _init_tables(self, accuracy_threshold: int, bootstrap_oracles: list[str]):
        if not 0 <= accuracy_threshold <= BASIS_POINTS:
            raise ValidationError(
                f"Accuracy threshold must be within 0-{BASIS_POINTS} bp, got {accuracy_threshold}",
                field="accuracy_threshold",
            )
        with closing(wal_connect(self.db_path, row_factory=True)) as conn, conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS predictions (
                    id INTEGER PRIMARY KEY,
                    predictor TEXT NOT NULL,
                    asset TEXT NOT NULL,
                    current_price TEXT NOT NULL,
                    predicted_price TEXT NOT NULL,
                    created_at INTEGER NOT NULL,
                    target_time INTEGER NOT NULL,
                    model_type TEXT NOT NULL,
                    metadata TEXT NOT NULL DEFAULT '{}',
                    resolved INTEGER NOT NULL DEFAULT 0 CHECK(resolved IN (0, 1)),
                    actual_price TEXT,
                    was_accurate INTEGER,
                    accuracy_score INTEGER
                        CHECK(accuracy_score IS NULL OR accuracy_score BETWEEN 0 AND 10000),
                    CHECK(target_time > created_at)
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_pred_predictor ON predictions(predictor)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_pred_asset ON predictions(asset)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_pred_model ON predictions(model_type)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_pred_created ON predictions(created_at)")
            conn.execute("""
                CREATE TABLE IF NOT EXISTS ledger_state (
                    key TEXT PRIMARY KEY,
                    value INTEGER NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS oracles (
                    identity TEXT PRIMARY KEY,
                    granted_at INTEGER NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS ledger_events (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    event_type TEXT NOT NULL,
                    prediction_id INTEGER,
                    payload TEXT NOT NULL,
                    emitted_at INTEGER NOT NULL
                )
            """)
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_events_prediction ON ledger_events(prediction_id)"
            )
            self.projection.init_schema(conn)

            fresh = conn.execute("SELECT COUNT(*) FROM ledger_state").fetchone()[0] == 0
            if fresh:
                now = self.clock()
                conn.executemany(
                    "INSERT INTO ledger_state (key, value) VALUES (?, ?)",
                    [
                        ("prediction_counter", 0),
                        ("accuracy_threshold", accuracy_threshold),
                        ("paused", 0),
                    ],
                )
                conn.executemany(
                    "INSERT OR IGNORE INTO oracles (identity, granted_at) VALUES (?, ?)",
                    [(identity, now) for identity in bootstrap_oracles],
                )
                logger.info(
                    "ledger_initialized",
                    db_path=str(self.db_path),
                    accuracy_threshold=accuracy_threshold,
                    oracles=len(bootstrap_oracles),
                )

    # --- write plumbing ---

    def subscribe(self, listener: Listener) -> None:
        """Register a callable notified with each event after its commit."""
        self._listeners.append(listener)

    def _transaction(self, apply):
        with write_transaction(self.db_path) as conn:
            return apply(conn)

    def _write(self, op: str, apply):
        """Run ``apply(conn) -> (result, events)`` atomically, then notify listeners."""
        with self._write_lock, metrics.timer(f"ledger.{op}"):
            try:
                result, events = self._run_transaction(apply)
            except sqlite3.Error as e:
                metrics.counter("ledger.commit_failed")
                logger.error("ledger_commit_failed", op=op, error=str(e))
                raise LedgerUnavailableError(f"Ledger storage unavailable during {op}", op=op) from e
        for event in events:
            self._notify(event)
        return result

    def _emit(self, conn: sqlite3.Connection, event: LedgerEvent) -> None:
        conn.execute(
            """INSERT INTO ledger_events (event_type, prediction_id, payload, emitted_at)
            VALUES (?, ?, ?, ?)""",
            (str(event.type), event.prediction_id, event.payload_json(), event.emitted_at),
        )
        self.projection.apply(conn, event)

    def _notify(self, event: LedgerEvent) -> None:
        for listener in self._listeners:
            try:
                listener(event)
            except Exception:
                # Commit is already durable; listener failures are only logged.
                logger.exception("ledger_listener_failed", event_type=str(event.type))

    @staticmethod
    def _load_state(conn: sqlite3.Connection) -> GlobalConfig:
        state = {r["key"]: r["value"] for r in conn.execute("SELECT key, value FROM ledger_state")}
        oracles = {r["identity"] for r in conn.execute("SELECT identity FROM oracles")}
        return GlobalConfig(
            accuracy_threshold=state["accuracy_threshold"],
            paused=bool(state["paused"]),
            oracle_addresses=oracles,
            prediction_counter=state["prediction_counter"],
        )

    # --- predictions ---

    def submit(
        self,
        predictor: str,
        asset: str,
        current_price: int,
        predicted_price: int,
        target_time: int,
        model_type: str,
        metadata: str = "{}",
    ) -> int:
        """Record a new prediction. Returns its id."""

        def apply(conn):
            # Clock is read under the write lock so ids and created_at ascend together.
            now = self.clock()
            _require_text(asset, "asset", "Asset cannot be empty")
            if not _is_positive_int(current_price):
                raise ValidationError("Current price must be greater than 0", field="current_price")
            if not _is_positive_int(predicted_price):
                raise ValidationError("Predicted price must be greater than 0", field="predicted_price")
            if not isinstance(target_time, int) or isinstance(target_time, bool) or target_time <= now:
                raise ValidationError("Target time must be in the future", field="target_time", now=now)
            _require_text(model_type, "model_type", "Model type cannot be empty")
            if not isinstance(metadata, str):
                raise ValidationError("Metadata must be a string", field="metadata")

            state = self._load_state(conn)
            if state.paused:
                raise SystemPaused("Ledger is paused; new predictions are rejected")
            prediction = Prediction(
                id=state.prediction_counter + 1,
                predictor=predictor,
                asset=asset,
                current_price=current_price,
                predicted_price=predicted_price,
                created_at=now,
                target_time=target_time,
                model_type=model_type,
                metadata=metadata,
            )
            conn.execute(
                """INSERT INTO predictions
                (id, predictor, asset, current_price, predicted_price, created_at,
                 target_time, model_type, metadata)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    prediction.id,
                    prediction.predictor,
                    prediction.asset,
                    str(prediction.current_price),
                    str(prediction.predicted_price),
                    prediction.created_at,
                    prediction.target_time,
                    prediction.model_type,
                    prediction.metadata,
                ),
            )
            conn.execute(
                "UPDATE ledger_state SET value = ? WHERE key = 'prediction_counter'",
                (prediction.id,),
            )
            event = prediction_created(prediction, now)
            self._emit(conn, event)
            return prediction.id, [event]

        prediction_id = self._write("submit", apply)
        metrics.counter("ledger.predictions_submitted")
        logger.info(
            "prediction_submitted",
            prediction_id=prediction_id,
            predictor=predictor,
            asset=asset,
            model_type=model_type,
        )
        return prediction_id

    def resolve(
        self, prediction_id: int, actual_price: int, caller: str, *, authorized: bool = False
    ) -> ResolutionResult:
        """Score a prediction against the observed price. Write-once.

        ``authorized`` skips the predictor/oracle check for callers already
        cleared by the access guard (admin bulk resolution).
        """

        def apply(conn):
            now = self.clock()
            row = conn.execute("SELECT * FROM predictions WHERE id = ?", (prediction_id,)).fetchone()
            if row is None:
                raise NotFound(f"Prediction {prediction_id} does not exist", prediction_id=prediction_id)
            prediction = Prediction.from_row(row)
            if prediction.resolved:
                raise AlreadyResolved(
                    f"Prediction {prediction_id} is already resolved", prediction_id=prediction_id
                )
            state = self._load_state(conn)
            if (
                not authorized
                and caller != prediction.predictor
                and caller not in state.oracle_addresses
            ):
                raise Unauthorized(
                    "Not authorized to resolve prediction", prediction_id=prediction_id
                )
            if not _is_positive_int(actual_price):
                raise ValidationError("Actual price must be greater than 0", field="actual_price")
            if now < prediction.target_time:
                raise TooEarly(
                    "Cannot resolve before target time",
                    prediction_id=prediction_id,
                    target_time=prediction.target_time,
                )

            score = calculate_accuracy(prediction.predicted_price, actual_price)
            accurate = is_accurate(score, state.accuracy_threshold)
            cur = conn.execute(
                """UPDATE predictions
                SET resolved = 1, actual_price = ?, was_accurate = ?, accuracy_score = ?
                WHERE id = ? AND resolved = 0""",
                (str(actual_price), int(accurate), score, prediction_id),
            )
            if cur.rowcount != 1:
                raise AlreadyResolved(
                    f"Prediction {prediction_id} is already resolved", prediction_id=prediction_id
                )

            resolved = replace(
                prediction,
                resolved=True,
                actual_price=actual_price,
                was_accurate=accurate,
                accuracy_score=score,
            )
            result = ResolutionResult(prediction_id, accurate, score)
            resolved_event = prediction_resolved(resolved, result, now)
            self._emit(conn, resolved_event)
            stats = self.projection.load_user(conn, prediction.predictor)
            stats_event = user_stats_updated(
                prediction.predictor,
                {
                    "total_predictions": stats.total_predictions,
                    "accurate_predictions": stats.accurate_predictions,
                    "total_accuracy_score": stats.total_accuracy_score,
                },
                now,
            )
            self._emit(conn, stats_event)
            return result, [resolved_event, stats_event]

        result = self._write("resolve", apply)
        metrics.counter("ledger.predictions_resolved")
        logger.info(
            "prediction_resolved",
            prediction_id=prediction_id,
            caller=caller,
            accuracy_score=result.accuracy_score,
            was_accurate=result.was_accurate,
        )
        return result

    # --- global settings (mutated only through access.guard.AccessGuard) ---

    def set_accuracy_threshold(self, new_threshold: int) -> tuple[int, int]:
        if (
            not isinstance(new_threshold, int)
            or isinstance(new_threshold, bool)
            or not 0 <= new_threshold <= BASIS_POINTS
        ):
            raise ValidationError("Threshold cannot exceed 100%", field="threshold")

        def apply(conn):
            now = self.clock()
            old = self._load_state(conn).accuracy_threshold
            conn.execute(
                "UPDATE ledger_state SET value = ? WHERE key = 'accuracy_threshold'",
                (new_threshold,),
            )
            event = LedgerEvent(
                EventType.ACCURACY_THRESHOLD_UPDATED, {"old": old, "new": new_threshold}, now
            )
            self._emit(conn, event)
            return (old, new_threshold), [event]

        old, new = self._write("set_threshold", apply)
        logger.info("accuracy_threshold_updated", old=old, new=new)
        return old, new

    def set_paused(self, paused: bool) -> bool:
        """Returns True if the flag changed."""

        def apply(conn):
            now = self.clock()
            if self._load_state(conn).paused == paused:
                return False, []
            conn.execute("UPDATE ledger_state SET value = ? WHERE key = 'paused'", (int(paused),))
            event = LedgerEvent(EventType.PAUSED if paused else EventType.UNPAUSED, {}, now)
            self._emit(conn, event)
            return True, [event]

        changed = self._write("pause" if paused else "unpause", apply)
        logger.info("ledger_pause_state", paused=paused, changed=changed)
        return changed

    def set_oracle(self, identity: str, granted: bool) -> bool:
        """Grant or revoke the oracle role. Returns True if membership changed."""
        _require_text(identity, "identity", "Oracle identity cannot be empty")

        def apply(conn):
            now = self.clock()
            if granted:
                cur = conn.execute(
                    "INSERT OR IGNORE INTO oracles (identity, granted_at) VALUES (?, ?)",
                    (identity, now),
                )
            else:
                cur = conn.execute("DELETE FROM oracles WHERE identity = ?", (identity,))
            if cur.rowcount == 0:
                return False, []
            event = LedgerEvent(
                EventType.ORACLE_GRANTED if granted else EventType.ORACLE_REVOKED,
                {"identity": identity},
                now,
            )
            self._emit(conn, event)
            return True, [event]

        changed = self._write("grant_oracle" if granted else "revoke_oracle", apply)
        logger.info("oracle_role_updated", identity=identity, granted=granted, changed=changed)
        return changed

    # --- reads ---

    def get(self, prediction_id: int) -> Prediction:
        with read_snapshot(self.db_path) as conn:
            row = conn.execute("SELECT * FROM predictions WHERE id = ?", (prediction_id,)).fetchone()
        if row is None:
            raise NotFound(f"Prediction {prediction_id} does not exist", prediction_id=prediction_id)
        return Prediction.from_row(row)

    def _select(self, where: str = "", params: tuple = (), order: str = "id ASC", limit: int = -1):
        query = "SELECT * FROM predictions"
        if where:
            query += f" WHERE {where}"
        query += f" ORDER BY {order} LIMIT ? OFFSET ?"
        with read_snapshot(self.db_path) as conn:
            rows = conn.execute(query, (*params, limit, 0)).fetchall()
        return [Prediction.from_row(r) for r in rows]

    def by_predictor(self, predictor: str) -> list[Prediction]:
        return self._select("predictor = ?", (predictor,))

    def by_asset(self, asset: str) -> list[Prediction]:
        return self._select("asset = ?", (asset,))

    def by_model(self, model_type: str) -> list[Prediction]:
        return self._select("model_type = ?", (model_type,))

    def all(self) -> list[Prediction]:
        return self._select()

    def recent(self, page: int = 1, limit: int = 10) -> list[Prediction]:
        """Newest first, paginated."""
        if page < 1 or limit < 1:
            raise ValidationError("Page and limit must be positive", field="page")
        with read_snapshot(self.db_path) as conn:
            rows = conn.execute(
                "SELECT * FROM predictions ORDER BY id DESC LIMIT ? OFFSET ?",
                (limit, (page - 1) * limit),
            ).fetchall()
        return [Prediction.from_row(r) for r in rows]

    def assets(self) -> list[str]:
        with read_snapshot(self.db_path) as conn:
            rows = conn.execute("SELECT DISTINCT asset FROM predictions ORDER BY asset").fetchall()
        return [r["asset"] for r in rows]

    def model_types(self) -> list[str]:
        with read_snapshot(self.db_path) as conn:
            rows = conn.execute(
                "SELECT DISTINCT model_type FROM predictions ORDER BY model_type"
            ).fetchall()
        return [r["model_type"] for r in rows]

    def config(self) -> GlobalConfig:
        with read_snapshot(self.db_path) as conn:
            return self._load_state(conn)

    @property
    def prediction_counter(self) -> int:
        return self.config().prediction_counter

    def is_oracle(self, identity: str) -> bool:
        return identity in self.config().oracle_addresses

    def events(self, since: int = 0, event_type: Optional[EventType] = None) -> list[LedgerEvent]:
        """Event log entries with seq > since, oldest first."""
        query = "SELECT * FROM ledger_events WHERE seq > ?"
        params: list = [since]
        if event_type:
            query += " AND event_type = ?"
            params.append(str(event_type))
        query += " ORDER BY seq ASC"
        with read_snapshot(self.db_path) as conn:
            rows = conn.execute(query, params).fetchall()
        return [LedgerEvent.from_row(r) for r in rows]

    def summary(self) -> dict:
        state = self.config()
        return {
            "prediction_counter": state.prediction_counter,
            "accuracy_threshold": state.accuracy_threshold,
            "accuracy_threshold_percent": state.accuracy_threshold / 100,
            "paused": state.paused,
            "oracles": sorted(state.oracle_addresses),
        }
