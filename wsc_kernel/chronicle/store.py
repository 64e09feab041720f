"""
Chronicle Log — append-only, hash-chained causal event log.

Behavioral Contract:
- Append-only. No record is ever modified or deleted (enforced by triggers).
- Each record is hashed and chained to the previous record (tamper-evident).
- ``causes`` may only reference events already in the log at an earlier
  position, so the causal graph is a DAG by construction.
- Queryable by type (exact or ``family.*``), location, participant,
  importance, world time, scale, depth, and causal neighbourhood.
- The log records what happened. It never infers current entity state.
"""

import hashlib
import json
import logging
import sqlite3
from collections import deque
from typing import Any, Dict, Iterator, List, Optional, Union

from pydantic import ValidationError

from wsc_kernel.errors import AppendError
from wsc_kernel.models.chronicle import (
    ChronicleEvent,
    ChronicleQuery,
    TreeNode,
)

logger = logging.getLogger(__name__)


def _canonical(record: Dict[str, Any]) -> str:
    return json.dumps(record, sort_keys=True, separators=(",", ":"), default=str)


def _sign(record_json: str, prior_hash: Optional[str]) -> str:
    payload = f"{prior_hash or ''}|{record_json}".encode()
    return hashlib.sha256(payload).hexdigest()


class ChronicleLog:
    """
    Append-only chronicle.
    SQLite file per world; ``:memory:`` for tests and dry runs.
    """

    def __init__(self, db_path: str = ":memory:"):
        self.db_path = db_path
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._init_schema()

    def _init_schema(self) -> None:
        """Create the chronicle tables and append-only guards if they don't exist."""
        self._conn.executescript("""
            CREATE TABLE IF NOT EXISTS events (
                seq INTEGER PRIMARY KEY,
                id TEXT NOT NULL UNIQUE,
                type TEXT NOT NULL,
                where_id TEXT NOT NULL,
                t_world REAL NOT NULL,
                t_scale TEXT NOT NULL,
                t_parent TEXT,
                t_depth INTEGER NOT NULL DEFAULT 0,
                importance REAL NOT NULL,
                confidence REAL NOT NULL,
                signature TEXT NOT NULL,
                prior_record_hash TEXT,
                record_json TEXT NOT NULL,
                created_at TEXT NOT NULL DEFAULT (datetime('now'))
            );
            CREATE TABLE IF NOT EXISTS event_participants (
                event_id TEXT NOT NULL,
                entity_id TEXT NOT NULL,
                position INTEGER NOT NULL,
                PRIMARY KEY (event_id, position)
            );
            CREATE TABLE IF NOT EXISTS event_causes (
                event_id TEXT NOT NULL,
                cause_id TEXT NOT NULL,
                PRIMARY KEY (event_id, cause_id)
            );
            CREATE INDEX IF NOT EXISTS idx_events_type ON events(type);
            CREATE INDEX IF NOT EXISTS idx_events_where ON events(where_id);
            CREATE INDEX IF NOT EXISTS idx_events_t_world ON events(t_world);
            CREATE INDEX IF NOT EXISTS idx_events_parent ON events(t_parent);
            CREATE INDEX IF NOT EXISTS idx_participants_entity ON event_participants(entity_id);
            CREATE INDEX IF NOT EXISTS idx_causes_cause ON event_causes(cause_id);
        """)
        for table in ("events", "event_participants", "event_causes"):
            for action in ("UPDATE", "DELETE"):
                self._conn.execute(f"""
                    CREATE TRIGGER IF NOT EXISTS {table}_no_{action.lower()}
                    BEFORE {action} ON {table}
                    BEGIN
                        SELECT RAISE(ABORT, 'chronicle is append-only');
                    END
                """)
        self._conn.commit()

    # --- Writing ---

    def check_causes(self, event: ChronicleEvent) -> None:
        """Raise AppendError unless every cause precedes ``event`` in the log."""
        seq = event.seq
        for cause_id in event.causes:
            if cause_id == event.id:
                raise AppendError(f"Event {event.id} cannot cause itself")
            row = self._conn.execute(
                "SELECT seq FROM events WHERE id = ?", (cause_id,)
            ).fetchone()
            if row is None:
                raise AppendError(f"Event {event.id} references unknown cause {cause_id}")
            if row["seq"] >= seq:
                raise AppendError(
                    f"Event {event.id} references cause {cause_id} that does not precede it"
                )

    def append(self, event: Union[ChronicleEvent, Dict[str, Any]]) -> ChronicleEvent:
        """
        Append one event. Rejects the whole append (log untouched) on a
        missing field, a duplicate or non-increasing id, or a bad cause.
        """
        if not isinstance(event, ChronicleEvent):
            try:
                event = ChronicleEvent.model_validate(event)
            except ValidationError as e:
                raise AppendError(f"Invalid chronicle event: {e}") from e

        if self.get(event.id) is not None:
            raise AppendError(f"Event id {event.id} already exists")
        last = self.last_seq()
        if event.seq <= last:
            raise AppendError(
                f"Event id {event.id} is not after the last event evt_{last}"
            )
        self.check_causes(event)

        record_json = _canonical(event.to_record())
        prior_hash = self._get_latest_hash()
        signature = _sign(record_json, prior_hash)

        with self._conn:
            self._conn.execute(
                """
                INSERT INTO events (
                    seq, id, type, where_id, t_world, t_scale, t_parent, t_depth,
                    importance, confidence, signature, prior_record_hash, record_json
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    event.seq,
                    event.id,
                    event.type,
                    event.where,
                    event.t_world,
                    event.t_scale.value,
                    event.t_parent,
                    event.t_depth,
                    event.importance,
                    event.confidence,
                    signature,
                    prior_hash,
                    record_json,
                ),
            )
            self._conn.executemany(
                "INSERT INTO event_participants (event_id, entity_id, position) VALUES (?, ?, ?)",
                [(event.id, who, i) for i, who in enumerate(event.who)],
            )
            self._conn.executemany(
                "INSERT OR IGNORE INTO event_causes (event_id, cause_id) VALUES (?, ?)",
                [(event.id, cause) for cause in event.causes],
            )
        logger.debug("Appended %s (%s) at t_world=%s", event.id, event.type, event.t_world)
        return event

    def _get_latest_hash(self) -> Optional[str]:
        """Get the signature of the most recent record."""
        row = self._conn.execute(
            "SELECT signature FROM events ORDER BY seq DESC LIMIT 1"
        ).fetchone()
        return row["signature"] if row else None

    # --- Reading ---

    def _deserialize(self, row: sqlite3.Row) -> ChronicleEvent:
        return ChronicleEvent.model_validate_json(row["record_json"])

    def get(self, event_id: str) -> Optional[ChronicleEvent]:
        """Get a specific event by id."""
        row = self._conn.execute(
            "SELECT record_json FROM events WHERE id = ?", (event_id,)
        ).fetchone()
        return self._deserialize(row) if row else None

    def get_raw(self, event_id: str) -> Optional[str]:
        """The stored canonical JSON of an event, exactly as written."""
        row = self._conn.execute(
            "SELECT record_json FROM events WHERE id = ?", (event_id,)
        ).fetchone()
        return row["record_json"] if row else None

    def last_seq(self) -> int:
        row = self._conn.execute("SELECT MAX(seq) AS last FROM events").fetchone()
        return row["last"] or 0

    def count(self) -> int:
        """Total number of events."""
        row = self._conn.execute("SELECT COUNT(*) AS cnt FROM events").fetchone()
        return row["cnt"]

    def iter_events(self, after_seq: int = 0, up_to_seq: Optional[int] = None) -> Iterator[ChronicleEvent]:
        """Events in log order, optionally bounded by position."""
        sql = "SELECT record_json FROM events WHERE seq > ?"
        params: List[Any] = [after_seq]
        if up_to_seq is not None:
            sql += " AND seq <= ?"
            params.append(up_to_seq)
        for row in self._conn.execute(sql + " ORDER BY seq", params).fetchall():
            yield self._deserialize(row)

    def all_events(self) -> List[ChronicleEvent]:
        return list(self.iter_events())

    def query(self, q: Optional[ChronicleQuery] = None) -> List[ChronicleEvent]:
        """All events satisfying every provided predicate, newest ``t_world`` first."""
        q = q or ChronicleQuery()
        clauses: List[str] = []
        params: List[Any] = []

        if q.event_type:
            if q.event_type.endswith(".*"):
                prefix = q.event_type[:-1]
                clauses.append("substr(type, 1, ?) = ?")
                params.extend([len(prefix), prefix])
            else:
                clauses.append("type = ?")
                params.append(q.event_type)
        if q.where:
            clauses.append("where_id = ?")
            params.append(q.where)
        if q.who:
            clauses.append("id IN (SELECT event_id FROM event_participants WHERE entity_id = ?)")
            params.append(q.who)
        if q.min_importance is not None:
            clauses.append("importance >= ?")
            params.append(q.min_importance)
        if q.max_importance is not None:
            clauses.append("importance <= ?")
            params.append(q.max_importance)
        if q.min_t_world is not None:
            clauses.append("t_world >= ?")
            params.append(q.min_t_world)
        if q.max_t_world is not None:
            clauses.append("t_world <= ?")
            params.append(q.max_t_world)
        if q.scale is not None:
            clauses.append("t_scale = ?")
            params.append(q.scale.value)
        if q.depth is not None:
            clauses.append("t_depth = ?")
            params.append(q.depth)
        if q.causes_of:
            clauses.append("id IN (SELECT cause_id FROM event_causes WHERE event_id = ?)")
            params.append(q.causes_of)
        if q.caused_by:
            clauses.append("id IN (SELECT event_id FROM event_causes WHERE cause_id = ?)")
            params.append(q.caused_by)

        sql = "SELECT record_json FROM events"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        direction = "ASC" if q.ascending else "DESC"
        sql += f" ORDER BY t_world {direction}, seq {direction}"
        if q.limit:
            sql += " LIMIT ?"
            params.append(q.limit)

        rows = self._conn.execute(sql, params).fetchall()
        return [self._deserialize(r) for r in rows]

    def tree(self, root_id: str) -> List[TreeNode]:
        """
        The root and every event reachable from it through ``t_parent`` or
        ``causes`` links, in log order. Reconstructs a drill-down session.
        """
        root = self.get(root_id)
        if root is None:
            return []

        distances = {root.id: 0}
        frontier = deque([root.id])
        while frontier:
            current = frontier.popleft()
            rows = self._conn.execute(
                """
                SELECT id FROM events WHERE t_parent = ?
                UNION
                SELECT event_id AS id FROM event_causes WHERE cause_id = ?
                """,
                (current, current),
            ).fetchall()
            for row in rows:
                if row["id"] not in distances:
                    distances[row["id"]] = distances[current] + 1
                    frontier.append(row["id"])

        nodes = [TreeNode(event=self.get(i), distance=d) for i, d in distances.items()]
        nodes.sort(key=lambda n: n.event.seq)
        return nodes

    def verify_chain_integrity(self) -> bool:
        """Verify no records have been tampered with."""
        rows = self._conn.execute(
            "SELECT record_json, signature, prior_record_hash FROM events ORDER BY seq"
        ).fetchall()

        prior_sig = None
        for row in rows:
            if row["prior_record_hash"] != prior_sig:
                return False
            if _sign(row["record_json"], prior_sig) != row["signature"]:
                return False
            prior_sig = row["signature"]
        return True

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()
