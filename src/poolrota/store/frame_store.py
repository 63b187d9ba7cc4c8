"""
Frame Store
===========
Revision-guarded persistence of rotation frames.

Each key holds one STATE record (assignments, queue, metadata, ``rev``) plus
an append-only history of slot rows. The latest board can always be rebuilt
from slot rows alone by taking the newest row per position.

Usage:
    store = FrameStore(SQLiteBackend(Path("data/rotation.db")))
    state = store.get(rotation_key("2025-07-01"))
    store.put(key, state, expected_rev=state.rev)
"""
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from poolrota.models.state import RotationState
from poolrota.models.validated import parse_state_record
from poolrota.store.backends import Record, StorageBackend
from poolrota.store.keys import KEY_PREFIX, STATE_SK, date_of_key, is_sandbox_key
from poolrota.utils.clock import add_millis, as_utc, format_timestamp, utc_now
from poolrota.utils.logging_setup import get_logger
from poolrota.utils.structured_logging import get_structured_logger

logger = get_logger("poolrota.store.frame_store")
events = get_structured_logger("poolrota.store")

Clock = Callable[[], datetime]


def next_frame_timestamp(latest: Optional[str], now: Union[datetime, str]) -> str:
    """Write timestamp strictly newer than ``latest``: 1 ms past it if the clock lags."""
    stamp = format_timestamp(now)
    if latest and stamp <= latest:
        return add_millis(latest)
    return stamp


def reconstruct_latest(
    rows: Iterable[Record],
) -> Tuple[Dict[str, Optional[str]], Dict[str, str], Optional[str]]:
    """
    Newest row per position, regardless of row order.

    Returns:
        (assignment, position -> updatedAt, greatest updatedAt seen or None)
    """
    best: Dict[str, Record] = {}
    latest = None
    for row in rows:
        pid = row.get("stationId")
        ts = row.get("updatedAt")
        if not pid or not ts:
            continue
        ts = str(ts)
        if latest is None or ts > latest:
            latest = ts
        prev = best.get(pid)
        # Ties keep the later row
        if prev is None or ts >= str(prev["updatedAt"]):
            best[pid] = row
    assignment = {pid: (r.get("guardId") or None) for pid, r in best.items()}
    updated = {pid: str(r["updatedAt"]) for pid, r in best.items()}
    return assignment, updated, latest


class FrameStore:
    """Reads default-merge; writes bump ``rev``; sandbox keys carry a TTL."""

    def __init__(self, backend: StorageBackend, clock: Optional[Clock] = None):
        self.backend = backend
        self.clock = clock or utc_now

    def now_epoch(self) -> int:
        return int(as_utc(self.clock()).timestamp())

    def get(self, key: str) -> RotationState:
        """Stored state for ``key``; a missing or expired record reads as the default."""
        raw = self.backend.get_record(key)
        if raw is not None and raw.get("ttl") is not None:
            try:
                expired = int(raw["ttl"]) <= self.now_epoch()
            except (TypeError, ValueError):
                expired = False
            if expired:
                logger.info(f"Sandbox record {key} expired, reclaiming")
                self.backend.delete_record(key)
                raw = None
        return parse_state_record(raw)

    def put(
        self,
        key: str,
        state: RotationState,
        ttl_seconds: Optional[int] = None,
        expected_rev: Optional[int] = None,
    ) -> RotationState:
        """
        Write the full STATE record.

        Args:
            key: rotation key
            state: state to store; its ``rev`` is ignored, the backend assigns it
            ttl_seconds: lifetime for sandbox keys (ignored for canonical keys)
            expected_rev: when given, the write fails unless it matches the stored rev

        Raises:
            OptimisticConflict: stale ``expected_rev``
            StorageUnavailable: backend failure
        """
        record = state.to_dict()
        record.pop("ttl", None)
        record["sk"] = STATE_SK
        if ttl_seconds and is_sandbox_key(key):
            record["ttl"] = self.now_epoch() + int(ttl_seconds)
        stored = self.backend.write_record(key, record, expected_rev)
        events.info(
            "state_written",
            key=key,
            rev=stored["rev"],
            guarded=expected_rev is not None,
            sandbox=is_sandbox_key(key),
        )
        return parse_state_record(stored)

    def _slot_row(
        self,
        key: str,
        position_id: str,
        personnel_id: Optional[str],
        updated_at: str,
        notes: str,
        ttl: Optional[int],
    ) -> Record:
        time = updated_at[11:19]
        row = {
            "sk": f"SLOT#{time}#{position_id}",
            "stationId": position_id,
            "guardId": personnel_id or None,
            "time": time,
            "date": date_of_key(key),
            "notes": notes,
            "updatedAt": updated_at,
        }
        if ttl is not None:
            row["ttl"] = ttl
        return row

    def _row_ttl(self, key: str, ttl_seconds: Optional[int]) -> Optional[int]:
        if ttl_seconds and is_sandbox_key(key):
            return self.now_epoch() + int(ttl_seconds)
        return None

    def rows(self, key: str) -> List[Record]:
        return self.backend.query_rows(key)

    def latest_frame(self, key: str) -> Tuple[Dict[str, Optional[str]], Dict[str, str], Optional[str]]:
        return reconstruct_latest(self.rows(key))

    def append_frame(
        self,
        key: str,
        assignment: Mapping[str, Optional[str]],
        now: Optional[Union[datetime, str]] = None,
        notes: str = "",
        ttl_seconds: Optional[int] = None,
    ) -> str:
        """
        Append one slot row per position sharing a single write timestamp.

        The timestamp is strictly greater than every row already stored for
        ``key``, so a reconstruction always sees this frame as newest.

        Returns:
            The frame's ``updatedAt`` timestamp.
        """
        _, _, latest = self.latest_frame(key)
        stamp = next_frame_timestamp(latest, now if now is not None else self.clock())
        ttl = self._row_ttl(key, ttl_seconds)
        rows = [
            self._slot_row(key, pid, gid, stamp, notes, ttl)
            for pid, gid in assignment.items()
        ]
        self.backend.append_rows(key, rows)
        events.info("frame_appended", key=key, positions=len(rows), updated_at=stamp)
        return stamp

    def append_slot(
        self,
        key: str,
        position_id: str,
        personnel_id: Optional[str],
        updated_at: Optional[Union[datetime, str]] = None,
        notes: str = "",
        ttl_seconds: Optional[int] = None,
    ) -> str:
        """Append a single slot row; returns its timestamp."""
        stamp = format_timestamp(updated_at if updated_at is not None else self.clock())
        row = self._slot_row(key, position_id, personnel_id, stamp, notes, self._row_ttl(key, ttl_seconds))
        self.backend.append_rows(key, [row])
        return stamp

    def scan(self, date: Optional[str] = None) -> List[Tuple[str, RotationState]]:
        """Every live and sandbox state for ``date`` (or all dates)."""
        prefix = f"{KEY_PREFIX}{date}" if date else KEY_PREFIX
        return [(k, parse_state_record(r)) for k, r in self.backend.scan_records(prefix)]

    def purge_expired(self, now: Optional[Union[datetime, str]] = None) -> int:
        epoch = int(as_utc(now if now is not None else self.clock()).timestamp())
        removed = self.backend.delete_expired(epoch)
        if removed:
            events.info("expired_purged", removed=removed)
        return removed
