"""
Property-Based Tests with Hypothesis
====================================
Invariants of the engine, the break queue and the frame store that must hold
for arbitrary inputs.
"""
from datetime import datetime, timedelta, timezone

from hypothesis import given, settings, strategies as st

from poolrota.engine.queue import BreakQueue
from poolrota.engine.rotation import advance, step, tick_index
from poolrota.models.state import QueueEntry
from poolrota.models.topology import DEFAULT_TOPOLOGY
from poolrota.store.frame_store import next_frame_timestamp, reconstruct_latest

POSITIONS = DEFAULT_TOPOLOGY.all_positions()
SECTIONS = DEFAULT_TOPOLOGY.all_sections()
GUARD_IDS = [f"g-{i:02d}" for i in range(20)]

assignments = st.dictionaries(
    keys=st.sampled_from(POSITIONS + ["9.9", "x"]),
    values=st.one_of(st.none(), st.sampled_from(GUARD_IDS)),
)
minutes = st.integers(min_value=0, max_value=59)
permissive_minutes = st.integers(min_value=0, max_value=44)
restricted_minutes = st.integers(min_value=45, max_value=59)


def at_minute(minute: int) -> datetime:
    return datetime(2025, 7, 1, 10, minute, tzinfo=timezone.utc)


def unique_assignment(assignment):
    """Drop repeated guards so each id sits at most once."""
    seen, out = set(), {}
    for pid, gid in assignment.items():
        if gid and gid not in seen:
            seen.add(gid)
            out[pid] = gid
    return out


class TestAdvanceProperties:

    @given(assignment=assignments, minute=minutes)
    def test_no_double_booking(self, assignment, minute):
        res = advance(assignment, at_minute(minute))
        ids = [g for g in res.next_assignment.values() if g]
        assert len(ids) == len(set(ids))

    @given(assignment=assignments, minute=permissive_minutes)
    def test_permissive_keeps_successors_filled(self, assignment, minute):
        clean = unique_assignment(assignment)
        res = advance(clean, at_minute(minute))
        for pid, gid in clean.items():
            target = DEFAULT_TOPOLOGY.next_position(pid)
            if pid in DEFAULT_TOPOLOGY and target is not None:
                assert res.next_assignment[target] == gid

    @given(assignment=assignments, minute=restricted_minutes)
    def test_restricted_clears_non_rest(self, assignment, minute):
        res = advance(assignment, at_minute(minute))
        for pid, gid in res.next_assignment.items():
            if not DEFAULT_TOPOLOGY.is_rest_position(pid):
                assert gid is None

    @given(assignment=assignments, minute=minutes)
    def test_deterministic(self, assignment, minute):
        now = at_minute(minute)
        assert advance(assignment, now) == advance(assignment, now)


ops = st.lists(
    st.one_of(
        st.tuples(st.just("enqueue"), st.sampled_from(GUARD_IDS), st.sampled_from(SECTIONS)),
        st.tuples(
            st.just("move"), st.sampled_from(GUARD_IDS), st.sampled_from(SECTIONS),
            st.integers(-3, 6), st.sampled_from(SECTIONS), st.integers(-3, 6),
        ),
        st.tuples(st.just("remove"), st.sampled_from(GUARD_IDS)),
    ),
    max_size=40,
)


class TestQueueProperties:

    @given(ops=ops, seated=st.sets(st.sampled_from(GUARD_IDS), max_size=5))
    def test_unique_and_never_seated(self, ops, seated):
        q = BreakQueue(SECTIONS)
        for op in ops:
            if op[0] == "enqueue":
                q.enqueue(op[1], op[2], seated=seated)
            elif op[0] == "move":
                before = len(q)
                q.move_within_queue(op[1], op[2], op[3], op[4], op[5])
                assert len(q) == before
            else:
                q.remove(op[1])
        ids = [e.personnel_id for e in q.to_entries()]
        assert len(ids) == len(set(ids))
        assert not set(ids) & seated


class TestStepProperties:

    @settings(max_examples=50, deadline=None)
    @given(
        assignment=assignments,
        queued=st.lists(st.tuples(st.sampled_from(GUARD_IDS), st.sampled_from(SECTIONS)), max_size=10),
        start=minutes,
        ticks=st.integers(min_value=1, max_value=8),
    )
    def test_guards_conserved_and_exclusive(self, assignment, queued, start, ticks):
        now = at_minute(start)
        board = unique_assignment({k: v for k, v in assignment.items() if k in DEFAULT_TOPOLOGY})
        entries = [QueueEntry(g, s, tick_index(now) - 1) for g, s in queued if g not in board.values()]
        population = set(board.values()) | {e.personnel_id for e in entries}

        for _ in range(ticks):
            res = step(board, entries, now)
            seated = [g for g in res.next_assignment.values() if g]
            queued_ids = [e.personnel_id for e in res.next_queue]
            assert len(seated) == len(set(seated))
            assert len(queued_ids) == len(set(queued_ids))
            assert not set(seated) & set(queued_ids)
            assert set(seated) | set(queued_ids) == population
            board, entries = res.next_assignment, res.next_queue
            now += timedelta(minutes=15)


class TestFrameProperties:

    @given(stamps=st.lists(st.integers(min_value=0, max_value=10_000), min_size=1, max_size=30))
    def test_monotonic_timestamps(self, stamps):
        base = datetime(2025, 7, 1, 10, 0, tzinfo=timezone.utc)
        latest = None
        for ms in stamps:
            nxt = next_frame_timestamp(latest, base + timedelta(milliseconds=ms))
            if latest is not None:
                assert nxt > latest
            latest = nxt

    @given(rows=st.lists(
        st.tuples(st.sampled_from(POSITIONS[:3]), st.integers(0, 59), st.sampled_from(GUARD_IDS)),
        min_size=1, max_size=20,
    ), seed=st.randoms())
    def test_reconstruct_ignores_row_order(self, rows, seed):
        records = [
            {"stationId": pid, "guardId": gid, "updatedAt": f"2025-07-01T10:{m:02d}:00.000Z"}
            for pid, m, gid in rows
        ]
        shuffled = list(records)
        seed.shuffle(shuffled)
        latest_forward = reconstruct_latest(records)[1]
        latest_shuffled = reconstruct_latest(shuffled)[1]
        assert latest_forward == latest_shuffled
