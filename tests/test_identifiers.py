from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

from swarmcoord.services.identifiers import IdGenerator, next_id
from swarmcoord.services.identity import generate_agent_id


class TestIdGenerator:
    def test_ids_are_unique_and_ordered(self) -> None:
        gen = IdGenerator()
        ids = [gen.next_id() for _ in range(5000)]
        assert len(set(ids)) == len(ids)
        assert ids == sorted(ids)

    def test_format(self) -> None:
        gen = IdGenerator(clock=lambda: 1_700_000_000_123_456_789)
        assert gen.next_id() == "work_1700000000123456789"

    def test_same_tick_gets_sequence_suffix(self) -> None:
        gen = IdGenerator(clock=lambda: 1_700_000_000_000_000_000)
        first, second, third = (gen.next_id() for _ in range(3))

        assert first == "work_1700000000000000000"
        assert second == "work_1700000000000000000_000001"
        assert third == "work_1700000000000000000_000002"
        assert first < second < third

    def test_clock_rollback_never_goes_backwards(self) -> None:
        readings = iter([5_000, 1_000, 4_000, 9_000])
        gen = IdGenerator(clock=lambda: next(readings))
        ids = [gen.next_id() for _ in range(4)]

        assert ids == sorted(ids)
        assert len(set(ids)) == 4
        assert ids[1].startswith("work_0000000000000005000_")
        assert ids[3] == "work_0000000000000009000"

    def test_later_tick_sorts_after_suffixed_ids(self) -> None:
        readings = iter([100, 100, 101])
        gen = IdGenerator(clock=lambda: next(readings))
        ids = [gen.next_id() for _ in range(3)]
        assert ids == sorted(ids)

    def test_taken_ids_are_skipped(self) -> None:
        gen = IdGenerator(clock=lambda: 42)
        taken = {"work_0000000000000000042", "work_0000000000000000042_000001"}

        assert gen.next_id(taken=taken) == "work_0000000000000000042_000002"

    def test_prefix(self) -> None:
        assert next_id("agent").startswith("agent_")
        assert generate_agent_id().startswith("agent_")

    def test_threads_share_one_sequence(self) -> None:
        gen = IdGenerator(clock=lambda: 7)
        with ThreadPoolExecutor(max_workers=8) as pool:
            ids = list(pool.map(lambda _: gen.next_id(), range(800)))
        assert len(set(ids)) == 800
