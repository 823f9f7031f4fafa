import random
import unittest

from quarterhour.core.entries import all_entries, entries_by_date, find_entry, reduce_entries
from quarterhour.core.models import PersistedId

from support import DAY, NEXT_DAY, make_slot

ALPHA = PersistedId("alpha")
BETA = PersistedId("beta")


class TestReduceEntries(unittest.TestCase):
    def test_same_project_run_then_switch(self) -> None:
        slots = [make_slot("s1", ALPHA, 9.0), make_slot("s2", ALPHA, 9.25), make_slot("s3", BETA, 9.5)]

        entries = reduce_entries(slots)

        self.assertEqual(len(entries), 2)
        first, second = entries
        self.assertEqual(first.id, PersistedId("s1"))
        self.assertEqual((first.start_time, first.end_time), (9.0, 9.5))
        self.assertEqual(first.slot_ids, (PersistedId("s1"), PersistedId("s2")))
        self.assertEqual(first.hours, 0.5)
        self.assertEqual(second.project_id, BETA)
        self.assertEqual((second.start_time, second.end_time), (9.5, 9.75))

    def test_gap_splits_entries(self) -> None:
        entries = reduce_entries([make_slot("s1", ALPHA, 9.0), make_slot("s2", ALPHA, 9.5)])
        self.assertEqual([(e.start_time, e.end_time) for e in entries], [(9.0, 9.25), (9.5, 9.75)])

    def test_only_first_slot_note_is_used(self) -> None:
        entries = reduce_entries([make_slot("s1", ALPHA, 9.0), make_slot("s2", ALPHA, 9.25, note="later")])
        self.assertIsNone(entries[0].note)

        entries = reduce_entries([make_slot("s1", ALPHA, 9.0, note="first"), make_slot("s2", ALPHA, 9.25, note="x")])
        self.assertEqual(entries[0].note, "first")

    def test_empty_input(self) -> None:
        self.assertEqual(reduce_entries([]), [])

    def test_entries_partition_slots(self) -> None:
        rng = random.Random(7)
        ticks = sorted(rng.sample([index / 4 for index in range(96)], 40))
        slots = [make_slot(f"s{i}", rng.choice([ALPHA, BETA]), tick) for i, tick in enumerate(ticks)]

        entries = reduce_entries(slots)

        covered = [slot_id for entry in entries for slot_id in entry.slot_ids]
        self.assertEqual(covered, [slot.id for slot in slots])
        self.assertEqual(sum(entry.hours for entry in entries), 0.25 * len(slots))
        by_id = {slot.id: slot for slot in slots}
        for entry in entries:
            members = [by_id[slot_id] for slot_id in entry.slot_ids]
            self.assertEqual({slot.project_id for slot in members}, {entry.project_id})
            self.assertEqual([slot.time_slot for slot in members], [entry.start_time + 0.25 * i for i in range(len(members))])


class TestEntriesByDate(unittest.TestCase):
    def test_groups_and_sorts_each_date(self) -> None:
        slots = [
            make_slot("b", ALPHA, 9.25),
            make_slot("n", BETA, 8.0, day=NEXT_DAY),
            make_slot("a", ALPHA, 9.0),
        ]

        grouped = entries_by_date(slots)

        self.assertEqual(list(grouped), [DAY, NEXT_DAY])
        self.assertEqual(len(grouped[DAY]), 1)
        self.assertEqual(grouped[DAY][0].slot_ids, (PersistedId("a"), PersistedId("b")))
        self.assertEqual(len(all_entries(slots)), 2)

    def test_find_entry(self) -> None:
        slots = [make_slot("a", ALPHA, 9.0), make_slot("b", ALPHA, 9.25), make_slot("c", BETA, 10.0)]
        self.assertEqual(find_entry(slots, PersistedId("c")).project_id, BETA)
        self.assertIsNone(find_entry(slots, PersistedId("b")))


if __name__ == "__main__":
    unittest.main(verbosity=2)
