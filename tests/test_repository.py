import json
import tempfile
import unittest
from pathlib import Path

from quarterhour.core.exceptions import DuplicateSlotError, PersistenceError
from quarterhour.core.models import LocalId, SlotDraft
from quarterhour.core.repository import JsonlRemoteStore

from support import DAY, NEXT_DAY


class TestJsonlRemoteStore(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        root = Path(self._tmp.name)
        self.slots_file = root / "time_slots.jsonl"
        self.projects_file = root / "projects.jsonl"
        self.store = JsonlRemoteStore(self.slots_file, self.projects_file, lock_timeout=1.0)
        self.project = await self.store.insert_project("Alpha", "#ff0000")

    def read_lines(self, path: Path) -> list[dict]:
        return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines() if line.strip()]

    async def test_files_are_created(self) -> None:
        self.assertTrue(self.slots_file.exists())
        self.assertEqual(self.read_lines(self.projects_file)[0]["name"], "Alpha")

    async def test_insert_and_select_by_range(self) -> None:
        inserted = await self.store.insert_slots(
            [
                SlotDraft(self.project.id, NEXT_DAY, 8.0),
                SlotDraft(self.project.id, DAY, 9.0, note="kickoff"),
            ]
        )

        self.assertEqual(len(inserted), 2)
        self.assertEqual(len(self.read_lines(self.slots_file)), 2)
        day_slots = await self.store.select_slots(DAY, DAY)
        self.assertEqual([(slot.time_slot, slot.note) for slot in day_slots], [(9.0, "kickoff")])
        everything = await self.store.select_slots()
        self.assertEqual([slot.date for slot in everything], [DAY, NEXT_DAY])

    async def test_duplicate_insert_leaves_file_untouched(self) -> None:
        await self.store.insert_slots([SlotDraft(self.project.id, DAY, 9.0)])
        before = self.slots_file.read_text(encoding="utf-8")

        with self.assertRaises(DuplicateSlotError):
            await self.store.insert_slots([SlotDraft(self.project.id, DAY, 9.25), SlotDraft(self.project.id, DAY, 9.0)])
        with self.assertRaises(DuplicateSlotError):
            await self.store.insert_slots([SlotDraft(self.project.id, DAY, 10.0), SlotDraft(self.project.id, DAY, 10.0)])

        self.assertEqual(self.slots_file.read_text(encoding="utf-8"), before)

    async def test_unconfirmed_ids_are_refused(self) -> None:
        with self.assertRaises(PersistenceError):
            await self.store.insert_slots([SlotDraft(LocalId(), DAY, 9.0)])
        with self.assertRaises(PersistenceError):
            await self.store.update_slot(LocalId(), note="x")

    async def test_update_slot(self) -> None:
        (slot,) = await self.store.insert_slots([SlotDraft(self.project.id, DAY, 9.0)])
        other = await self.store.insert_project("Beta", "#00ff00")

        updated = await self.store.update_slot(slot.id, project_id=other.id, note="moved")

        self.assertEqual(updated.id, slot.id)
        (stored,) = await self.store.select_slots()
        self.assertEqual((stored.project_id, stored.note), (other.id, "moved"))
        with self.assertRaises(PersistenceError):
            await self.store.update_slot(slot.id, time_slot=10.0)

    async def test_delete_slots(self) -> None:
        first, second = await self.store.insert_slots(
            [SlotDraft(self.project.id, DAY, 9.0), SlotDraft(self.project.id, DAY, 9.25)]
        )
        await self.store.delete_slots([first.id])
        self.assertEqual([slot.id for slot in await self.store.select_slots()], [second.id])

    async def test_projects_update_and_cascade_delete(self) -> None:
        beta = await self.store.insert_project("beta", "#00ff00")
        await self.store.insert_slots([SlotDraft(self.project.id, DAY, 9.0), SlotDraft(beta.id, DAY, 9.25)])

        archived = await self.store.update_project(beta.id, archived=True)
        self.assertTrue(archived.archived)
        self.assertEqual([project.name for project in await self.store.select_projects()], ["Alpha", "beta"])

        await self.store.delete_project(self.project.id)

        self.assertEqual([project.id for project in await self.store.select_projects()], [beta.id])
        self.assertEqual([slot.project_id for slot in await self.store.select_slots()], [beta.id])

    async def test_malformed_lines_are_skipped(self) -> None:
        await self.store.insert_slots([SlotDraft(self.project.id, DAY, 9.0)])
        with self.slots_file.open("a", encoding="utf-8") as handle:
            handle.write("{broken\n")

        with self.assertLogs("quarterhour.repository", level="ERROR"):
            slots = await self.store.select_slots()

        self.assertEqual(len(slots), 1)


if __name__ == "__main__":
    unittest.main(verbosity=2)
