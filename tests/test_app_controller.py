import tempfile
import unittest
from pathlib import Path

from quarterhour.app_controller import ApplicationController
from quarterhour.core.mutations import MutationState
from quarterhour.core.settings import SettingsManager

from support import DAY, FlakyStore


class TestApplicationController(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.remote = FlakyStore()
        self.controller = ApplicationController(self.remote, SettingsManager(Path(self._tmp.name) / "settings.json"))

    async def test_deleting_a_project_clears_its_loaded_slots(self) -> None:
        await self.controller.catalog.add_project("Alpha")
        await self.controller.catalog.add_project("Beta")
        alpha = self.controller.find_project("alpha")
        beta = self.controller.find_project("beta")
        await self.remote.seed(alpha.id, DAY, 9.0, 9.25)
        await self.remote.seed(beta.id, DAY, 10.0)

        view = await self.controller.open_day(DAY)
        self.assertEqual(len(view.entries), 2)

        result = await self.controller.catalog.delete_project(alpha.id)

        self.assertEqual(result.state, MutationState.COMMITTED)
        self.assertEqual([slot.project_id for slot in self.controller.engine.store], [beta.id])
        self.assertEqual([entry.project_id for entry in self.controller.day_view(DAY).entries], [beta.id])

    async def test_paint_then_clear(self) -> None:
        await self.controller.catalog.add_project("Alpha")
        alpha = self.controller.find_project("Alpha")

        painted = await self.controller.paint(alpha, DAY, 9.0, 10.0)
        self.assertEqual(painted.state, MutationState.COMMITTED)
        self.assertEqual(self.controller.day_view(DAY).total_hours, 1.0)

        cleared = await self.controller.clear(DAY, 9.0, 9.5)
        self.assertEqual(cleared.state, MutationState.COMMITTED)
        self.assertEqual(len(await self.remote.select_slots(DAY, DAY)), 2)


if __name__ == "__main__":
    unittest.main(verbosity=2)
