import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from codemanage.project_store import ProjectMetadataStore
from codemanage.services import project_actions
from codemanage.services.project_actions import PathOutsideRootError, move_project


class MoveProjectTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tmpdir = tempfile.TemporaryDirectory()
        self.root = Path(self.tmpdir.name) / "code"
        self.root.mkdir()
        self.store = ProjectMetadataStore(self.root / ".code-manage.json")
        self.project = self.root / "proj-a"
        self.project.mkdir()
        (self.project / "package.json").write_text("{}", encoding="utf-8")

    def tearDown(self) -> None:
        self.tmpdir.cleanup()

    def test_moves_into_status_folder_and_records_status(self) -> None:
        with patch.object(project_actions, "invalidate_project_cache") as invalidate:
            target = move_project("proj-a", str(self.project), "icebox", root=self.root, store=self.store)

        self.assertEqual(target, self.root / "_icebox" / "proj-a")
        self.assertTrue((target / "package.json").exists())
        self.assertFalse(self.project.exists())
        self.assertEqual(self.store.get_project_metadata("proj-a").status, "icebox")
        invalidate.assert_called_once_with()

    def test_move_back_to_active_lands_at_root(self) -> None:
        archived = self.root / "_old" / "legacy"
        archived.mkdir(parents=True)

        target = move_project("legacy", archived, "active", root=self.root, store=self.store)

        self.assertEqual(target, self.root / "legacy")

    def test_rejects_paths_outside_root(self) -> None:
        outside = Path(self.tmpdir.name) / "elsewhere"
        outside.mkdir()
        with self.assertRaises(PathOutsideRootError):
            move_project("x", outside, "icebox", root=self.root, store=self.store)
        with self.assertRaises(PathOutsideRootError):
            move_project("x", self.root / ".." / "elsewhere", "icebox", root=self.root, store=self.store)
        with self.assertRaises(PathOutsideRootError):
            move_project("x", self.root, "icebox", root=self.root, store=self.store)

    def test_missing_project_and_unknown_status(self) -> None:
        with self.assertRaises(FileNotFoundError):
            move_project("ghost", self.root / "ghost", "icebox", root=self.root, store=self.store)
        with self.assertRaises(ValueError):
            move_project("proj-a", self.project, "deleted", root=self.root, store=self.store)

    def test_grouping_folders_cannot_be_moved(self) -> None:
        icebox = self.root / "_icebox"
        (icebox / "parked").mkdir(parents=True)
        suite = self.root / "builder_suite"
        (suite / "api").mkdir(parents=True)

        with self.assertRaises(ValueError):
            move_project("icebox", icebox, "archived", root=self.root, store=self.store)
        with self.assertRaises(ValueError):
            move_project("builder", suite, "icebox", root=self.root, store=self.store)

        self.assertFalse((self.root / "_old").exists())
        self.assertTrue((icebox / "parked").is_dir())
        self.assertFalse((icebox / "builder_suite").exists())
        self.assertIsNone(self.store.get_project_metadata("icebox"))

    def test_existing_target_is_not_overwritten(self) -> None:
        (self.root / "_icebox" / "proj-a").mkdir(parents=True)
        with self.assertRaises(FileExistsError):
            move_project("proj-a", self.project, "icebox", root=self.root, store=self.store)
        self.assertTrue(self.project.exists())
        self.assertIsNone(self.store.get_project_metadata("proj-a"))


if __name__ == "__main__":
    unittest.main()
