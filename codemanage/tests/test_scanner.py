import json
import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from codemanage import scanner


class ClassifierTests(unittest.TestCase):
    def test_determine_status_uses_shallowest_status_folder(self) -> None:
        root = Path("/code")
        self.assertEqual(scanner.determine_status(root / "proj", root), "active")
        self.assertEqual(scanner.determine_status(root / "_icebox" / "proj", root), "icebox")
        self.assertEqual(scanner.determine_status(root / "_icebox" / "sub" / "proj", root), "icebox")
        self.assertEqual(scanner.determine_status(root / "_old" / "_icebox" / "proj", root), "archived")
        self.assertEqual(scanner.determine_status(Path("/elsewhere/_icebox/proj"), root), "active")

    def test_status_ignores_folder_names_above_root(self) -> None:
        root = Path("/home/me/_old/code")
        self.assertEqual(scanner.determine_status(root / "proj", root), "active")

    def test_slugify(self) -> None:
        self.assertEqual(scanner.slugify("My Cool_App!"), "my-cool-app")
        self.assertEqual(scanner.slugify("--Already-Slug--"), "already-slug")

    def test_suite_names(self) -> None:
        self.assertTrue(scanner.is_suite_directory("builder_suite"))
        self.assertFalse(scanner.is_suite_directory("suite_builder"))
        self.assertEqual(scanner.format_suite_name("builder_suite"), "Builder")
        self.assertEqual(scanner.format_suite_name("app_email4ai_suite"), "App Email4ai")


class ScannerTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.tmpdir = tempfile.TemporaryDirectory()
        self.root = Path(self.tmpdir.name)

    def tearDown(self) -> None:
        self.tmpdir.cleanup()

    def _project(self, relative: str, manifest: dict | None = None) -> Path:
        path = self.root / relative
        path.mkdir(parents=True, exist_ok=True)
        if manifest is not None:
            (path / "package.json").write_text(json.dumps(manifest), encoding="utf-8")
        return path

    def _by_path(self, projects) -> dict[str, object]:
        return {Path(p.path).relative_to(self.root).as_posix(): p for p in projects}

    async def test_root_and_status_folder_projects(self) -> None:
        self._project("proj-a", {"dependencies": {"next": "1.0.0"}})
        self._project("_icebox/proj-b")

        projects = await scanner.scan_all_projects(self.root)

        self.assertEqual(len(projects), 2)
        by_path = self._by_path(projects)
        proj_a = by_path["proj-a"]
        proj_b = by_path["_icebox/proj-b"]
        self.assertIn("Next.js", proj_a.techStack)
        self.assertEqual(proj_a.status, "active")
        self.assertEqual(proj_b.status, "icebox")
        self.assertEqual(proj_b.techStack, [])
        self.assertFalse(proj_b.starred)

    async def test_root_directories_without_markers_are_skipped(self) -> None:
        self._project("notes")
        self._project("node_modules", {})
        self._project(".hidden", {})
        self._project("__cache", {})
        self._project(".sync-conflict-20240101", {})
        self._project("tool")
        (self.root / "tool" / "Makefile").write_text("all:\n", encoding="utf-8")

        projects = await scanner.scan_all_projects(self.root)

        self.assertEqual([p.name for p in projects], ["tool"])

    async def test_suite_children_are_labelled(self) -> None:
        self._project("builder_suite/api", {"name": "api"})
        self._project("builder_suite/docs")

        projects = await scanner.scan_all_projects(self.root)

        self.assertEqual(len(projects), 1)
        self.assertEqual(projects[0].suite, "Builder")
        self.assertEqual(projects[0].slug, "api")
        self.assertEqual(projects[0].status, "active")

    async def test_slug_collisions_are_resolved(self) -> None:
        self._project("api", {})
        self._project("builder_suite/api", {})
        self._project("tools_suite/api", {})
        self._project("_old/api")

        projects = await scanner.scan_all_projects(self.root)

        slugs = {Path(p.path).relative_to(self.root).as_posix(): p.slug for p in projects}
        self.assertEqual(slugs, {
            "api": "api",
            "builder_suite/api": "builder--api",
            "tools_suite/api": "tools--api",
            "_old/api": "archived--api",
        })
        self.assertEqual(len(set(slugs.values())), len(slugs))

    async def test_projects_sorted_by_last_modified(self) -> None:
        old = self._project("old-app", {})
        new = self._project("new-app", {})
        os.utime(old, (1600000000, 1600000000))
        os.utime(new, (1700000000, 1700000000))

        projects = await scanner.scan_all_projects(self.root)

        self.assertEqual([p.name for p in projects], ["new-app", "old-app"])

    async def test_failed_detector_keeps_identity_fields(self) -> None:
        self._project("proj-a", {"description": "hello"})

        def _boom(path):
            raise RuntimeError("detector exploded")

        with patch.dict(scanner._DETECTORS, {"description": (_boom, lambda: None)}):
            projects = await scanner.scan_all_projects(self.root)

        self.assertEqual(len(projects), 1)
        self.assertEqual(projects[0].slug, "proj-a")
        self.assertIsNone(projects[0].description)
        self.assertEqual(projects[0].techStack, ["Node.js"])

    async def test_scan_is_repeatable(self) -> None:
        self._project("proj-a", {})
        self._project("_tools/helper")

        first = await scanner.scan_all_projects(self.root)
        second = await scanner.scan_all_projects(self.root)

        self.assertEqual(
            [p.model_dump() for p in first],
            [p.model_dump() for p in second],
        )

    async def test_missing_root_yields_no_projects(self) -> None:
        projects = await scanner.scan_all_projects(self.root / "missing")
        self.assertEqual(projects, [])

    async def test_scan_project_without_markers(self) -> None:
        path = self._project("bare")
        self.assertIsNone(await scanner.scan_project(path, root=self.root))
        project = await scanner.scan_project(path, require_indicators=False, root=self.root)
        self.assertEqual(project.name, "bare")
        self.assertFalse(project.hasGit)


if __name__ == "__main__":
    unittest.main()
