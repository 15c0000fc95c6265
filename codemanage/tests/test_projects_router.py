import tempfile
import unittest
from pathlib import Path
from unittest.mock import AsyncMock, patch

from fastapi import HTTPException

from codemanage import project_store
from codemanage.models import MoveProjectRequest, Project, UpdateProjectRequest, UpdateSettingsRequest
from codemanage.project_store import ProjectMetadataStore
from codemanage.routers import projects as projects_router
from codemanage.routers import settings as settings_router


def _project(slug: str, **fields) -> Project:
    return Project(
        slug=slug,
        name=fields.pop("name", slug),
        path=f"/code/{slug}",
        lastModified="2024-01-01T00:00:00.000Z",
        **fields,
    )


class ProjectsRouterTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.tmpdir = tempfile.TemporaryDirectory()
        self.store = ProjectMetadataStore(Path(self.tmpdir.name) / ".code-manage.json")
        self.projects = [
            _project("zeta", techStack=["Go"]),
            _project("alpha", description="Scraper for listings", status="crawlers"),
            _project("beta", techStack=["Next.js", "React"]),
            _project("gamma", status="icebox"),
        ]
        self._patches = [
            patch.object(project_store, "metadata_store", self.store),
            patch.object(projects_router, "get_cached_projects", AsyncMock(return_value=self.projects)),
        ]
        for p in self._patches:
            p.start()

    async def asyncTearDown(self) -> None:
        for p in reversed(self._patches):
            p.stop()
        self.tmpdir.cleanup()

    async def test_list_counts_and_sorts_starred_first(self) -> None:
        self.store.set_project_metadata("zeta", {"starred": True})

        response = await projects_router.list_projects(status=None, search=None)

        self.assertEqual([p.slug for p in response.projects], ["zeta", "alpha", "beta", "gamma"])
        self.assertEqual(response.counts, {
            "active": 2,
            "crawlers": 1,
            "research": 0,
            "tools": 0,
            "icebox": 1,
            "archived": 0,
        })

    async def test_status_override_moves_project_between_counts(self) -> None:
        self.store.set_project_metadata("beta", {"status": "archived"})

        response = await projects_router.list_projects(status="archived", search=None)

        self.assertEqual([p.slug for p in response.projects], ["beta"])
        self.assertEqual(response.counts["active"], 1)
        self.assertEqual(response.counts["archived"], 1)

    async def test_search_matches_name_description_and_stack(self) -> None:
        by_description = await projects_router.list_projects(status=None, search="scraper")
        by_stack = await projects_router.list_projects(status=None, search="react")
        by_name = await projects_router.list_projects(status=None, search="GAM")

        self.assertEqual([p.slug for p in by_description.projects], ["alpha"])
        self.assertEqual([p.slug for p in by_stack.projects], ["beta"])
        self.assertEqual([p.slug for p in by_name.projects], ["gamma"])

    async def test_invalid_status_is_rejected(self) -> None:
        with self.assertRaises(HTTPException) as ctx:
            await projects_router.list_projects(status="deleted", search=None)
        self.assertEqual(ctx.exception.status_code, 400)

    async def test_scan_failure_maps_to_500(self) -> None:
        with patch.object(projects_router, "get_cached_projects", AsyncMock(side_effect=OSError("disk"))):
            with self.assertRaises(HTTPException) as ctx:
                await projects_router.list_projects(status=None, search=None)
        self.assertEqual(ctx.exception.status_code, 500)

    async def test_get_project_includes_details(self) -> None:
        self.store.set_project_metadata("beta", {"customName": "Beta App", "tags": ["web"], "notes": "ship it"})

        project = await projects_router.get_project("beta")

        self.assertEqual(project.name, "Beta App")
        self.assertEqual(project.tags, ["web"])
        self.assertEqual(project.notes, "ship it")

    async def test_get_unknown_project_is_404(self) -> None:
        with self.assertRaises(HTTPException) as ctx:
            await projects_router.get_project("missing")
        self.assertEqual(ctx.exception.status_code, 404)

    async def test_update_project_persists_and_invalidates_cache(self) -> None:
        with patch.object(projects_router, "invalidate_project_cache") as invalidate:
            result = await projects_router.update_project("alpha", UpdateProjectRequest(starred=True))

        self.assertEqual(result, {"success": True})
        self.assertTrue(self.store.get_project_metadata("alpha").starred)
        invalidate.assert_called_once_with()


class MoveActionRouterTests(unittest.IsolatedAsyncioTestCase):
    async def _move_error(self, exc: Exception) -> int:
        body = MoveProjectRequest(slug="a", projectPath="/code/a", newStatus="icebox")
        with patch.object(projects_router, "move_project", side_effect=exc):
            with self.assertRaises(HTTPException) as ctx:
                await projects_router.move_project_action(body)
        return ctx.exception.status_code

    async def test_error_mapping(self) -> None:
        self.assertEqual(await self._move_error(projects_router.PathOutsideRootError("outside")), 403)
        self.assertEqual(await self._move_error(FileNotFoundError("missing")), 404)
        self.assertEqual(await self._move_error(FileExistsError("exists")), 409)
        self.assertEqual(await self._move_error(ValueError("bad status")), 400)
        self.assertEqual(await self._move_error(PermissionError("denied")), 500)

    async def test_successful_move_reports_new_path(self) -> None:
        body = MoveProjectRequest(slug="a", projectPath="/code/a", newStatus="icebox")
        with patch.object(projects_router, "move_project", return_value=Path("/code/_icebox/a")) as move:
            result = await projects_router.move_project_action(body)

        move.assert_called_once_with("a", "/code/a", "icebox")
        self.assertEqual(result, {"success": True, "newPath": "/code/_icebox/a"})


class SettingsRouterTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tmpdir = tempfile.TemporaryDirectory()
        self.store = ProjectMetadataStore(Path(self.tmpdir.name) / ".code-manage.json")
        self._patch = patch.object(project_store, "metadata_store", self.store)
        self._patch.start()

    def tearDown(self) -> None:
        self._patch.stop()
        self.tmpdir.cleanup()

    def test_get_and_patch_settings(self) -> None:
        self.assertEqual(settings_router.get_settings().terminalHeight, 300)

        updated = settings_router.patch_settings(UpdateSettingsRequest(sidebarCollapsed=True))

        self.assertTrue(updated.sidebarCollapsed)
        self.assertTrue(settings_router.get_settings().sidebarCollapsed)


if __name__ == "__main__":
    unittest.main()
