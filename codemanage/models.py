"""Pydantic models matching the dashboard's JSON contract."""
from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

ProjectStatus = Literal["active", "crawlers", "research", "tools", "icebox", "archived"]
PROJECT_STATUSES: tuple[str, ...] = ("active", "crawlers", "research", "tools", "icebox", "archived")

# ── Derived project models ─────────────────────────────────────────

class BugReport(BaseModel):
    filename: str
    title: str
    date: str = ""
    status: Literal["open", "fixed"]


class BugInfo(BaseModel):
    openCount: int = 0
    fixedCount: int = 0
    bugs: list[BugReport] = Field(default_factory=list)


class CodeQualityGrade(BaseModel):
    date: str
    tool: str
    task: str
    grade: float
    reportFile: str = ""


class CodeQualityTaskGrade(BaseModel):
    grade: float
    tool: str


class CodeQualityTaskGrades(BaseModel):
    audit: list[CodeQualityTaskGrade] = Field(default_factory=list)
    test: list[CodeQualityTaskGrade] = Field(default_factory=list)
    fix: list[CodeQualityTaskGrade] = Field(default_factory=list)
    refactor: list[CodeQualityTaskGrade] = Field(default_factory=list)


class CodeQualityInfo(BaseModel):
    reportCount: int = 0
    lastRun: Optional[str] = None
    latestGrade: Optional[float] = None
    taskGrades: CodeQualityTaskGrades = Field(default_factory=CodeQualityTaskGrades)
    recentGrades: list[CodeQualityGrade] = Field(default_factory=list)


class Project(BaseModel):
    slug: str
    name: str
    path: str
    suite: Optional[str] = None
    description: Optional[str] = None
    status: ProjectStatus = "active"
    techStack: list[str] = Field(default_factory=list)
    version: Optional[str] = None
    lastModified: str
    gitBranch: Optional[str] = None
    gitRemote: Optional[str] = None
    hasGit: bool = False
    dependencies: Optional[dict[str, str]] = None
    scripts: Optional[dict[str, str]] = None
    bugs: Optional[BugInfo] = None
    rcodegen: Optional[CodeQualityInfo] = None
    starred: bool = False
    tags: Optional[list[str]] = None
    notes: Optional[str] = None


class ProjectListResponse(BaseModel):
    projects: list[Project]
    counts: dict[str, int]


# ── Persisted override models ──────────────────────────────────────

class ProjectMetadata(BaseModel):
    status: Optional[ProjectStatus] = None
    customName: Optional[str] = None
    customDescription: Optional[str] = None
    tags: Optional[list[str]] = None
    notes: Optional[str] = None
    starred: Optional[bool] = None


class AppSettings(BaseModel):
    sidebarCollapsed: bool = False
    defaultStatus: ProjectStatus = "active"
    terminalHeight: int = 300


class CodeManageConfig(BaseModel):
    projects: dict[str, ProjectMetadata] = Field(default_factory=dict)
    settings: AppSettings = Field(default_factory=AppSettings)


# ── Request bodies ─────────────────────────────────────────────────

class UpdateProjectRequest(ProjectMetadata):
    model_config = ConfigDict(extra="forbid")


class UpdateSettingsRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    sidebarCollapsed: Optional[bool] = None
    defaultStatus: Optional[ProjectStatus] = None
    terminalHeight: Optional[int] = Field(default=None, ge=100, le=2000)


class MoveProjectRequest(BaseModel):
    slug: str = Field(..., min_length=1)
    projectPath: str = Field(..., min_length=1)
    newStatus: ProjectStatus


# ── Activity models ────────────────────────────────────────────────

class CommitInfo(BaseModel):
    hash: str
    message: str
    author: str
    date: str
    project: str
    projectSlug: str
    linesAdded: int = 0
    linesRemoved: int = 0


class VelocityDataPoint(BaseModel):
    date: str
    linesAdded: int = 0
    linesRemoved: int = 0
