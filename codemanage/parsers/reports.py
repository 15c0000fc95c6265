"""Bug report and code-quality report folders kept inside a project."""
from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from codemanage.models import (
    BugInfo,
    BugReport,
    CodeQualityGrade,
    CodeQualityInfo,
    CodeQualityTaskGrade,
    CodeQualityTaskGrades,
)
from codemanage.parsers.manifests import read_json_file, read_text_file

logger = logging.getLogger("codemanage.scanner")

BUGS_OPEN_DIR = "_bugs_open"
BUGS_FIXED_DIR = "_bugs_fixed"
CODE_QUALITY_DIR = "_rcodegen"
CODE_QUALITY_INDEX = ".grades.json"

REPORT_SCAN_LIMIT = 10240
RECENT_GRADES_LIMIT = 10
PRIMARY_TASKS = ("audit", "test", "fix", "refactor")

_BUG_TITLE_RE = re.compile(r"^#\s+(.+)$", re.MULTILINE)
_DATE_PREFIX_RE = re.compile(r"^(\d{4}-\d{2}-\d{2})")
# {project}-{tool}-{task}-{YYYY-MM-DD}...md
_REPORT_NAME_RE = re.compile(r"^.+-([a-z]+)-([a-z]+)-(\d{4}-\d{2}-\d{2})")
_TOTAL_SCORE_RE = re.compile(r"TOTAL_SCORE:\s*(\d+(?:\.\d+)?)\s*/\s*100", re.IGNORECASE)


def _list_markdown(directory: Path) -> list[Path] | None:
    try:
        entries = sorted(directory.iterdir(), key=lambda p: p.name)
    except OSError:
        return None
    return [entry for entry in entries if entry.name.endswith(".md")]


def parse_bug_file(path: Path, status: str) -> BugReport | None:
    content = read_text_file(path)
    if content is None:
        return None

    filename = path.name
    title = filename.replace(".md", "", 1)
    title_match = _BUG_TITLE_RE.search(content)
    if title_match:
        title = title_match.group(1).strip()

    date_match = _DATE_PREFIX_RE.match(filename)
    return BugReport(
        filename=filename,
        title=title,
        date=date_match.group(1) if date_match else "",
        status=status,
    )


def scan_bugs(project_path: Path) -> BugInfo | None:
    """Count and parse the open/fixed bug folders; ``None`` when both are empty."""
    bugs: list[BugReport] = []
    counts = {"open": 0, "fixed": 0}

    for status, folder in (("open", BUGS_OPEN_DIR), ("fixed", BUGS_FIXED_DIR)):
        files = _list_markdown(project_path / folder)
        if not files:
            continue
        for path in files:
            counts[status] += 1
            bug = parse_bug_file(path, status)
            if bug:
                bugs.append(bug)

    if counts["open"] == 0 and counts["fixed"] == 0:
        return None

    bugs.sort(key=lambda bug: bug.date, reverse=True)
    return BugInfo(openCount=counts["open"], fixedCount=counts["fixed"], bugs=bugs)


def _parse_timestamp(value: str) -> float:
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except (AttributeError, ValueError):
        return 0.0
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.timestamp()


def _grades_from_index(index_path: Path) -> list[CodeQualityGrade] | None:
    """Load ``.grades.json``. ``None`` means the index is missing or unusable."""
    data = read_json_file(index_path)
    if not isinstance(data, dict):
        return None
    raw_grades: Any = data.get("grades")
    if not isinstance(raw_grades, list):
        return []

    grades: list[CodeQualityGrade] = []
    for raw in raw_grades:
        if not isinstance(raw, dict):
            continue
        try:
            grades.append(CodeQualityGrade(
                date=str(raw.get("date") or ""),
                tool=str(raw.get("tool") or ""),
                task=str(raw.get("task") or ""),
                grade=float(raw.get("grade")),
                reportFile=str(raw.get("reportFile") or ""),
            ))
        except (TypeError, ValueError):
            logger.debug("Skipping malformed grade entry in %s", index_path)
    return grades


def _grades_from_reports(report_dir: Path) -> list[CodeQualityGrade] | None:
    files = _list_markdown(report_dir)
    if files is None:
        return None

    grades: list[CodeQualityGrade] = []
    for path in files:
        name_match = _REPORT_NAME_RE.match(path.name)
        if not name_match:
            continue
        tool, task, date_str = name_match.groups()
        # Only the head of a report is read; reports can be arbitrarily large
        content = read_text_file(path, REPORT_SCAN_LIMIT)
        if content is None:
            continue
        score_match = _TOTAL_SCORE_RE.search(content)
        if not score_match:
            continue
        grades.append(CodeQualityGrade(
            date=f"{date_str}T00:00:00.000Z",
            tool=tool,
            task=task,
            grade=float(score_match.group(1)),
            reportFile=path.name,
        ))
    return grades


def summarize_grades(grades: list[CodeQualityGrade]) -> CodeQualityInfo | None:
    if not grades:
        return None

    ordered = sorted(grades, key=lambda grade: _parse_timestamp(grade.date), reverse=True)
    task_grades = CodeQualityTaskGrades()
    for task in PRIMARY_TASKS:
        seen_tools: set[str] = set()
        bucket = getattr(task_grades, task)
        for grade in ordered:
            if grade.task == task and grade.tool not in seen_tools:
                seen_tools.add(grade.tool)
                bucket.append(CodeQualityTaskGrade(grade=grade.grade, tool=grade.tool))

    return CodeQualityInfo(
        reportCount=len(ordered),
        lastRun=ordered[0].date,
        latestGrade=ordered[0].grade,
        taskGrades=task_grades,
        recentGrades=ordered[:RECENT_GRADES_LIMIT],
    )


def scan_code_quality(project_path: Path) -> CodeQualityInfo | None:
    """Summarize code-quality reports, preferring the structured grade index."""
    report_dir = project_path / CODE_QUALITY_DIR
    if not report_dir.is_dir():
        return None

    grades = _grades_from_index(report_dir / CODE_QUALITY_INDEX)
    if grades is None:
        grades = _grades_from_reports(report_dir)
    if not grades:
        return None
    return summarize_grades(grades)
