"""Per-ecosystem manifest readers.

Every reader takes a project directory and returns a typed manifest, or
``None`` when the file is missing or unreadable. Unexpected shapes inside an
otherwise valid file are normalised to empty fields.
"""
from __future__ import annotations

import json
import re
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

_REQUIREMENT_NAME_RE = re.compile(r"^\s*([A-Za-z0-9][A-Za-z0-9._-]*)")


def read_text_file(path: Path, max_bytes: int | None = None) -> str | None:
    """Read a file as UTF-8, replacing undecodable bytes.

    With ``max_bytes`` only the head of the file is read.
    """
    try:
        with path.open("rb") as handle:
            raw = handle.read() if max_bytes is None else handle.read(max_bytes)
    except OSError:
        return None
    return raw.decode("utf-8", errors="replace")


def read_json_file(path: Path) -> Any:
    content = read_text_file(path)
    if content is None:
        return None
    try:
        return json.loads(content)
    except ValueError:
        return None


def _read_toml_file(path: Path) -> dict[str, Any] | None:
    content = read_text_file(path)
    if content is None:
        return None
    try:
        return tomllib.loads(content)
    except tomllib.TOMLDecodeError:
        return None


def _as_dict(raw: Any) -> dict[str, Any]:
    return raw if isinstance(raw, dict) else {}


def _as_str(raw: Any) -> str | None:
    if isinstance(raw, str) and raw.strip():
        return raw
    return None


def _string_map(raw: Any) -> dict[str, str]:
    return {str(key): value for key, value in _as_dict(raw).items() if isinstance(value, str)}


def requirement_name(spec: str) -> str | None:
    """Return the normalised distribution name of a PEP 508 requirement line."""
    line = spec.split("#", 1)[0].strip()
    if not line or line.startswith("-"):
        return None
    match = _REQUIREMENT_NAME_RE.match(line)
    if not match:
        return None
    return re.sub(r"[-_.]+", "-", match.group(1)).lower()


@dataclass
class PackageManifest:
    name: str | None = None
    version: str | None = None
    description: str | None = None
    dependencies: dict[str, str] = field(default_factory=dict)
    dev_dependencies: dict[str, str] = field(default_factory=dict)
    scripts: dict[str, str] = field(default_factory=dict)

    @property
    def all_dependencies(self) -> dict[str, str]:
        return {**self.dependencies, **self.dev_dependencies}


@dataclass
class PyProjectManifest:
    name: str | None = None
    version: str | None = None
    description: str | None = None
    # requirement name -> full requirement spec
    dependencies: dict[str, str] = field(default_factory=dict)
    scripts: dict[str, str] = field(default_factory=dict)


@dataclass
class RequirementsManifest:
    dependencies: dict[str, str] = field(default_factory=dict)


@dataclass
class CargoManifest:
    name: str | None = None
    version: str | None = None
    description: str | None = None
    dependencies: dict[str, str] = field(default_factory=dict)


def read_package_json(project_path: Path) -> PackageManifest | None:
    data = read_json_file(project_path / "package.json")
    if not isinstance(data, dict):
        return None
    return PackageManifest(
        name=_as_str(data.get("name")),
        version=_as_str(data.get("version")),
        description=_as_str(data.get("description")),
        dependencies=_string_map(data.get("dependencies")),
        dev_dependencies=_string_map(data.get("devDependencies")),
        scripts=_string_map(data.get("scripts")),
    )


def _requirement_map(specs: Any) -> dict[str, str]:
    result: dict[str, str] = {}
    if not isinstance(specs, list):
        return result
    for spec in specs:
        if not isinstance(spec, str):
            continue
        name = requirement_name(spec)
        if name and name not in result:
            result[name] = spec.strip()
    return result


def read_pyproject(project_path: Path) -> PyProjectManifest | None:
    data = _read_toml_file(project_path / "pyproject.toml")
    if data is None:
        return None
    project = _as_dict(data.get("project"))
    poetry = _as_dict(_as_dict(data.get("tool")).get("poetry"))

    dependencies = _requirement_map(project.get("dependencies"))
    for extra_specs in _as_dict(project.get("optional-dependencies")).values():
        for name, spec in _requirement_map(extra_specs).items():
            dependencies.setdefault(name, spec)
    for name, spec in _as_dict(poetry.get("dependencies")).items():
        normalized = requirement_name(str(name))
        if not normalized or normalized == "python":
            continue
        dependencies.setdefault(normalized, spec if isinstance(spec, str) else "*")

    return PyProjectManifest(
        name=_as_str(project.get("name")) or _as_str(poetry.get("name")),
        version=_as_str(project.get("version")) or _as_str(poetry.get("version")),
        description=_as_str(project.get("description")) or _as_str(poetry.get("description")),
        dependencies=dependencies,
        scripts=_string_map(project.get("scripts")) or _string_map(poetry.get("scripts")),
    )


def read_requirements(project_path: Path) -> RequirementsManifest | None:
    content = read_text_file(project_path / "requirements.txt")
    if content is None:
        return None
    return RequirementsManifest(dependencies=_requirement_map(content.splitlines()))


def read_cargo_toml(project_path: Path) -> CargoManifest | None:
    data = _read_toml_file(project_path / "Cargo.toml")
    if data is None:
        return None
    package = _as_dict(data.get("package"))
    dependencies: dict[str, str] = {}
    for name, spec in _as_dict(data.get("dependencies")).items():
        if isinstance(spec, str):
            dependencies[str(name)] = spec
        elif isinstance(spec, dict) and isinstance(spec.get("version"), str):
            dependencies[str(name)] = spec["version"]
        else:
            dependencies[str(name)] = "*"
    return CargoManifest(
        name=_as_str(package.get("name")),
        version=_as_str(package.get("version")),
        description=_as_str(package.get("description")),
        dependencies=dependencies,
    )

