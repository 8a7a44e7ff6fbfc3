"""
Skill extraction from detected packages.

In ``strict`` mode the first unreadable skill aborts extraction; in
``lenient`` mode it is skipped with a warning. Duplicate names and an empty
result are errors in both modes.
"""

from __future__ import annotations

from pathlib import Path

from skillsync.coerce import NonEmptyString, coerce_absolute_path
from skillsync.constants import DEFAULT_SKILLS_ROOT, SKILL_FILENAME
from skillsync.errors import ExtractionError, SkillSyncError
from skillsync.fs import is_dir, is_file, list_dirs
from skillsync.logging import get_logger
from skillsync.manifest.parse import load_manifest
from skillsync.packages.frontmatter import load_skill_info
from skillsync.packages.models import (
    DetectedPackage,
    ExtractionMode,
    ExtractionResult,
    PackageOrigin,
    Skill,
)

logger = get_logger("extract")


def extract_skills(detected: DetectedPackage, mode: ExtractionMode = "strict") -> ExtractionResult:
    """Extract the skills a detected package exports.

    Raises:
        ExtractionError: If no skills can be installed from the package.
    """
    detection = detected.detection
    origin = detected.canonical.origin

    if detection.method == "manifest":
        assert detection.manifest_path is not None
        root = manifest_skills_root(detection.manifest_path, origin)
        result = extract_skill_dirs(root, origin, mode)
    elif detection.method == "plugin":
        if detection.skills_dir is None:
            expected = detected.package_path / "skills"
            raise ExtractionError(
                f"Plugin skills directory not found: {expected}.",
                field="skills_dir",
                path=expected,
                origin=origin,
            )
        result = extract_skill_dirs(detection.skills_dir, origin, mode)
    elif detection.method == "subdir":
        assert detection.root_dir is not None
        result = extract_skill_dirs(detection.root_dir, origin, mode)
    elif detection.method == "single":
        skill_dir = detection.skill_path or detected.package_path
        result = ExtractionResult(skills=[load_skill(skill_dir, origin)])
    else:
        raise ExtractionError(
            "Marketplace packages are expanded into their plugins before extraction.",
            field="structure",
            path=detected.package_path,
            origin=origin,
        )

    logger.debug(
        "Extracted %d skill(s) from %s (%s)", len(result.skills), origin.alias, detection.method
    )
    return result


def manifest_skills_root(manifest_path: Path, origin: PackageOrigin | None = None) -> Path:
    """Resolve ``exports.auto_discover.skills`` relative to the manifest."""
    manifest = load_manifest(manifest_path)
    setting = manifest.exports.skills if manifest.exports is not None else DEFAULT_SKILLS_ROOT
    if setting is False:
        raise ExtractionError(
            "Skill auto-discovery is disabled in agents.toml.",
            field="exports.auto_discover.skills",
            path=manifest_path,
            origin=origin,
        )
    root = coerce_absolute_path(setting, manifest_path.parent)
    if root is None:
        raise ExtractionError(
            f'Invalid skills path "{setting}" in {manifest_path}.',
            field="exports.auto_discover.skills",
            path=manifest_path,
            origin=origin,
        )
    return Path(root)


def extract_skill_dirs(root: Path, origin: PackageOrigin, mode: ExtractionMode) -> ExtractionResult:
    """Load every immediate child of *root* that contains a SKILL.md."""
    result = ExtractionResult()
    seen: set[str] = set()

    candidates = list_dirs(root) if is_dir(root) else []

    for skill_dir in candidates:
        if not is_file(skill_dir / SKILL_FILENAME):
            continue
        try:
            skill = load_skill(skill_dir, origin)
        except SkillSyncError as e:
            if mode == "strict":
                raise
            result.warnings.append(f'Skipping skill "{skill_dir.name}": {e.message}')
            continue

        if skill.name in seen:
            raise ExtractionError(
                f'Duplicate skill name "{skill.name}" found.',
                path=skill_dir,
                origin=origin,
            )
        seen.add(skill.name)
        result.skills.append(skill)

    if not result.skills:
        raise ExtractionError(f"No skills found in {root}.", path=root, origin=origin)
    return result


def load_skill(skill_dir: Path, origin: PackageOrigin) -> Skill:
    skill_file = skill_dir / SKILL_FILENAME
    if not is_file(skill_file):
        raise ExtractionError(
            f"{SKILL_FILENAME} not found in {skill_dir}.", path=skill_dir, origin=origin
        )
    try:
        info = load_skill_info(skill_file)
    except ExtractionError as e:
        raise ExtractionError(
            f"{e.message} ({skill_file})",
            field=e.field or "frontmatter",
            path=skill_file,
            origin=origin,
        ) from e
    return Skill(name=NonEmptyString(info.name), source_path=skill_dir, origin=origin)
