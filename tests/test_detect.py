"""Tests for frontmatter parsing, structure detection and skill extraction."""

import json
from pathlib import Path
from textwrap import dedent

import pytest

from conftest import write_manifest, write_skill
from skillsync.coerce import Alias
from skillsync.errors import DetectionError, ExtractionError
from skillsync.packages.detect import detect_package, detect_plugin, detect_structure
from skillsync.packages.extract import extract_skills
from skillsync.packages.frontmatter import parse_frontmatter
from skillsync.packages.models import (
    ClaudePluginPackage,
    DetectedPackage,
    FetchedPackage,
    FetchStrategy,
    GithubPackage,
    LocalPackage,
    PackageOrigin,
)

ORIGIN = PackageOrigin(manifest_path=Path("/work/agents.toml"), alias=Alias("acme"))


def local_detected(path: Path) -> DetectedPackage:
    package = LocalPackage(
        origin=ORIGIN, fetch_strategy=FetchStrategy.symlink(), absolute_path=path
    )
    return detect_package(FetchedPackage(canonical=package, package_path=path, repo_path=path))


def write_plugin(root: Path, name: str = "tools") -> Path:
    plugin_dir = root / ".claude-plugin"
    plugin_dir.mkdir(parents=True, exist_ok=True)
    (plugin_dir / "plugin.json").write_text(json.dumps({"name": name}))
    return root


class TestParseFrontmatter:
    """Tests for SKILL.md frontmatter."""

    def test_name_and_description(self) -> None:
        """Should read name and description."""
        info = parse_frontmatter(dedent("""
            ---
            name: lint
            description: "Run the linters"
            ---

            # Lint
        """).lstrip())

        assert info.name == "lint"
        assert info.description == "Run the linters"

    def test_crlf_line_endings(self) -> None:
        """Should accept Windows line endings."""
        info = parse_frontmatter("---\r\nname: lint\r\n---\r\nbody")

        assert info.name == "lint"
        assert info.description is None

    @pytest.mark.parametrize(
        ("content", "message"),
        [
            ("# No frontmatter", "must start with YAML frontmatter"),
            ("---\nname: lint\n", "missing a closing"),
            ("---\n- a\n- b\n---\n", "key/value map"),
            ("---\ndescription: x\n---\n", "non-empty name"),
            ("---\nname: lint\ndescription: [1]\n---\n", "description must be a string"),
        ],
    )
    def test_invalid(self, content: str, message: str) -> None:
        """Should reject malformed frontmatter."""
        with pytest.raises(ExtractionError, match=message):
            parse_frontmatter(content)


class TestDetectStructure:
    """Tests for detect_structure."""

    def test_manifest_with_package(self, tmp_path: Path) -> None:
        """Should prefer a manifest with a [package] table."""
        write_manifest(tmp_path, """
            [package]
            name = "pkg"
            version = "1.0.0"
        """)
        write_skill(tmp_path / "skills", "lint")

        detection = detect_structure(tmp_path)

        assert detection.method == "manifest"
        assert detection.manifest_path == tmp_path / "agents.toml"

    def test_manifest_without_package_falls_through(self, tmp_path: Path) -> None:
        """Should ignore a consumer manifest and keep looking."""
        write_manifest(tmp_path, "[agents]\ncodex = true\n")
        write_skill(tmp_path / "skills", "lint")

        detection = detect_structure(tmp_path)

        assert detection.method == "subdir"
        assert detection.root_dir == tmp_path / "skills"

    def test_marketplace(self, tmp_path: Path) -> None:
        """Should detect a marketplace descriptor."""
        (tmp_path / ".claude-plugin").mkdir()
        (tmp_path / ".claude-plugin" / "marketplace.json").write_text("{}")

        assert detect_structure(tmp_path).method == "marketplace"

    def test_marketplace_rejected_under_sub_path(self, tmp_path: Path) -> None:
        """Should reject marketplaces that are not at the repository root."""
        (tmp_path / ".claude-plugin").mkdir()
        (tmp_path / ".claude-plugin" / "marketplace.json").write_text("{}")

        with pytest.raises(DetectionError, match="repository root"):
            detect_structure(tmp_path, allow_marketplace=False)

    def test_plugin(self, tmp_path: Path) -> None:
        """Should detect a plugin and its skills directory."""
        write_plugin(tmp_path)
        write_skill(tmp_path / "skills", "lint")

        detection = detect_structure(tmp_path)

        assert detection.method == "plugin"
        assert detection.skills_dir == tmp_path / "skills"

    def test_plugin_dir_without_descriptor(self, tmp_path: Path) -> None:
        """Should reject a .claude-plugin directory with no descriptor."""
        (tmp_path / ".claude-plugin").mkdir()

        with pytest.raises(DetectionError, match="without plugin.json"):
            detect_structure(tmp_path)

    def test_single(self, tmp_path: Path) -> None:
        """Should detect a directory that is itself a skill."""
        skill = write_skill(tmp_path, "solo")

        detection = detect_structure(skill)

        assert detection.method == "single"
        assert detection.skill_path == skill

    def test_nested_subdir(self, tmp_path: Path) -> None:
        """Should walk down to the first directory whose children are skills."""
        write_skill(tmp_path / "packages" / "skills", "lint")
        (tmp_path / "node_modules" / "x").mkdir(parents=True)
        write_skill(tmp_path / "node_modules", "ignored")

        detection = detect_structure(tmp_path)

        assert detection.method == "subdir"
        assert detection.root_dir == tmp_path / "packages" / "skills"

    def test_nothing_found(self, tmp_path: Path) -> None:
        """Should fail when no layout matches."""
        (tmp_path / "docs").mkdir()

        with pytest.raises(DetectionError, match="No package structure found"):
            detect_structure(tmp_path)

    def test_missing_root(self, tmp_path: Path) -> None:
        """Should fail when the package path does not exist."""
        with pytest.raises(DetectionError, match="does not exist"):
            detect_structure(tmp_path / "missing")

    def test_detect_plugin_requires_descriptor(self, tmp_path: Path) -> None:
        """Should require plugin.json for marketplace plugins."""
        write_skill(tmp_path / "skills", "lint")

        with pytest.raises(DetectionError, match="must include .claude-plugin/plugin.json"):
            detect_plugin(tmp_path)

    def test_sub_pathed_remote_rejects_marketplace(self, tmp_path: Path) -> None:
        """Should not allow a marketplace behind a repository sub-path."""
        (tmp_path / ".claude-plugin").mkdir()
        (tmp_path / ".claude-plugin" / "marketplace.json").write_text("{}")
        package = GithubPackage(
            origin=ORIGIN, fetch_strategy=FetchStrategy.clone(sparse=True), gh="a/b", path="sub"
        )

        with pytest.raises(DetectionError):
            detect_package(FetchedPackage(package, tmp_path, tmp_path))


class TestExtractSkills:
    """Tests for extract_skills."""

    def test_subdir(self, tmp_path: Path) -> None:
        """Should extract every child skill in name order."""
        write_skill(tmp_path / "skills", "review")
        write_skill(tmp_path / "skills", "lint")
        (tmp_path / "skills" / "notes").mkdir()

        result = extract_skills(local_detected(tmp_path))

        assert [s.name for s in result.skills] == ["lint", "review"]
        assert result.skills[0].source_path == tmp_path / "skills" / "lint"
        assert result.skills[0].origin == ORIGIN

    def test_name_comes_from_frontmatter(self, tmp_path: Path) -> None:
        """Should name skills after their frontmatter, not their directory."""
        skill_dir = tmp_path / "skills" / "dir-name"
        skill_dir.mkdir(parents=True)
        (skill_dir / "SKILL.md").write_text("---\nname: real-name\n---\n")

        result = extract_skills(local_detected(tmp_path))

        assert [s.name for s in result.skills] == ["real-name"]

    def test_manifest_exports_root(self, tmp_path: Path) -> None:
        """Should follow exports.auto_discover.skills."""
        write_manifest(tmp_path, """
            [package]
            name = "pkg"
            version = "1.0.0"

            [exports.auto_discover]
            skills = "./exported"
        """)
        write_skill(tmp_path / "exported", "lint")

        result = extract_skills(local_detected(tmp_path))

        assert [s.name for s in result.skills] == ["lint"]

    def test_manifest_exports_disabled(self, tmp_path: Path) -> None:
        """Should refuse packages that disable auto-discovery."""
        write_manifest(tmp_path, """
            [package]
            name = "pkg"
            version = "1.0.0"

            [exports.auto_discover]
            skills = false
        """)

        with pytest.raises(ExtractionError, match="auto-discovery is disabled"):
            extract_skills(local_detected(tmp_path))

    def test_single(self, tmp_path: Path) -> None:
        """Should extract a single-skill package."""
        skill = write_skill(tmp_path, "solo")

        result = extract_skills(local_detected(skill))

        assert [s.name for s in result.skills] == ["solo"]
        assert result.skills[0].source_path == skill

    def test_strict_mode_fails_on_bad_skill(self, tmp_path: Path) -> None:
        """Should abort on the first unreadable skill in strict mode."""
        write_skill(tmp_path / "skills", "lint")
        broken = tmp_path / "skills" / "broken"
        broken.mkdir()
        (broken / "SKILL.md").write_text("no frontmatter")

        with pytest.raises(ExtractionError, match="must start with YAML frontmatter"):
            extract_skills(local_detected(tmp_path))

    def test_lenient_mode_skips_bad_skill(self, tmp_path: Path) -> None:
        """Should skip unreadable skills with a warning in lenient mode."""
        write_plugin(tmp_path)
        write_skill(tmp_path / "skills", "lint")
        broken = tmp_path / "skills" / "broken"
        broken.mkdir()
        (broken / "SKILL.md").write_text("no frontmatter")
        plugin = ClaudePluginPackage(
            origin=ORIGIN, fetch_strategy=FetchStrategy.clone(), plugin="tools", marketplace="."
        )
        detected = detect_package(FetchedPackage(plugin, tmp_path, tmp_path))

        result = extract_skills(detected, "lenient")

        assert [s.name for s in result.skills] == ["lint"]
        assert len(result.warnings) == 1
        assert result.warnings[0].startswith('Skipping skill "broken"')

    def test_duplicate_names(self, tmp_path: Path) -> None:
        """Should reject two skills with the same frontmatter name."""
        for directory in ("a", "b"):
            skill_dir = tmp_path / "skills" / directory
            skill_dir.mkdir(parents=True)
            (skill_dir / "SKILL.md").write_text("---\nname: same\n---\n")

        with pytest.raises(ExtractionError, match='Duplicate skill name "same"'):
            extract_skills(local_detected(tmp_path))

    def test_plugin_without_skills_dir(self, tmp_path: Path) -> None:
        """Should report a missing plugin skills directory as a skills_dir failure."""
        write_plugin(tmp_path)

        with pytest.raises(ExtractionError, match="Plugin skills directory not found") as exc:
            extract_skills(local_detected(tmp_path))

        assert exc.value.field == "skills_dir"
