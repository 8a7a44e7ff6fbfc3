"""Package resolution, fetching, detection and skill extraction."""

from skillsync.packages.detect import (
    classify_dir,
    detect_package,
    detect_plugin,
    detect_structure,
    walk_skill_dirs,
)
from skillsync.packages.extract import (
    extract_skill_dirs,
    extract_skills,
    load_skill,
    manifest_skills_root,
)
from skillsync.packages.fetch import RepoCache, fetch_group, fetch_local_package, fetch_packages
from skillsync.packages.frontmatter import SkillInfo, load_skill_info, parse_frontmatter
from skillsync.packages.git import GitRunner, checkout_ref, clone_repository
from skillsync.packages.models import (
    CanonicalPackage,
    ClaudePluginPackage,
    DetectedPackage,
    Detection,
    ExtractedPackage,
    ExtractionResult,
    FetchedPackage,
    FetchStrategy,
    GithubPackage,
    GitPackage,
    LocalPackage,
    PackageOrigin,
    RegistryPackage,
    Skill,
)
from skillsync.packages.repo import (
    RepoGroup,
    build_repo_dir,
    build_repo_key,
    group_packages,
    normalize_sparse_path,
)
from skillsync.packages.resolve import resolve_dependency, resolve_manifest_packages

__all__ = [
    "CanonicalPackage",
    "ClaudePluginPackage",
    "DetectedPackage",
    "Detection",
    "ExtractedPackage",
    "ExtractionResult",
    "FetchStrategy",
    "FetchedPackage",
    "GitPackage",
    "GitRunner",
    "GithubPackage",
    "LocalPackage",
    "PackageOrigin",
    "RegistryPackage",
    "RepoCache",
    "RepoGroup",
    "Skill",
    "SkillInfo",
    "build_repo_dir",
    "build_repo_key",
    "checkout_ref",
    "classify_dir",
    "clone_repository",
    "detect_package",
    "detect_plugin",
    "detect_structure",
    "extract_skill_dirs",
    "extract_skills",
    "fetch_group",
    "fetch_local_package",
    "fetch_packages",
    "group_packages",
    "load_skill",
    "load_skill_info",
    "manifest_skills_root",
    "normalize_sparse_path",
    "parse_frontmatter",
    "resolve_dependency",
    "resolve_manifest_packages",
    "walk_skill_dirs",
]
