"""Filenames and directory names shared across skillsync."""

from __future__ import annotations

MANIFEST_FILENAME = "agents.toml"
SKILL_FILENAME = "SKILL.md"
PLUGIN_DIR = ".claude-plugin"
PLUGIN_FILENAME = "plugin.json"
MARKETPLACE_FILENAME = "marketplace.json"
PLUGIN_SKILLS_DIR = "skills"
DEFAULT_SKILLS_ROOT = "./skills"
GLOBAL_DIR = ".sk"
STATE_FILENAME = ".skillsync-state.json"
REGISTRY_NAME = "skills.supply"

# Directories never explored when walking a repository for skills.
IGNORED_DIRS = frozenset(
    {
        ".git",
        ".next",
        ".turbo",
        ".vscode",
        ".idea",
        ".cache",
        "__pycache__",
        "build",
        "coverage",
        "dist",
        "node_modules",
        "vendor",
        PLUGIN_DIR,
    }
)
