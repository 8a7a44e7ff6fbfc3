"""
SKILL.md frontmatter parsing.

A skill descriptor starts with a YAML block:

```markdown
---
name: lint
description: "Run the project linters"
---

# Lint

Instructions for the agent...
```

Only ``name`` is required.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path

import yaml

from skillsync.errors import ExtractionError
from skillsync.fs import read_text

FRONTMATTER_PATTERN = re.compile(
    r"^---[ \t]*\n(.*?)\n---[ \t]*(?:\n|$)",
    re.DOTALL,
)


@dataclass(frozen=True)
class SkillInfo:
    name: str
    description: str | None = None


def parse_frontmatter(content: str, path: Path | None = None) -> SkillInfo:
    """Parse the frontmatter block of a SKILL.md file.

    Raises:
        ExtractionError: If the block is missing, not a mapping, or lacks a name.
    """
    normalized = content.replace("\r\n", "\n")
    if not normalized.startswith("---"):
        raise ExtractionError(
            "SKILL.md must start with YAML frontmatter.", field="frontmatter", path=path
        )

    match = FRONTMATTER_PATTERN.match(normalized)
    if not match:
        raise ExtractionError(
            "Frontmatter is missing a closing --- line.", field="frontmatter", path=path
        )

    try:
        data = yaml.safe_load(match.group(1))
    except yaml.YAMLError as e:
        raise ExtractionError("Invalid frontmatter.", field="frontmatter", path=path) from e

    if not isinstance(data, dict):
        raise ExtractionError(
            "Frontmatter must be a key/value map.", field="frontmatter", path=path
        )

    name = data.get("name")
    if not isinstance(name, str) or not name.strip():
        raise ExtractionError(
            "Frontmatter must include a non-empty name.", field="frontmatter", path=path
        )

    description = data.get("description")
    if description is not None and not isinstance(description, str):
        raise ExtractionError(
            "Frontmatter description must be a string.", field="frontmatter", path=path
        )

    return SkillInfo(
        name=name.strip(),
        description=description.strip() if description and description.strip() else None,
    )


def load_skill_info(skill_file: Path) -> SkillInfo:
    return parse_frontmatter(read_text(skill_file), skill_file)
