"""Include/exclude filtering of skills per target.

Rules:
- exclude always wins over include
- empty include means include-all
- a pattern with glob metacharacters (* ? [) is a shell glob
- a literal pattern matches the exact name or any name it prefixes
"""

from fnmatch import fnmatchcase

from skillshare.core.errors import InvalidInputError
from skillshare.models import Skill

_GLOB_CHARS = set("*?[")


def validate_patterns(patterns: list[str]) -> list[str]:
    """Strip patterns and reject empty ones."""
    cleaned = []
    for pattern in patterns:
        if not isinstance(pattern, str) or not pattern.strip():
            raise InvalidInputError(f"invalid filter pattern: {pattern!r}")
        cleaned.append(pattern.strip())
    return cleaned


def pattern_matches(pattern: str, name: str) -> bool:
    if _GLOB_CHARS & set(pattern):
        return fnmatchcase(name, pattern)
    return name.startswith(pattern)


def should_sync(name: str, include: list[str], exclude: list[str]) -> bool:
    if any(pattern_matches(p, name) for p in exclude):
        return False
    if not include:
        return True
    return any(pattern_matches(p, name) for p in include)


def filter_skills(skills: list[Skill], target_name: str, include: list[str], exclude: list[str]) -> list[Skill]:
    """Skills that a target should receive.

    Besides the target's own patterns, a skill may restrict itself to some
    targets through a ``targets:`` list in its frontmatter.
    """
    result = []
    for skill in skills:
        if skill.targets is not None and target_name not in skill.targets:
            continue
        if should_sync(skill.flat_name, include, exclude):
            result.append(skill)
    return result
