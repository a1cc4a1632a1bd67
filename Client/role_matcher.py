"""
SafawiNet Client - Role Template Matcher

Best-effort match between a user's role label and a role template, used only
to pick the badge colour shown next to a role. Never used for authorization.

Author: SafawiNet Project
"""

import re
from typing import Any, Callable, List, Optional

MIN_WORD_LENGTH = 3
WORD_OVERLAP_THRESHOLD = 0.6


def _name(template: Any) -> str:
    if isinstance(template, dict):
        return template.get("name") or ""
    return getattr(template, "name", "") or ""


def clean_name(name: str) -> str:
    """
    Lower-case a name and strip digits and punctuation.

    Example: "Manager 2!" -> "manager"
    """
    cleaned = re.sub(r"[^a-z\s]", "", (name or "").lower())
    return " ".join(cleaned.split())


def _words(name: str) -> List[str]:
    return [word for word in clean_name(name).split() if len(word) >= MIN_WORD_LENGTH]


def _is_substring_either_way(first: str, second: str) -> bool:
    return bool(first) and bool(second) and (first in second or second in first)


def _words_overlap(role: str, template_name: str) -> bool:
    role_words = _words(role)
    template_words = _words(template_name)
    if not role_words or not template_words:
        return False

    common = sum(
        1 for word in role_words
        if any(_is_substring_either_way(word, other) for other in template_words)
    )
    return common / min(len(role_words), len(template_words)) >= WORD_OVERLAP_THRESHOLD


def match_template(role_name: str, templates: List[Any]) -> Optional[Any]:
    """
    Find the template a role label refers to.

    Tiers are tried in order across all templates; within a tier the first
    template in input order wins:
    1. exact name, ignoring case
    2. one name contains the other
    3. cleaned names (digits and punctuation stripped) equal, then contained
    4. at least 60% of the shorter name's words (3+ letters) overlap

    Args:
        role_name: Role label of a user (e.g. "Manager2")
        templates: Template dicts or objects with a name

    Returns:
        Matching template, or None
    """
    role = (role_name or "").strip().lower()
    if not role:
        return None

    cleaned_role = clean_name(role)

    tiers: List[Callable[[str], bool]] = [
        lambda name: name.lower() == role,
        lambda name: _is_substring_either_way(role, name.lower()),
        lambda name: bool(cleaned_role) and clean_name(name) == cleaned_role,
        lambda name: _is_substring_either_way(cleaned_role, clean_name(name)),
        lambda name: _words_overlap(role, name),
    ]

    for matches in tiers:
        for template in templates or []:
            name = _name(template)
            if name and matches(name):
                return template
    return None


def get_role_badge_color(role_name: str, templates: List[Any]) -> str:
    """
    Badge style for a role: the matched template's colour, else "role-<name>".
    """
    template = match_template(role_name, templates)
    color = None
    if template is not None:
        color = template.get("color") if isinstance(template, dict) else getattr(template, "color", None)
    return color or f"role-{(role_name or '').strip().lower()}"
