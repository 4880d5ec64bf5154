"""
Rule-based position level detection from hashtags.

Exact tag lookups first, then prefix/suffix patterns. When several tags
match, the highest-ranked level wins.
"""

import re
from typing import Iterable, List, Tuple

from ..models import PositionLevel
from ..normalize import extract_hashtags

L = PositionLevel

EXACT_TAGS = {
    # intern
    "intern": L.INTERN, "intership": L.INTERN, "interships": L.INTERN, "trainee": L.INTERN,
    "стажер": L.INTERN, "стажёр": L.INTERN, "стажерка": L.INTERN, "стажировка": L.INTERN,
    "стажировки": L.INTERN, "student": L.INTERN, "студент": L.INTERN, "студенты": L.INTERN,
    # junior
    "junior": L.JUNIOR, "juniorbackend": L.JUNIOR, "juniordeveloper": L.JUNIOR,
    "strong_junior": L.JUNIOR, "strongjunior": L.JUNIOR, "jr": L.JUNIOR,
    "джун": L.JUNIOR, "джуниор": L.JUNIOR, "джуны": L.JUNIOR,
    # middle
    "middle": L.MIDDLE, "middledeveloper": L.MIDDLE, "middleplus": L.MIDDLE, "mid": L.MIDDLE,
    "middl": L.MIDDLE, "midle": L.MIDDLE, "midlle": L.MIDDLE, "middlle": L.MIDDLE,
    "миддл": L.MIDDLE, "мидл": L.MIDDLE, "мидль": L.MIDDLE, "intermediate": L.MIDDLE,
    # senior
    "senior": L.SENIOR, "senior_developer": L.SENIOR, "seniordeveloper": L.SENIOR,
    "sr": L.SENIOR, "senoir": L.SENIOR, "senor": L.SENIOR, "сеньор": L.SENIOR, "синьор": L.SENIOR,
    # lead
    "lead": L.LEAD, "leader": L.LEAD, "teamlead": L.LEAD, "team_lead": L.LEAD, "techlead": L.LEAD,
    "тимлид": L.LEAD, "техлид": L.LEAD, "tl": L.LEAD, "tl_senior": L.LEAD, "ведущий": L.LEAD,
    "лид": L.LEAD,
    # architect
    "architect": L.ARCHITECT, "systemarchitect": L.ARCHITECT, "solutionarchitect": L.ARCHITECT,
    "solution_architect": L.ARCHITECT, "архитектор": L.ARCHITECT,
    # manager
    "manager": L.MANAGER, "projectmanager": L.MANAGER, "pm": L.MANAGER, "cto": L.MANAGER,
    "head": L.MANAGER, "headofit": L.MANAGER, "руководитель": L.MANAGER,
}

PATTERNS: List[Tuple[re.Pattern, PositionLevel]] = [
    (re.compile(r"^senior(_|[a-z])?"), L.SENIOR),
    (re.compile(r"^seno(i?)r$"), L.SENIOR),
    (re.compile(r"^mid(d?l?e?)"), L.MIDDLE),
    (re.compile(r"^junior"), L.JUNIOR),
    (re.compile(r"^джун"), L.JUNIOR),
    (re.compile(r"(^|_)lead$"), L.LEAD),
    (re.compile(r"team_?lead"), L.LEAD),
    (re.compile(r"techlead"), L.LEAD),
    (re.compile(r"^ведущий.*"), L.LEAD),
    (re.compile(r"[a-z]*architect$"), L.ARCHITECT),
    (re.compile(r"manager$"), L.MANAGER),
    (re.compile(r"^head(ofit)?$"), L.MANAGER),
]


def normalize_tag(tag: str) -> str:
    tag = tag.strip().lower().lstrip("#")
    while "__" in tag:
        tag = tag.replace("__", "_")
    return tag


def resolve_tag(tag: str) -> PositionLevel:
    tag = normalize_tag(tag)
    if not tag:
        return L.UNKNOWN
    if tag in EXACT_TAGS:
        return EXACT_TAGS[tag]
    for pattern, level in PATTERNS:
        if pattern.search(tag):
            return level
    return L.UNKNOWN


def resolve_from_tags(tags: Iterable[str]) -> PositionLevel:
    """Highest-ranked level among the tags; UNKNOWN if none match."""
    detected = L.UNKNOWN
    for tag in tags or ():
        level = resolve_tag(tag)
        if level.rank > detected.rank:
            detected = level
            if detected is L.MANAGER:
                break
    return detected


class RuleBasedClassifier:
    """PositionClassifier that never calls out; reads the ad's hashtags."""

    def classify(self, text: str) -> PositionLevel:
        return resolve_from_tags(extract_hashtags(text))
