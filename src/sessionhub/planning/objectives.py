"""Objective extraction from free-form request text."""

from __future__ import annotations

import re

_NUMBERED_ITEM = re.compile(r"^\s*\d+[.)]\s+(.+?)\s*$", re.MULTILINE)
_BULLET_ITEM = re.compile(r"^\s*[-*•]\s+(.+?)\s*$", re.MULTILINE)
_CLAUSE_SEPARATOR = re.compile(r"[,;]|\band\b", re.IGNORECASE)
_SENTENCE_SEPARATOR = re.compile(r"[.!?]+")

ACTION_VERBS: tuple[str, ...] = (
    "create",
    "build",
    "implement",
    "add",
    "update",
    "fix",
    "enhance",
    "integrate",
)
MIN_OBJECTIVE_LENGTH = 10


def listed_objectives(content: str) -> list[str]:
    """Numbered and bulleted list items, in document order."""

    matches = [
        (match.start(), match.group(1))
        for pattern in (_NUMBERED_ITEM, _BULLET_ITEM)
        for match in pattern.finditer(content)
    ]
    return [text for _, text in sorted(matches)]


def parse_objectives(content: str) -> list[str]:
    """List items, else clauses split on commas, semicolons and "and"."""

    listed = listed_objectives(content)
    if listed:
        return listed
    return [
        part.strip()
        for part in _CLAUSE_SEPARATOR.split(content)
        if len(part.strip()) > MIN_OBJECTIVE_LENGTH
    ]


def parse_action_objectives(content: str) -> list[str]:
    """List items, else sentences that start work (contain an action verb)."""

    listed = listed_objectives(content)
    if listed:
        return listed
    sentences = []
    for sentence in _SENTENCE_SEPARATOR.split(content):
        text = sentence.strip()
        if len(text) <= MIN_OBJECTIVE_LENGTH:
            continue
        lowered = text.lower()
        if any(re.search(rf"\b{verb}", lowered) for verb in ACTION_VERBS):
            sentences.append(text)
    return sentences
