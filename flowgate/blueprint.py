"""Blueprint evaluation: green/red action lists for a step."""

from __future__ import annotations

import re
from enum import Enum
from typing import Iterable, Literal, Optional

from .contracts import Blueprint

_SEPARATORS = re.compile(r"[\s_\-]+")


class Verdict(str, Enum):
    ALLOWED = "allowed"
    FORBIDDEN = "forbidden"
    UNLISTED = "unlisted"


def normalize_action(text: str) -> str:
    """Lower-case and collapse ``_``, ``-`` and whitespace into single spaces."""
    return _SEPARATORS.sub(" ", text.strip().lower()).strip()


def _matches(action: str, entries: Iterable[str]) -> bool:
    padded = f" {action} "
    for entry in entries:
        needle = normalize_action(entry)
        if needle and f" {needle} " in padded:
            return True
    return False


class BlueprintEvaluator:
    """Checks proposed actions against a step blueprint.

    An entry matches when its words appear as a contiguous run of words in the
    action description, so ``"send email"`` matches ``send_email`` and
    ``"send email to customer"``. The red list is checked first.
    """

    def __init__(self, default_policy: Literal["allow", "deny"] = "allow") -> None:
        self.default_policy = default_policy

    def evaluate(self, action: str, blueprint: Optional[Blueprint]) -> Verdict:
        if blueprint is None:
            return Verdict.UNLISTED
        normalized = normalize_action(action)
        if _matches(normalized, blueprint.red_list):
            return Verdict.FORBIDDEN
        if _matches(normalized, blueprint.green_list):
            return Verdict.ALLOWED
        return Verdict.UNLISTED

    def is_allowed(self, action: str, blueprint: Optional[Blueprint]) -> bool:
        """Apply ``default_policy`` to unlisted actions."""
        verdict = self.evaluate(action, blueprint)
        if verdict is Verdict.UNLISTED:
            return self.default_policy == "allow"
        return verdict is Verdict.ALLOWED
