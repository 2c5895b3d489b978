"""
Wildcard matching for event names.

Supported forms: exact (``scores.delta_applied``), global (``*``),
prefix (``scores.*``), suffix (``*.changed``) and sandwich
(``scores.*.applied``). Matching is case-sensitive.
"""

from __future__ import annotations


class EventRouter:
    """Stateless matcher used by the listener registry."""

    def matches(self, event_name: str, pattern: str) -> bool:
        if pattern == "*":
            return True

        if "*" not in pattern:
            return event_name == pattern

        while "**" in pattern:
            pattern = pattern.replace("**", "*")

        parts = pattern.split("*")

        if parts[0] and not event_name.startswith(parts[0]):
            return False
        if parts[-1] and not event_name.endswith(parts[-1]):
            return False
        if len(event_name) < len(parts[0]) + len(parts[-1]):
            return False

        # Middle fragments must appear in order between prefix and suffix.
        idx = len(parts[0])
        end = len(event_name) - len(parts[-1])
        for fragment in parts[1:-1]:
            if not fragment:
                continue
            found = event_name.find(fragment, idx, end)
            if found == -1:
                return False
            idx = found + len(fragment)

        return True
