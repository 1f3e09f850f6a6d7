"""
PII redaction for free-form log text.

Three patterns are applied in a fixed order, each replacing every
non-overlapping match with ``[REDACTED]``. A span replaced by an earlier
pattern is never reconsidered by a later one. Matching is ASCII-only so
that ``\\d`` and ``\\w`` mean what log producers expect.

Every default pattern runs in linear time. The phone and SSN patterns
have bounded length; the email pattern is anchored on ``@`` by
``EmailPattern`` instead of backtracking over long runs of word
characters.
"""

import re
import string
from typing import Dict, List, Optional, Protocol, Tuple, Union

REDACTION_MARKER = "[REDACTED]"

_WORD_CHARS = frozenset(string.ascii_letters + string.digits + "_")
_LOCAL_CHARS = _WORD_CHARS | {".", "-"}


class Matcher(Protocol):
    """Anything with ``re.Pattern.subn`` semantics."""

    def subn(self, repl: str, text: str) -> Tuple[str, int]:
        ...


class EmailPattern:
    """
    Linear-time equivalent of ``\\b[\\w.-]+@[\\w.-]+\\.\\w+\\b`` (ASCII).

    The local part can never contain ``@``, so every candidate match is
    determined by the ``@`` it ends at: the leftmost word boundary in the
    run of local-part characters before it, and a domain matched forward
    from it. Each character is visited a bounded number of times.
    """

    _domain = re.compile(r"[\w.-]+\.\w+\b", re.ASCII)

    def _is_boundary(self, text: str, pos: int) -> bool:
        before = pos > 0 and text[pos - 1] in _WORD_CHARS
        after = pos < len(text) and text[pos] in _WORD_CHARS
        return before != after

    def spans(self, text: str) -> List[Tuple[int, int]]:
        found: List[Tuple[int, int]] = []
        floor = 0
        at = text.find("@")

        while at != -1:
            run_start = at
            while run_start > floor and text[run_start - 1] in _LOCAL_CHARS:
                run_start -= 1

            start = next(
                (pos for pos in range(run_start, at) if self._is_boundary(text, pos)),
                None,
            )
            domain = self._domain.match(text, at + 1) if start is not None else None

            if domain is not None:
                found.append((start, domain.end()))
                floor = domain.end()
            else:
                floor = at + 1
            at = text.find("@", floor)

        return found

    def subn(self, repl: str, text: str) -> Tuple[str, int]:
        spans = self.spans(text)
        if not spans:
            return text, 0

        parts: List[str] = []
        last = 0
        for start, end in spans:
            parts.append(text[last:start])
            parts.append(repl)
            last = end
        parts.append(text[last:])
        return "".join(parts), len(spans)


DEFAULT_PATTERNS: List[Tuple[str, Union[str, Matcher]]] = [
    ("phone", r"\b\d{3}[-.]?\d{3}[-.]?\d{4}\b"),
    ("ssn", r"\b\d{3}-\d{2}-\d{4}\b"),
    ("email", EmailPattern()),
]


def _compile(pattern: Union[str, Matcher]) -> Matcher:
    if isinstance(pattern, str):
        return re.compile(pattern, re.ASCII)
    return pattern


class Redactor:
    """
    Ordered set of compiled PII patterns.

    Stateless after construction and safe to share between tasks.
    """

    def __init__(
        self,
        patterns: Optional[List[Tuple[str, Union[str, Matcher]]]] = None,
        marker: str = REDACTION_MARKER,
    ) -> None:
        self.marker = marker
        self._patterns: List[Tuple[str, Matcher]] = [
            (name, _compile(pattern))
            for name, pattern in (patterns if patterns is not None else DEFAULT_PATTERNS)
        ]

    @property
    def pattern_names(self) -> List[str]:
        return [name for name, _ in self._patterns]

    def redact(self, text: str) -> str:
        """Return ``text`` with every PII match replaced by the marker."""
        redacted, _ = self.redact_with_counts(text)
        return redacted

    def redact_with_counts(self, text: str) -> Tuple[str, Dict[str, int]]:
        """
        Redact ``text`` and report substitutions per pattern.

        Returns:
            (redacted text, {pattern name: substitution count})
        """
        counts: Dict[str, int] = {}
        for name, pattern in self._patterns:
            text, count = pattern.subn(self.marker, text)
            counts[name] = count
        return text, counts


_default_redactor = Redactor()


def redact(text: str) -> str:
    """Redact PII using the default pattern set."""
    return _default_redactor.redact(text)
