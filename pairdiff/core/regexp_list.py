"""
Incremental builder for a disjunction of regular expressions.

Used for the "show function line" patterns (-F, -p) and the
"ignore matching lines" patterns (-I). Each pattern is validated as soon
as it is registered, both on its own and joined to the patterns before it,
so an error always names the pattern the user gave. The combined pattern
is compiled only once, by finalize(), after every option has been read.
"""

from __future__ import annotations

import logging
import re
from typing import Optional

from pairdiff.core.errors import PatternError


class RegexpAccumulator:
    """
    Accumulates patterns into a single "any of these" pattern.

    Usage:
        acc = RegexpAccumulator("ignore")
        acc.register(r"^#")
        acc.register(r"^\\s*$")
        acc.finalize()
        acc.search("# comment")
    """

    SEPARATOR = "|"

    # Leading global inline flags such as "(?i)"; only legal at the very start.
    GLOBAL_FLAGS = re.compile(r"\(\?([aiLmsux]+)\)")

    def __init__(self, purpose: str = "", flags: int = 0):
        self.purpose = purpose
        self.flags = flags
        self._fragments: list[str] = []
        self._multiple = False
        self._compiled: Optional[re.Pattern] = None
        self._finalized = False

    @property
    def patterns(self) -> tuple[str, ...]:
        return tuple(self._fragments)

    @property
    def source(self) -> str:
        """The joined disjunction, empty if nothing was registered."""
        if not self._multiple:
            return self._fragments[0] if self._fragments else ""
        return self._join(self._fragments)

    @property
    def multiple(self) -> bool:
        return self._multiple

    @property
    def compiled(self) -> Optional[re.Pattern]:
        return self._compiled

    def __bool__(self) -> bool:
        return bool(self._fragments)

    def __len__(self) -> int:
        return len(self._fragments)

    def register(self, pattern: str) -> None:
        """
        Validate and append a pattern.

        Raises:
            PatternError: if the pattern does not compile
        """
        if self._finalized:
            raise RuntimeError(f"RegexpAccumulator({self.purpose}) is already finalized")
        compiled = self._compile(pattern)
        if self._fragments:
            self._compile(self._join([*self._fragments, pattern]), name=pattern)
        self._multiple = bool(self._fragments)
        self._fragments.append(pattern)
        # Holds the last single pattern until finalize() replaces it.
        self._compiled = compiled

    def finalize(self) -> None:
        """Compile the disjunction once; reuse the single pattern if only one."""
        if self._finalized:
            return
        self._finalized = True
        if not self._fragments:
            return
        if self._multiple:
            self._compiled = self._compile(self.source)
        logging.debug(
            f"RegexpAccumulator - {self.purpose or 'patterns'}: "
            f"{len(self._fragments)} pattern(s) finalized"
        )

    def search(self, text: str) -> Optional[re.Match]:
        if self._compiled is None:
            return None
        return self._compiled.search(text)

    def _join(self, fragments: list[str]) -> str:
        return self.SEPARATOR.join(self._scoped(fragment) for fragment in fragments)

    @classmethod
    def _scoped(cls, fragment: str) -> str:
        """Wrap a fragment in a group, turning "(?i)x" into "(?i:x)"."""
        flags = ""
        match = cls.GLOBAL_FLAGS.match(fragment)
        while match:
            flags += match.group(1)
            fragment = fragment[match.end():]
            match = cls.GLOBAL_FLAGS.match(fragment)
        return f"(?{''.join(dict.fromkeys(flags))}:{fragment})"

    def _compile(self, pattern: str, name: Optional[str] = None) -> re.Pattern:
        try:
            return re.compile(pattern, self.flags)
        except re.error as e:
            raise PatternError(name or pattern, str(e)) from e
