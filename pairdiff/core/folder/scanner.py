"""
Directory listing for recursive comparison.

Provides:
- Entry listing with exclusion patterns (-x, -X)
- Optional case-insensitive file name handling
- Deterministic name ordering shared by listing and pairing
- Case-aware lookup of one entry inside a directory
"""

from __future__ import annotations

import fnmatch
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from pairdiff.core.errors import OperationalFatal, describe_os_error


@dataclass
class ScanOptions:
    """Options for directory listing."""
    exclude_patterns: list[str] = field(default_factory=list)
    ignore_file_name_case: bool = False


class PatternMatcher:
    """
    Shell-wildcard matcher for entry names.

    Supports * ? [abc] [!abc] as in fnmatch. Patterns are matched against
    the bare entry name, case-folded when file name case is ignored.
    """

    def __init__(self, patterns: list[str], ignore_case: bool = False):
        self.ignore_case = ignore_case
        self._patterns: list[str] = []
        for pattern in patterns:
            self.add(pattern)

    def add(self, pattern: str) -> None:
        if not pattern:
            return
        self._patterns.append(pattern.casefold() if self.ignore_case else pattern)

    def __bool__(self) -> bool:
        return bool(self._patterns)

    def matches(self, name: str) -> bool:
        """Return True if ``name`` should be excluded."""
        if self.ignore_case:
            name = name.casefold()
        return any(fnmatch.fnmatchcase(name, pattern) for pattern in self._patterns)

    @staticmethod
    def read_pattern_file(pattern_file: Path | str) -> list[str]:
        """
        Read one pattern per line from an -X file.

        Raises:
            OperationalFatal: if the file cannot be read
        """
        try:
            with open(pattern_file, 'r', encoding='utf-8', errors='surrogateescape') as f:
                return [line.rstrip('\n') for line in f if line.rstrip('\n')]
        except OSError as e:
            logging.error(f"PatternMatcher - Could not read pattern file {pattern_file}: {e}")
            raise OperationalFatal(f"{pattern_file}: {describe_os_error(e)}") from e


class FolderScanner:
    """
    Lists directory entries in comparison order.

    Ordering is by code point, or by case-folded name (ties broken by the
    exact name) when file name case is ignored.
    """

    def __init__(self, options: Optional[ScanOptions] = None):
        self.options = options or ScanOptions()
        self.matcher = PatternMatcher(
            self.options.exclude_patterns,
            ignore_case=self.options.ignore_file_name_case
        )

    def sort_key(self, name: str) -> tuple[str, str]:
        if self.options.ignore_file_name_case:
            return (name.casefold(), name)
        return (name, name)

    def compare_names(self, a: str, b: str) -> int:
        """Three-way name comparison used for pairing entries."""
        if self.options.ignore_file_name_case:
            a, b = a.casefold(), b.casefold()
        return (a > b) - (a < b)

    def list_names(self, path: Path | str) -> list[str]:
        """
        List the non-excluded entries of a directory, sorted.

        Raises:
            OSError: if the directory cannot be read
        """
        names = [name for name in os.listdir(path) if not self.matcher.matches(name)]
        names.sort(key=self.sort_key)
        return names

    def find_entry(self, directory: str, name: str) -> str:
        """
        Name of the entry in ``directory`` that corresponds to ``name``.

        Without case folding this is ``name`` itself. With it, an exact match
        is preferred, then the last case-insensitive match; if the directory
        cannot be read, ``name`` is returned unchanged.
        """
        if not self.options.ignore_file_name_case:
            return name
        try:
            entries = os.listdir(directory)
        except OSError as e:
            logging.debug(f"FolderScanner - Could not list {directory}: {e}")
            return name
        match = name
        for entry in sorted(entries, key=self.sort_key):
            if entry.casefold() == name.casefold():
                if entry == name:
                    return name
                match = entry
        return match
