"""
Directory recursion.

Pairs the entries of two directories by name and hands every pair to a
callback supplied by the engine. Entries present on one side only are
passed with ``None`` for the missing side. The result is the worst verdict
among all pairs.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from pairdiff.core.config import ComparisonConfig
from pairdiff.core.folder.scanner import FolderScanner, ScanOptions
from pairdiff.core.models import Comparison, Verdict, same_file
from pairdiff.core.reporter import Reporter


PairHandler = Callable[[Optional[str], Optional[str], Comparison], Verdict]


class DirectoryDiffer:
    """
    Compares two directories entry by entry.

    Args:
        config: Effective comparison policy
        reporter: Output and diagnostics sink
        scanner: Directory lister (built from the config if omitted)
    """

    def __init__(
        self,
        config: ComparisonConfig,
        reporter: Reporter,
        scanner: Optional[FolderScanner] = None
    ):
        self.config = config
        self.reporter = reporter
        self.scanner = scanner or FolderScanner(ScanOptions(
            exclude_patterns=list(config.exclude_patterns),
            ignore_file_name_case=config.ignore_file_name_case,
        ))

    def diff_dirs(self, cmp: Comparison, handle_pair: PairHandler) -> Verdict:
        """
        Compare the entries of the two directories of ``cmp``.

        Args:
            cmp: A comparison whose existing sides are directories
            handle_pair: Called as handle_pair(name0, name1, cmp) per entry pair

        Returns:
            The worst verdict returned by handle_pair, or TROUBLE if a
            directory cannot be read or the walk loops
        """
        if all(slot.is_nonexistent or self._is_loop(cmp, side) for side, slot in enumerate(cmp.slots)):
            looping = cmp[1] if cmp[0].is_nonexistent else cmp[0]
            self.reporter.diagnostic(f"{looping.name}: recursive directory loop")
            return Verdict.TROUBLE

        listings: list[list[str]] = []
        for slot in cmp.slots:
            if slot.is_nonexistent:
                listings.append([])
                continue
            try:
                listings.append(self.scanner.list_names(slot.name))
            except OSError as e:
                self.reporter.error(slot.name, e)
                return Verdict.TROUBLE

        names0, names1 = listings
        if self.config.starting_file and not cmp.is_nested:
            start = self.config.starting_file
            names0 = [n for n in names0 if self.scanner.compare_names(n, start) >= 0]
            names1 = [n for n in names1 if self.scanner.compare_names(n, start) >= 0]

        logging.debug(
            f"DirectoryDiffer - {cmp[0].name}: {len(names0)} entries, "
            f"{cmp[1].name}: {len(names1)} entries"
        )

        verdict = Verdict.SUCCESS
        i = j = 0
        while i < len(names0) or j < len(names1):
            if i >= len(names0):
                order = 1
            elif j >= len(names1):
                order = -1
            else:
                order = self.scanner.compare_names(names0[i], names1[j])

            name0 = name1 = None
            if order <= 0:
                name0 = names0[i]
                i += 1
            if order >= 0:
                name1 = names1[j]
                j += 1
            verdict = Verdict.worst(verdict, handle_pair(name0, name1, cmp))
        return verdict

    @staticmethod
    def _is_loop(cmp: Comparison, side: int) -> bool:
        """True if this side's directory is also one of its own ancestors."""
        meta = cmp[side].metadata
        if meta is None:
            return False
        for ancestor in cmp.ancestors():
            other = ancestor[side]
            if other.is_nonexistent or other.metadata is None:
                continue
            if same_file(other.metadata, meta):
                return True
        return False
