"""
Text file diff engine.

Provides the content comparison for regular file pairs with support for:
- Binary detection and byte comparison
- Whitespace handling options (-E, -Z, -b, -w)
- Case insensitivity (-i)
- Line ending normalization (--strip-trailing-cr)
- Ignorable changes (-B, -I)
- Every output style, through pairdiff.core.diff.formats
"""

from __future__ import annotations

import difflib
import logging
import re
import shlex
from typing import BinaryIO, Optional

from pairdiff.core.config import ComparisonConfig, WhitespaceMode
from pairdiff.core.diff.formats import Change, FileText, OutputSink, get_formatter
from pairdiff.core.errors import ResolutionError
from pairdiff.core.models import Comparison, Verdict
from pairdiff.core.reporter import Reporter
from pairdiff.services.file_io import FileIOService


_HORIZONTAL_SPACE = re.compile(r"[^\S\n]+")


def split_newline(line: str) -> tuple[str, str]:
    """Split a line into its body and its (possibly empty) newline."""
    if line.endswith("\n"):
        return line[:-1], "\n"
    return line, ""


class TextDiffEngine:
    """
    Engine for comparing file contents.

    Reads both streams, decides whether the pair is binary, aligns the
    lines with difflib and prints the result in the configured style.

    Args:
        config: Effective comparison policy
        reporter: Output and diagnostics sink
        file_io: Reading and decoding service
    """

    def __init__(
        self,
        config: ComparisonConfig,
        reporter: Reporter,
        file_io: Optional[FileIOService] = None
    ):
        self.config = config
        self.reporter = reporter
        self.file_io = file_io or FileIOService()

    def diff_2_files(
        self,
        cmp: Comparison,
        streams: tuple[Optional[BinaryIO], Optional[BinaryIO]]
    ) -> Verdict:
        """
        Compare the contents of two open streams.

        Args:
            cmp: The pair being compared (names, labels, metadata)
            streams: One stream per side; None for a nonexistent side.
                Both entries may be the same stream.

        Returns:
            SUCCESS, DIFFERENT, or TROUBLE when reading fails
        """
        config = self.config
        try:
            data0 = self.file_io.read_stream(streams[0], cmp[0].name)
            if streams[1] is not None and streams[1] is streams[0]:
                data1 = data0
            else:
                data1 = self.file_io.read_stream(streams[1], cmp[1].name)
        except ResolutionError as e:
            self.reporter.error(e.name, e.error)
            return Verdict.TROUBLE

        if not config.text and (self.file_io.is_binary(data0) or self.file_io.is_binary(data1)):
            if data0 == data1:
                return Verdict.SUCCESS
            prefix = "Files" if config.brief else "Binary files"
            self.reporter.message(f"{prefix} {cmp.display_name(0)} and {cmp.display_name(1)} differ")
            return Verdict.DIFFERENT

        if data0 == data1 and config.no_diff_means_no_output:
            return Verdict.SUCCESS

        decoded = self.file_io.decode_pair(data0, data1)
        lines0, lines1 = decoded.lines
        if config.strip_trailing_cr:
            lines0 = [self._strip_cr(line) for line in lines0]
            lines1 = [self._strip_cr(line) for line in lines1]

        changes = self.compute_changes(lines0, lines1)
        differs = any(not change.ignorable for change in changes)
        logging.debug(
            f"TextDiffEngine - {cmp[0].name} vs {cmp[1].name}: {len(changes)} changes, "
            f"encoding {decoded.encoding}"
        )

        if config.brief:
            if differs:
                self.reporter.message(f"Files {cmp.display_name(0)} and {cmp.display_name(1)} differ")
            return Verdict.DIFFERENT if differs else Verdict.SUCCESS

        if differs or not config.no_diff_means_no_output:
            self.begin_output(cmp)
            files = (
                FileText(cmp[0].name, cmp.labels[0], cmp[0].metadata.mtime, lines0),
                FileText(cmp[1].name, cmp.labels[1], cmp[1].metadata.mtime, lines1),
            )
            formatter = get_formatter(config, files, OutputSink(self.reporter, decoded.encoding))
            formatter.format(changes)

        return Verdict.DIFFERENT if differs else Verdict.SUCCESS

    def begin_output(self, cmp: Comparison) -> None:
        """Inside a directory walk, name the pair before its diff."""
        if not cmp.is_nested:
            return
        switches = "".join(" " + shlex.quote(switch) for switch in self.config.switches)
        self.reporter.write_text(f"diff{switches} {cmp[0].name} {cmp[1].name}\n")

    # -------------------------------------------------------------------------
    # Alignment
    # -------------------------------------------------------------------------

    def compute_changes(self, lines0: list[str], lines1: list[str]) -> list[Change]:
        """
        Align two line lists and return the runs of differing lines.

        Lines are compared by their normalized keys; adjacent non-equal
        opcodes are merged into one change.
        """
        keys0 = [self.line_key(line) for line in lines0]
        keys1 = [self.line_key(line) for line in lines1]
        matcher = difflib.SequenceMatcher(None, keys0, keys1, autojunk=self.config.speed_large_files)

        ranges: list[list[int]] = []
        for tag, i1, i2, j1, j2 in matcher.get_opcodes():
            if tag == 'equal':
                continue
            if ranges and ranges[-1][1] == i1 and ranges[-1][3] == j1:
                ranges[-1][1] = i2
                ranges[-1][3] = j2
            else:
                ranges.append([i1, i2, j1, j2])

        check_ignorable = self.config.ignore_blank_lines or bool(self.config.ignore_regexps)
        changes = []
        for first0, end0, first1, end1 in ranges:
            ignorable = check_ignorable and all(
                self.is_trivial(line)
                for line in lines0[first0:end0] + lines1[first1:end1]
            )
            changes.append(Change(first0, end0, first1, end1, ignorable))
        return changes

    def line_key(self, line: str) -> str:
        """Normalize a line according to the ignore options."""
        config = self.config
        body, newline = split_newline(line)
        mode = config.whitespace

        if mode == WhitespaceMode.ALL_SPACE:
            body = _HORIZONTAL_SPACE.sub("", body)
        elif mode == WhitespaceMode.SPACE_CHANGE:
            body = _HORIZONTAL_SPACE.sub(" ", body).rstrip(" ")
        else:
            if mode & WhitespaceMode.TAB_EXPANSION:
                body = body.expandtabs(config.tabsize)
            if mode & WhitespaceMode.TRAILING_SPACE:
                body = body.rstrip()

        if config.ignore_case:
            body = body.casefold()
        return body + newline

    def is_trivial(self, line: str) -> bool:
        """True if the line may change without the files counting as different."""
        body, _ = split_newline(line)
        if self.config.ignore_blank_lines:
            if not body or (self.config.whitespace >= WhitespaceMode.TRAILING_SPACE and not body.strip()):
                return True
        return bool(self.config.ignore_regexps) and self.config.ignore_regexps.search(body) is not None

    @staticmethod
    def _strip_cr(line: str) -> str:
        if line.endswith("\r\n"):
            return line[:-2] + "\n"
        return line
