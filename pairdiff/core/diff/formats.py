"""
Hunk formatters for every output style.

A formatter receives the lines of both files and the list of changes
between them, and writes the diff in its style through an OutputSink.
Line numbers in the output are 1-based; Change ranges are 0-based and
half-open.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Iterator, Optional

from pairdiff.core.config import ComparisonConfig, FormatIndex, OutputStyle
from pairdiff.core.reporter import Reporter


NO_NEWLINE_MARKER = "\n\\ No newline at end of file\n"

# Longest function line shown in a hunk header
FUNCTION_TEXT_MAX = 40


# =============================================================================
# Data structures
# =============================================================================

@dataclass(frozen=True)
class Change:
    """
    One run of differing lines.

    Lines [first0, end0) of file 0 were replaced by lines [first1, end1)
    of file 1. An ignorable change consists only of lines the ignore
    policy (-B, -I) disregards.
    """
    first0: int
    end0: int
    first1: int
    end1: int
    ignorable: bool = False

    @property
    def deleted(self) -> int:
        return self.end0 - self.first0

    @property
    def inserted(self) -> int:
        return self.end1 - self.first1

    @property
    def letter(self) -> str:
        """Normal/ed command letter: a(dd), d(elete) or c(hange)."""
        if not self.deleted:
            return 'a'
        if not self.inserted:
            return 'd'
        return 'c'


@dataclass
class FileText:
    """One side of a content comparison, ready for formatting."""
    name: str
    label: Optional[str]
    mtime: float
    lines: list[str]

    def __len__(self) -> int:
        return len(self.lines)


class OutputSink:
    """
    Routes formatted text to the reporter.

    File content is encoded with the codec it was decoded with; headers
    naming files are encoded like file names.
    """

    def __init__(self, reporter: Reporter, encoding: str):
        self.reporter = reporter
        self.encoding = encoding

    def header(self, text: str) -> None:
        self.reporter.write_text(text)

    def content(self, text: str) -> None:
        self.reporter.write_text(text, self.encoding)


# =============================================================================
# Helpers
# =============================================================================

def normal_range(first: int, end: int, separator: str = ",") -> str:
    """Line range as printed by normal and ed output."""
    a, b = first + 1, end
    return f"{a}{separator}{b}" if a < b else f"{b}"


def context_range(first: int, end: int) -> str:
    a, b = first + 1, end
    return f"{b}" if b <= a else f"{a},{b}"


def unified_range(first: int, end: int) -> str:
    a, b = first + 1, end
    if b < a:
        return f"{b},0"
    if b == a:
        return f"{b}"
    return f"{a},{b - a + 1}"


def format_timestamp(mtime: float, style: OutputStyle) -> str:
    """Modification time as shown in context and unified headers."""
    seconds = math.floor(mtime)
    dt = datetime.fromtimestamp(seconds).astimezone()
    if style == OutputStyle.CONTEXT:
        return dt.strftime("%a %b ") + f"{dt.day:2d}" + dt.strftime(" %H:%M:%S %Y")
    nanoseconds = min(int(round((mtime - seconds) * 1e9)), 999_999_999)
    return dt.strftime("%Y-%m-%d %H:%M:%S") + f".{nanoseconds:09d} " + dt.strftime("%z")


def group_changes(changes: list[Change], context: int) -> list[list[Change]]:
    """
    Merge changes separated by few enough unchanged lines into hunks.

    A change joins the current hunk when fewer than 2*context+1 lines (or
    context lines, for an ignorable change) separate it from the previous
    one. Hunks made only of ignorable changes are dropped.
    """
    groups: list[list[Change]] = []
    current: list[Change] = []
    for change in changes:
        if current:
            threshold = context if change.ignorable else 2 * context + 1
            if change.first0 - current[-1].end0 < threshold:
                current.append(change)
                continue
            groups.append(current)
        current = [change]
    if current:
        groups.append(current)
    return [group for group in groups if not all(change.ignorable for change in group)]


# =============================================================================
# Base formatter
# =============================================================================

class HunkFormatter:
    """
    Base class for output styles.

    Args:
        config: Effective comparison policy
        files: Both sides of the comparison
        sink: Where formatted text goes
    """

    def __init__(self, config: ComparisonConfig, files: tuple[FileText, FileText], sink: OutputSink):
        self.config = config
        self.files = files
        self.sink = sink

    def format(self, changes: list[Change]) -> None:
        raise NotImplementedError

    def significant(self, changes: list[Change]) -> Iterator[Change]:
        """Changes that are not ignorable, one hunk each."""
        return (change for change in changes if not change.ignorable)

    def expand(self, line: str) -> str:
        """Expand tabs to spaces when -t is set."""
        if not self.config.expand_tabs or '\t' not in line:
            return line
        tabsize = self.config.tabsize
        out = []
        column = 0
        for ch in line:
            if ch == '\t':
                spaces = tabsize - column % tabsize
                out.append(' ' * spaces)
                column += spaces
            elif ch in '\r\n':
                out.append(ch)
                column = 0
            elif ch == '\b':
                out.append(ch)
                column = max(column - 1, 0)
            else:
                out.append(ch)
                column += 1
        return ''.join(out)

    def print_line(self, flag: Optional[str], line: str) -> None:
        """
        Print one file line, optionally behind a one-character flag.

        ``flag=None`` prints the line bare; ``flag=""`` also replaces the
        missing-newline marker with a plain newline, as ed scripts need.
        """
        parts = []
        if flag:
            if self.config.suppress_blank_empty and line == "\n":
                parts.append(flag.rstrip())
            else:
                parts.append(flag + ("\t" if self.config.initial_tab else " "))
        parts.append(self.expand(line))
        if not line.endswith("\n"):
            parts.append(NO_NEWLINE_MARKER if flag != "" else "\n")
        self.sink.content("".join(parts))


# =============================================================================
# Normal, ed, forward ed, RCS
# =============================================================================

class NormalFormatter(HunkFormatter):
    """``2,3c2,4`` commands with ``<``/``>`` lines."""

    def format(self, changes: list[Change]) -> None:
        old, new = self.files
        for change in self.significant(changes):
            self.sink.content(
                f"{normal_range(change.first0, change.end0)}{change.letter}"
                f"{normal_range(change.first1, change.end1)}\n"
            )
            for line in old.lines[change.first0:change.end0]:
                self.print_line("<", line)
            if change.deleted and change.inserted:
                self.sink.content("---\n")
            for line in new.lines[change.first1:change.end1]:
                self.print_line(">", line)


class EdFormatter(HunkFormatter):
    """An ed script, last change first so line numbers stay valid."""

    def format(self, changes: list[Change]) -> None:
        new = self.files[1]
        for change in reversed(list(self.significant(changes))):
            self.sink.content(f"{normal_range(change.first0, change.end0)}{change.letter}\n")
            if not change.inserted:
                continue
            inserting = True
            for offset, line in enumerate(new.lines[change.first1:change.end1]):
                line_number = change.first0 + 1 + offset
                if not inserting:
                    self.sink.content(f"{line_number - 1}a\n")
                inserting = True
                if line == ".\n":
                    # A lone dot would end input mode; write ".." and fix it up.
                    self.sink.content("..\n.\n")
                    self.sink.content(f"{line_number}s/^\\.\\././\n")
                    inserting = False
                else:
                    self.print_line("", line)
            if inserting:
                self.sink.content(".\n")


class ForwardEdFormatter(HunkFormatter):
    """ed-like commands in file order (not usable by ed)."""

    def format(self, changes: list[Change]) -> None:
        new = self.files[1]
        for change in self.significant(changes):
            self.sink.content(f"{change.letter}{normal_range(change.first0, change.end0, ' ')}\n")
            if change.inserted:
                for line in new.lines[change.first1:change.end1]:
                    self.print_line("", line)
                self.sink.content(".\n")


class RcsFormatter(HunkFormatter):
    """RCS format: ``dN COUNT`` and ``aN COUNT`` commands."""

    def format(self, changes: list[Change]) -> None:
        new = self.files[1]
        for change in self.significant(changes):
            if change.deleted:
                self.sink.content(f"d{change.first0 + 1} {change.deleted}\n")
            if change.inserted:
                self.sink.content(f"a{change.end0} {change.inserted}\n")
                for line in new.lines[change.first1:change.end1]:
                    self.print_line("", line)


# =============================================================================
# Context and unified
# =============================================================================

class _HunkedFormatter(HunkFormatter):
    """Shared parts of the context and unified styles."""

    HEADER_MARKS = ("", "")

    def __init__(self, config: ComparisonConfig, files: tuple[FileText, FileText], sink: OutputSink):
        super().__init__(config, files, sink)
        self._last_search = 0
        self._last_match: Optional[int] = None

    def print_header(self) -> None:
        for mark, file in zip(self.HEADER_MARKS, self.files):
            label = file.label
            if label is None:
                label = f"{file.name}\t{format_timestamp(file.mtime, self.config.output_style)}"
            self.sink.header(f"{mark} {label}\n")

    def hunk_bounds(self, group: list[Change]) -> tuple[int, int, int, int]:
        """Line ranges of a hunk including its context."""
        context = self.config.context
        first0 = max(group[0].first0 - context, 0)
        first1 = max(group[0].first1 - context, 0)
        end0 = min(group[-1].end0 + context, len(self.files[0]))
        end1 = min(group[-1].end1 + context, len(self.files[1]))
        return first0, end0, first1, end1

    def find_function(self, start: int) -> Optional[str]:
        """
        The last line before ``start`` matching a -F/-p pattern.

        Searches only back to where the previous search began, and falls
        back to the previous match.
        """
        regexps = self.config.function_regexps
        if not regexps:
            return None
        lines = self.files[0].lines
        last, self._last_search = self._last_search, start
        for i in range(start - 1, last - 1, -1):
            if regexps.search(lines[i].rstrip("\n")):
                self._last_match = i
                return self._function_text(lines[i])
        if self._last_match is not None:
            return self._function_text(lines[self._last_match])
        return None

    @staticmethod
    def _function_text(line: str) -> str:
        text = line.rstrip("\n").lstrip()
        return text[:FUNCTION_TEXT_MAX].rstrip()


class ContextFormatter(_HunkedFormatter):
    """``*** 1,4 ****`` / ``--- 1,5 ----`` hunks with ``!+-`` flags."""

    HEADER_MARKS = ("***", "---")

    def format(self, changes: list[Change]) -> None:
        groups = group_changes(changes, self.config.context)
        if not groups:
            return
        self.print_header()
        old, new = self.files
        for group in groups:
            first0, end0, first1, end1 = self.hunk_bounds(group)
            header = "***************"
            function = self.find_function(first0)
            if function:
                header += " " + function
            self.sink.content(header + "\n")

            self.sink.content(f"*** {context_range(first0, end0)} ****\n")
            if any(change.deleted for change in group):
                flags = self._flags(group, first0, end0, side=0)
                for i in range(first0, end0):
                    self.print_line(flags[i - first0], old.lines[i])

            self.sink.content(f"--- {context_range(first1, end1)} ----\n")
            if any(change.inserted for change in group):
                flags = self._flags(group, first1, end1, side=1)
                for i in range(first1, end1):
                    self.print_line(flags[i - first1], new.lines[i])

    @staticmethod
    def _flags(group: list[Change], first: int, end: int, side: int) -> list[str]:
        flags = [" "] * (end - first)
        for change in group:
            if side == 0:
                lo, hi, flag = change.first0, change.end0, "!" if change.inserted else "-"
            else:
                lo, hi, flag = change.first1, change.end1, "!" if change.deleted else "+"
            for i in range(lo, hi):
                flags[i - first] = flag
        return flags


class UnifiedFormatter(_HunkedFormatter):
    """``@@ -1,4 +1,5 @@`` hunks with `` ``/``-``/``+`` lines."""

    HEADER_MARKS = ("---", "+++")

    def format(self, changes: list[Change]) -> None:
        groups = group_changes(changes, self.config.context)
        if not groups:
            return
        self.print_header()
        old, new = self.files
        for group in groups:
            first0, end0, first1, end1 = self.hunk_bounds(group)
            header = f"@@ -{unified_range(first0, end0)} +{unified_range(first1, end1)} @@"
            function = self.find_function(first0)
            if function:
                header += " " + function
            self.sink.content(header + "\n")

            i = first0
            for change in group:
                while i < change.first0:
                    self._common(old.lines[i])
                    i += 1
                for line in old.lines[change.first0:change.end0]:
                    self._changed("-", line)
                for line in new.lines[change.first1:change.end1]:
                    self._changed("+", line)
                i = change.end0
            while i < end0:
                self._common(old.lines[i])
                i += 1

    def _common(self, line: str) -> None:
        if not (self.config.suppress_blank_empty and line == "\n"):
            self.sink.content("\t" if self.config.initial_tab else " ")
        self.print_line(None, line)

    def _changed(self, mark: str, line: str) -> None:
        if self.config.initial_tab and line != "\n":
            mark += "\t"
        self.sink.content(mark)
        self.print_line(None, line)


# =============================================================================
# Side by side
# =============================================================================

class SideBySideFormatter(HunkFormatter):
    """Two columns separated by a gutter showing `` ``, ``|``, ``<`` or ``>``."""

    def __init__(self, config: ComparisonConfig, files: tuple[FileText, FileText], sink: OutputSink):
        super().__init__(config, files, sink)
        self._next0 = 0
        self._next1 = 0

    def format(self, changes: list[Change]) -> None:
        old, new = self.files
        for change in self.significant(changes):
            self._common_lines(change.first0, change.first1)
            i, j = change.first0, change.first1
            while i < change.end0 and j < change.end1:
                self._line(old.lines[i], "|", new.lines[j])
                i += 1
                j += 1
            while j < change.end1:
                self._line(None, ">", new.lines[j])
                j += 1
            while i < change.end0:
                self._line(old.lines[i], "<", None)
                i += 1
            self._next0, self._next1 = change.end0, change.end1
        self._common_lines(len(old), len(new))

    def _common_lines(self, limit0: int, limit1: int) -> None:
        old, new = self.files
        i0, i1 = self._next0, self._next1
        if not self.config.suppress_common_lines and (i0 != limit0 or i1 != limit1):
            while i0 < limit0 and i1 < limit1:
                if self.config.left_column:
                    self._line(old.lines[i0], "(", None)
                else:
                    self._line(old.lines[i0], " ", new.lines[i1])
                i0 += 1
                i1 += 1
            while i1 < limit1:
                self._line(None, ")", new.lines[i1])
                i1 += 1
            while i0 < limit0:
                self._line(old.lines[i0], "(", None)
                i0 += 1
        self._next0, self._next1 = limit0, limit1

    def _line(self, left: Optional[str], sep: str, right: Optional[str]) -> None:
        half_width = self.config.sdiff_half_width
        column2 = self.config.sdiff_column2_offset
        out: list[str] = []
        column = 0
        put_newline = False

        if left is not None:
            put_newline = left.endswith("\n")
            column = self._half_line(out, left, 0, half_width)

        if sep != " ":
            column = self._tab_from_to(out, column, (half_width + column2 - 1) // 2) + 1
            if sep == "|" and put_newline != right.endswith("\n"):
                sep = "/" if put_newline else "\\"
            out.append(sep)

        if right is not None:
            put_newline = put_newline or right.endswith("\n")
            if right != "\n":
                column = self._tab_from_to(out, column, column2)
                self._half_line(out, right, column, half_width)

        if put_newline:
            out.append("\n")
        self.sink.content("".join(out))

    def _tab_from_to(self, out: list[str], start: int, to: int) -> int:
        tabsize = self.config.tabsize
        if not self.config.expand_tabs:
            tab = start + tabsize - start % tabsize
            while tab <= to:
                out.append("\t")
                start = tab
                tab += tabsize
        if start < to:
            out.append(" " * (to - start))
        return to

    def _half_line(self, out: list[str], line: str, indent: int, bound: int) -> int:
        """Print as much of ``line`` as fits in ``bound`` columns."""
        tabsize = self.config.tabsize
        in_position = 0
        out_position = 0
        for ch in line:
            if ch == "\n":
                break
            if ch == "\t":
                spaces = tabsize - in_position % tabsize
                if in_position == out_position:
                    tabstop = out_position + spaces
                    if self.config.expand_tabs:
                        tabstop = min(tabstop, bound)
                        out.append(" " * (tabstop - out_position))
                        out_position = tabstop
                    elif tabstop < bound:
                        out_position = tabstop
                        out.append(ch)
                in_position += spaces
            elif ch == "\r":
                out.append(ch)
                self._tab_from_to(out, 0, indent)
                in_position = out_position = 0
            elif ch == "\b":
                if in_position != 0:
                    in_position -= 1
                    if in_position < bound:
                        if out_position <= in_position:
                            out.append(" " * (in_position - out_position))
                            out_position = in_position
                        else:
                            out_position = in_position
                            out.append(ch)
            elif ch in "\f\v" or not ch.isprintable():
                if in_position < bound:
                    out.append(ch)
            else:
                if in_position < bound:
                    out.append(ch)
                    out_position = in_position + 1
                in_position += 1
        return out_position


# =============================================================================
# ifdef
# =============================================================================

# %[-'0 ]*WIDTH[.PREC] then a conversion then a line-number selector
_NUMERIC_DIRECTIVE = re.compile(r"%([-'0 ]*\d*(?:\.\d*)?)([doxX])([eflmnEFLMN])")
_LINE_NUMBER_DIRECTIVE = re.compile(r"%([-'0 ]*\d*(?:\.\d*)?)([doxX])n")
_CHAR_DIRECTIVE = re.compile(r"%c'(\\[0-7]{1,3}|\\.|[^\\'])'")


class IfdefFormatter(HunkFormatter):
    """
    Merged output driven by group and line formats (-D and friends).

    Group formats understand %<, %>, %=, %%, %c'C' and numeric line-number
    directives such as %dF; line formats understand %l, %L, %%, %c'C' and %dn.
    """

    def __init__(self, config: ComparisonConfig, files: tuple[FileText, FileText], sink: OutputSink):
        super().__init__(config, files, sink)
        self._next0 = 0
        self._next1 = 0

    def format(self, changes: list[Change]) -> None:
        groups = self.config.group_formats
        for change in self.significant(changes):
            if self._next0 < change.first0 or self._next1 < change.first1:
                self._group(groups[FormatIndex.UNCHANGED],
                            self._next0, change.first0, self._next1, change.first1)
            index = FormatIndex.OLD if not change.inserted else (
                FormatIndex.NEW if not change.deleted else FormatIndex.CHANGED)
            self._group(groups[index], change.first0, change.end0, change.first1, change.end1)
            self._next0, self._next1 = change.end0, change.end1
        len0, len1 = len(self.files[0]), len(self.files[1])
        if self._next0 < len0 or self._next1 < len1:
            self._group(groups[FormatIndex.UNCHANGED], self._next0, len0, self._next1, len1)

    def _group(self, fmt: str, first0: int, end0: int, first1: int, end1: int) -> None:
        line_formats = self.config.line_formats
        i = 0
        while i < len(fmt):
            ch = fmt[i]
            if ch != "%" or i + 1 >= len(fmt):
                self.sink.content(ch)
                i += 1
                continue
            spec = fmt[i + 1]
            if spec in "<=":
                index = FormatIndex.OLD if spec == "<" else FormatIndex.UNCHANGED
                for n in range(first0, end0):
                    self._line(line_formats[index], self.files[0].lines[n], n)
                i += 2
            elif spec == ">":
                for n in range(first1, end1):
                    self._line(line_formats[FormatIndex.NEW], self.files[1].lines[n], n)
                i += 2
            elif spec == "%":
                self.sink.content("%")
                i += 2
            else:
                i = self._common_directive(fmt, i, lambda selector: self._group_number(
                    selector, first0, end0, first1, end1))

    def _line(self, fmt: str, line: str, number: int) -> None:
        i = 0
        while i < len(fmt):
            ch = fmt[i]
            if ch != "%" or i + 1 >= len(fmt):
                self.sink.content(ch)
                i += 1
                continue
            spec = fmt[i + 1]
            if spec == "l":
                self.sink.content(line[:-1] if line.endswith("\n") else line)
                i += 2
            elif spec == "L":
                self.sink.content(line)
                i += 2
            elif spec == "%":
                self.sink.content("%")
                i += 2
            else:
                match = _LINE_NUMBER_DIRECTIVE.match(fmt, i)
                if match:
                    self.sink.content(self._printf(match.group(1), match.group(2), number + 1))
                    i = match.end()
                else:
                    i = self._common_directive(fmt, i, None)

    def _common_directive(self, fmt: str, i: int, number_of) -> int:
        """Handle %c'C' and, in group formats, numeric directives."""
        match = _CHAR_DIRECTIVE.match(fmt, i)
        if match:
            self.sink.content(self._char(match.group(1)))
            return match.end()
        if number_of is not None:
            match = _NUMERIC_DIRECTIVE.match(fmt, i)
            if match:
                self.sink.content(self._printf(match.group(1), match.group(2), number_of(match.group(3))))
                return match.end()
        self.sink.content("%")
        return i + 1

    @staticmethod
    def _group_number(selector: str, first0: int, end0: int, first1: int, end1: int) -> int:
        """Lowercase selectors describe the old file's lines, uppercase the new file's."""
        first, end = (first0, end0) if selector.islower() else (first1, end1)
        return {
            'e': first,         # line before the group
            'f': first + 1,     # first line of the group
            'l': end,           # last line of the group
            'm': end + 1,       # line after the group
            'n': end - first,   # number of lines
        }[selector.lower()]

    @staticmethod
    def _printf(flags: str, conversion: str, value: int) -> str:
        return ("%" + flags.replace("'", "") + conversion) % value

    @staticmethod
    def _char(spec: str) -> str:
        if len(spec) > 1 and spec[1] in "01234567":
            return chr(int(spec[1:], 8))
        if spec.startswith("\\"):
            return spec[1:]
        return spec


# =============================================================================
# Registry
# =============================================================================

FORMATTERS: dict[OutputStyle, type[HunkFormatter]] = {
    OutputStyle.NORMAL: NormalFormatter,
    OutputStyle.CONTEXT: ContextFormatter,
    OutputStyle.UNIFIED: UnifiedFormatter,
    OutputStyle.ED: EdFormatter,
    OutputStyle.FORWARD_ED: ForwardEdFormatter,
    OutputStyle.RCS: RcsFormatter,
    OutputStyle.SDIFF: SideBySideFormatter,
    OutputStyle.IFDEF: IfdefFormatter,
}


def get_formatter(
    config: ComparisonConfig,
    files: tuple[FileText, FileText],
    sink: OutputSink
) -> HunkFormatter:
    return FORMATTERS[config.output_style](config, files, sink)
