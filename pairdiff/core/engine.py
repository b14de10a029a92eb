"""
Comparison classification & dispatch.

The engine takes a pair of names, resolves them, picks exactly one terminal
action for the pair and carries it out:

    resolution error -> both nonexistent -> same physical file
    -> both directories -> kind mismatch / only-in -> symlinks
    -> binary quick-reject -> content comparison

Classification is a pure function of the resolved pair and the config;
only dispatch touches the filesystem or writes output.
"""

from __future__ import annotations

import logging
import os
from typing import BinaryIO, Optional, Protocol

from pairdiff.core.config import ComparisonConfig, OutputStyle
from pairdiff.core.errors import OperationalFatal
from pairdiff.core.folder.dirdiff import DirectoryDiffer
from pairdiff.core.models import (
    Action,
    Comparison,
    ErrorCode,
    FileKind,
    OpenHandle,
    Verdict,
)
from pairdiff.core.reporter import Reporter
from pairdiff.core.resolver import STDIN_NAME, EntityResolver, join_name


class ContentDiffer(Protocol):
    """The content-diff primitive: two open streams in, a verdict out."""

    def diff_2_files(
        self,
        cmp: Comparison,
        streams: tuple[Optional[BinaryIO], Optional[BinaryIO]]
    ) -> Verdict:
        ...


# =============================================================================
# Engine
# =============================================================================

class ComparisonEngine:
    """
    Classifies and compares entity pairs.

    Args:
        config: Effective comparison policy
        reporter: Output and diagnostics sink
        content_differ: Content-diff primitive for regular file pairs
        resolver: Entity resolver (built from the config if omitted)
        dir_differ: Directory recursion collaborator (built if omitted)
    """

    def __init__(
        self,
        config: ComparisonConfig,
        reporter: Reporter,
        content_differ: ContentDiffer,
        resolver: Optional[EntityResolver] = None,
        dir_differ: Optional[DirectoryDiffer] = None
    ):
        self.config = config
        self.reporter = reporter
        self.content_differ = content_differ
        self.resolver = resolver or EntityResolver(config)
        self.dir_differ = dir_differ or DirectoryDiffer(config, reporter)

    # -------------------------------------------------------------------------
    # Entry point
    # -------------------------------------------------------------------------

    def compare_files(
        self,
        name0: Optional[str],
        name1: Optional[str],
        parent: Optional[Comparison] = None
    ) -> Verdict:
        """
        Compare one pair of names and return its verdict.

        This is also the callback handed to the directory differ, which
        passes ``None`` for a side on which the entry does not exist.

        Raises:
            OperationalFatal: for combinations that make the run meaningless
        """
        config = self.config
        if not ((name0 is not None and name1 is not None)
                or (config.unidirectional_new_file and name1 is not None)
                or config.new_file):
            name = name0 if name0 is not None else name1
            self.reporter.message(f"Only in {parent[name0 is None].name}: {name}")
            return Verdict.DIFFERENT

        cmp = self.resolver.resolve_pair(name0, name1, parent)
        cmp = self.substitute_directory_operand(cmp)

        action = self.classify(cmp)
        logging.debug(f"ComparisonEngine - {cmp[0].name} vs {cmp[1].name}: {action.name}")
        verdict = self.dispatch(cmp, action)
        return self._finish(cmp, verdict)

    def _finish(self, cmp: Comparison, verdict: Verdict) -> Verdict:
        if verdict == Verdict.SUCCESS:
            if self.config.report_identical_files and not cmp[0].is_directory:
                self.reporter.message(
                    f"Files {cmp.display_name(0)} and {cmp.display_name(1)} are identical"
                )
        else:
            self.reporter.flush()
        return verdict

    # -------------------------------------------------------------------------
    # Top-level directory operand
    # -------------------------------------------------------------------------

    def substitute_directory_operand(self, cmp: Comparison) -> Comparison:
        """
        Replace a top-level directory operand compared against a file.

        ``DIR`` vs ``FILE`` compares ``DIR/basename(FILE)`` vs ``FILE``. The
        replacement is stated again; a failure there becomes a resolution
        error on the directory side.

        Raises:
            OperationalFatal: if the file operand is standard input
        """
        if cmp.is_nested or any(slot.is_error for slot in cmp.slots):
            return cmp
        if cmp[0].is_directory == cmp[1].is_directory:
            return cmp

        file_side = 0 if cmp[1].is_directory else 1
        dir_side = 1 - file_side
        file_name = cmp[file_side].name
        directory = cmp[dir_side].name

        if file_name == STDIN_NAME:
            raise OperationalFatal("cannot compare '-' to a directory")

        base = os.path.basename(file_name.rstrip(os.sep)) or file_name
        entry = self.dir_differ.scanner.find_entry(directory, base)
        substitute = join_name(directory, entry)
        logging.debug(f"ComparisonEngine - comparing {substitute} against {file_name}")
        return cmp.replace_slot(dir_side, self.resolver.stat_slot(substitute))

    # -------------------------------------------------------------------------
    # Classification
    # -------------------------------------------------------------------------

    def classify(self, cmp: Comparison) -> Action:
        """Select the terminal action for a resolved pair. Has no side effects."""
        config = self.config
        a, b = cmp.slots

        if a.is_error or b.is_error:
            return Action.RESOLUTION_ERROR
        if a.is_nonexistent and b.is_nonexistent:
            return Action.NOTHING
        if cmp.same_files() and config.no_diff_means_no_output:
            return Action.SAME_FILE

        dir0, dir1 = a.is_directory, b.is_directory
        if dir0 and dir1:
            if cmp.is_nested and not config.recursive:
                return Action.COMMON_SUBDIRECTORIES
            return Action.DIRECTORIES

        linkable = (FileKind.REGULAR, FileKind.SYMLINK)
        if dir0 or dir1 or (cmp.is_nested and not (a.kind in linkable and b.kind in linkable)):
            if a.is_nonexistent or b.is_nonexistent:
                if ((dir0 or dir1) and config.recursive
                        and (config.new_file
                             or (config.unidirectional_new_file and a.is_nonexistent))):
                    return Action.DIRECTORIES
                return Action.ONLY_IN
            return Action.KIND_MISMATCH

        if a.kind == FileKind.SYMLINK or b.kind == FileKind.SYMLINK:
            if a.kind == b.kind:
                return Action.SYMLINKS
            return Action.KIND_MISMATCH

        if (config.files_can_be_treated_as_binary
                and a.kind == FileKind.REGULAR
                and b.kind == FileKind.REGULAR
                and a.metadata.size != b.metadata.size
                and a.metadata.size > 0
                and b.metadata.size > 0):
            return Action.BINARY_QUICK_REJECT

        return Action.CONTENT

    # -------------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------------

    def dispatch(self, cmp: Comparison, action: Action) -> Verdict:
        """Carry out ``action`` for ``cmp`` and return the verdict."""
        if action == Action.RESOLUTION_ERROR:
            for slot in cmp.slots:
                if isinstance(slot.existence, ErrorCode):
                    self.reporter.error(slot.name, slot.existence.as_os_error())
            return Verdict.TROUBLE

        if action in (Action.NOTHING, Action.SAME_FILE):
            return Verdict.SUCCESS

        if action == Action.DIRECTORIES:
            if self.config.output_style == OutputStyle.IFDEF:
                raise OperationalFatal("-D option not supported with directories")
            return self.dir_differ.diff_dirs(cmp, self.compare_files)

        if action == Action.COMMON_SUBDIRECTORIES:
            if self.config.output_style == OutputStyle.IFDEF:
                raise OperationalFatal("-D option not supported with directories")
            self.reporter.message(f"Common subdirectories: {cmp[0].name} and {cmp[1].name}")
            return Verdict.SUCCESS

        if action == Action.ONLY_IN:
            # Only reachable for entries found by a directory walk.
            present = 1 if cmp[0].is_nonexistent else 0
            self.reporter.message(f"Only in {cmp.parent[present].name}: {cmp.entry_name}")
            return Verdict.DIFFERENT

        if action == Action.KIND_MISMATCH:
            self.reporter.message(
                f"File {cmp.display_name(0)} is a {cmp[0].metadata.describe()} "
                f"while file {cmp.display_name(1)} is a {cmp[1].metadata.describe()}"
            )
            return Verdict.DIFFERENT

        if action == Action.SYMLINKS:
            return self._compare_symlinks(cmp)

        if action == Action.BINARY_QUICK_REJECT:
            self.reporter.message(f"Files {cmp.display_name(0)} and {cmp.display_name(1)} differ")
            return Verdict.DIFFERENT

        return self._compare_contents(cmp)

    def _compare_symlinks(self, cmp: Comparison) -> Verdict:
        targets = []
        for slot in cmp.slots:
            try:
                targets.append(os.readlink(os.fsencode(slot.name)))
            except OSError as e:
                self.reporter.error(slot.name, e)
                return Verdict.TROUBLE
        if targets[0] != targets[1]:
            self.reporter.message(f"Symbolic links {cmp[0].name} and {cmp[1].name} differ")
            return Verdict.DIFFERENT
        return Verdict.SUCCESS

    def _compare_contents(self, cmp: Comparison) -> Verdict:
        """
        Open both sides and hand them to the content-diff primitive.

        A nonexistent side is passed as ``None`` and compares as empty.
        When both sides are the same file, one handle serves both. Every
        side that fails to open is reported before the diff is skipped.
        Only handles opened here are closed.
        """
        streams: list[Optional[BinaryIO]] = [None, None]
        opened: list[tuple[int, BinaryIO]] = []
        verdict = Verdict.SUCCESS
        same = cmp.same_files()
        try:
            for side, slot in enumerate(cmp.slots):
                if slot.is_nonexistent:
                    continue
                if isinstance(slot.existence, OpenHandle):
                    streams[side] = slot.existence.stream
                    continue
                if side == 1 and same:
                    # Shares the first handle, or its failure.
                    streams[1] = streams[0]
                    continue
                try:
                    stream = open(slot.name, 'rb')
                except OSError as e:
                    self.reporter.error(slot.name, e)
                    verdict = Verdict.TROUBLE
                    continue
                opened.append((side, stream))
                streams[side] = stream

            if verdict == Verdict.SUCCESS:
                verdict = self.content_differ.diff_2_files(cmp, (streams[0], streams[1]))
        finally:
            for side, stream in opened:
                try:
                    stream.close()
                except OSError as e:
                    self.reporter.error(cmp[side].name, e)
                    verdict = Verdict.TROUBLE
        return verdict
