"""
Entity resolver.

Turns a pair of names into a Comparison whose slots record, for each side,
whether the entity exists, what kind it is, and any OS error met while
looking at it. Errors are captured, never raised: the engine decides how
serious they are.
"""

from __future__ import annotations

import errno
import logging
import os
import sys
import time
from dataclasses import replace
from typing import BinaryIO, Callable, Optional

from pairdiff.core.config import ComparisonConfig
from pairdiff.core.models import (
    NONEXISTENT,
    UNRESOLVED,
    Comparison,
    ComparisonSlot,
    ErrorCode,
    FileKind,
    Metadata,
    OpenHandle,
    Unresolved,
)


STDIN_NAME = "-"

# Errors that mean "this operand does not exist" for the new-file policy.
PLACEHOLDER_ERRNOS = (errno.ENOENT, errno.EBADF)


def join_name(directory: str, name: str) -> str:
    """Join a directory and an entry name without doubling separators."""
    if not directory:
        return name
    if directory.endswith(os.sep) or (os.altsep and directory.endswith(os.altsep)):
        return directory + name
    return directory + os.sep + name


def error_existence(error: OSError) -> ErrorCode:
    return ErrorCode(error.errno if error.errno is not None else errno.EIO, error.strerror or "")


class EntityResolver:
    """
    Resolves names into comparison slots.

    Args:
        config: Effective comparison policy
        stdin: Stream used for the "-" operand (defaults to sys.stdin.buffer)
        clock: Returns the current time, stamped on standard input
    """

    def __init__(
        self,
        config: ComparisonConfig,
        stdin: Optional[BinaryIO] = None,
        clock: Callable[[], float] = time.time
    ):
        self.config = config
        self._stdin = stdin
        self._clock = clock

    @property
    def stdin(self) -> BinaryIO:
        if self._stdin is None:
            self._stdin = sys.stdin.buffer
        return self._stdin

    # -------------------------------------------------------------------------
    # Single side
    # -------------------------------------------------------------------------

    def resolve(self, name: Optional[str], parent: Optional[Comparison] = None, side: int = 0) -> ComparisonSlot:
        """
        Resolve one name.

        An absent name resolves to a Nonexistent slot without touching the
        filesystem. With a parent, the name is joined to the parent's path
        for the same side.
        """
        if name is None:
            return ComparisonSlot(name="", existence=NONEXISTENT)
        if parent is not None:
            name = join_name(parent[side].name, name)
        if name == STDIN_NAME:
            return self._resolve_stdin(name)
        return self.stat_slot(name)

    def stat_slot(self, name: str) -> ComparisonSlot:
        """Stat ``name``, honoring --no-dereference."""
        try:
            if self.config.no_dereference:
                st = os.lstat(name)
            else:
                st = os.stat(name)
        except OSError as e:
            logging.debug(f"EntityResolver - stat failed for {name}: {e}")
            return ComparisonSlot(name=name, existence=error_existence(e))
        return ComparisonSlot(name=name, existence=UNRESOLVED, metadata=Metadata.from_stat(st))

    def _resolve_stdin(self, name: str) -> ComparisonSlot:
        stream = self.stdin
        handle = OpenHandle(stream=stream, owned=False)
        try:
            fd = stream.fileno()
        except (OSError, ValueError):
            # In-memory stream: no stat to report, treat it like a pipe.
            metadata = Metadata(kind=FileKind.FIFO, mtime=self._clock())
            return ComparisonSlot(name=name, existence=handle, metadata=metadata)

        if self.config.binary and hasattr(os, 'O_BINARY') and not os.isatty(fd):
            import msvcrt
            msvcrt.setmode(fd, os.O_BINARY)

        try:
            metadata = Metadata.from_stat(os.fstat(fd))
        except OSError as e:
            return ComparisonSlot(name=name, existence=error_existence(e))

        if metadata.is_regular:
            try:
                position = stream.tell()
            except OSError as e:
                return ComparisonSlot(name=name, existence=error_existence(e))
            metadata = replace(metadata, size=max(0, metadata.size - position))

        # A stream has no stored timestamp; report the current time.
        metadata = replace(metadata, mtime=self._clock())
        return ComparisonSlot(name=name, existence=handle, metadata=metadata)

    # -------------------------------------------------------------------------
    # Pair
    # -------------------------------------------------------------------------

    def resolve_pair(
        self,
        name0: Optional[str],
        name1: Optional[str],
        parent: Optional[Comparison] = None
    ) -> Comparison:
        """
        Resolve both sides of a comparison.

        A missing name borrows the other side's name (joined to its own
        parent directory), so nonexistent sides still have a path for
        messages. Side 1 reuses side 0's result when both resolve to the
        same path.
        """
        entry_name = name0 if name0 is not None else name1
        present = (name0 is not None, name1 is not None)
        names = (entry_name if name0 is None else name0,
                 entry_name if name1 is None else name1)

        slots: list[ComparisonSlot] = []
        for side in (0, 1):
            if not present[side]:
                full = names[side] if parent is None else join_name(parent[side].name, names[side])
                slots.append(ComparisonSlot(name=full, existence=NONEXISTENT))
                continue
            if side == 1:
                full = names[1] if parent is None else join_name(parent[1].name, names[1])
                if full == slots[0].name and not slots[0].is_nonexistent:
                    slots.append(replace(slots[0]))
                    continue
            slots.append(self.resolve(names[side], parent, side))

        self._apply_placeholder_policy(slots, parent)
        self._type_nonexistent(slots)

        return Comparison(
            slots=(slots[0], slots[1]),
            parent=parent,
            entry_name=entry_name,
            labels=self.config.labels,
        )

    def _apply_placeholder_policy(self, slots: list[ComparisonSlot], parent: Optional[Comparison]) -> None:
        """
        Re-mark sides as nonexistent under --new-file / --unidirectional-new-file.

        A side qualifies if it is a permission-less empty regular file (how
        patch marks a missing backup), or if it is a top-level operand that
        does not exist while its counterpart does.
        """
        for side in (0, 1):
            if not (self.config.new_file or (side == 0 and self.config.unidirectional_new_file)):
                continue
            slot = slots[side]
            other = slots[1 - side]
            existence = slot.existence
            if isinstance(existence, Unresolved):
                meta = slot.metadata
                qualifies = meta.is_regular and meta.permissions & 0o777 == 0 and meta.size == 0
            else:
                qualifies = (
                    isinstance(existence, ErrorCode)
                    and existence.errno in PLACEHOLDER_ERRNOS
                    and parent is None
                    and other.is_resolved
                )
            if qualifies:
                logging.debug(f"EntityResolver - treating {slot.name} as absent")
                slots[side] = slot.with_existence(NONEXISTENT)

    @staticmethod
    def _type_nonexistent(slots: list[ComparisonSlot]) -> None:
        """Give each nonexistent side zeroed metadata typed like the other side."""
        for side in (0, 1):
            if slots[side].is_nonexistent:
                other = slots[1 - side].metadata
                kind = other.kind if other is not None else FileKind.UNKNOWN
                slots[side] = replace(slots[side], metadata=Metadata.absent(kind))
