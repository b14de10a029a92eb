"""
Core data models for pair comparison.

This module defines the data structures shared by the resolver, the
dispatch engine and the directory differ:
- Verdicts (the three-way outcome of one pair)
- File kinds and stat metadata
- Per-side existence state (a tagged variant)
- Comparison slots and comparisons
- Terminal actions chosen by classification

Models are plain dataclasses; everything that describes a resolved entity
is immutable so a comparison can be classified any number of times.
"""

from __future__ import annotations

import stat
from dataclasses import dataclass, field, replace
from enum import Enum, IntEnum, auto
from typing import BinaryIO, Optional, Union


# =============================================================================
# Enumerations
# =============================================================================

class Verdict(IntEnum):
    """Outcome of comparing one pair; the value is the exit status."""
    SUCCESS = 0     # No differences found
    DIFFERENT = 1   # Differences found
    TROUBLE = 2     # Operational error

    @classmethod
    def worst(cls, *verdicts: 'Verdict') -> 'Verdict':
        """Fold verdicts by precedence: TROUBLE > DIFFERENT > SUCCESS."""
        return cls(max(verdicts, default=cls.SUCCESS))


class FileKind(Enum):
    """Type of filesystem entry."""
    REGULAR = "regular file"
    DIRECTORY = "directory"
    SYMLINK = "symbolic link"
    FIFO = "fifo"
    SOCKET = "socket"
    CHAR_DEVICE = "character special file"
    BLOCK_DEVICE = "block special file"
    UNKNOWN = "weird file"

    @classmethod
    def from_mode(cls, mode: int) -> 'FileKind':
        if stat.S_ISREG(mode):
            return cls.REGULAR
        if stat.S_ISDIR(mode):
            return cls.DIRECTORY
        if stat.S_ISLNK(mode):
            return cls.SYMLINK
        if stat.S_ISFIFO(mode):
            return cls.FIFO
        if stat.S_ISSOCK(mode):
            return cls.SOCKET
        if stat.S_ISCHR(mode):
            return cls.CHAR_DEVICE
        if stat.S_ISBLK(mode):
            return cls.BLOCK_DEVICE
        return cls.UNKNOWN


class Action(Enum):
    """Terminal action selected for a resolved pair."""
    RESOLUTION_ERROR = auto()       # A side failed to resolve
    NOTHING = auto()                # Both sides nonexistent
    SAME_FILE = auto()              # Same physical file, nothing to print
    DIRECTORIES = auto()            # Recurse into both directories
    COMMON_SUBDIRECTORIES = auto()  # Nested directories, not recursing
    ONLY_IN = auto()                # Entry present on one side only
    KIND_MISMATCH = auto()          # Entries of incomparable kinds
    SYMLINKS = auto()               # Compare link targets
    BINARY_QUICK_REJECT = auto()    # Sizes alone prove a difference
    CONTENT = auto()                # Delegate to the content-diff primitive


# =============================================================================
# Metadata
# =============================================================================

@dataclass(frozen=True)
class Metadata:
    """The parts of a stat result the engine relies on."""
    kind: FileKind
    size: int = 0
    mode: int = 0
    mtime: float = 0.0
    ctime: float = 0.0
    dev: int = 0
    ino: int = 0
    nlink: int = 0
    uid: int = 0
    gid: int = 0

    @classmethod
    def from_stat(cls, st) -> 'Metadata':
        return cls(
            kind=FileKind.from_mode(st.st_mode),
            size=st.st_size,
            mode=st.st_mode,
            mtime=st.st_mtime,
            ctime=st.st_ctime,
            dev=st.st_dev,
            ino=st.st_ino,
            nlink=st.st_nlink,
            uid=st.st_uid,
            gid=st.st_gid,
        )

    @classmethod
    def absent(cls, kind: FileKind) -> 'Metadata':
        """Zeroed metadata for a nonexistent side, typed like its counterpart."""
        return cls(kind=kind)

    @property
    def is_regular(self) -> bool:
        return self.kind == FileKind.REGULAR

    @property
    def is_directory(self) -> bool:
        return self.kind == FileKind.DIRECTORY

    @property
    def is_symlink(self) -> bool:
        return self.kind == FileKind.SYMLINK

    @property
    def permissions(self) -> int:
        return stat.S_IMODE(self.mode)

    def describe(self) -> str:
        """Human-readable kind, as used in kind-mismatch messages."""
        if self.kind == FileKind.REGULAR and self.size == 0:
            return "regular empty file"
        return self.kind.value


def same_file(a: Metadata, b: Metadata) -> bool:
    """True when both stat results denote the same inode."""
    return a.dev == b.dev and a.ino == b.ino


def same_file_attributes(a: Metadata, b: Metadata) -> bool:
    """True when nothing observable changed between two stats of one file."""
    return (
        a.mode == b.mode
        and a.nlink == b.nlink
        and a.uid == b.uid
        and a.gid == b.gid
        and a.size == b.size
        and a.mtime == b.mtime
        and a.ctime == b.ctime
    )


# =============================================================================
# Existence (tagged variant)
# =============================================================================

@dataclass(frozen=True)
class Nonexistent:
    """The side does not exist (or is treated as absent and empty)."""


@dataclass(frozen=True)
class Unresolved:
    """The side was stated successfully but not opened yet."""


@dataclass(frozen=True)
class ErrorCode:
    """The side failed to resolve with the given errno."""
    errno: int
    message: str = ""

    def as_os_error(self) -> OSError:
        return OSError(self.errno, self.message or None)


@dataclass(frozen=True, eq=False)
class OpenHandle:
    """The side is an already-open stream (standard input)."""
    stream: BinaryIO
    owned: bool = False


Existence = Union[Nonexistent, Unresolved, ErrorCode, OpenHandle]

NONEXISTENT = Nonexistent()
UNRESOLVED = Unresolved()


# =============================================================================
# Comparison
# =============================================================================

@dataclass(frozen=True)
class ComparisonSlot:
    """Resolved state of one side of a comparison."""
    name: str
    existence: Existence
    metadata: Optional[Metadata] = None

    @property
    def is_nonexistent(self) -> bool:
        return isinstance(self.existence, Nonexistent)

    @property
    def is_error(self) -> bool:
        return isinstance(self.existence, ErrorCode)

    @property
    def is_resolved(self) -> bool:
        """Stated successfully (unopened or open)."""
        return isinstance(self.existence, (Unresolved, OpenHandle))

    @property
    def kind(self) -> FileKind:
        if self.metadata is None:
            return FileKind.UNKNOWN
        return self.metadata.kind

    @property
    def is_directory(self) -> bool:
        return self.kind == FileKind.DIRECTORY

    def with_existence(self, existence: Existence) -> 'ComparisonSlot':
        return replace(self, existence=existence)


@dataclass(frozen=True)
class Comparison:
    """
    One entity pair being compared.

    ``parent`` is the enclosing directory comparison when the pair was
    discovered by recursion. It is only read, for path joins and messages.
    ``entry_name`` is the name relative to the parent directories.
    """
    slots: tuple[ComparisonSlot, ComparisonSlot]
    parent: Optional['Comparison'] = None
    entry_name: Optional[str] = None
    labels: tuple[Optional[str], Optional[str]] = field(default=(None, None))

    def __getitem__(self, side: int) -> ComparisonSlot:
        return self.slots[side]

    @property
    def names(self) -> tuple[str, str]:
        return self.slots[0].name, self.slots[1].name

    @property
    def is_nested(self) -> bool:
        return self.parent is not None

    def display_name(self, side: int) -> str:
        """The label for a side if one was given, otherwise its path."""
        return self.labels[side] or self.slots[side].name

    def same_files(self) -> bool:
        """Both sides exist and are the same, unchanged physical file."""
        a, b = self.slots
        if a.is_nonexistent or b.is_nonexistent:
            return False
        if a.metadata is None or b.metadata is None:
            return False
        return same_file(a.metadata, b.metadata) and same_file_attributes(a.metadata, b.metadata)

    def replace_slot(self, side: int, slot: ComparisonSlot) -> 'Comparison':
        slots = list(self.slots)
        slots[side] = slot
        return replace(self, slots=(slots[0], slots[1]))

    def ancestors(self):
        """Iterate over enclosing comparisons, innermost first."""
        current = self.parent
        while current is not None:
            yield current
            current = current.parent
