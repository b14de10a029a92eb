"""
Diff module for file content comparison.

Provides:
- The text diff engine (line-by-line with various ignore options)
- Output formatters for every diff style
"""

from pairdiff.core.diff.text_diff import (
    TextDiffEngine,
)
from pairdiff.core.diff.formats import (
    Change,
    FileText,
    HunkFormatter,
    OutputSink,
    get_formatter,
)

__all__ = [
    # Text diff
    'TextDiffEngine',
    # Formatting
    'Change',
    'FileText',
    'HunkFormatter',
    'OutputSink',
    'get_formatter',
]
