"""
Folder comparison module.

Provides functionality for:
- Directory listing in comparison order
- Entry exclusion with shell-style patterns
- Pairing directory entries for recursive comparison
"""

from pairdiff.core.folder.scanner import (
    FolderScanner,
    ScanOptions,
    PatternMatcher,
)
from pairdiff.core.folder.dirdiff import (
    DirectoryDiffer,
    PairHandler,
)

__all__ = [
    # Scanner
    'FolderScanner',
    'ScanOptions',
    'PatternMatcher',
    # Recursion
    'DirectoryDiffer',
    'PairHandler',
]
