"""
pairdiff: compare files and directory trees.

Decides for each pair of named entities (files, directories, symbolic
links or standard input) which comparison applies, carries it out, and
reduces the outcome to an exit status of 0 (same), 1 (different) or
2 (trouble).
"""

__version__ = "1.0.0"

__all__ = ['__version__']
