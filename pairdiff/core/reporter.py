"""
Ordered output for a comparison run.

Everything the user sees goes through a Reporter: diff output and
informational lines ("Only in ...", "Files ... differ") on the output
stream, in traversal order, and path-attributed diagnostics on the error
stream. Output is binary so file contents round-trip byte for byte.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import BinaryIO, Optional, TextIO

from pairdiff.core.errors import describe_os_error


class Reporter:
    """Writes diff output, messages and diagnostics."""

    def __init__(
        self,
        stream: Optional[BinaryIO] = None,
        error_stream: Optional[TextIO] = None,
        program_name: str = "pairdiff"
    ):
        self.stream = stream if stream is not None else sys.stdout.buffer
        self.error_stream = error_stream if error_stream is not None else sys.stderr
        self.program_name = program_name
        self.error_count = 0

    # -------------------------------------------------------------------------
    # Output stream
    # -------------------------------------------------------------------------

    def write(self, data: bytes) -> None:
        self.stream.write(data)

    def write_text(self, text: str, encoding: Optional[str] = None) -> None:
        """Write text, encoding it like file names unless a codec is given."""
        if encoding is None:
            self.stream.write(os.fsencode(text))
        else:
            self.stream.write(text.encode(encoding, 'surrogateescape'))

    def message(self, text: str) -> None:
        """One informational line, e.g. ``Only in a: x``."""
        if not text.endswith("\n"):
            text += "\n"
        self.write_text(text)

    def flush(self) -> None:
        self.stream.flush()

    # -------------------------------------------------------------------------
    # Diagnostics
    # -------------------------------------------------------------------------

    def error(self, name: str, error: OSError) -> None:
        """Report an OS error attributed to ``name``."""
        self.error_count += 1
        logging.debug(f"Reporter - {name}: {error!r}")
        self.diagnostic(f"{name}: {describe_os_error(error)}")

    def diagnostic(self, text: str) -> None:
        """``prog: text`` on the error stream."""
        self.stream.flush()
        self.error_stream.write(f"{self.program_name}: {text}\n")
        self.error_stream.flush()
