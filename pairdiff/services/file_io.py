"""
File I/O service for reading compared content.

Handles:
- Reading whole streams as bytes
- Binary detection
- Encoding detection
- Line splitting that keeps line endings
"""

from __future__ import annotations

import codecs
import logging
from dataclasses import dataclass
from typing import BinaryIO, Optional

import chardet

from pairdiff.core.errors import ResolutionError


@dataclass
class DecodedPair:
    """Both sides of a comparison decoded with one codec."""
    lines: tuple[list[str], list[str]]
    encoding: str


class FileIOService:
    """Service for reading and decoding compared files."""

    BOM_CODECS = ('utf-8-sig', 'utf-16', 'utf-32')

    def __init__(
        self,
        default_encoding: str = 'utf-8',
        binary_check_size: int = 8192,
        detect_sample_size: int = 64 * 1024
    ):
        self.default_encoding = default_encoding
        self.binary_check_size = binary_check_size
        self.detect_sample_size = detect_sample_size

    def read_stream(self, stream: Optional[BinaryIO], name: str) -> bytes:
        """
        Read the rest of a stream. ``None`` stands for an absent file.

        Raises:
            ResolutionError: if reading fails
        """
        if stream is None:
            return b""
        try:
            return stream.read()
        except OSError as e:
            logging.error(f"FileIOService - Failed to read {name}: {e}")
            raise ResolutionError(name, e) from e

    def is_binary(self, content: bytes) -> bool:
        """A NUL byte near the start marks content as binary."""
        return b'\x00' in content[:self.binary_check_size]

    def detect_encoding(self, content: bytes) -> str:
        """Detect encoding of content."""
        if not content:
            return self.default_encoding

        result = chardet.detect(content[:self.detect_sample_size])

        if result['confidence'] > 0.7 and result['encoding']:
            encoding = result['encoding'].lower()
            # ASCII is a subset of UTF-8
            if encoding == 'ascii':
                return self.default_encoding
            try:
                name = codecs.lookup(encoding).name
            except LookupError:
                return self.default_encoding
            # Output is encoded piecewise, so codecs that emit a BOM on
            # every encode() call are not usable.
            if name in self.BOM_CODECS:
                return self.default_encoding
            return encoding

        return self.default_encoding

    def decode_pair(self, content0: bytes, content1: bytes) -> DecodedPair:
        """
        Decode both sides with a single codec.

        Byte-identical lines must decode to identical strings, so both sides
        share one codec. If the detected codec cannot decode both sides
        strictly, UTF-8 with surrogateescape is used; it round-trips any
        byte sequence.
        """
        encoding = self.detect_encoding(content0 or content1)
        if encoding != self.default_encoding:
            try:
                text0 = content0.decode(encoding)
                text1 = content1.decode(encoding)
                return DecodedPair((self.split_lines(text0), self.split_lines(text1)), encoding)
            except (UnicodeDecodeError, LookupError):
                logging.debug(f"FileIOService - {encoding} failed, falling back to {self.default_encoding}")

        text0 = content0.decode(self.default_encoding, 'surrogateescape')
        text1 = content1.decode(self.default_encoding, 'surrogateescape')
        return DecodedPair((self.split_lines(text0), self.split_lines(text1)), self.default_encoding)

    @staticmethod
    def split_lines(content: str) -> list[str]:
        """
        Split on newline only, keeping the newline on each line.

        The last line has no newline if the content does not end with one.
        """
        if not content:
            return []
        lines = content.split('\n')
        result = [line + '\n' for line in lines[:-1]]
        if lines[-1]:
            result.append(lines[-1])
        return result
