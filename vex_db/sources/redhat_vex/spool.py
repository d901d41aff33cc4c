"""
Snappy-framed spool of newline-delimited CSAF JSON.

The fetcher writes every advisory it collects into an anonymous temporary file
as one compact JSON object per line, compressed with the snappy framing
format. The parser reads the same file back a line at a time, so neither side
holds the whole corpus in memory.
"""

import json
import logging
import tempfile
from typing import BinaryIO, Iterator

import snappy

from ..base.exceptions import ParseException

logger = logging.getLogger(__name__)

# Largest uncompressed chunk allowed by the snappy framing format
CHUNK_SIZE = 65536


def compact_json(raw: bytes) -> bytes:
    """Re-encode a JSON document without insignificant whitespace"""
    return json.dumps(json.loads(raw), separators=(",", ":"), ensure_ascii=False).encode("utf-8")


class SpoolWriter:
    """Appends records to a snappy-framed temporary file"""

    def __init__(self, fileobj: BinaryIO = None):
        self.file = fileobj if fileobj is not None else tempfile.TemporaryFile(prefix="rhel-vex.")
        self._compressor = snappy.StreamCompressor()
        self._buf = bytearray()
        self.records = 0

    def write_record(self, raw: bytes, name: str = ""):
        """
        Compact a JSON document and append it as one line

        Raises:
            ParseException: If raw is not valid JSON
        """
        try:
            line = compact_json(raw)
        except ValueError as e:
            raise ParseException(f"error compacting JSON {name}: {e}",
                                 raw_data_sample=raw[:256].decode("utf-8", "replace")) from e
        self.write_line(line)

    def write_line(self, line: bytes):
        """Append an already-compact JSON line"""
        self._buf += line
        self._buf += b"\n"
        self.records += 1
        if len(self._buf) >= CHUNK_SIZE:
            self._flush()

    def _flush(self):
        if self._buf:
            self.file.write(self._compressor.add_chunk(bytes(self._buf)))
            self._buf.clear()

    def finish(self) -> BinaryIO:
        """Flush pending data and return the spool rewound to its start"""
        self._flush()
        self.file.flush()
        self.file.seek(0)
        return self.file

    def abort(self):
        """Discard the spool"""
        self._buf.clear()
        try:
            self.file.close()
        except OSError as e:
            logger.warning(f"unable to close spool: {e}")


def iter_records(fileobj: BinaryIO, chunk_size: int = CHUNK_SIZE) -> Iterator[bytes]:
    """
    Yield each non-empty line of a snappy-framed spool

    Raises:
        ParseException: The spool is truncated or not snappy framed
    """
    decompressor = snappy.StreamDecompressor()
    pending = b""
    try:
        while True:
            chunk = fileobj.read(chunk_size)
            if not chunk:
                break
            pending += decompressor.decompress(chunk)
            *lines, pending = pending.split(b"\n")
            for line in lines:
                if line:
                    yield line
        decompressor.flush()
    except snappy.UncompressError as e:
        raise ParseException(f"corrupt spool: {e}") from e
    if pending:
        yield pending
