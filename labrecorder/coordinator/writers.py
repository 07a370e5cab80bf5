"""
CSV Row Writers
Append-only, header-first CSV files owned by a single producer
"""

import csv
import logging
import threading
from pathlib import Path
from typing import Optional, Sequence

from ..errors import RecordingIOError

logger = logging.getLogger(__name__)


class CsvRowWriter:
    """
    One persisted series file.

    The file is truncated and the header written on open(). Rows appended
    after close() are dropped rather than reopening the file, so a producer
    racing a session stop can never resurrect it. A failed write closes the
    writer for good; later rows are dropped.
    """

    def __init__(self, path: Path, header: Sequence[str], flush_each_row: bool = False):
        self.path = Path(path)
        self.header = tuple(header)
        self.flush_each_row = flush_each_row
        self.rows_written = 0
        self.failed = False

        self._lock = threading.Lock()
        self._file = None
        self._writer = None
        self._closed = False

    @property
    def is_open(self) -> bool:
        return self._file is not None

    def open(self):
        """
        Create the file and write its header.

        Raises:
            RecordingIOError: the file could not be created.
        """
        with self._lock:
            if self._file is not None:
                return
            try:
                self._file = open(self.path, 'w', newline='', encoding='utf-8')
                self._writer = csv.writer(self._file, lineterminator='\n')
                self._writer.writerow(self.header)
                self._file.flush()
            except OSError as e:
                self._abandon()
                raise RecordingIOError(f"Could not create {self.path}: {e}") from e
            self._closed = False

    def append(self, *values) -> bool:
        """
        Append one row.

        Returns:
            True if the row was written, False if the writer is closed.

        Raises:
            RecordingIOError: the write failed; the writer is closed afterwards.
        """
        with self._lock:
            if self._file is None or self._closed:
                return False
            try:
                self._writer.writerow(values)
                if self.flush_each_row:
                    self._file.flush()
            except OSError as e:
                self.failed = True
                self._abandon()
                raise RecordingIOError(f"Write to {self.path} failed: {e}") from e
            self.rows_written += 1
            return True

    def close(self):
        """
        Flush and close. Safe to call more than once.

        Raises:
            RecordingIOError: flushing or closing failed.
        """
        with self._lock:
            handle, self._file = self._file, None
            self._writer = None
            self._closed = True
            if handle is None:
                return
            try:
                handle.close()
            except OSError as e:
                raise RecordingIOError(f"Closing {self.path} failed: {e}") from e

    def _abandon(self):
        handle, self._file = self._file, None
        self._writer = None
        self._closed = True
        if handle is not None:
            try:
                handle.close()
            except OSError as e:
                logger.debug(f"Ignoring close error on abandoned {self.path}: {e}")

    def __repr__(self):
        status = "open" if self.is_open else "closed"
        return f"<CsvRowWriter({self.path.name}, {status}, rows={self.rows_written})>"


def open_writer(path: Path, header: Sequence[str], flush_each_row: bool = False) -> Optional[CsvRowWriter]:
    """
    Open a writer, logging instead of raising on failure.

    Returns:
        The open writer, or None if the file could not be created.
    """
    writer = CsvRowWriter(path, header, flush_each_row=flush_each_row)
    try:
        writer.open()
    except RecordingIOError as e:
        logger.error(f"✗ {e}")
        return None
    return writer
