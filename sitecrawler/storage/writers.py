"""
Output writers for crawl results.
Supports CSV and JSON-lines files.
"""

import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, IO, List, Optional

from ..crawler.channels import RecordChannel
from ..crawler.records import PageResult
from ..exceptions import CrawlerError


DEFAULT_COLUMNS = ['url', 'title', 'description']
FORMATS = ('csv', 'jsonl')

_NEWLINES = re.compile(r'\r\n|\n|\r')


class WriterError(CrawlerError):
    """Raised when results cannot be written."""
    pass


def _as_dict(record: Any) -> Dict[str, Any]:
    if isinstance(record, PageResult):
        return record.to_dict()
    return dict(record)


class ResultWriter:
    """Base class for result writers."""

    def __init__(self, path: str):
        self.path = Path(path)
        self.logger = logging.getLogger(__name__)
        self.written = 0
        self._file: Optional[IO[str]] = None

    async def __aenter__(self):
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def open(self):
        """Create the output file, truncating any previous content."""
        try:
            if self.path.parent:
                self.path.parent.mkdir(parents=True, exist_ok=True)
            self._file = open(self.path, 'w', encoding='utf-8', newline='')
        except OSError as e:
            raise WriterError(f"Failed to open {self.path}: {e}") from e
        self.logger.info(f"Writing results to {self.path}")

    async def write(self, record: Any):
        if self._file is None:
            raise WriterError(f"Writer for {self.path} is not open")
        self._file.write(self.format_record(_as_dict(record)))
        self.written += 1

    def format_record(self, data: Dict[str, Any]) -> str:
        raise NotImplementedError

    async def close(self):
        if self._file is not None:
            self._file.close()
            self._file = None
            self.logger.info(f"Wrote {self.written} records to {self.path}")


class JsonLinesWriter(ResultWriter):
    """One JSON object per line."""

    def format_record(self, data: Dict[str, Any]) -> str:
        return json.dumps(data, ensure_ascii=False) + '\n'


class CsvWriter(ResultWriter):
    """
    Delimited text without quoting.

    The header is written with the first row: the configured column names
    followed by any other keys of that first record. Values are trimmed,
    embedded delimiters are escaped with a backslash and line breaks are
    removed. Keys first seen after the header are not written.
    """

    def __init__(self, path: str, columns: Optional[List[str]] = None, delimiter: str = ','):
        super().__init__(path)
        self.columns = list(columns if columns is not None else DEFAULT_COLUMNS)
        self.delimiter = delimiter
        self._header_written = False

    def normalize(self, value: Any) -> str:
        if value is None:
            return ''
        text = str(value).strip()
        text = text.replace(self.delimiter, '\\' + self.delimiter)
        return _NEWLINES.sub('', text)

    def format_record(self, data: Dict[str, Any]) -> str:
        lines = ''
        if not self._header_written:
            for key in data:
                if key not in self.columns:
                    self.columns.append(key)
            lines = self.delimiter.join(self.columns) + '\n'
            self._header_written = True
        row = self.delimiter.join(self.normalize(data.get(name)) for name in self.columns)
        return lines + row + '\n'


def format_for_path(path: str) -> str:
    """Pick the output format from the file suffix; csv unless it is .jsonl/.ndjson."""
    suffix = Path(path).suffix.lower()
    if suffix in ('.jsonl', '.ndjson'):
        return 'jsonl'
    return 'csv'


def create_writer(path: str, fmt: Optional[str] = None) -> ResultWriter:
    fmt = fmt or format_for_path(path)
    if fmt == 'csv':
        return CsvWriter(path)
    if fmt == 'jsonl':
        return JsonLinesWriter(path)
    raise WriterError(f"Unsupported output format: {fmt}")


async def drain_results(channel: RecordChannel, writer: ResultWriter) -> int:
    """Write every record of ``channel`` until it ends. Returns the count written."""
    count = 0
    async for record in channel:
        await writer.write(record)
        count += 1
    return count
