"""
Chunked, pull-based reading of delimited supplier feeds.

The reader is a generator: while the consumer processes a chunk the reader
stays suspended, so no more than one chunk is ever in flight.
"""

import csv
import logging
from itertools import chain
from typing import Iterable, Iterator, Optional

from catalog_reconciler.aws import AWSClientFactory
from catalog_reconciler.exceptions import FeedReadError
from catalog_reconciler.settings import PipelineSettings

logger = logging.getLogger(__name__)

SNIFF_DELIMITERS = ",\t|;"
BOM = "\ufeff"


def parse_s3_uri(uri: str) -> tuple[str, str]:
    """Split ``s3://bucket/key`` into bucket and key."""
    without_scheme = uri[len("s3://"):]
    bucket, _, key = without_scheme.partition("/")
    if not bucket or not key:
        raise ValueError(f"Invalid S3 URI: {uri}")
    return bucket, key


def sniff_delimiter(header_line: str) -> str:
    """Guess the delimiter from the header line, defaulting to a comma."""
    counts = {delimiter: header_line.count(delimiter) for delimiter in SNIFF_DELIMITERS}
    best = max(counts, key=counts.get)
    return best if counts[best] else ","


class FeedReader:
    """
    Reads a delimited feed with a header row in bounded chunks.

    ``source`` is a local path, an ``s3://bucket/key`` URI, or any iterable
    of text lines (used for in-memory feeds).
    """

    def __init__(
        self,
        source,
        settings: Optional[PipelineSettings] = None,
    ):
        self.source = source
        self.settings = settings or PipelineSettings()
        self.rows_read = 0
        self.chunks_read = 0

    @property
    def source_name(self) -> str:
        return self.source if isinstance(self.source, str) else "<stream>"

    def iter_chunks(self, chunk_size: Optional[int] = None) -> Iterator[list[dict]]:
        """
        Yield lists of at most ``chunk_size`` raw rows.

        Raises:
            FeedReadError: If the feed cannot be opened, read or parsed
        """
        chunk_size = chunk_size or self.settings.chunk_size
        chunk: list[dict] = []

        try:
            with self._open_lines() as lines:
                for row in self._iter_rows(lines):
                    chunk.append(row)
                    if len(chunk) >= chunk_size:
                        yield from self._emit(chunk)
                        chunk = []
                if chunk:
                    yield from self._emit(chunk)
        except FeedReadError:
            raise
        except Exception as e:
            raise FeedReadError(
                message=f"Failed to read feed {self.source_name}: {e}",
                source=self.source_name,
                original_exception=e,
            ) from e

    def _emit(self, chunk: list[dict]) -> Iterator[list[dict]]:
        self.chunks_read += 1
        self.rows_read += len(chunk)
        logger.debug(
            f"Read chunk {self.chunks_read} with {len(chunk)} rows",
            extra={"source": self.source_name},
        )
        yield chunk

    def _iter_rows(self, lines: Iterator[str]) -> Iterator[dict]:
        header = next(lines, None)
        if header is None:
            return
        header = header.lstrip(BOM)
        delimiter = self.settings.feed_delimiter or sniff_delimiter(header)
        reader = csv.DictReader(chain([header], lines), delimiter=delimiter)
        yield from reader

    def _open_lines(self) -> "_LineSource":
        if isinstance(self.source, str) and self.source.startswith("s3://"):
            return _S3LineSource(self.source, self.settings)
        if isinstance(self.source, str):
            return _FileLineSource(
                self.source, self.settings.feed_encoding, self.settings.feed_decode_errors
            )
        return _IterableLineSource(self.source)


class _LineSource:
    """Context manager producing an iterator of text lines."""

    def __enter__(self) -> Iterator[str]:
        raise NotImplementedError

    def __exit__(self, exc_type, exc_val, exc_tb):
        return False


class _FileLineSource(_LineSource):
    def __init__(self, path: str, encoding: str, errors: str):
        self.path = path
        self.encoding = encoding
        self.errors = errors
        self._handle = None

    def __enter__(self) -> Iterator[str]:
        self._handle = open(
            self.path, newline="", encoding=self.encoding, errors=self.errors
        )
        logger.info("Opened feed file", extra={"source": self.path})
        return iter(self._handle)

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self._handle is not None:
            self._handle.close()
        return False


class _S3LineSource(_LineSource):
    def __init__(self, uri: str, settings: PipelineSettings):
        self.uri = uri
        self.settings = settings
        self._body = None

    def __enter__(self) -> Iterator[str]:
        bucket, key = parse_s3_uri(self.uri)
        s3 = AWSClientFactory.get_s3_client(self.settings)
        response = s3.get_object(Bucket=bucket, Key=key)
        self._body = response["Body"]
        logger.info(
            "Streaming feed from S3",
            extra={"source": self.uri, "metrics": {"content_length": response.get("ContentLength")}},
        )
        return (
            line.decode(self.settings.feed_encoding, self.settings.feed_decode_errors)
            for line in self._body.iter_lines(keepends=True)
        )

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self._body is not None:
            self._body.close()
        return False


class _IterableLineSource(_LineSource):
    def __init__(self, lines: Iterable[str]):
        self.lines = lines

    def __enter__(self) -> Iterator[str]:
        return iter(self.lines)
