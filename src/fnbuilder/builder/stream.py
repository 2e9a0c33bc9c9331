import logging
from typing import Iterable, Optional, Union

import httpx
from pydantic import ValidationError

from ..datacls import BuildResult
from ..exceptions import SigningOrTransportError, StreamClosedError, StreamDecodeError

logger = logging.getLogger(__name__)


class BuildResultStream:
    """
    Single-pass reader of newline-delimited build results.

    The stream owns `source`, anything with a `close()` that yields lines
    either through `iter_lines()` (an `httpx.Response`) or by iteration (a
    file object). `source` is closed exactly once: when the results are read
    to the end, when a line fails to decode, when the transport fails, or
    when the caller stops early and the iterator is closed or discarded.

    Usage:
        with builder.build_stream("fn.tar") as stream:
            for result in stream:
                print(result.status)
    """

    def __init__(self, source):
        self._source = source
        self._consumed = False
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def results(self) -> "ResultIterator":
        """
        Return the iterator over the stream's results.

        The iterator owns the stream from the moment it is returned, closing
        it also closes the source, even before the first result is read.

        Raises:
            StreamClosedError: the stream was already consumed or closed.
            StreamDecodeError: while iterating, for a line that is not a build result.
            SigningOrTransportError: while iterating, when the connection drops.
        """
        if self._consumed or self._closed:
            raise StreamClosedError("build result stream can only be consumed once")
        self._consumed = True
        return ResultIterator(self, self._lines())

    def __iter__(self) -> "ResultIterator":
        return self.results()

    def _lines(self) -> Iterable[Union[str, bytes]]:
        iter_lines = getattr(self._source, "iter_lines", None)
        if iter_lines is not None:
            return iter_lines()
        return self._source

    def close(self):
        """Close the underlying source, later calls do nothing."""
        if self._closed:
            return
        self._closed = True
        logger.debug("[Stream] Closing build result stream")
        self._source.close()

    def __enter__(self) -> "BuildResultStream":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


class ResultIterator:
    """Iterator returned by `BuildResultStream.results()`."""

    def __init__(self, stream: BuildResultStream, lines: Iterable[Union[str, bytes]]):
        self._stream = stream
        self._lines = iter(lines)
        self._line_number = 0
        self._count = 0
        self._last: Optional[BuildResult] = None

    @property
    def count(self) -> int:
        """Number of results read so far."""
        return self._count

    def __iter__(self) -> "ResultIterator":
        return self

    def __next__(self) -> BuildResult:
        if self._stream.closed:
            raise StopIteration
        try:
            result = self._read_next()
        except StopIteration:
            self.close()
            raise
        except httpx.TransportError as e:
            self.close()
            raise SigningOrTransportError(
                f"build result stream interrupted after {self._count} results: {e}"
            ) from e
        except BaseException:
            self.close()
            raise
        self._count += 1
        self._last = result
        logger.debug(f"[Stream] Result {self._count}: status '{result.status}'")
        if result.is_terminal:
            logger.info(f"[Stream] Build finished with status '{result.status}' {result.image}".rstrip())
        return result

    def _read_next(self) -> BuildResult:
        for line in self._lines:
            self._line_number += 1
            if isinstance(line, bytes):
                line = line.decode("utf-8", errors="replace")
            line = line.strip()
            if not line:
                continue
            try:
                return BuildResult.model_validate_json(line)
            except ValidationError as e:
                raise StreamDecodeError(
                    f"unable to decode build result on line {self._line_number}: {e}",
                    line_number=self._line_number,
                    line=line,
                ) from e
        raise StopIteration

    def close(self):
        """Stop reading and close the stream's source."""
        if self._stream.closed:
            return
        if self._last is not None and not self._last.is_terminal:
            logger.debug(f"[Stream] Stopped after {self._count} results without a terminal status")
        self._stream.close()

    def __del__(self):
        # an iterator dropped before exhaustion still releases the source
        stream = getattr(self, "_stream", None)
        if stream is not None and not stream.closed:
            self.close()
