import logging
import os
from typing import Dict, Optional, Tuple
from urllib.parse import urljoin

import httpx
from pydantic import ValidationError

from .. import constants
from ..datacls import BuildResult
from ..io import FileSystem, DiskFileSystem
from ..io.path import StrPath
from ..exceptions import (
    ArchiveError,
    FnbIOError,
    ResultDecodeError,
    SigningOrTransportError,
    UnexpectedStatusError,
)
from .signature import sign_payload
from .stream import BuildResultStream

logger = logging.getLogger(__name__)


def join_url(base_url: str, path: str) -> str:
    """Join base URL with path, keeping any path the base URL already has."""
    base = base_url if base_url.endswith("/") else base_url + "/"
    return urljoin(base, path.lstrip("/"))


def safe_snippet(content: bytes, limit: int = constants.BODY_SNIPPET_LIMIT) -> str:
    """Truncate and decode a response body for error messages."""
    if not content:
        return ""
    return content[:limit].decode("utf-8", errors="replace")


class FunctionBuilder:
    """
    Client of the function Builder API.

    Archives are posted to `<url>/build`, signed with an HMAC-SHA256 of the
    body keyed by `hmac_secret`.

    Args:
        url: Base URL of the Builder API
        client: httpx client used for the calls, one is created (and owned) when omitted
        hmac_secret: Shared secret used to sign request payloads
        user_agent: Value of the User-Agent header
        fs: FileSystem the archives are read from
    """

    def __init__(
        self,
        url: str,
        client: Optional[httpx.Client] = None,
        hmac_secret: str = "",
        user_agent: str = constants.DEFAULT_USER_AGENT,
        fs: Optional[FileSystem] = None,
    ):
        self.url = url
        self._owns_client = client is None
        self.client = client or httpx.Client(timeout=constants.DEFAULT_BUILDER_TIMEOUT)
        self.hmac_secret = hmac_secret
        self.user_agent = user_agent
        self.fs = fs or DiskFileSystem()

    @property
    def build_url(self) -> str:
        return join_url(self.url, constants.BUILD_ENDPOINT)

    def build(self, tar_path: StrPath, timeout: Optional[float] = None) -> BuildResult:
        """
        Submit an archive and return the builder's result.

        Raises:
            ArchiveError: the archive cannot be read
            SigningOrTransportError: the request failed before a response arrived
            ResultDecodeError: an accepted response carries an invalid body
            UnexpectedStatusError: the builder answered with a status other than 200/202
        """
        request = self._build_request(tar_path, timeout=timeout)
        try:
            response = self.client.send(request)
        except httpx.RequestError as e:
            raise SigningOrTransportError(f"unable to reach builder at {request.url}: {e}") from e

        if response.status_code not in constants.ACCEPTED_STATUS_CODES:
            raise self._status_error(response.status_code, response.content)

        result = self._decode(response.content)
        logger.info(f"[Client] Builder responded {response.status_code}, build status: '{result.status}'")
        return result

    def build_stream(self, tar_path: StrPath, timeout: Optional[float] = None) -> BuildResultStream:
        """
        Submit an archive and return the live stream of build results.

        The returned stream owns the response and must be consumed or closed.
        """
        request = self._build_request(tar_path, timeout=timeout, accept=constants.NDJSON)
        try:
            response = self.client.send(request, stream=True)
        except httpx.RequestError as e:
            raise SigningOrTransportError(f"unable to reach builder at {request.url}: {e}") from e

        if response.status_code not in constants.ACCEPTED_STATUS_CODES:
            try:
                body = response.read()
            except httpx.HTTPError as e:
                logger.debug(f"[Client] Unable to read error body: {e}")
                body = b""
            finally:
                response.close()
            raise self._status_error(response.status_code, body)

        logger.info(f"[Client] Builder accepted build with status {response.status_code}, streaming results")
        return BuildResultStream(response)

    def _read_archive(self, tar_path: StrPath) -> bytes:
        try:
            return self.fs.read_bytes(tar_path)
        except (FnbIOError, OSError) as e:
            raise ArchiveError(f"unable to read archive '{os.fspath(tar_path)}': {e}") from e

    def _build_request(self, tar_path: StrPath, timeout: Optional[float] = None, accept: Optional[str] = None) -> httpx.Request:
        payload = self._read_archive(tar_path)
        signature = sign_payload(payload, self.hmac_secret)
        headers: Dict[str, str] = {
            constants.SIGNATURE_HEADER: signature,
            "Content-Type": constants.OCTET_STREAM,
            "User-Agent": self.user_agent,
        }
        if accept:
            headers["Accept"] = accept

        kwargs = {}
        if timeout is not None:
            kwargs["timeout"] = timeout

        logger.debug(
            f"[Client] POST {self.build_url} ({len(payload)} bytes, signature {signature[:15]}...)"
        )
        try:
            return self.client.build_request("POST", self.build_url, content=payload, headers=headers, **kwargs)
        except httpx.InvalidURL as e:
            raise SigningOrTransportError(f"invalid builder url '{self.url}': {e}") from e

    def _decode(self, content: bytes) -> BuildResult:
        if not content:
            return BuildResult()
        try:
            return BuildResult.model_validate_json(content)
        except ValidationError as e:
            raise ResultDecodeError(f"unable to decode build result: {safe_snippet(content)}") from e

    def _status_error(self, status_code: int, content: bytes) -> UnexpectedStatusError:
        result, body = self._decode_best_effort(content)
        status = result.status if result is not None else ""
        return UnexpectedStatusError(
            f"failed to build function, builder responded with status code {status_code}, build status: {status}",
            status_code=status_code,
            body=body,
            result=result,
        )

    def _decode_best_effort(self, content: bytes) -> Tuple[Optional[BuildResult], str]:
        body = safe_snippet(content)
        try:
            return self._decode(content), body
        except ResultDecodeError:
            logger.debug(f"[Client] Error body is not a build result: {body[:200]}")
            return None, body

    def close(self):
        if self._owns_client:
            self.client.close()

    def __enter__(self) -> "FunctionBuilder":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
