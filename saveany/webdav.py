"""WebDAV client and storage."""

from __future__ import annotations

import posixpath
from enum import Enum
from itertools import accumulate
from typing import BinaryIO
from urllib.parse import quote, unquote, urlsplit, urlunsplit

import requests

from saveany.enums import StorageType
from saveany.storage_base import Storage, StorageError, _join_posix

_DEFAULT_TIMEOUT = 12 * 60 * 60


class WebdavError(StorageError):
    """Raised when a WebDAV request fails."""


class _Method(str, Enum):
    MKCOL = "MKCOL"
    PROPFIND = "PROPFIND"
    PUT = "PUT"


def _status(response: requests.Response) -> str:
    return f"{response.status_code} {response.reason}"


class WebdavClient:
    """A minimal WebDAV client: existence checks, directory creation and uploads."""

    def __init__(
        self,
        base_url: str,
        username: str = "",
        password: str | None = None,
        session: requests.Session | None = None,
        timeout: float | None = None,
    ) -> None:
        if not base_url.endswith("/"):
            base_url += "/"
        self.base_url = base_url
        self.username = username
        self.password = password or ""
        self.timeout = timeout
        self._session = session or requests.Session()

    def _url(self, remote_path: str) -> str:
        return self.base_url + quote(remote_path, safe="/")

    def _request(
        self,
        method: _Method,
        url: str,
        body: object = None,
        content_length: int | None = None,
    ) -> requests.Response:
        request = requests.Request(method.value, url, data=body)
        if self.username and self.password:
            request.auth = (self.username, self.password)
        if method is _Method.PROPFIND:
            request.headers["Depth"] = "1"
        prepared = self._session.prepare_request(request)
        if method is _Method.PUT and content_length is not None:
            prepared.headers.pop("Transfer-Encoding", None)
            prepared.headers["Content-Length"] = str(content_length)
        return self._session.send(prepared, timeout=self.timeout)

    def exists(self, remote_path: str) -> bool:
        """Return whether remote_path exists; raise WebdavError on unexpected replies."""
        with self._request(_Method.PROPFIND, self._url(remote_path)) as response:
            if 200 <= response.status_code < 300:
                return True
            if response.status_code == 404:
                return False
            raise WebdavError(f"PROPFIND: {_status(response)}")

    def mkdir(self, dir_path: str) -> None:
        """Create dir_path and any missing parents."""
        dir_path = dir_path.strip("/")
        if not dir_path:
            return
        for current in accumulate(dir_path.split("/"), lambda head, part: f"{head}/{part}"):
            if self.exists(current):
                continue
            with self._request(_Method.MKCOL, self._url(current)) as response:
                if not 200 <= response.status_code < 300:
                    raise WebdavError(f"MKCOL {current}: {_status(response)}")

    def write_file(
        self,
        remote_path: str,
        content: BinaryIO | bytes,
        content_length: int | None = None,
    ) -> None:
        """Upload content to remote_path, replacing any existing file."""
        parts = urlsplit(self.base_url)
        joined = _join_posix(unquote(parts.path), remote_path.strip("/"))
        url = urlunsplit(
            (parts.scheme, parts.netloc, quote(joined, safe="/"), parts.query, parts.fragment)
        )
        with self._request(_Method.PUT, url, content, content_length) as response:
            if 200 <= response.status_code < 300:
                return
            raise WebdavError(f"PUT: {_status(response)}")


class WebdavStorage(Storage):
    """Saves files to a WebDAV server."""

    storage_type = StorageType.WEBDAV
    _max_unique_attempts = 1000

    def __init__(
        self,
        name: str,
        url: str,
        username: str = "",
        password: str | None = None,
        base_path: str = "",
        timeout: float = _DEFAULT_TIMEOUT,
    ) -> None:
        super().__init__(name)
        self.base_path = base_path
        self.client = WebdavClient(url, username, password, timeout=timeout)

    def join_storage_path(self, path: str) -> str:
        return _join_posix(self.base_path, path)

    def save(self, reader: BinaryIO, storage_path: str, content_length: int | None = None) -> str:
        self.logger.info("Saving file to %s", storage_path)
        candidate = self.unique_path(storage_path)
        directory = posixpath.dirname(candidate)
        try:
            self.client.mkdir(directory)
        except (WebdavError, requests.RequestException) as err:
            self.logger.error("Failed to create directory %s: %s", directory, err)
            raise WebdavError("webdav: failed to create directory") from err
        try:
            self.client.write_file(candidate, reader, content_length)
        except (WebdavError, requests.RequestException) as err:
            self.logger.error("Failed to write file %s: %s", candidate, err)
            raise WebdavError("webdav: failed to write file") from err
        return candidate

    def exists(self, storage_path: str) -> bool:
        self.logger.debug("Checking if file exists at %s", storage_path)
        try:
            return self.client.exists(storage_path)
        except (WebdavError, requests.RequestException) as err:
            self.logger.error("Failed to check if file exists at %s: %s", storage_path, err)
            return False