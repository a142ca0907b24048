"""Storage on an Alist server."""

from __future__ import annotations

import functools
import threading
from typing import Any, BinaryIO
from urllib.parse import quote

import requests

from saveany.enums import StorageType
from saveany.storage_base import Storage, StorageError, _join_posix

_DEFAULT_TIMEOUT = 12 * 60 * 60
_TLS_HANDSHAKE_TIMEOUT = 10
_ME_TIMEOUT = 60
_DEFAULT_TOKEN_EXP = 3600
# Characters a single path segment keeps unescaped in the File-Path header.
_SEGMENT_SAFE = "$&+:=@"


class AlistLoginError(StorageError):
    """Raised when logging in to Alist or checking its token fails."""


@functools.lru_cache(maxsize=None)
def _shared_session() -> requests.Session:
    return requests.Session()


def _decode(response: requests.Response) -> dict[str, Any]:
    body = response.json()
    if not isinstance(body, dict):
        raise ValueError("response is not a JSON object")
    return body


class AlistStorage(Storage):
    """Saves files to an Alist server, authenticating with a token or a login."""

    storage_type = StorageType.ALIST

    def __init__(
        self,
        name: str,
        url: str,
        username: str = "",
        password: str | None = None,
        token: str = "",
        base_path: str = "",
        token_exp: float = _DEFAULT_TOKEN_EXP,
        auto_refresh: bool = True,
        session: requests.Session | None = None,
        timeout: float = _DEFAULT_TIMEOUT,
    ) -> None:
        super().__init__(name)
        if not url:
            raise StorageError("alist url is required")
        self.base_url = url
        self.base_path = base_path
        self.token_exp = token_exp
        self.timeout = timeout
        self._session = session or _shared_session()
        self._login_info: dict[str, str] | None = None
        self.token = ""

        if token:
            self.token = token
            self._verify_token()
            return

        self._login_info = {"username": username, "password": password or ""}
        self.login()
        self.logger.debug("Logged in to Alist")
        if auto_refresh:
            self.start_token_refresh()

    @property
    def _timeouts(self) -> tuple[float, float]:
        return (_TLS_HANDSHAKE_TIMEOUT, self.timeout)

    def _verify_token(self) -> None:
        try:
            with self._session.get(
                self.base_url + "/api/me",
                headers={"Authorization": self.token},
                timeout=_ME_TIMEOUT,
            ) as response:
                if response.status_code != 200:
                    raise AlistLoginError(
                        f"failed to get alist user info: {response.status_code} {response.reason}"
                    )
                body = _decode(response)
        except requests.RequestException as err:
            raise AlistLoginError(f"failed to send request: {err}") from err
        except ValueError as err:
            raise AlistLoginError(f"failed to unmarshal me response: {err}") from err
        if body.get("code") != 200:
            raise AlistLoginError(f"failed to get alist user info: {body.get('message', '')}")
        username = (body.get("data") or {}).get("username", "")
        self.logger.debug("Logged in Alist as %s", username)

    def login(self) -> None:
        """Log in with the configured username and password and store the new token."""
        if self._login_info is None:
            raise AlistLoginError("failed to login to Alist: no username configured")
        try:
            with self._session.post(
                self.base_url + "/api/auth/login",
                json=self._login_info,
                timeout=self._timeouts,
            ) as response:
                body = _decode(response)
        except requests.RequestException as err:
            raise AlistLoginError(f"failed to send login request: {err}") from err
        except ValueError as err:
            raise AlistLoginError(f"failed to unmarshal login response: {err}") from err
        if body.get("code") != 200:
            raise AlistLoginError(f"failed to login to Alist: {body.get('message', '')}")
        self.token = (body.get("data") or {}).get("token", "")

    def start_token_refresh(self) -> threading.Event:
        """Log in again every token_exp seconds in the background.

        Setting the returned event stops the refreshing.
        """
        interval = self.token_exp
        if interval <= 0:
            self.logger.warning("Invalid token expiration time, using default value")
            interval = _DEFAULT_TOKEN_EXP
        stop = threading.Event()

        def refresh() -> None:
            while not stop.wait(interval):
                try:
                    self.login()
                except AlistLoginError as err:
                    self.logger.error("Failed to refresh jwt token: %s", err)
                    continue
                self.logger.info("Refreshed Alist jwt token")

        threading.Thread(target=refresh, name=f"alist-refresh[{self.name}]", daemon=True).start()
        return stop

    def join_storage_path(self, path: str) -> str:
        return _join_posix(self.base_path, path)

    def save(self, reader: BinaryIO, storage_path: str, content_length: int | None = None) -> str:
        self.logger.info("Saving file to %s", storage_path)
        candidate = self.unique_path(storage_path)
        request = requests.Request(
            "PUT",
            self.base_url + "/api/fs/put",
            data=reader,
            headers={
                "Authorization": self.token,
                "File-Path": quote(candidate, safe=_SEGMENT_SAFE),
                "Content-Type": "application/octet-stream",
            },
        )
        prepared = self._session.prepare_request(request)
        if content_length is not None:
            prepared.headers.pop("Transfer-Encoding", None)
            prepared.headers["Content-Length"] = str(content_length)
        try:
            response = self._session.send(prepared, timeout=self._timeouts)
        except requests.RequestException as err:
            raise StorageError(f"failed to send request: {err}") from err
        with response:
            if response.status_code != 200:
                raise StorageError(
                    f"failed to save file to Alist: {response.status_code} {response.reason}"
                )
            try:
                body = _decode(response)
            except ValueError as err:
                raise StorageError(f"failed to unmarshal put response: {err}") from err
        if body.get("code") != 200:
            raise StorageError(
                f"failed to save file to Alist: {body.get('code')}, {body.get('message', '')}"
            )
        return candidate

    def exists(self, storage_path: str) -> bool:
        try:
            with self._session.post(
                self.base_url + "/api/fs/get",
                json={"path": storage_path, "password": ""},
                headers={"Authorization": self.token},
                timeout=self._timeouts,
            ) as response:
                if response.status_code != 200:
                    return False
                body = _decode(response)
        except requests.RequestException as err:
            self.logger.error("Failed to send request: %s", err)
            return False
        except ValueError as err:
            self.logger.error("Failed to unmarshal fs get response: %s", err)
            return False
        if body.get("code") != 200:
            self.logger.error(
                "Failed to get file info from Alist: %s, %s", body.get("code"), body.get("message", "")
            )
            return False
        return True

    def cannot_stream(self) -> str:
        return "Alist does not support chunked transfer encoding"