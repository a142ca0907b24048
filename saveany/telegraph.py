"""A small client for the Telegraph page API."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, BinaryIO, Union
from urllib.parse import urlsplit

import requests

API_URL = "https://api.telegra.ph/"


class TelegraphError(Exception):
    """Raised when a Telegraph request fails."""


@dataclass
class NodeElement:
    """A DOM element node of a Telegraph page."""

    tag: str
    attrs: dict[str, str] = field(default_factory=dict)
    children: list[Node] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> NodeElement:
        return cls(
            tag=data.get("tag", ""),
            attrs=dict(data.get("attrs") or {}),
            children=[_parse_node(child) for child in data.get("children") or []],
        )


Node = Union[str, NodeElement]


def _parse_node(raw: Any) -> Node:
    if isinstance(raw, dict):
        return NodeElement.from_dict(raw)
    return str(raw)


@dataclass
class Page:
    """A page on Telegraph."""

    path: str
    url: str
    title: str
    description: str
    author_name: str = ""
    author_url: str = ""
    image_url: str = ""
    content: list[Node] = field(default_factory=list)
    views: int = 0
    can_edit: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Page:
        return cls(
            path=data.get("path", ""),
            url=data.get("url", ""),
            title=data.get("title", ""),
            description=data.get("description", ""),
            author_name=data.get("author_name", ""),
            author_url=data.get("author_url", ""),
            image_url=data.get("image_url", ""),
            content=[_parse_node(node) for node in data.get("content") or []],
            views=int(data.get("views", 0)),
            can_edit=bool(data.get("can_edit", False)),
        )


class TelegraphClient:
    """Fetches Telegraph pages and downloads the files they reference."""

    def __init__(
        self,
        proxy_url: str | None = None,
        session: requests.Session | None = None,
        timeout: float | None = None,
    ) -> None:
        self.session = session or requests.Session()
        self.timeout = timeout
        if proxy_url:
            urlsplit(proxy_url)  # raises ValueError on a malformed URL
            self.session.proxies = {"http": proxy_url, "https": proxy_url}

    def invoke_request(self, method: str, params: dict[str, str]) -> Any:
        """Call an API method and return its decoded result."""
        try:
            with self.session.post(API_URL + method, data=params, timeout=self.timeout) as response:
                try:
                    body = response.json()
                except ValueError as err:
                    raise TelegraphError(f"failed to parse response from {method}: {err}") from err
        except requests.RequestException as err:
            raise TelegraphError(f"failed to execute POST request to {method}: {err}") from err
        if not isinstance(body, dict):
            raise TelegraphError(f"failed to parse response from {method}: not an object")
        if not body.get("ok"):
            raise TelegraphError(f"failed to {method}: {body.get('error', '')}")
        return body.get("result")

    def get_page(self, path: str) -> Page:
        """Fetch a page, including its content."""
        result = self.invoke_request("getPage", {"path": path, "return_content": "true"})
        if not isinstance(result, dict):
            raise TelegraphError("failed to parse getPage result")
        return Page.from_dict(result)

    def download(self, url: str) -> BinaryIO:
        """Start downloading url and return a readable body; the caller closes it."""
        try:
            response = self.session.get(url, stream=True, timeout=self.timeout)
        except requests.RequestException as err:
            raise TelegraphError(f"failed to download file from {url}: {err}") from err
        if response.status_code != 200:
            response.close()
            raise TelegraphError(
                f"failed to download file from {url}: {response.status_code} {response.reason}"
            )
        response.raw.decode_content = True
        return response.raw