from urllib.parse import parse_qs

import pytest
import requests
import responses

from saveany.telegraph import API_URL, NodeElement, Page, TelegraphClient, TelegraphError

PAGE_RESULT = {
    "path": "Sample-Page-12-15",
    "url": "https://pages.example.com/Sample-Page-12-15",
    "title": "Sample Page",
    "description": "",
    "content": [
        {
            "tag": "p",
            "children": ["Hello", {"tag": "img", "attrs": {"src": "/file/abc.jpg"}}],
        }
    ],
    "views": 7,
}


@pytest.fixture
def mocked():
    with responses.RequestsMock(assert_all_requests_are_fired=False) as rsps:
        yield rsps


def test_invoke_request_returns_result(mocked):
    mocked.add(responses.POST, API_URL + "getViews", json={"ok": True, "result": {"views": 3}})
    client = TelegraphClient()
    assert client.invoke_request("getViews", {"path": "p"}) == {"views": 3}
    assert parse_qs(mocked.calls[0].request.body) == {"path": ["p"]}


def test_invoke_request_not_ok(mocked):
    mocked.add(responses.POST, API_URL + "getPage", json={"ok": False, "error": "PAGE_NOT_FOUND"})
    client = TelegraphClient()
    with pytest.raises(TelegraphError, match="failed to getPage: PAGE_NOT_FOUND"):
        client.invoke_request("getPage", {"path": "missing"})


def test_invoke_request_bad_json(mocked):
    mocked.add(responses.POST, API_URL + "getPage", body="<html>")
    client = TelegraphClient()
    with pytest.raises(TelegraphError, match="failed to parse response from getPage"):
        client.invoke_request("getPage", {})


def test_invoke_request_connection_error(mocked):
    mocked.add(responses.POST, API_URL + "getPage", body=requests.ConnectionError("down"))
    client = TelegraphClient()
    with pytest.raises(TelegraphError, match="failed to execute POST request to getPage"):
        client.invoke_request("getPage", {})


def test_get_page_parses_content(mocked):
    mocked.add(responses.POST, API_URL + "getPage", json={"ok": True, "result": PAGE_RESULT})
    client = TelegraphClient()
    page = client.get_page("Sample-Page-12-15")
    assert page.title == "Sample Page"
    assert page.views == 7
    paragraph = page.content[0]
    assert paragraph.tag == "p"
    assert paragraph.children[0] == "Hello"
    assert paragraph.children[1] == NodeElement(tag="img", attrs={"src": "/file/abc.jpg"})
    sent = parse_qs(mocked.calls[0].request.body)
    assert sent == {"path": ["Sample-Page-12-15"], "return_content": ["true"]}


def test_page_from_dict_defaults():
    page = Page.from_dict({"path": "p", "url": "u", "title": "t", "description": "d"})
    assert page.content == []
    assert page.can_edit is False
    assert page.author_name == ""


def test_download_returns_body(mocked):
    url = "https://files.example.com/file/abc.jpg"
    mocked.add(responses.GET, url, body=b"\xff\xd8image")
    client = TelegraphClient()
    with client.download(url) as body:
        assert body.read() == b"\xff\xd8image"


def test_download_error_status(mocked):
    url = "https://files.example.com/file/missing.jpg"
    mocked.add(responses.GET, url, status=404)
    client = TelegraphClient()
    with pytest.raises(TelegraphError, match="missing.jpg"):
        client.download(url)


def test_proxy_is_applied_to_session():
    proxy = "http://proxy.example.com:8080"
    client = TelegraphClient(proxy_url=proxy)
    assert client.session.proxies == {"http": proxy, "https": proxy}


def test_malformed_proxy_raises():
    with pytest.raises(ValueError):
        TelegraphClient(proxy_url="http://[::1")