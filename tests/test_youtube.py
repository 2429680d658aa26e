import io
import json
import urllib.error
from urllib.parse import parse_qs, urlparse

import pytest

from autocomment import youtube
from autocomment.youtube import TokenSet, UpstreamError, YouTubeClient


class _Response(io.BytesIO):
    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


class FakeUrlopen:
    """Replaces urllib.request.urlopen; answers are queued JSON payloads or exceptions."""

    def __init__(self) -> None:
        self.requests = []
        self.answers = []

    def __call__(self, req, timeout=None):
        self.requests.append(req)
        answer = self.answers.pop(0)
        if isinstance(answer, Exception):
            raise answer
        return _Response(json.dumps(answer).encode("utf-8"))


@pytest.fixture
def urlopen(monkeypatch):
    fake = FakeUrlopen()
    monkeypatch.setattr(youtube.urllib.request, "urlopen", fake)
    return fake


@pytest.fixture
def client():
    return YouTubeClient(
        client_id="cid",
        client_secret="secret",
        redirect_uri="http://localhost/",
        api_key="key",
        timeout=5,
    )


def _query(req):
    return parse_qs(urlparse(req.full_url).query)


def _form(req):
    return parse_qs(req.data.decode("utf-8"))


def test_exchange_code(client, urlopen):
    urlopen.answers.append({"access_token": "a", "refresh_token": "r"})

    assert client.exchange_code("the-code") == TokenSet("a", "r")
    req = urlopen.requests[0]
    assert req.full_url == youtube.TOKEN_URL
    assert _form(req) == {
        "code": ["the-code"],
        "client_id": ["cid"],
        "client_secret": ["secret"],
        "redirect_uri": ["http://localhost/"],
        "grant_type": ["authorization_code"],
    }


def test_exchange_code_without_refresh_token(client, urlopen):
    urlopen.answers.append({"access_token": "a"})

    assert client.exchange_code("c").refresh_token is None


def test_refresh_access_token(client, urlopen):
    urlopen.answers.append({"access_token": "fresh", "expires_in": 3599})

    assert client.refresh_access_token("r") == "fresh"
    form = _form(urlopen.requests[0])
    assert form["grant_type"] == ["refresh_token"]
    assert form["refresh_token"] == ["r"]


def test_get_my_channel_sends_bearer_token(client, urlopen):
    urlopen.answers.append({"items": [{"id": "UCme", "snippet": {"title": "Me"}}]})

    me = client.get_my_channel("tok")

    req = urlopen.requests[0]
    assert (me.id, me.title) == ("UCme", "Me")
    assert req.get_header("Authorization") == "Bearer tok"
    assert _query(req) == {"part": ["id", "snippet"], "mine": ["true"], "key": ["key"]}


def test_get_my_channel_without_items_fails(client, urlopen):
    urlopen.answers.append({"pageInfo": {"totalResults": 0}, "items": []})

    with pytest.raises(UpstreamError):
        client.get_my_channel("tok")


def test_find_channel_id_encodes_handle(client, urlopen):
    urlopen.answers.append({"pageInfo": {"totalResults": 1}, "items": [{"id": "UCx"}]})

    assert client.find_channel_id("@a b&c") == "UCx"
    assert _query(urlopen.requests[0])["forHandle"] == ["@a b&c"]


def test_find_channel_id_unknown_handle(client, urlopen):
    urlopen.answers.append({"pageInfo": {"totalResults": 0}})

    assert client.find_channel_id("@nobody") is None


def test_get_latest_video_id(client, urlopen):
    urlopen.answers.append({"items": [{"id": {"kind": "youtube#video", "videoId": "v9"}}]})

    assert client.get_latest_video_id("UCx") == "v9"
    query = _query(urlopen.requests[0])
    assert query["channelId"] == ["UCx"]
    assert query["type"] == ["video"]
    assert query["order"] == ["date"]
    assert query["maxResults"] == ["1"]


def test_get_latest_video_id_for_empty_channel(client, urlopen):
    urlopen.answers.append({"pageInfo": {"totalResults": 0}, "items": []})

    assert client.get_latest_video_id("UCx") == ""


def test_post_comment_body(client, urlopen):
    urlopen.answers.append({"id": "thread"})

    client.post_comment("tok", channel_id="UCx", video_id="v1", text="first!")

    req = urlopen.requests[0]
    assert req.get_method() == "POST"
    assert req.get_header("Authorization") == "Bearer tok"
    assert json.loads(req.data) == {
        "snippet": {
            "channelId": "UCx",
            "videoId": "v1",
            "topLevelComment": {"snippet": {"textOriginal": "first!"}},
        },
    }


def test_http_error_becomes_upstream_error(client, urlopen):
    urlopen.answers.append(urllib.error.HTTPError(
        youtube.TOKEN_URL, 400, "Bad Request", {}, io.BytesIO(b'{"error": "invalid_grant"}'),
    ))

    with pytest.raises(UpstreamError) as excinfo:
        client.refresh_access_token("revoked")

    assert excinfo.value.status == 400
    assert "invalid_grant" in excinfo.value.body


def test_network_error_becomes_upstream_error(client, urlopen):
    urlopen.answers.append(urllib.error.URLError("connection refused"))

    with pytest.raises(UpstreamError) as excinfo:
        client.get_latest_video_id("UCx")

    assert excinfo.value.status is None


def test_malformed_my_channel_item_becomes_upstream_error(client, urlopen):
    urlopen.answers.append({"items": [{"id": "UCme"}]})

    with pytest.raises(UpstreamError, match="snippet.title"):
        client.get_my_channel("tok")


def test_malformed_search_item_becomes_upstream_error(client, urlopen):
    urlopen.answers.append({"items": [{"id": {"kind": "youtube#channel"}}]})

    with pytest.raises(UpstreamError):
        client.get_latest_video_id("UCx")
