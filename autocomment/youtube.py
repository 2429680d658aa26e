from __future__ import annotations

import json
import logging
import urllib.error
import urllib.request
from typing import Any, Dict, List, NamedTuple, Optional, Tuple
from urllib.parse import urlencode

log = logging.getLogger(__name__)

TOKEN_URL = "https://oauth2.googleapis.com/token"
API_BASE = "https://youtube.googleapis.com/youtube/v3"
USER_AGENT = "AutoComment/1.0"


class ClientError(Exception):
    pass


class UpstreamError(ClientError):
    def __init__(self, url: str, status: Optional[int], body: str) -> None:
        self.url = url
        self.status = status
        self.body = body
        super().__init__(f"Upstream HTTP {status} for {url}: {body}")


def _pluck(url: str, item: Any, *keys: str) -> str:
    value = item
    try:
        for key in keys:
            value = value[key]
    except (KeyError, TypeError) as e:
        raise UpstreamError(url, None, f"missing {'.'.join(keys)} in response item: {item}") from e
    return str(value)


class TokenSet(NamedTuple):
    access_token: str
    refresh_token: Optional[str]


class ChannelIdentity(NamedTuple):
    id: str
    title: str


class YouTubeClient:
    """Blocking calls to Google OAuth and the YouTube Data API v3."""

    def __init__(
        self,
        *,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        api_key: str,
        timeout: float = 20,
    ) -> None:
        self._client_id = client_id
        self._client_secret = client_secret
        self._redirect_uri = redirect_uri
        self._api_key = api_key
        self._timeout = timeout

    def _request(
        self,
        url: str,
        *,
        data: Optional[bytes] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        req = urllib.request.Request(url, data=data, headers={
            "Accept": "application/json",
            "User-Agent": USER_AGENT,
            **(headers or {}),
        })
        try:
            with urllib.request.urlopen(req, timeout=self._timeout) as resp:
                raw = resp.read()
        except urllib.error.HTTPError as e:
            body = e.read().decode("utf-8", errors="replace")
            raise UpstreamError(url, e.code, body) from e
        except urllib.error.URLError as e:
            raise UpstreamError(url, None, str(e.reason)) from e
        try:
            return json.loads(raw.decode("utf-8")) if raw else {}
        except ValueError as e:
            raise UpstreamError(url, None, f"invalid JSON: {e}") from e

    def _api_url(self, resource: str, params: List[Tuple[str, str]]) -> str:
        return f"{API_BASE}/{resource}?{urlencode(params + [('key', self._api_key)])}"

    def _token_request(self, fields: Dict[str, str]) -> Dict[str, Any]:
        return self._request(
            TOKEN_URL,
            data=urlencode(fields).encode("utf-8"),
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )

    def exchange_code(self, code: str) -> TokenSet:
        data = self._token_request({
            "code": code,
            "client_id": self._client_id,
            "client_secret": self._client_secret,
            "redirect_uri": self._redirect_uri,
            "grant_type": "authorization_code",
        })
        if not data.get("access_token"):
            raise UpstreamError(TOKEN_URL, None, f"no access_token in response: {data}")
        return TokenSet(access_token=data["access_token"], refresh_token=data.get("refresh_token"))

    def refresh_access_token(self, refresh_token: str) -> str:
        data = self._token_request({
            "client_id": self._client_id,
            "client_secret": self._client_secret,
            "refresh_token": refresh_token,
            "grant_type": "refresh_token",
        })
        if not data.get("access_token"):
            raise UpstreamError(TOKEN_URL, None, f"no access_token in response: {data}")
        return data["access_token"]

    def get_my_channel(self, access_token: str) -> ChannelIdentity:
        url = self._api_url("channels", [("part", "id"), ("part", "snippet"), ("mine", "true")])
        data = self._request(url, headers={"Authorization": f"Bearer {access_token}"})
        items = data.get("items") or []
        if not items:
            raise UpstreamError(url, None, "no channel for the authorized account")
        return ChannelIdentity(id=_pluck(url, items[0], "id"), title=_pluck(url, items[0], "snippet", "title"))

    def find_channel_id(self, handle: str) -> Optional[str]:
        """Channel id for a handle, or None when the platform knows no such handle."""
        url = self._api_url("channels", [("part", "id"), ("forHandle", handle)])
        data = self._request(url)
        items = data.get("items") or []
        if not items:
            return None
        return _pluck(url, items[0], "id")

    def get_latest_video_id(self, channel_id: str) -> str:
        """Most recently published video id, or "" for a channel without videos."""
        url = self._api_url("search", [
            ("part", "snippet"),
            ("channelId", channel_id),
            ("type", "video"),
            ("maxResults", "1"),
            ("order", "date"),
        ])
        data = self._request(url)
        items = data.get("items") or []
        if not items:
            return ""
        return _pluck(url, items[0], "id", "videoId")

    def post_comment(self, access_token: str, *, channel_id: str, video_id: str, text: str) -> Dict[str, Any]:
        body = {
            "snippet": {
                "channelId": channel_id,
                "videoId": video_id,
                "topLevelComment": {"snippet": {"textOriginal": text}},
            },
        }
        return self._request(
            f"{API_BASE}/commentThreads?{urlencode({'part': 'snippet'})}",
            data=json.dumps(body).encode("utf-8"),
            headers={
                "Authorization": f"Bearer {access_token}",
                "Content-Type": "application/json",
            },
        )
