from typing import Dict, List, Optional, Tuple

import pytest
from fastapi.testclient import TestClient

from autocomment import store
from autocomment.app import create_app, get_youtube
from autocomment.db import init_db, make_engine, make_sessionmaker
from autocomment.settings import Settings
from autocomment.youtube import ChannelIdentity, TokenSet, UpstreamError


class FakeYouTube:
    """In-memory stand-in for YouTubeClient that records every call."""

    def __init__(self) -> None:
        self.me = ChannelIdentity(id="UCme", title="Me")
        self.tokens = TokenSet(access_token="login-access", refresh_token="refresh-me")
        self.handles: Dict[str, str] = {}
        self.latest: Dict[str, str] = {}
        self.failing: set = set()
        self.failing_texts: set = set()
        self.codes: List[str] = []
        self.refresh_calls: List[str] = []
        self.latest_calls: List[str] = []
        self.posts: List[Tuple[str, str, str, str]] = []

    def _check(self, name: str) -> None:
        if name in self.failing:
            raise UpstreamError(f"https://fake/{name}", 500, "boom")

    def exchange_code(self, code: str) -> TokenSet:
        self._check("exchange_code")
        self.codes.append(code)
        return self.tokens

    def get_my_channel(self, access_token: str) -> ChannelIdentity:
        self._check("get_my_channel")
        return self.me

    def find_channel_id(self, handle: str) -> Optional[str]:
        self._check("find_channel_id")
        return self.handles.get(handle)

    def get_latest_video_id(self, channel_id: str) -> str:
        self._check("get_latest_video_id")
        self.latest_calls.append(channel_id)
        return self.latest.get(channel_id, "")

    def refresh_access_token(self, refresh_token: str) -> str:
        self._check("refresh_access_token")
        self.refresh_calls.append(refresh_token)
        return f"access-{refresh_token}"

    def post_comment(self, access_token: str, *, channel_id: str, video_id: str, text: str) -> dict:
        self._check("post_comment")
        if text in self.failing_texts:
            raise UpstreamError("https://fake/commentThreads", 403, "commentsDisabled")
        self.posts.append((access_token, channel_id, video_id, text))
        return {"id": f"c{len(self.posts)}"}


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        CLIENT_ID="client-id",
        CLIENT_SECRET="client-secret",
        REDIRECT_URL="http://testserver/",
        SESSION_SECRET="session-secret",
        YOUTUBE_API_KEY="api-key",
        DATABASE_URL=f"sqlite:///{tmp_path / 'test.db'}",
        ENVIRONMENT="development",
    )


@pytest.fixture
def fake_youtube() -> FakeYouTube:
    return FakeYouTube()


@pytest.fixture
def app(settings, fake_youtube):
    app = create_app(settings)
    app.dependency_overrides[get_youtube] = lambda: fake_youtube
    return app


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def app_db(app, client):
    """Session on the database the running app uses."""
    db = app.state.sessionmaker()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def db(settings):
    engine = make_engine(settings.DATABASE_URL)
    init_db(engine)
    session = make_sessionmaker(engine)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def seed_user():
    def _seed(db, user_id: str, refresh_token: Optional[str] = None) -> None:
        store.upsert_user(db, user_id=user_id, username=user_id.lower(), refresh_token=refresh_token or f"refresh-{user_id}")
    return _seed
