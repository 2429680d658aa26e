import logging
from dataclasses import asdict, dataclass, field
from typing import Dict, List

from sqlalchemy.orm import Session

from . import store
from .store import QueuedComment
from .youtube import ClientError, YouTubeClient


log = logging.getLogger(__name__)


@dataclass
class UserComments:
    user_id: str
    comments: List[str] = field(default_factory=list)


@dataclass
class DispatchTask:
    channel_id: str
    video_id: str
    batches: List[UserComments] = field(default_factory=list)


@dataclass
class PollReport:
    status: str = "complete"
    channels: int = 0
    tasks: int = 0
    posted: int = 0
    failed: int = 0

    def as_dict(self) -> dict:
        return asdict(self)


class PollAborted(Exception):
    def __init__(self, reason: str, report: PollReport) -> None:
        super().__init__(reason)
        self.reason = reason
        self.report = report


def group_by_user(rows: List[QueuedComment]) -> List[UserComments]:
    """Users keep the position of their first comment; each user's comments keep their order."""
    batches: List[UserComments] = []
    index: Dict[str, UserComments] = {}
    for row in rows:
        batch = index.get(row.user_id)
        if batch is None:
            batch = index[row.user_id] = UserComments(user_id=row.user_id)
            batches.append(batch)
        batch.comments.append(row.comment)
    return batches


class PollJob:
    """Detects new uploads on tracked channels and posts the comments queued for them.

    Runs strictly in order and stops at the first unrecoverable failure. The
    watermark of a channel is stored before its queue is drained, so a failure
    after that point drops the drained comments instead of reposting later.
    """

    def __init__(self, db: Session, client: YouTubeClient, *, continue_on_post_error: bool = False) -> None:
        self._db = db
        self._client = client
        self._continue_on_post_error = continue_on_post_error
        self._report = PollReport()
        self._access_tokens: Dict[str, str] = {}

    def _abort(self, reason: str) -> PollAborted:
        log.error("Poll aborted: %s", reason)
        self._report.status = "aborted"
        return PollAborted(reason, self._report)

    def collect_tasks(self) -> List[DispatchTask]:
        tasks: List[DispatchTask] = []
        channels = store.list_channels(self._db)
        log.info("Polling %s tracked channels", len(channels))
        for channel in channels:
            channel_id, watermark = channel.id, channel.latest
            try:
                video_id = self._client.get_latest_video_id(channel_id)
            except ClientError as e:
                raise self._abort(f"failed to fetch latest video of channel {channel_id}: {e}") from e
            self._report.channels += 1

            if video_id == watermark:
                continue
            log.info("Channel %s: new latest video %r (was %r)", channel_id, video_id, watermark)
            tasks.append(DispatchTask(channel_id=channel_id, video_id=video_id))
            store.update_latest(self._db, channel_id=channel_id, latest=video_id)

        for task in tasks:
            task.batches = group_by_user(store.drain_comments(self._db, task.channel_id))
            log.info(
                "Task for channel %s video %s: %s",
                task.channel_id, task.video_id,
                {b.user_id: len(b.comments) for b in task.batches},
            )
        self._report.tasks = len(tasks)
        return tasks

    def _access_token_for(self, user_id: str) -> str:
        token = self._access_tokens.get(user_id)
        if token is not None:
            return token
        refresh_token = store.get_refresh_token(self._db, user_id)
        if not refresh_token:
            raise self._abort(f"no refresh token stored for user {user_id}")
        try:
            token = self._client.refresh_access_token(refresh_token)
        except ClientError as e:
            raise self._abort(f"failed to refresh access token of user {user_id}: {e}") from e
        self._access_tokens[user_id] = token
        return token

    def dispatch(self, tasks: List[DispatchTask]) -> None:
        for task in tasks:
            for batch in task.batches:
                access_token = self._access_token_for(batch.user_id)
                for text in batch.comments:
                    try:
                        self._client.post_comment(
                            access_token,
                            channel_id=task.channel_id,
                            video_id=task.video_id,
                            text=text,
                        )
                    except ClientError as e:
                        if not self._continue_on_post_error:
                            raise self._abort(
                                f"failed to post comment for user {batch.user_id} on video {task.video_id}: {e}"
                            ) from e
                        log.error("Failed to post comment for user %s on video %s: %s", batch.user_id, task.video_id, e)
                        self._report.failed += 1
                        continue
                    log.info("Comment %r posted on channel %s, video %s", text, task.channel_id, task.video_id)
                    self._report.posted += 1

    def run(self) -> PollReport:
        self.dispatch(self.collect_tasks())
        log.info("Poll complete: %s", self._report.as_dict())
        return self._report
