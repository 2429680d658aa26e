import logging
from typing import List, NamedTuple, Optional

from sqlalchemy import asc, delete, select
from sqlalchemy.orm import Session

from .models import Channel, Comment, User


log = logging.getLogger(__name__)


class QueuedComment(NamedTuple):
    user_id: str
    comment: str


def upsert_user(db: Session, *, user_id: str, username: str, refresh_token: str) -> User:
    """Insert the user or replace its username and refresh token."""
    user = db.get(User, user_id)
    if user is None:
        log.info("Adding user %s (%s)", user_id, username)
        user = User(id=user_id, username=username, refresh_token=refresh_token)
        db.add(user)
    else:
        log.info("Updating user %s (%s)", user_id, username)
        user.username = username
        user.refresh_token = refresh_token
    db.commit()
    return user


def get_user(db: Session, user_id: str) -> Optional[User]:
    return db.get(User, user_id)


def get_refresh_token(db: Session, user_id: str) -> Optional[str]:
    return db.execute(
        select(User.refresh_token).where(User.id == user_id)
    ).scalar_one_or_none()


def add_channel_if_absent(db: Session, *, channel_id: str, handle: str, latest: str) -> bool:
    """Returns True when a new channel row was written."""
    if db.get(Channel, channel_id) is not None:
        return False
    log.info("Tracking channel %s (%s), latest video %r", channel_id, handle, latest)
    db.add(Channel(id=channel_id, handle=handle, latest=latest))
    db.commit()
    return True


def add_comment(db: Session, *, comment: str, user_id: str, channel_id: str) -> Comment:
    c = Comment(comment=comment, user_id=user_id, channel_id=channel_id)
    db.add(c)
    db.commit()
    db.refresh(c)
    return c


def list_channels(db: Session) -> List[Channel]:
    return db.execute(select(Channel).order_by(asc(Channel.id))).scalars().all()


def update_latest(db: Session, *, channel_id: str, latest: str) -> None:
    log.info("Updating latest video of channel %s to %r", channel_id, latest)
    channel = db.get(Channel, channel_id)
    channel.latest = latest
    db.commit()


def drain_comments(db: Session, channel_id: str) -> List[QueuedComment]:
    """Delete every queued comment for the channel and return them in insertion order."""
    rows = db.execute(
        select(Comment.id, Comment.user_id, Comment.comment)
        .where(Comment.channel_id == channel_id)
        .order_by(asc(Comment.id))
    ).all()
    if rows:
        db.execute(delete(Comment).where(Comment.id.in_([r.id for r in rows])))
    db.commit()
    return [QueuedComment(user_id=r.user_id, comment=r.comment) for r in rows]
