from sqlalchemy import Column, ForeignKey, Integer, String, Text
from .db import Base

class User(Base):
    __tablename__ = "users"
    id = Column(String(64), primary_key=True)  # platform channel id of the signed-in user
    username = Column(String(255), nullable=True)
    refresh_token = Column(Text, nullable=True)


class Channel(Base):
    __tablename__ = "channels"
    id = Column(String(64), primary_key=True)
    handle = Column(String(255), nullable=False)  # as typed by the first subscriber
    latest = Column(String(64), nullable=False, default="")  # "" until a video is seen


class Comment(Base):
    __tablename__ = "comments"
    id = Column(Integer, primary_key=True, autoincrement=True)
    comment = Column(Text, nullable=False)
    user_id = Column(String(64), ForeignKey("users.id"), index=True, nullable=False)
    channel_id = Column(String(64), ForeignKey("channels.id"), index=True, nullable=False)
