"""Persistence for the subscription adapter."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Integer,
    String,
    UniqueConstraint,
    create_engine,
    delete,
    func,
    select,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .adapter import slugify

logger = logging.getLogger(__name__)

CHANNEL_PREFIX = "list-"


class Base(DeclarativeBase):
    pass


class ChannelModel(Base):
    """A user-created channel."""

    __tablename__ = "channels"
    __table_args__ = (UniqueConstraint("user_id", "uid"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, nullable=False, index=True)
    uid = Column(String, nullable=False)
    name = Column(String, nullable=False)
    position = Column(Integer, nullable=False, default=0)


class FeedModel(Base):
    """A followed feed within a channel."""

    __tablename__ = "feeds"
    __table_args__ = (UniqueConstraint("user_id", "channel_uid", "url"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, nullable=False, index=True)
    channel_uid = Column(String, nullable=False)
    url = Column(String, nullable=False)
    name = Column(String, nullable=True)
    photo = Column(String, nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))


class EntryStateModel(Base):
    """Read and removal state for a timeline entry."""

    __tablename__ = "entry_states"

    user_id = Column(String, primary_key=True)
    entry_id = Column(String, primary_key=True)
    is_read = Column(Boolean, nullable=False, default=False)
    removed = Column(Boolean, nullable=False, default=False)
    updated_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))


class MuteModel(Base):
    __tablename__ = "mutes"

    user_id = Column(String, primary_key=True)
    channel_uid = Column(String, primary_key=True)
    url = Column(String, primary_key=True)


class BlockModel(Base):
    __tablename__ = "blocks"

    user_id = Column(String, primary_key=True)
    url = Column(String, primary_key=True)


def init_engine(connection_string: Optional[str]) -> Optional[Engine]:
    """Initialize the database engine and create missing tables."""
    if not connection_string:
        return None

    logger.info("Initializing database connection: %s", connection_string)
    kwargs = {}
    if connection_string.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if ":memory:" in connection_string or connection_string == "sqlite://":
            kwargs["poolclass"] = StaticPool
    engine = create_engine(connection_string, **kwargs)
    Base.metadata.create_all(engine)
    return engine


def get_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Return a session factory for the given engine."""
    return sessionmaker(bind=engine, expire_on_commit=False)


def _commit(session: Session) -> None:
    try:
        session.commit()
    except Exception:
        session.rollback()
        raise


# Channels


def list_channels(session: Session, user_id: str) -> List[ChannelModel]:
    stmt = (
        select(ChannelModel)
        .where(ChannelModel.user_id == user_id)
        .order_by(ChannelModel.position, ChannelModel.id)
    )
    return list(session.execute(stmt).scalars().all())


def get_channel(session: Session, user_id: str, uid: str) -> Optional[ChannelModel]:
    stmt = select(ChannelModel).where(
        ChannelModel.user_id == user_id, ChannelModel.uid == uid
    )
    return session.execute(stmt).scalar_one_or_none()


def create_channel(session: Session, user_id: str, name: str) -> ChannelModel:
    """Insert a channel with a unique ``list-`` uid derived from ``name``."""
    base = CHANNEL_PREFIX + (slugify(name) or "channel")
    uid = base
    suffix = 2
    while get_channel(session, user_id, uid) is not None:
        uid = f"{base}-{suffix}"
        suffix += 1

    position = session.execute(
        select(func.coalesce(func.max(ChannelModel.position), -1)).where(
            ChannelModel.user_id == user_id
        )
    ).scalar_one()

    channel = ChannelModel(user_id=user_id, uid=uid, name=name, position=position + 1)
    session.add(channel)
    _commit(session)
    logger.info("Created channel %s for user %s", uid, user_id)
    return channel


def rename_channel(
    session: Session, user_id: str, uid: str, name: str
) -> Optional[ChannelModel]:
    channel = get_channel(session, user_id, uid)
    if channel is None:
        return None
    channel.name = name
    _commit(session)
    return channel


def delete_channel(session: Session, user_id: str, uid: str) -> bool:
    """Delete a channel and the feeds followed in it."""
    channel = get_channel(session, user_id, uid)
    if channel is None:
        return False

    session.execute(
        delete(FeedModel).where(
            FeedModel.user_id == user_id, FeedModel.channel_uid == uid
        )
    )
    session.execute(
        delete(MuteModel).where(
            MuteModel.user_id == user_id, MuteModel.channel_uid == uid
        )
    )
    session.delete(channel)
    _commit(session)
    logger.info("Deleted channel %s for user %s", uid, user_id)
    return True


def reorder_channels(
    session: Session, user_id: str, uids: Iterable[str]
) -> List[ChannelModel]:
    """Put ``uids`` first in the given order; unlisted channels follow."""
    channels = {channel.uid: channel for channel in list_channels(session, user_id)}
    ordered = [channels[uid] for uid in dict.fromkeys(uids) if uid in channels]
    ordered += [channel for uid, channel in channels.items() if channel not in ordered]

    for position, channel in enumerate(ordered):
        channel.position = position
    _commit(session)
    return ordered


# Feeds


def list_feeds(
    session: Session, user_id: str, channel_uid: Optional[str] = None
) -> List[FeedModel]:
    stmt = select(FeedModel).where(FeedModel.user_id == user_id)
    if channel_uid is not None:
        stmt = stmt.where(FeedModel.channel_uid == channel_uid)
    return list(session.execute(stmt.order_by(FeedModel.id)).scalars().all())


def is_followed(session: Session, url: str, user_id: Optional[str] = None) -> bool:
    """Return True if ``user_id`` (or any user, when omitted) follows ``url``."""
    stmt = select(FeedModel.id).where(FeedModel.url == url)
    if user_id is not None:
        stmt = stmt.where(FeedModel.user_id == user_id)
    stmt = stmt.limit(1)
    return session.execute(stmt).first() is not None


def add_feed(
    session: Session,
    user_id: str,
    channel_uid: str,
    url: str,
    name: Optional[str] = None,
    photo: Optional[str] = None,
) -> FeedModel:
    """Insert or refresh a followed feed."""
    stmt = select(FeedModel).where(
        FeedModel.user_id == user_id,
        FeedModel.channel_uid == channel_uid,
        FeedModel.url == url,
    )
    feed = session.execute(stmt).scalar_one_or_none()
    if feed is None:
        feed = FeedModel(
            user_id=user_id, channel_uid=channel_uid, url=url, name=name, photo=photo
        )
        session.add(feed)
    else:
        feed.name = name or feed.name
        feed.photo = photo or feed.photo
    _commit(session)
    return feed


def remove_feed(
    session: Session, user_id: str, url: str, channel_uid: Optional[str] = None
) -> int:
    """Remove a followed feed; returns the number of rows deleted."""
    stmt = delete(FeedModel).where(FeedModel.user_id == user_id, FeedModel.url == url)
    if channel_uid is not None:
        stmt = stmt.where(FeedModel.channel_uid == channel_uid)
    deleted = session.execute(stmt).rowcount or 0
    _commit(session)
    return deleted


# Entry state


def get_entry_states(
    session: Session, user_id: str, entry_ids: Iterable[str]
) -> Dict[str, Tuple[bool, bool]]:
    """Return ``{entry_id: (is_read, removed)}`` for known entries."""
    ids = list(entry_ids)
    if not ids:
        return {}
    stmt = select(EntryStateModel).where(
        EntryStateModel.user_id == user_id, EntryStateModel.entry_id.in_(ids)
    )
    return {
        row.entry_id: (bool(row.is_read), bool(row.removed))
        for row in session.execute(stmt).scalars().all()
    }


def _upsert_states(
    session: Session, user_id: str, entry_ids: Iterable[str], **values: bool
) -> int:
    ids = list(dict.fromkeys(entry_ids))
    if not ids:
        return 0

    stmt = select(EntryStateModel).where(
        EntryStateModel.user_id == user_id, EntryStateModel.entry_id.in_(ids)
    )
    existing = {row.entry_id: row for row in session.execute(stmt).scalars().all()}
    now = datetime.now(timezone.utc)

    for entry_id in ids:
        row = existing.get(entry_id)
        if row is None:
            row = EntryStateModel(
                user_id=user_id, entry_id=entry_id, is_read=False, removed=False
            )
            session.add(row)
        for key, value in values.items():
            setattr(row, key, value)
        row.updated_at = now

    _commit(session)
    return len(ids)


def set_read(session: Session, user_id: str, entry_ids: Iterable[str], is_read: bool) -> int:
    return _upsert_states(session, user_id, entry_ids, is_read=is_read)


def mark_removed(session: Session, user_id: str, entry_ids: Iterable[str]) -> int:
    return _upsert_states(session, user_id, entry_ids, removed=True)


# Mute and block


def list_muted(session: Session, user_id: str, channel_uid: str) -> List[str]:
    stmt = (
        select(MuteModel.url)
        .where(MuteModel.user_id == user_id, MuteModel.channel_uid == channel_uid)
        .order_by(MuteModel.url)
    )
    return list(session.execute(stmt).scalars().all())


def muted_for(session: Session, user_id: str, channel_uid: str) -> List[str]:
    """Muted URLs that apply to a channel, including global mutes."""
    stmt = select(MuteModel.url).where(
        MuteModel.user_id == user_id,
        MuteModel.channel_uid.in_([channel_uid, "global"]),
    )
    return list(session.execute(stmt).scalars().all())


def set_muted(
    session: Session, user_id: str, channel_uid: str, url: str, muted: bool
) -> None:
    existing = session.get(MuteModel, (user_id, channel_uid, url))
    if muted and existing is None:
        session.add(MuteModel(user_id=user_id, channel_uid=channel_uid, url=url))
    elif not muted and existing is not None:
        session.delete(existing)
    _commit(session)


def list_blocked(session: Session, user_id: str) -> List[str]:
    stmt = (
        select(BlockModel.url)
        .where(BlockModel.user_id == user_id)
        .order_by(BlockModel.url)
    )
    return list(session.execute(stmt).scalars().all())


def set_blocked(session: Session, user_id: str, url: str, blocked: bool) -> None:
    existing = session.get(BlockModel, (user_id, url))
    if blocked and existing is None:
        session.add(BlockModel(user_id=user_id, url=url))
    elif not blocked and existing is not None:
        session.delete(existing)
    _commit(session)
