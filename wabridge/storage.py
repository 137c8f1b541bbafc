import logging
from datetime import datetime, timezone
from typing import Generator, Optional, Tuple

from sqlalchemy import create_engine, func, inspect, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from wabridge.config import settings

logger = logging.getLogger(__name__)

# check_same_thread=False is required for SQLite to work with FastAPI's threadpool
connect_args = {"check_same_thread": False} if settings.DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(
    settings.DATABASE_URL,
    connect_args=connect_args,
    echo=False,
)

# Create SessionLocal class for creating database sessions
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for SQLAlchemy models
Base = declarative_base()

REQUIRED_TABLES = ("rooms", "messages")


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def init_db() -> None:
    """
    Initialize the database by creating all tables.
    Called during application startup.
    """
    logger.debug(f"Initializing database with URL: {settings.DATABASE_URL}")
    try:
        # Import models to register them with Base.metadata
        from wabridge import models  # noqa: F401

        Base.metadata.create_all(bind=engine)
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise


def get_db() -> Generator[Session, None, None]:
    """
    Dependency to get database session.
    Yields a session and ensures it's closed after use.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def check_db_health() -> bool:
    """
    Check if the database is reachable and schema is applied.

    Returns:
        True if DB is healthy and the rooms/messages tables exist, False otherwise.
    """
    try:
        with SessionLocal() as db:
            db.execute(text("SELECT 1"))
        tables = set(inspect(engine).get_table_names())
        missing = [name for name in REQUIRED_TABLES if name not in tables]
        if missing:
            logger.error(f"Database schema not applied: missing tables {missing}")
            return False
        return True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return False


# =============================================================================
# Room Repository Functions
# =============================================================================

def get_room(db: Session, channel: str, chat_id: str):
    from wabridge.models import Room

    return db.query(Room).filter(Room.channel == channel, Room.chat_id == chat_id).first()


def create_room(
    db: Session,
    channel: str,
    chat_id: str,
    name: str,
    avatar: str,
    username: Optional[str] = None,
    phone: Optional[str] = None,
    status_state: str = "offline",
    status_last_changed: int = 0,
) -> Tuple[object, bool]:
    """
    Insert a room, resolving a (channel, chat_id) conflict to the existing row.

    Must be the first write of the current transaction: a conflict rolls the
    transaction back before the winning row is loaded.

    Returns:
        Tuple of (room, created)
    """
    from wabridge.models import Room

    room = Room(
        channel=channel,
        chat_id=chat_id,
        name=name,
        avatar=avatar,
        username=username,
        phone=phone,
        status_state=status_state,
        status_last_changed=status_last_changed,
        unread_count=0,
        last_activity=0,
        created_at=utc_now_iso(),
    )
    db.add(room)
    try:
        db.flush()
        logger.info(f"Room created: channel={channel}, chat_id={chat_id}")
        return room, True
    except IntegrityError:
        db.rollback()
        logger.info(f"Room already exists: channel={channel}, chat_id={chat_id}")
        return get_room(db, channel, chat_id), False


def get_rooms(db: Session, channel: str, limit: int = 50, offset: int = 0) -> Tuple[list, int]:
    """Rooms of a channel, most recent activity first."""
    from wabridge.models import Room

    query = db.query(Room).filter(Room.channel == channel)
    total = query.count()
    rooms = query.order_by(Room.last_activity.desc(), Room.id.desc()).offset(offset).limit(limit).all()
    return rooms, total


# =============================================================================
# Message Repository Functions
# =============================================================================

def get_message_by_messenger_id(db: Session, channel: str, messenger_id: str):
    """
    Retrieve a message by its provider id.

    Returns:
        Message object if found, None otherwise
    """
    from wabridge.models import Message

    result = (
        db.query(Message)
        .filter(Message.channel == channel, Message.messenger_id == messenger_id)
        .first()
    )
    logger.debug(f"Message lookup {messenger_id}: {'found' if result else 'not found'}")
    return result


def insert_message(db: Session, message) -> Tuple[object, bool]:
    """
    Insert a message (idempotent on channel + messenger_id).

    A uniqueness conflict rolls back the current transaction and returns the
    row that won.

    Returns:
        Tuple of (message, is_duplicate)
    """
    db.add(message)
    try:
        db.flush()
        logger.info(f"Message created: {message.messenger_id}")
        return message, False
    except IntegrityError:
        db.rollback()
        logger.info(f"Duplicate message detected: {message.messenger_id}")
        return get_message_by_messenger_id(db, message.channel, message.messenger_id), True


def get_messages(
    db: Session,
    channel: str,
    limit: int = 50,
    offset: int = 0,
    chat_id: Optional[str] = None,
    since: Optional[int] = None,
    q: Optional[str] = None,
) -> Tuple[list, int]:
    """
    Retrieve messages with pagination and filtering.

    Args:
        db: Database session
        channel: Channel the messages belong to
        limit: Maximum number of messages to return (1-100)
        offset: Number of messages to skip
        chat_id: Filter by room chat id (exact match)
        since: Filter messages with timestamp >= since (unix seconds)
        q: Free-text search in message content (case-insensitive)

    Returns:
        Tuple of (messages list, total count matching filters)
    """
    from wabridge.models import Message

    query = db.query(Message).filter(Message.channel == channel)

    if chat_id:
        query = query.filter(Message.chat_id == chat_id)

    if since is not None:
        query = query.filter(Message.timestamp >= since)

    if q:
        query = query.filter(Message.content.ilike(f"%{q}%"))

    total = query.count()

    # Deterministic ordering: provider timestamp, then insertion order
    query = query.order_by(Message.timestamp.asc(), Message.id.asc())

    messages = query.offset(offset).limit(limit).all()
    logger.info(f"Retrieved {len(messages)} of {total} total messages")

    return messages, total


def get_stats(db: Session, channel: str) -> dict:
    """
    Get room and delivery statistics for the /stats endpoint.

    Returns:
        Dictionary with stats data
    """
    from wabridge.models import Message, Room

    rooms = db.query(Room).filter(Room.channel == channel)
    messages = db.query(Message).filter(Message.channel == channel)

    total_rooms = rooms.count()
    unread_total = db.query(func.coalesce(func.sum(Room.unread_count), 0)).filter(Room.channel == channel).scalar()
    total_messages = messages.count()
    inbound = messages.filter(Message.from_me.is_(False)).count()

    first_ts = db.query(func.min(Message.timestamp)).filter(Message.channel == channel).scalar()
    last_ts = db.query(func.max(Message.timestamp)).filter(Message.channel == channel).scalar()

    stats = {
        "total_rooms": total_rooms,
        "total_messages": total_messages,
        "inbound_messages": inbound,
        "outbound_messages": total_messages - inbound,
        "unread_total": int(unread_total or 0),
        "saved": messages.filter(Message.saved.is_(True)).count(),
        "distributed": messages.filter(Message.distributed.is_(True)).count(),
        "seen": messages.filter(Message.seen.is_(True)).count(),
        "failed": messages.filter(Message.failure.isnot(None)).count(),
        "first_message_ts": first_ts,
        "last_message_ts": last_ts,
    }
    logger.info(f"Stats computed: {total_messages} messages in {total_rooms} rooms")
    return stats
