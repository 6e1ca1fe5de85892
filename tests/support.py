"""Shared fixtures for the test modules: in-memory database and chat builders."""

from datetime import datetime, timedelta, timezone

from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from courseconnect.courses import ChatRecord
from courseconnect.db import init_db, make_engine

NOW = datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)


def memory_sessionmaker():
    engine = make_engine("sqlite://", poolclass=StaticPool)
    init_db(engine)
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)


def day(n, now=NOW):
    """ISO timestamp exactly n days after now."""
    return (now + timedelta(days=n)).isoformat()


def chat_data(chat_id, code, *, title=None, topics=(), assignments=(), exams=(),
              messages=(), credits=3, chat_type="class", **course):
    data = {
        "courseCode": code,
        "topics": list(topics),
        "assignments": list(assignments),
        "exams": list(exams),
        "creditHours": credits,
    }
    data.update(course)
    return {
        "id": chat_id,
        "chatType": chat_type,
        "title": title or code,
        "courseData": data,
        "messages": list(messages),
    }


def chat(chat_id, code, **kwargs):
    return ChatRecord.model_validate(chat_data(chat_id, code, **kwargs))


def user_says(text, days_ago=0, now=NOW):
    return {"sender": "user", "text": text, "timestamp": (now - timedelta(days=days_ago)).isoformat()}


def bot_says(text):
    return {"sender": "bot", "content": text}
