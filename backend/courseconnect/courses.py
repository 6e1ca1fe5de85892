"""Chat and course records as they arrive from the client store.

Everything the suggestion engine reads is validated here once: optional
fields become ``None``, ``"null"`` strings and unparseable dates are dropped,
and ``text``/``content`` message bodies are merged. Nothing downstream has to
re-normalize.
"""
from __future__ import annotations

import logging
import math
import re
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

logger = logging.getLogger(__name__)

DAY_SECONDS = 24 * 60 * 60

USER = "user"
ASSISTANT_SENDERS = ("bot", "assistant", "ai")

STEM = "STEM"
HUMANITIES = "humanities"
MIXED = "mixed"

STEM_KEYWORDS = [
	"math", "calculus", "physics", "chemistry", "biology", "engineering",
	"computer", "science", "statistics", "algebra", "geometry",
]
HUMANITIES_KEYWORDS = [
	"history", "literature", "english", "writing", "philosophy", "sociology",
	"psychology", "art", "music", "theater",
]
EXAM_HEAVY_KEYWORDS = [
	"heavy on exams", "exam-focused", "multiple exams", "midterm", "final exam", "test-heavy",
]

_DATE_FORMATS = ("%B %d, %Y", "%b %d, %Y", "%m/%d/%Y", "%Y/%m/%d", "%d %B %Y")


def parse_datetime(value: Any) -> Optional[datetime]:
	"""Best-effort timestamp parsing; naive values are taken as UTC."""
	if value is None or isinstance(value, bool):
		return None
	if isinstance(value, datetime):
		parsed = value
	elif isinstance(value, date):
		parsed = datetime(value.year, value.month, value.day)
	elif isinstance(value, (int, float)):
		# Client timestamps are epoch milliseconds
		try:
			return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
		except (OverflowError, OSError, ValueError):
			return None
	else:
		text = str(value).strip()
		if not text or text.lower() in ("null", "undefined", "none", "tbd"):
			return None
		parsed = None
		try:
			parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
		except ValueError:
			for fmt in _DATE_FORMATS:
				try:
					parsed = datetime.strptime(text, fmt)
					break
				except ValueError:
					continue
		if parsed is None:
			return None
	if parsed.tzinfo is None:
		parsed = parsed.replace(tzinfo=timezone.utc)
	return parsed


def days_until(when: datetime, now: datetime) -> int:
	"""Whole days from ``now`` to ``when``, rounded up."""
	return math.ceil((when - now).total_seconds() / DAY_SECONDS)


def relative_days(days: int) -> str:
	if days == 0:
		return "today"
	if days == 1:
		return "tomorrow"
	return f"in {days} days"


def _optional_text(value: Any) -> Optional[str]:
	if value is None:
		return None
	text = str(value).strip()
	if not text or text.lower() == "null":
		return None
	return text


def _dicts_only(value: Any) -> List[Dict[str, Any]]:
	if not isinstance(value, list):
		return []
	return [v for v in value if isinstance(v, dict)]


class Message(BaseModel):
	model_config = ConfigDict(extra="ignore")

	sender: str = ""
	text: str = ""
	timestamp: Optional[datetime] = None

	@model_validator(mode="before")
	@classmethod
	def _merge_body(cls, data: Any) -> Any:
		if not isinstance(data, dict):
			return data
		body = data.get("text") or data.get("content") or ""
		return {
			"sender": str(data.get("sender") or "").strip().lower(),
			"text": body if isinstance(body, str) else str(body),
			"timestamp": parse_datetime(data.get("timestamp")),
		}

	@property
	def from_user(self) -> bool:
		return self.sender == USER

	@property
	def from_assistant(self) -> bool:
		return self.sender in ASSISTANT_SENDERS


class Assignment(BaseModel):
	model_config = ConfigDict(extra="ignore", populate_by_name=True)

	name: str = "Assignment"
	due_date: Optional[datetime] = Field(default=None, alias="dueDate")
	status: Optional[str] = None

	@field_validator("name", mode="before")
	@classmethod
	def _name(cls, v: Any) -> str:
		return _optional_text(v) or "Assignment"

	@field_validator("due_date", mode="before")
	@classmethod
	def _due(cls, v: Any) -> Optional[datetime]:
		return parse_datetime(v)

	@field_validator("status", mode="before")
	@classmethod
	def _status(cls, v: Any) -> Optional[str]:
		return _optional_text(v)

	@property
	def completed(self) -> bool:
		return (self.status or "").replace(" ", "").lower() == "completed"


class Exam(BaseModel):
	model_config = ConfigDict(extra="ignore")

	name: str = "Exam"
	date: Optional[datetime] = None

	@field_validator("name", mode="before")
	@classmethod
	def _name(cls, v: Any) -> str:
		return _optional_text(v) or "Exam"

	@field_validator("date", mode="before")
	@classmethod
	def _date(cls, v: Any) -> Optional[datetime]:
		return parse_datetime(v)


class CourseData(BaseModel):
	model_config = ConfigDict(extra="ignore", populate_by_name=True)

	course_code: Optional[str] = Field(default=None, alias="courseCode")
	course_name: Optional[str] = Field(default=None, alias="courseName")
	course_description: Optional[str] = Field(default=None, alias="courseDescription")
	instructor: Optional[str] = None
	credit_hours: int = Field(default=3, alias="creditHours")
	topics: List[str] = Field(default_factory=list)
	assignments: List[Assignment] = Field(default_factory=list)
	exams: List[Exam] = Field(default_factory=list)

	@model_validator(mode="before")
	@classmethod
	def _aliases(cls, data: Any) -> Any:
		if isinstance(data, dict):
			data = dict(data)
			if not data.get("instructor") and data.get("instructorName"):
				data["instructor"] = data["instructorName"]
			if not data.get("courseName") and data.get("courseTitle"):
				data["courseName"] = data["courseTitle"]
		return data

	@field_validator("course_code", "course_name", "course_description", "instructor", mode="before")
	@classmethod
	def _text(cls, v: Any) -> Optional[str]:
		return _optional_text(v)

	@field_validator("credit_hours", mode="before")
	@classmethod
	def _credits(cls, v: Any) -> int:
		# parseInt-style: leading integer of "4 credits", default 3
		if isinstance(v, bool):
			return 3
		if isinstance(v, float) and not math.isfinite(v):
			return 3
		if isinstance(v, (int, float)):
			return int(v)
		m = re.match(r"\s*(\d+)", str(v or ""))
		return int(m.group(1)) if m else 3

	@field_validator("topics", mode="before")
	@classmethod
	def _topics(cls, v: Any) -> List[str]:
		if not isinstance(v, list):
			return []
		return [t.strip() for t in v if isinstance(t, str) and t.strip()]

	@field_validator("assignments", "exams", mode="before")
	@classmethod
	def _records(cls, v: Any) -> List[Dict[str, Any]]:
		return _dicts_only(v)


class ChatRecord(BaseModel):
	model_config = ConfigDict(extra="ignore", populate_by_name=True)

	id: str
	chat_type: Optional[str] = Field(default=None, alias="chatType")
	title: Optional[str] = None
	course_data: CourseData = Field(default_factory=CourseData, alias="courseData")
	messages: List[Message] = Field(default_factory=list)

	@field_validator("title", mode="before")
	@classmethod
	def _title(cls, v: Any) -> Optional[str]:
		return _optional_text(v)

	@field_validator("course_data", mode="before")
	@classmethod
	def _course(cls, v: Any) -> Any:
		return v if isinstance(v, dict) else {}

	@field_validator("messages", mode="before")
	@classmethod
	def _messages(cls, v: Any) -> List[Dict[str, Any]]:
		return _dicts_only(v)

	@property
	def is_class(self) -> bool:
		return self.chat_type == "class"

	@property
	def course(self) -> str:
		"""Label used on suggestions: course code, else chat title."""
		cd = self.course_data
		return cd.course_code or self.title or cd.course_name or "Unknown"

	@property
	def topics(self) -> List[str]:
		return self.course_data.topics

	@property
	def has_activity(self) -> bool:
		return bool(self.messages)

	def user_messages(self) -> List[Message]:
		return [m for m in self.messages if m.from_user]

	def assistant_messages(self) -> List[Message]:
		return [m for m in self.messages if m.from_assistant]


def parse_chats(raw: Mapping[str, Any]) -> List[ChatRecord]:
	"""Validate the chat map, keeping insertion order and skipping bad entries."""
	chats: List[ChatRecord] = []
	for key, value in raw.items():
		if not isinstance(value, dict):
			continue
		try:
			chats.append(ChatRecord.model_validate({**value, "id": str(value.get("id") or key)}))
		except ValidationError as err:
			logger.warning("skipping malformed chat %s: %s", key, err)
	return chats


def class_chats(raw: Mapping[str, Any]) -> List[ChatRecord]:
	return [c for c in parse_chats(raw) if c.is_class]


# ---- course heuristics ----

def detect_course_type(code: str, title: str, topics: List[str]) -> str:
	text = f"{code} {title} {' '.join(topics)}".lower()
	stem = sum(1 for kw in STEM_KEYWORDS if kw in text)
	humanities = sum(1 for kw in HUMANITIES_KEYWORDS if kw in text)
	if stem > humanities:
		return STEM
	if humanities > stem:
		return HUMANITIES
	return MIXED


def course_type(chat: ChatRecord) -> str:
	cd = chat.course_data
	return detect_course_type(cd.course_code or "", chat.title or cd.course_name or "", cd.topics)


def is_exam_heavy(course: CourseData) -> bool:
	text = f"{course.course_description or ''} {course.instructor or ''}".lower()
	return any(kw in text for kw in EXAM_HEAVY_KEYWORDS) or len(course.exams) > 3


def course_difficulty(course: CourseData) -> float:
	score = (
		course.credit_hours
		+ len(course.assignments) * 0.5
		+ len(course.exams) * 0.3
		+ len(course.topics) * 0.1
	)
	return min(score, 10.0)


def cluster_of(chat: ChatRecord) -> str:
	kind = course_type(chat)
	if kind == STEM:
		code = (chat.course_data.course_code or "").lower()
		if "math" in code or "calc" in code or "stat" in code:
			return "math"
		return "science"
	if kind == HUMANITIES:
		return "humanities"
	return "other"
