from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Sequence, Tuple
from urllib.parse import quote

from pydantic import BaseModel, ConfigDict, Field

from .courses import (
	HUMANITIES,
	STEM,
	Assignment,
	ChatRecord,
	Exam,
	cluster_of,
	course_difficulty,
	course_type,
	days_until,
	is_exam_heavy,
	relative_days,
)

logger = logging.getLogger(__name__)

HIGH = "high"
MEDIUM = "medium"
LOW = "low"
PRIORITY_RANK = {HIGH: 3, MEDIUM: 2, LOW: 1}

MULTIPLE_COURSES = "Multiple courses"
OPEN_CHAT = "Open Chat"

# How many of the latest messages per side feed topic detection
RECENT_MESSAGES = 15
REVIEW_WINDOW = timedelta(days=7)
REVIEW_MIN_MENTIONS = 3
ENERGY_WORKLOAD = 4


class Suggestion(BaseModel):
	model_config = ConfigDict(populate_by_name=True)

	type: str
	priority: str
	title: str
	description: str
	# Course label, "Multiple courses", or None for account-level actions
	course: Optional[str] = None
	action: str = OPEN_CHAT
	action_url: Optional[str] = Field(default=None, alias="actionUrl")
	focus_points: Optional[List[str]] = Field(default=None, alias="focusPoints")
	undiscussed_topics: Optional[List[str]] = Field(default=None, alias="undiscussedTopics")

	def to_json(self) -> Dict[str, object]:
		return self.model_dump(by_alias=True, exclude_none=True)


def chat_url(chat_id: str, prefill: Optional[str] = None) -> str:
	url = f"/dashboard/chat?tab={chat_id}"
	if prefill:
		url += f"&prefill={quote(prefill, safe='')}"
	return url


def templated_description(kind: str, topic: str) -> str:
	"""Deterministic study blurb used whenever no usable AI text is available."""
	if kind == STEM:
		return f"Understanding {topic.lower()} builds the foundation for more advanced concepts in this course."
	if kind == HUMANITIES:
		return f"{topic} is a key concept that will help you engage with the course material more deeply."
	return f"Exploring {topic.lower()} will help you get started with this course."


def _contains(haystack: str, topic: str) -> bool:
	return topic.lower() in haystack


def next_topic(discussed: Sequence[str], topics: Sequence[str]) -> Optional[str]:
	if not topics:
		return None
	if not discussed:
		return topics[0]
	last = discussed[-1].lower()
	lowered = [t.lower() for t in topics]
	if last in lowered:
		idx = lowered.index(last)
		if idx < len(topics) - 1:
			return topics[idx + 1]
	seen = {d.lower() for d in discussed}
	for topic in topics:
		if topic.lower() not in seen:
			return topic
	return None


@dataclass
class CourseView:
	"""Per-course facts every pass needs, computed once per run."""
	chat: ChatRecord
	kind: str
	difficulty: float
	exam_heavy: bool
	discussed: List[str] = field(default_factory=list)
	difficult: List[str] = field(default_factory=list)

	@property
	def course(self) -> str:
		return self.chat.course

	@property
	def last_discussed(self) -> Optional[str]:
		return self.discussed[-1] if self.discussed else None

	@property
	def undiscussed(self) -> List[str]:
		seen = {d.lower() for d in self.discussed}
		return [t for t in self.chat.topics if t.lower() not in seen]

	@classmethod
	def build(cls, chat: ChatRecord, now: datetime) -> "CourseView":
		course = chat.course_data
		view = cls(
			chat=chat,
			kind=course_type(chat),
			difficulty=course_difficulty(course),
			exam_heavy=is_exam_heavy(course),
		)
		if chat.has_activity:
			recent = chat.user_messages()[-RECENT_MESSAGES:] + chat.assistant_messages()[-RECENT_MESSAGES:]
			text = " ".join(m.text for m in recent).lower()
			# Syllabus order, not the order in which topics came up
			view.discussed = [t for t in chat.topics if _contains(text, t)]
			view.difficult = _difficult_topics(chat, now)
		return view


def _difficult_topics(chat: ChatRecord, now: datetime) -> List[str]:
	cutoff = now - REVIEW_WINDOW
	counts: Dict[str, int] = {}
	for msg in chat.user_messages():
		if msg.timestamp is not None and msg.timestamp < cutoff:
			continue
		text = msg.text.lower()
		for topic in chat.topics:
			if _contains(text, topic):
				counts[topic] = counts.get(topic, 0) + 1
	flagged = [t for t in chat.topics if counts.get(t, 0) >= REVIEW_MIN_MENTIONS]
	return sorted(flagged, key=lambda t: -counts[t])


@dataclass
class ScoringContext:
	now: datetime
	chats: List[ChatRecord]
	views: List[CourseView]
	# Incomplete assignments with a due date, in input order
	assignments: List[Tuple[CourseView, Assignment, int]]
	exams: List[Tuple[CourseView, Exam, int]]

	@classmethod
	def build(cls, chats: Sequence[ChatRecord], now: datetime) -> "ScoringContext":
		views = [CourseView.build(c, now) for c in chats]
		assignments = []
		exams = []
		for view in views:
			cd = view.chat.course_data
			for a in cd.assignments:
				if a.due_date is not None and not a.completed:
					assignments.append((view, a, days_until(a.due_date, now)))
			for e in cd.exams:
				if e.date is not None:
					exams.append((view, e, days_until(e.date, now)))
		return cls(now=now, chats=list(chats), views=views, assignments=assignments, exams=exams)

	def this_week(self) -> List[Tuple[CourseView, Assignment, int]]:
		due = [item for item in self.assignments if 0 <= item[2] <= 7]
		return sorted(due, key=lambda item: item[2])

	def urgent(self) -> List[Tuple[CourseView, Assignment, int]]:
		return [item for item in self.assignments if 0 <= item[2] <= 3]

	def upcoming_exams(self) -> List[Tuple[CourseView, Exam, int]]:
		return [item for item in self.exams if 0 <= item[2] <= 14]

	def deadline_counts(self, chat_id: str) -> Tuple[int, int]:
		"""(urgent assignments, upcoming exams) for one chat."""
		urgent = sum(1 for v, _a, _d in self.urgent() if v.chat.id == chat_id)
		exams = sum(1 for v, _e, _d in self.upcoming_exams() if v.chat.id == chat_id)
		return urgent, exams


def _course_label(view: CourseView) -> str:
	instructor = view.chat.course_data.instructor
	return f"{instructor}'s {view.course}" if instructor else view.course


class SuggestionScorer:
	"""Runs the independent heuristic passes over a snapshot of courses.

	A pass that trips over malformed data is logged and contributes nothing;
	the remaining passes still run.
	"""

	def __init__(self) -> None:
		self.passes: List[Tuple[str, Callable[[ScoringContext], List[Suggestion]]]] = [
			("workload", self.workload),
			("urgent", self.urgent),
			("exam", self.exam),
			("progression", self.progression),
			("review", self.review),
			("connection", self.connection),
			("energy", self.energy),
			("dependency", self.dependency),
		]

	def score(self, chats: Sequence[ChatRecord], now: datetime, *, topic_limit: int = 3) -> List[Suggestion]:
		return self.run(ScoringContext.build(chats, now), topic_limit=topic_limit)

	def run(self, ctx: ScoringContext, *, topic_limit: int = 3) -> List[Suggestion]:
		out: List[Suggestion] = []
		for name, fn in self.passes:
			out.extend(self._guarded(name, fn, ctx))
		if topic_limit > 0:
			out.extend(self._guarded("study", lambda c: self.study_topics(c, topic_limit), ctx))
		if not out:
			out.extend(self._guarded("general", self.default, ctx))
		return out

	def _guarded(self, name: str, fn, ctx: ScoringContext) -> List[Suggestion]:
		try:
			return list(fn(ctx))
		except Exception:
			logger.warning("suggestion pass %r skipped", name, exc_info=True)
			return []

	# ---- passes ----

	def workload(self, ctx: ScoringContext) -> List[Suggestion]:
		week = ctx.this_week()
		if len(week) < 3:
			return []
		top = week[:3]
		return [Suggestion(
			type="workload",
			priority=HIGH,
			title=f"{len(week)} assignments due this week",
			description=f"Suggested order: {', '.join(a.name for _v, a, _d in top)}. Start with the earliest deadline.",
			course=MULTIPLE_COURSES,
			action="View Assignments",
			action_url=chat_url(top[0][0].chat.id),
		)]

	def urgent(self, ctx: ScoringContext) -> List[Suggestion]:
		candidates = ctx.urgent()
		if not candidates:
			return []
		view, assignment, days = sorted(candidates, key=lambda item: (item[2], -item[0].difficulty))[0]
		return [Suggestion(
			type="urgent",
			priority=HIGH,
			title=assignment.name,
			description=f"Due {relative_days(days)} for {_course_label(view)}. This might be a good place to start.",
			course=view.course,
			action_url=chat_url(view.chat.id, f"Help me with {assignment.name}"),
		)]

	def exam(self, ctx: ScoringContext) -> List[Suggestion]:
		upcoming = ctx.upcoming_exams()
		if not upcoming:
			return []
		# Equal distances keep input order
		view, exam, days = sorted(upcoming, key=lambda item: item[2])[0]
		when = relative_days(days)
		if days <= 7 and view.exam_heavy:
			description = f"Your {_course_label(view)} exam is {when}. This course is exam-heavy - start reviewing now."
		elif days <= 7:
			description = f"Your {_course_label(view)} exam is {when} - here's a suggested study plan: review key topics from your syllabus."
		else:
			description = f"Coming up {when}. Your syllabus has topics you can review to prepare."
		return [Suggestion(
			type="exam",
			priority=HIGH,
			title=f"{view.course} {exam.name}",
			description=description,
			course=view.course,
			action_url=chat_url(view.chat.id, f"Help me prepare for {exam.name}"),
		)]

	def progression(self, ctx: ScoringContext) -> List[Suggestion]:
		out = []
		for view in ctx.views:
			if not view.discussed:
				continue
			upcoming = next_topic(view.discussed, view.chat.topics)
			if not upcoming:
				continue
			out.append(Suggestion(
				type="progression",
				priority=MEDIUM,
				title=upcoming,
				description=f"You've covered {view.last_discussed} - next up is {upcoming.lower()}.",
				course=view.course,
				action_url=chat_url(view.chat.id, f"Help me understand {upcoming}"),
			))
		return out

	def review(self, ctx: ScoringContext) -> List[Suggestion]:
		out = []
		for view in ctx.views:
			if not view.difficult:
				continue
			topic = view.difficult[0]
			out.append(Suggestion(
				type="review",
				priority=MEDIUM,
				title=f"Review {topic}",
				description=f"You've asked multiple questions about {topic.lower()}. A focused review might help.",
				course=view.course,
				action_url=chat_url(view.chat.id, f"Help me review {topic}"),
			))
		return out

	def connection(self, ctx: ScoringContext) -> List[Suggestion]:
		clusters: Dict[str, List[CourseView]] = {"science": [], "math": [], "humanities": [], "other": []}
		for view in ctx.views:
			clusters[cluster_of(view.chat)].append(view)
		out = []
		for name, members in clusters.items():
			if name == "other" or len(members) < 2:
				continue
			first, second = members[0], members[1]
			shared = _shared_topic(first.chat.topics, second.chat.topics)
			if shared is None:
				continue
			out.append(Suggestion(
				type="connection",
				priority=MEDIUM,
				title=f"{first.course} ↔ {second.course}",
				description=f'The topic "{shared}" appears in both courses. Understanding it in one will help with the other.',
				course=MULTIPLE_COURSES,
				action_url=chat_url(first.chat.id, f"How does {shared} connect to {second.course}?"),
			))
		return out

	def energy(self, ctx: ScoringContext) -> List[Suggestion]:
		workload = len(ctx.this_week()) + sum(1 for _v, _e, d in ctx.upcoming_exams() if d <= 7)
		if workload < ENERGY_WORKLOAD:
			return []
		out = []
		for view in ctx.views:
			if view.kind != HUMANITIES and view.difficulty >= 5:
				continue
			light = next(iter(view.undiscussed), None)
			if light is None:
				continue
			out.append(Suggestion(
				type="energy",
				priority=LOW,
				title=f"Light review: {light}",
				description=f"With a heavy workload this week, this lighter topic from {view.course} might be a good break.",
				course=view.course,
				action_url=chat_url(view.chat.id, f"Explain {light}"),
			))
		return out

	def dependency(self, ctx: ScoringContext) -> List[Suggestion]:
		out = []
		for view, assignment, days in ctx.assignments:
			if not (3 < days <= 14) or view.last_discussed is None:
				continue
			topic = view.last_discussed
			out.append(Suggestion(
				type="dependency",
				priority=MEDIUM,
				title=assignment.name,
				description=f"This assignment builds on {topic.lower()}, which you asked about recently.",
				course=view.course,
				action_url=chat_url(view.chat.id, f"Help me with {assignment.name} - it relates to {topic}"),
			))
		return out

	def study_topics(self, ctx: ScoringContext, limit: int = 3) -> List[Suggestion]:
		out = []
		for view, topic in undiscussed_topics(ctx)[:limit]:
			out.append(study_suggestion(view, topic, templated_description(view.kind, topic)))
		return out

	def default(self, ctx: ScoringContext) -> List[Suggestion]:
		if not ctx.views:
			return []
		first = ctx.views[0]
		return [Suggestion(
			type="general",
			priority=LOW,
			title="Your courses",
			description="Everything looks on track. You can review your materials or ask questions anytime.",
			course=first.course,
			action_url=chat_url(first.chat.id),
		)]


def _shared_topic(left: Sequence[str], right: Sequence[str]) -> Optional[str]:
	for a in left:
		la = a.lower()
		for b in right:
			lb = b.lower()
			if la in lb or lb in la:
				return a
	return None


def undiscussed_topics(ctx: ScoringContext) -> List[Tuple[CourseView, str]]:
	"""Every syllabus topic not yet seen in chat, first owning course wins."""
	seen = set()
	out = []
	for view in ctx.views:
		for topic in view.undiscussed:
			key = topic.lower()
			if key in seen:
				continue
			seen.add(key)
			out.append((view, topic))
	return out


def study_suggestion(view: CourseView, topic: str, description: str) -> Suggestion:
	return Suggestion(
		type="study",
		priority=MEDIUM,
		title=topic,
		description=description,
		course=view.course,
		action_url=chat_url(view.chat.id, f"Help me understand {topic}"),
	)
