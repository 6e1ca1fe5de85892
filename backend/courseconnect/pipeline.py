from __future__ import annotations

import asyncio
import logging
import re
from datetime import datetime
from typing import Any, List, Mapping, Optional, Sequence, Set, Tuple

from pydantic import BaseModel, ConfigDict, Field

from .assistant import AssistanceRequest, Assistant
from .courses import ChatRecord
from .scoring import (
	HIGH,
	MEDIUM,
	PRIORITY_RANK,
	CourseView,
	ScoringContext,
	Suggestion,
	SuggestionScorer,
	chat_url,
	study_suggestion,
	templated_description,
	undiscussed_topics,
)
from .settings import settings

logger = logging.getLogger(__name__)

LIGHT = "light"
MODERATE = "moderate"
HEAVY = "heavy"

MAX_DESCRIPTION = 200
# Shorter AI answers are treated as unusable
MIN_DESCRIPTION = 20
MAX_TOPIC_SUGGESTIONS = 3


def course_load_tier(course_count: int) -> str:
	if course_count <= 2:
		return LIGHT
	if course_count <= 4:
		return MODERATE
	return HEAVY


def target_count(course_count: int) -> int:
	return {LIGHT: 2, MODERATE: 3, HEAVY: 4}[course_load_tier(course_count)]


def truncate_description(text: str, limit: int = MAX_DESCRIPTION) -> str:
	"""Keep at most two whole sentences, then cut on a word boundary."""
	text = text.strip()
	if len(text) <= limit:
		return text
	sentences = [s.strip() for s in re.split(r"[.!?]", text) if s.strip()]
	if len(sentences) >= 2:
		text = ". ".join(sentences[:2]) + "."
	elif sentences:
		text = sentences[0] + "."
	if len(text) > limit:
		cut = text[: limit - 3]
		space = cut.rfind(" ")
		if space > 0:
			cut = cut[:space]
		text = cut.rstrip() + "..."
	return text


def parse_focus_response(text: str) -> Tuple[str, List[str]]:
	"""Split a ``SUMMARY:`` / ``FOCUS POINTS:`` answer into text and bullets."""
	if "SUMMARY:" in text:
		summary = re.search(r"SUMMARY:\s*([\s\S]+?)(?=FOCUS POINTS:|$)", text)
		description = summary.group(1).strip() if summary else ""
		points: List[str] = []
		focus = re.search(r"FOCUS POINTS:\s*([\s\S]+)", text)
		if focus:
			for line in focus.group(1).splitlines():
				point = re.sub(r"^[-•*]\s*", "", line).strip()
				if point:
					points.append(point)
		return description, points
	return text.strip(), [m.strip() for m in re.findall(r"[-•]\s*(.+)", text)]


def upload_first_syllabus() -> Suggestion:
	return Suggestion(
		type="action",
		priority=HIGH,
		title="Upload your first syllabus",
		description="Get personalized suggestions and track your assignments.",
		action="Upload Syllabus",
		action_url="/",
	)


class SuggestionResult(BaseModel):
	model_config = ConfigDict(populate_by_name=True)

	success: bool = True
	course_count: int = Field(default=0, alias="courseCount")
	course_load_context: str = Field(default=LIGHT, alias="courseLoadContext")
	suggestions: List[Suggestion] = Field(default_factory=list)

	def to_json(self) -> dict:
		return {
			"success": self.success,
			"courseCount": self.course_count,
			"courseLoadContext": self.course_load_context,
			"suggestions": [s.to_json() for s in self.suggestions],
		}


def _summary_prompt(view: CourseView, ctx: ScoringContext) -> str:
	recent = view.chat.messages[-20:]
	questions = "\n".join(m.text[:200] for m in recent if m.from_user)
	keywords = ", ".join([w for w in questions.lower().split() if len(w) > 4][:10])
	urgent, exams = ctx.deadline_counts(view.chat.id)
	return f"""Based on this student's chat activity in {view.course}, name the topics or concepts they should focus on with the AI tutor next.

Recent student questions:
{questions or 'No questions yet'}

Key concepts in their questions: {keywords or 'none'}
Topics already discussed: {', '.join(view.discussed[:5]) or 'none'}
Topics they keep asking about: {', '.join(view.difficult) or 'none'}
All course topics: {', '.join(view.chat.topics[:10]) or 'none'}
Upcoming deadlines: {urgent} assignments, {exams} exams
Course type: {view.kind}
Course difficulty: {view.difficulty:g}/10

Pick 2-3 specific topics from the course, based on what they asked, what they discussed but may need help with, what naturally follows, and what is coming up.
Only name the topics; do not tell them to "start exploring" or "do work".

Answer in exactly this format:
SUMMARY: <1-2 sentences on what to focus on>
FOCUS POINTS:
- <topic or concept>
- <topic or concept>
- <topic or concept, optional>"""


def _topic_prompt(view: CourseView, topic: str) -> str:
	history = (
		f"Recent chat topics: {', '.join(view.discussed[:5]) or 'none'}"
		if view.chat.has_activity
		else "No chat history yet"
	)
	return f"""In 2-3 natural sentences (under 200 characters), tell a student why "{topic}" is worth exploring.

Course: {view.course}
Course type: {view.kind}
{history}
Other syllabus topics: {', '.join(view.chat.topics[:5])}

Be specific and conversational, and write complete sentences."""


def _answer_of(response: Any) -> str:
	if response is None:
		return ""
	if isinstance(response, Mapping):
		answer = response.get("answer")
	else:
		answer = getattr(response, "answer", None)
	return answer.strip() if isinstance(answer, str) else ""


def _topic_key(s: Suggestion) -> Optional[Tuple[str, ...]]:
	"""(course, topic) for suggestions that point at a single syllabus topic."""
	if s.type in ("progression", "study"):
		topic = s.title
	elif s.type == "energy":
		topic = s.title.split(": ", 1)[-1]
	else:
		return None
	return (s.course or "", topic.lower())


def _unique(suggestions: Sequence[Suggestion], seen: Set[Tuple[str, ...]]) -> List[Suggestion]:
	"""Drop repeats in pass order; ``seen`` collects the keys for later steps."""
	out: List[Suggestion] = []
	for s in suggestions:
		key = _topic_key(s) or (s.type, s.course or "", s.title)
		if key in seen:
			continue
		seen.add(key)
		out.append(s)
	return out


class SuggestionPipeline:
	"""Merges scorer output with optional AI enrichment into a capped, ranked list."""

	def __init__(
		self,
		assistant: Optional[Assistant] = None,
		*,
		scorer: Optional[SuggestionScorer] = None,
		timeout: Optional[float] = None,
		max_enriched_chats: Optional[int] = None,
	) -> None:
		self.assistant = assistant
		self.scorer = scorer or SuggestionScorer()
		self.timeout = settings.ai_timeout_seconds if timeout is None else timeout
		self.max_enriched_chats = settings.max_enriched_chats if max_enriched_chats is None else max_enriched_chats

	async def run(self, chats: Sequence[ChatRecord], now: datetime) -> SuggestionResult:
		courses = [c for c in chats if c.is_class]
		if not courses:
			return SuggestionResult(course_count=0, course_load_context=LIGHT, suggestions=[upload_first_syllabus()])

		target = target_count(len(courses))
		ctx = ScoringContext.build(courses, now)
		seen: Set[Tuple[str, ...]] = set()
		ranked = _unique([s for s in self.scorer.run(ctx, topic_limit=0) if s.type != "general"], seen)

		summaries: List[Suggestion] = []
		slots = min(self.max_enriched_chats, target - len(ranked))
		if self.assistant is not None and slots > 0:
			# Ask every eligible course; a failed summary leaves its slot to the next one
			active = [v for v in ctx.views if v.chat.has_activity][: self.max_enriched_chats]
			results = await asyncio.gather(*(self._summarize(v, ctx) for v in active))
			summaries = [s for s in results if s is not None][:slots]

		remaining = min(MAX_TOPIC_SUGGESTIONS, target - len(ranked) - len(summaries))
		topics: List[Suggestion] = []
		if remaining > 0:
			fresh = [(v, t) for v, t in undiscussed_topics(ctx) if (v.course, t.lower()) not in seen]
			topics = list(await asyncio.gather(*(self._topic(v, t) for v, t in fresh[:remaining])))

		suggestions = ranked + summaries + topics
		if not suggestions:
			suggestions = self.scorer.default(ctx)
		suggestions = [
			s.model_copy(update={"description": truncate_description(s.description)})
			for s in suggestions
		]
		# sorted() is stable: equal priorities keep pass order
		suggestions = sorted(suggestions, key=lambda s: -PRIORITY_RANK.get(s.priority, 0))[:target]
		return SuggestionResult(
			course_count=len(courses),
			course_load_context=course_load_tier(len(courses)),
			suggestions=suggestions,
		)

	async def _ask(self, question: str, context: str) -> str:
		"""One call to the assistant; any failure comes back as an empty answer."""
		if self.assistant is None:
			return ""
		request = AssistanceRequest(question=question, context=context, conversation_history=[], is_search_request=False)
		try:
			response = await asyncio.wait_for(self.assistant(request), timeout=self.timeout)
		except asyncio.TimeoutError:
			logger.warning("assistant timed out after %ss (%s)", self.timeout, context)
			return ""
		except Exception:
			logger.warning("assistant call failed (%s)", context, exc_info=True)
			return ""
		return _answer_of(response)

	async def _summarize(self, view: CourseView, ctx: ScoringContext) -> Optional[Suggestion]:
		answer = await self._ask(_summary_prompt(view, ctx), f"Chat summary for {view.course}")
		description, points = parse_focus_response(answer)
		description = truncate_description(description)
		if len(description) <= MIN_DESCRIPTION:
			return None
		if points:
			prefill = f"Help me understand {points[0]}"
		else:
			mentioned = re.search(r"(?:focus on|discuss|about)\s+([^.,]+)", description, re.IGNORECASE)
			if mentioned:
				prefill = f"Help me understand {mentioned.group(1).strip()}"
			else:
				prefill = re.split(r"[.!?]", description)[0].strip() or description[:50].strip()
		return Suggestion(
			type="ai-recommendation",
			priority=MEDIUM,
			title=view.course,
			description=description,
			course=view.course,
			action_url=chat_url(view.chat.id, prefill),
			focus_points=points[:3],
			undiscussed_topics=view.undiscussed[:5],
		)

	async def _topic(self, view: CourseView, topic: str) -> Suggestion:
		description = truncate_description(await self._ask(_topic_prompt(view, topic), f"Topic suggestion for {view.course}"))
		if len(description) < MIN_DESCRIPTION:
			description = templated_description(view.kind, topic)
		return study_suggestion(view, topic, description)
