from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .duplicates import EXACT, FUZZY, codes_match, name_similarity
from .fingerprint import CourseFingerprint, class_chat_id
from .registry import GroupRegistry, StudyGroup
from .settings import settings

logger = logging.getLogger(__name__)

JOIN = "join"
CREATE = "create"

PUBLIC_CHAT = "public-chat"
AI_ONLY = "ai-only"


@dataclass(frozen=True)
class GroupMatch:
	group: StudyGroup
	kind: str
	score: float

	def to_dict(self) -> Dict[str, Any]:
		return {"group": self.group.to_dict(), "matchType": self.kind, "similarity": round(self.score, 4)}


@dataclass(frozen=True)
class GroupDecision:
	action: str
	group: StudyGroup
	candidates: List[GroupMatch] = field(default_factory=list)

	@property
	def group_id(self) -> str:
		return self.group.id

	def to_dict(self) -> Dict[str, Any]:
		return {
			"action": self.action,
			"groupId": self.group.id,
			"group": self.group.to_dict(),
			"candidates": [c.to_dict() for c in self.candidates],
		}


def match(
	fp: CourseFingerprint,
	registry: GroupRegistry,
	*,
	threshold: Optional[float] = None,
) -> List[GroupMatch]:
	"""All public groups that look like the same course, best first.

	Exact course code matches rank above fuzzy name matches; within each kind
	higher similarity wins and equal scores keep registry order.
	"""
	limit = settings.match_similarity_threshold if threshold is None else threshold
	found: List[GroupMatch] = []
	for group in registry.list_public_groups():
		if codes_match(fp, group.fingerprint):
			found.append(GroupMatch(group=group, kind=EXACT, score=1.0))
			continue
		score = name_similarity(fp, group.fingerprint)
		if score > limit:
			found.append(GroupMatch(group=group, kind=FUZZY, score=score))
	found.sort(key=lambda m: (m.kind != EXACT, -m.score))
	return found


def decide(
	fp: CourseFingerprint,
	registry: GroupRegistry,
	user_id: str,
	*,
	preference: str = PUBLIC_CHAT,
	chat_id: Optional[str] = None,
) -> GroupDecision:
	"""Propose the best group to join, or create one when nothing matches.

	Joining is left to the caller, who may still pick another candidate or
	create a group of their own.
	"""
	candidates = match(fp, registry)
	if candidates:
		return GroupDecision(action=JOIN, group=candidates[0].group, candidates=candidates)
	group = create(fp, registry, user_id, preference=preference, chat_id=chat_id)
	return GroupDecision(action=CREATE, group=group)


def create(
	fp: CourseFingerprint,
	registry: GroupRegistry,
	user_id: str,
	*,
	preference: str = PUBLIC_CHAT,
	chat_id: Optional[str] = None,
) -> StudyGroup:
	return registry.create_group(
		fp,
		user_id,
		chat_id=chat_id or class_chat_id(fp),
		is_public=preference == PUBLIC_CHAT,
	)


def join(registry: GroupRegistry, group_id: str, user_id: str) -> StudyGroup:
	# add_member is a set insert; joining twice changes nothing
	registry.add_member(group_id, user_id)
	group = registry.get_group(group_id)
	logger.info("user %s joined %s (%d members)", user_id, group_id, len(group.members))
	return group
