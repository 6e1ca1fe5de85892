from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Generic, Iterable, Optional, TypeVar

from .fingerprint import CourseFingerprint
from .settings import settings
from .similarity import similarity

logger = logging.getLogger(__name__)

EXACT = "exact"
FUZZY = "fuzzy"

T = TypeVar("T")


@dataclass(frozen=True)
class OwnedFingerprint(Generic[T]):
	"""An existing course fingerprint plus whatever the caller attaches to it."""
	fingerprint: CourseFingerprint
	owner: T


@dataclass(frozen=True)
class DuplicateMatch(Generic[T]):
	record: OwnedFingerprint[T]
	kind: str
	score: float


def codes_match(a: CourseFingerprint, b: CourseFingerprint) -> bool:
	# The placeholder code says nothing about identity
	if not a.has_known_code or not b.has_known_code:
		return False
	return a.course_code.lower() == b.course_code.lower()


def name_similarity(a: CourseFingerprint, b: CourseFingerprint) -> float:
	return similarity(a.course_name, b.course_name)


def find_duplicate(
	candidate: CourseFingerprint,
	existing: Iterable[OwnedFingerprint[T]],
	*,
	threshold: Optional[float] = None,
) -> Optional[DuplicateMatch[T]]:
	"""Return the first existing record that duplicates ``candidate``.

	An exact (case-insensitive) course code match returns immediately. Without
	one, the first record whose normalized name similarity is strictly above
	``threshold`` wins, in the order the caller supplied. ``None`` means a new
	record can be created safely.
	"""
	limit = settings.match_similarity_threshold if threshold is None else threshold
	records = list(existing)
	for record in records:
		if codes_match(candidate, record.fingerprint):
			logger.debug("exact duplicate for %s", candidate.course_code)
			return DuplicateMatch(record=record, kind=EXACT, score=1.0)
	for record in records:
		score = name_similarity(candidate, record.fingerprint)
		if score > limit:
			logger.debug("fuzzy duplicate for %r (%.2f)", candidate.course_name, score)
			return DuplicateMatch(record=record, kind=FUZZY, score=score)
	return None
