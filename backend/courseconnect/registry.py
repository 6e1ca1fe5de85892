from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .duplicates import OwnedFingerprint
from .fingerprint import CourseFingerprint, slug, syllabus_id
from .models import CourseRecordRow, StudyGroupMemberRow, StudyGroupRow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StudyGroup:
	id: str
	fingerprint: CourseFingerprint
	members: FrozenSet[str]
	chat_id: str
	is_public: bool
	created_at: int

	def to_dict(self) -> Dict[str, Any]:
		return {
			"id": self.id,
			**self.fingerprint.to_dict(),
			"members": sorted(self.members),
			"chatId": self.chat_id,
			"isPublic": self.is_public,
			"createdAt": self.created_at,
		}


@dataclass(frozen=True)
class CourseRecord:
	id: int
	syllabus_id: str
	owner: str
	fingerprint: CourseFingerprint
	file_name: Optional[str] = None

	def to_dict(self) -> Dict[str, Any]:
		return {
			"id": self.id,
			"syllabusId": self.syllabus_id,
			"owner": self.owner,
			"fileName": self.file_name,
			**self.fingerprint.to_dict(),
		}


class GroupNotFound(LookupError):
	pass


def make_group_id(fp: CourseFingerprint, created_at: int) -> str:
	"""Normalized code + normalized name + creation epoch (ms)."""
	name = re.sub(r"-+", "-", slug(fp.course_name)).strip("-") or "course"
	code = re.sub(r"-+", "-", slug(fp.course_code)).strip("-") or "unknown"
	return f"group-{code}-{name}-{created_at}"


def _fingerprint_of(row) -> CourseFingerprint:
	return CourseFingerprint(
		course_code=row.course_code,
		course_name=row.course_name,
		display_name=row.display_name,
		university=row.university,
		instructor=row.instructor,
		semester=row.semester,
		year=row.year,
	)


def _group_of(row: StudyGroupRow) -> StudyGroup:
	return StudyGroup(
		id=row.id,
		fingerprint=_fingerprint_of(row),
		members=frozenset(m.user_id for m in row.members),
		chat_id=row.chat_id,
		is_public=bool(row.is_public),
		created_at=int(row.created_at),
	)


class GroupRegistry:
	"""Study group storage on top of a SQLAlchemy session.

	Membership is a set: the unique (group_id, user_id) constraint turns a
	concurrent duplicate insert into a no-op instead of a lost update.
	"""

	def __init__(self, db: Session, *, clock=None) -> None:
		self.db = db
		self._clock = clock or (lambda: int(time.time() * 1000))

	def get_group(self, group_id: str) -> Optional[StudyGroup]:
		row = self.db.get(StudyGroupRow, group_id)
		return _group_of(row) if row is not None else None

	def find_groups_by_course_signature(self, course_code: str) -> List[StudyGroup]:
		code = (course_code or "").strip().upper()
		rows = (
			self.db.query(StudyGroupRow)
			.filter(StudyGroupRow.course_code == code)
			.order_by(StudyGroupRow.created_at)
			.all()
		)
		return [_group_of(r) for r in rows]

	def list_public_groups(self) -> List[StudyGroup]:
		rows = (
			self.db.query(StudyGroupRow)
			.filter(StudyGroupRow.is_public.is_(True))
			.order_by(StudyGroupRow.created_at)
			.all()
		)
		return [_group_of(r) for r in rows]

	def groups_for_user(self, user_id: str) -> List[StudyGroup]:
		rows = (
			self.db.query(StudyGroupRow)
			.join(StudyGroupMemberRow, StudyGroupMemberRow.group_id == StudyGroupRow.id)
			.filter(StudyGroupMemberRow.user_id == user_id)
			.order_by(StudyGroupRow.created_at)
			.all()
		)
		return [_group_of(r) for r in rows]

	def create_group(
		self,
		fp: CourseFingerprint,
		initial_member: str,
		*,
		chat_id: str,
		is_public: bool = True,
	) -> StudyGroup:
		if not initial_member:
			raise ValueError("a study group needs its creator as first member")
		created_at = self._clock()
		# Same course created twice within one millisecond
		while self.db.get(StudyGroupRow, make_group_id(fp, created_at)) is not None:
			created_at += 1
		row = StudyGroupRow(
			id=make_group_id(fp, created_at),
			course_code=fp.course_code,
			course_name=fp.course_name,
			display_name=fp.display_name,
			university=fp.university,
			instructor=fp.instructor,
			semester=fp.semester,
			year=fp.year,
			chat_id=chat_id,
			is_public=is_public,
			created_at=created_at,
		)
		row.members.append(StudyGroupMemberRow(user_id=initial_member))
		self.db.add(row)
		self.db.commit()
		self.db.refresh(row)
		logger.info("created study group %s for %s", row.id, initial_member)
		return _group_of(row)

	def add_member(self, group_id: str, user_id: str) -> None:
		if self.db.get(StudyGroupRow, group_id) is None:
			raise GroupNotFound(group_id)
		exists = (
			self.db.query(StudyGroupMemberRow)
			.filter(StudyGroupMemberRow.group_id == group_id, StudyGroupMemberRow.user_id == user_id)
			.first()
		)
		if exists is not None:
			return
		self.db.add(StudyGroupMemberRow(group_id=group_id, user_id=user_id))
		try:
			self.db.commit()
		except IntegrityError:
			# Someone else added the same member in between
			self.db.rollback()
			logger.debug("member %s already in %s", user_id, group_id)


def _record_of(row: CourseRecordRow) -> CourseRecord:
	return CourseRecord(
		id=row.id,
		syllabus_id=row.syllabus_id,
		owner=row.owner,
		fingerprint=_fingerprint_of(row),
		file_name=row.file_name,
	)


class CourseRecordStore:
	def __init__(self, db: Session) -> None:
		self.db = db

	def records_for(self, owner: str) -> List[CourseRecord]:
		rows = (
			self.db.query(CourseRecordRow)
			.filter(CourseRecordRow.owner == owner)
			.order_by(CourseRecordRow.id)
			.all()
		)
		return [_record_of(r) for r in rows]

	def owned_fingerprints(self, owner: str) -> List[OwnedFingerprint[CourseRecord]]:
		return [OwnedFingerprint(fingerprint=r.fingerprint, owner=r) for r in self.records_for(owner)]

	def add(self, owner: str, fp: CourseFingerprint, file_name: Optional[str] = None) -> CourseRecord:
		row = CourseRecordRow(
			syllabus_id=syllabus_id(fp),
			owner=owner,
			course_code=fp.course_code,
			course_name=fp.course_name,
			display_name=fp.display_name,
			university=fp.university,
			instructor=fp.instructor,
			semester=fp.semester,
			year=fp.year,
			file_name=file_name,
		)
		self.db.add(row)
		self.db.commit()
		self.db.refresh(row)
		return _record_of(row)
