from __future__ import annotations
from datetime import datetime
from sqlalchemy import BigInteger, Boolean, Column, String, DateTime, ForeignKey, Integer, UniqueConstraint
from sqlalchemy.orm import relationship
from .db import Base


class StudyGroupRow(Base):
	__tablename__ = "study_groups"
	id = Column(String(256), primary_key=True, index=True)
	# Fingerprint columns; course_code is stored uppercase, course_name lowercase
	course_code = Column(String(64), nullable=False, index=True)
	course_name = Column(String(256), nullable=False)
	display_name = Column(String(256), nullable=False)
	university = Column(String(256), nullable=True)
	instructor = Column(String(256), nullable=True)
	semester = Column(String(64), nullable=True)
	year = Column(String(16), nullable=True)
	chat_id = Column(String(256), nullable=False)
	is_public = Column(Boolean, default=True, nullable=False)
	# Epoch milliseconds, also part of the id
	created_at = Column(BigInteger, nullable=False)

	members = relationship(
		"StudyGroupMemberRow",
		back_populates="group",
		cascade="all, delete-orphan",
		order_by="StudyGroupMemberRow.id",
	)


class StudyGroupMemberRow(Base):
	__tablename__ = "study_group_members"
	# One row per (group, user); the constraint makes "add to set" atomic
	__table_args__ = (UniqueConstraint("group_id", "user_id", name="uq_group_member"),)
	id = Column(Integer, primary_key=True, autoincrement=True)
	group_id = Column(String(256), ForeignKey("study_groups.id"), nullable=False, index=True)
	user_id = Column(String(128), nullable=False, index=True)
	joined_at = Column(DateTime, default=datetime.utcnow, nullable=False)

	group = relationship("StudyGroupRow", back_populates="members")


class CourseRecordRow(Base):
	__tablename__ = "course_records"
	id = Column(Integer, primary_key=True, autoincrement=True)
	# Deterministic syllabus id, see fingerprint.syllabus_id
	syllabus_id = Column(String(256), nullable=False, index=True)
	owner = Column(String(128), nullable=False, index=True)
	course_code = Column(String(64), nullable=False)
	course_name = Column(String(256), nullable=False)
	display_name = Column(String(256), nullable=False)
	university = Column(String(256), nullable=True)
	instructor = Column(String(256), nullable=True)
	semester = Column(String(64), nullable=True)
	year = Column(String(16), nullable=True)
	file_name = Column(String(512), nullable=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
