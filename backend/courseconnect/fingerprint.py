from __future__ import annotations

import os
import re
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

UNKNOWN_CODE = "UNKNOWN"

# Parsers in the upload flow disagree on the name key; first present wins
_NAME_KEYS = ("title", "courseName", "courseTitle", "className")
_CODE_KEYS = ("courseCode", "classCode")


@dataclass(frozen=True)
class CourseFingerprint:
	course_code: str
	course_name: str
	display_name: str
	university: Optional[str] = None
	instructor: Optional[str] = None
	semester: Optional[str] = None
	year: Optional[str] = None

	@property
	def has_known_code(self) -> bool:
		return self.course_code != UNKNOWN_CODE

	def to_dict(self) -> Dict[str, Any]:
		return {
			"courseCode": self.course_code,
			"courseName": self.display_name,
			"university": self.university,
			"instructor": self.instructor,
			"semester": self.semester,
			"year": self.year,
		}


def _clean(value: Any) -> Optional[str]:
	if value is None:
		return None
	text = str(value).strip()
	if not text or text.lower() == "null":
		return None
	return text


def _first(fields: Mapping[str, Any], keys) -> Optional[str]:
	for key in keys:
		value = _clean(fields.get(key))
		if value:
			return value
	return None


def filename_stem(file_name: Optional[str]) -> str:
	base = os.path.basename((file_name or "").strip())
	stem, _ext = os.path.splitext(base)
	return stem.strip()


def derive(parsed: Optional[Mapping[str, Any]], file_name: Optional[str] = None) -> CourseFingerprint:
	"""Build the canonical identity of a course from parsed syllabus fields.

	Missing code becomes ``"UNKNOWN"``; a missing name falls back to the file
	name without its extension (or the code, when there is no file name).
	"""
	fields: Mapping[str, Any] = parsed or {}
	code = (_first(fields, _CODE_KEYS) or UNKNOWN_CODE).upper()
	name = _first(fields, _NAME_KEYS) or filename_stem(file_name) or code
	return CourseFingerprint(
		course_code=code,
		course_name=name.lower(),
		display_name=name,
		university=_clean(fields.get("university")),
		instructor=_clean(fields.get("instructor")),
		semester=_clean(fields.get("semester")),
		year=_clean(fields.get("year")),
	)


def slug(value: Optional[str], default: str = "unknown") -> str:
	if not value:
		return default
	return re.sub(r"[^a-z0-9]", "-", value.lower())


def _course_key(fp: CourseFingerprint) -> str:
	return "-".join(
		[slug(fp.course_code), slug(fp.university), slug(fp.semester), fp.year or "unknown"]
	)


def class_chat_id(fp: CourseFingerprint) -> str:
	"""Same course, university and term always map to the same class chat."""
	return f"class-{_course_key(fp)}"


def syllabus_id(fp: CourseFingerprint) -> str:
	return f"syllabus-{_course_key(fp)}"
