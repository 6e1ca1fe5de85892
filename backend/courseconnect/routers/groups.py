from __future__ import annotations

from typing import Any, Dict, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from .. import groups
from ..db import get_db
from ..fingerprint import CourseFingerprint, derive
from ..registry import GroupNotFound, GroupRegistry

router = APIRouter(tags=["groups"])


class SyllabusFields(BaseModel):
	model_config = ConfigDict(populate_by_name=True)

	file_name: Optional[str] = Field(default=None, alias="fileName")
	# Fields from the document parser: title, courseCode, instructor, university, semester, year
	parsed: Dict[str, Any] = Field(default_factory=dict)

	def fingerprint(self) -> CourseFingerprint:
		if not (self.file_name or "").strip():
			raise HTTPException(status_code=400, detail="fileName is required")
		return derive(self.parsed, self.file_name)


class DecideRequest(SyllabusFields):
	user_id: str = Field(alias="userId")
	preference: Literal["public-chat", "ai-only"] = groups.PUBLIC_CHAT
	chat_id: Optional[str] = Field(default=None, alias="chatId")


class JoinRequest(BaseModel):
	model_config = ConfigDict(populate_by_name=True)

	user_id: str = Field(alias="userId")


def get_registry(db: Session = Depends(get_db)) -> GroupRegistry:
	return GroupRegistry(db)


def _require_user(user_id: str) -> str:
	user_id = (user_id or "").strip()
	if not user_id:
		raise HTTPException(status_code=400, detail="userId is required")
	return user_id


@router.post("/groups/match")
def match_groups(req: SyllabusFields, registry: GroupRegistry = Depends(get_registry)):
	fp = req.fingerprint()
	candidates = groups.match(fp, registry)
	return {"fingerprint": fp.to_dict(), "candidates": [c.to_dict() for c in candidates]}


@router.post("/groups/decide")
def decide_group(req: DecideRequest, registry: GroupRegistry = Depends(get_registry)):
	fp = req.fingerprint()
	decision = groups.decide(
		fp,
		registry,
		_require_user(req.user_id),
		preference=req.preference,
		chat_id=req.chat_id,
	)
	return decision.to_dict()


@router.post("/groups", status_code=201)
def create_group(req: DecideRequest, registry: GroupRegistry = Depends(get_registry)):
	# Explicit "create my own" after the user declined the proposed candidates
	fp = req.fingerprint()
	group = groups.create(fp, registry, _require_user(req.user_id), preference=req.preference, chat_id=req.chat_id)
	return group.to_dict()


@router.post("/groups/{group_id}/join")
def join_group(group_id: str, req: JoinRequest, registry: GroupRegistry = Depends(get_registry)):
	try:
		group = groups.join(registry, group_id, _require_user(req.user_id))
	except GroupNotFound:
		raise HTTPException(status_code=404, detail="group not found")
	return group.to_dict()


@router.get("/groups/{group_id}")
def get_group(group_id: str, registry: GroupRegistry = Depends(get_registry)):
	group = registry.get_group(group_id)
	if group is None:
		raise HTTPException(status_code=404, detail="group not found")
	return group.to_dict()


@router.get("/users/{user_id}/groups")
def user_groups(user_id: str, registry: GroupRegistry = Depends(get_registry)):
	return {"groups": [g.to_dict() for g in registry.groups_for_user(user_id)]}
