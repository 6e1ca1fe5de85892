from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import Field
from sqlalchemy.orm import Session

from ..db import get_db
from ..duplicates import find_duplicate
from ..fingerprint import class_chat_id
from ..registry import CourseRecordStore
from .groups import SyllabusFields

logger = logging.getLogger(__name__)

router = APIRouter(tags=["syllabi"])


class UploadRequest(SyllabusFields):
	user_id: str = Field(alias="userId")


@router.post("/syllabi")
def upload_syllabus(req: UploadRequest, db: Session = Depends(get_db)):
	user_id = (req.user_id or "").strip()
	if not user_id:
		raise HTTPException(status_code=400, detail="userId is required")
	fp = req.fingerprint()
	store = CourseRecordStore(db)
	match = find_duplicate(fp, store.owned_fingerprints(user_id))
	if match is not None:
		logger.info("%s already has %s (%s match)", user_id, match.record.owner.syllabus_id, match.kind)
		return {
			"created": False,
			"duplicate": True,
			"matchType": match.kind,
			"similarity": round(match.score, 4),
			"existing": match.record.owner.to_dict(),
			"fingerprint": fp.to_dict(),
		}
	record = store.add(user_id, fp, req.file_name)
	return {
		"created": True,
		"duplicate": False,
		"record": record.to_dict(),
		"chatId": class_chat_id(fp),
		"fingerprint": fp.to_dict(),
	}


@router.get("/users/{user_id}/syllabi")
def user_syllabi(user_id: str, db: Session = Depends(get_db)):
	return {"syllabi": [r.to_dict() for r in CourseRecordStore(db).records_for(user_id)]}
