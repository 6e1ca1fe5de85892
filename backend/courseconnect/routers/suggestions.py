from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from ..assistant import build_assistant
from ..courses import parse_chats
from ..pipeline import SuggestionPipeline

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/dashboard", tags=["suggestions"])


class SuggestionsRequest(BaseModel):
	model_config = ConfigDict(populate_by_name=True)

	# Map of chat id -> chat record; validated in courses.parse_chats
	chats: Any = None
	user_id: Optional[str] = Field(default=None, alias="userId")


async def get_assistant():
	assistant = build_assistant()
	try:
		yield assistant
	finally:
		if assistant is not None:
			await assistant.aclose()


@router.post("/ai-suggestions")
async def ai_suggestions(req: SuggestionsRequest, assistant=Depends(get_assistant)):
	if not isinstance(req.chats, dict):
		return JSONResponse(status_code=400, content={"success": False, "error": "Invalid chats data"})
	try:
		pipeline = SuggestionPipeline(assistant)
		result = await pipeline.run(parse_chats(req.chats), datetime.now(timezone.utc))
		return result.to_json()
	except Exception as e:
		logger.exception("Error generating suggestions for %s", req.user_id or "anonymous")
		return JSONResponse(
			status_code=500,
			content={"success": False, "error": str(e) or "Failed to generate suggestions"},
		)
