from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .gemini_client import GeminiClient
from .settings import settings

logger = logging.getLogger(__name__)

TUTOR_INSTRUCTION = (
	"You are a friendly study assistant for university students. "
	"Answer concisely and follow the requested output format exactly."
)


class AssistanceRequest(BaseModel):
	model_config = ConfigDict(populate_by_name=True)

	question: str
	context: str = ""
	conversation_history: List[Dict[str, Any]] = Field(default_factory=list, alias="conversationHistory")
	is_search_request: bool = Field(default=False, alias="isSearchRequest")


class AssistanceResponse(BaseModel):
	answer: Optional[str] = None


# Anything with this shape can stand in for the tutor (tests pass plain coroutines)
Assistant = Callable[[AssistanceRequest], Awaitable[AssistanceResponse]]


class GeminiStudyAssistant:
	"""Text completion collaborator used to enrich suggestions."""

	def __init__(self, client: Optional[GeminiClient] = None) -> None:
		self.client = client or GeminiClient()

	async def __call__(self, request: AssistanceRequest) -> AssistanceResponse:
		prompt = request.question
		if request.context:
			prompt = f"Context: {request.context}\n\n{prompt}"
		text = await self.client.generate(
			prompt,
			system=TUTOR_INSTRUCTION,
			history=request.conversation_history,
		)
		return AssistanceResponse(answer=text)

	async def aclose(self) -> None:
		await self.client.aclose()


def build_assistant() -> Optional[GeminiStudyAssistant]:
	"""Gemini-backed assistant, or None when no API key is configured."""
	if not settings.gemini_api_key:
		return None
	try:
		return GeminiStudyAssistant()
	except ValueError as err:
		logger.warning("study assistant unavailable: %s", err)
		return None
