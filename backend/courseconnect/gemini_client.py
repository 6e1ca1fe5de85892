from __future__ import annotations
import logging
import httpx
from typing import Any, Dict, List, Optional, Sequence
from .settings import settings

logger = logging.getLogger(__name__)

# Chat history roles as stored by the client, mapped to Gemini roles
_GEMINI_ROLES = {"user": "user", "bot": "model", "assistant": "model", "ai": "model", "model": "model"}


def _history_turns(history: Optional[Sequence[Dict[str, Any]]]) -> List[Dict[str, str]]:
	turns: List[Dict[str, str]] = []
	for item in history or []:
		if not isinstance(item, dict):
			continue
		role = _GEMINI_ROLES.get(str(item.get("role") or item.get("sender") or "").lower())
		text = item.get("text") or item.get("content") or ""
		if role and isinstance(text, str) and text.strip():
			turns.append({"role": role, "text": text})
	return turns


class GeminiClient:
	"""Minimal async client for Gemini ``generateContent``.

	When OPENROUTER_API_KEY is set, a failed Gemini call is retried once through
	OpenRouter's chat completions endpoint with the same conversation.
	"""

	def __init__(self, api_key: Optional[str] = None, *, base_url: Optional[str] = None, model: Optional[str] = None, timeout: float = 30) -> None:
		self.api_key = api_key or settings.gemini_api_key
		if not self.api_key:
			raise ValueError("GEMINI_API_KEY is not configured")
		self.model = model or settings.gemini_model
		if settings.gemini_provider == "vertex":
			region = settings.vertex_region
			project = settings.vertex_project or "placeholder-project"
			# Vertex AI Express: API key goes in a header
			self.base_url = base_url or (
				f"https://{region}-aiplatform.googleapis.com/v1/projects/{project}/locations/{region}/publishers/google/models/{self.model}:generateContent"
			)
			self._auth_in_query = False
		else:
			self.base_url = base_url or f"https://generativelanguage.googleapis.com/v1beta/models/{self.model}:generateContent"
			self._auth_in_query = True
		self._client = httpx.AsyncClient(timeout=timeout)
		self._fallback_client: Optional[httpx.AsyncClient] = None
		if settings.openrouter_api_key:
			self._fallback_client = httpx.AsyncClient(timeout=timeout)

	async def generate(
		self,
		prompt: str,
		*,
		system: Optional[str] = None,
		history: Optional[Sequence[Dict[str, Any]]] = None,
	) -> str:
		turns = _history_turns(history) + [{"role": "user", "text": prompt}]
		try:
			return await self._gemini(turns, system)
		except (httpx.HTTPError, RuntimeError) as err:
			if self._fallback_client is None:
				raise
			logger.info("Gemini call failed (%s); retrying via OpenRouter", err)
			try:
				return await self._openrouter(turns, system)
			except Exception as fallback_err:
				raise RuntimeError(
					f"Gemini primary call failed ({err}); fallback via OpenRouter also failed"
				) from fallback_err

	async def _gemini(self, turns: List[Dict[str, str]], system: Optional[str]) -> str:
		payload: Dict[str, Any] = {
			"contents": [{"role": t["role"], "parts": [{"text": t["text"]}]} for t in turns],
		}
		if system:
			payload["systemInstruction"] = {"parts": [{"text": system}]}
		params: Dict[str, Any] = {}
		headers: Dict[str, str] = {}
		if self._auth_in_query:
			params["key"] = self.api_key
		else:
			headers["x-goog-api-key"] = self.api_key
		r = await self._client.post(self.base_url, params=params, headers=headers, json=payload)
		r.raise_for_status()
		try:
			data = r.json()
			return data["candidates"][0]["content"]["parts"][0]["text"]
		except Exception:
			raise RuntimeError(f"Unexpected Gemini response: {r.text[:500]}")

	async def _openrouter(self, turns: List[Dict[str, str]], system: Optional[str]) -> str:
		headers = {
			"Authorization": f"Bearer {settings.openrouter_api_key}",
			"Content-Type": "application/json",
			"HTTP-Referer": settings.openrouter_referer,
			"X-Title": settings.openrouter_title,
		}
		messages = [{"role": "system", "content": system}] if system else []
		messages += [
			{"role": "assistant" if t["role"] == "model" else "user", "content": t["text"]}
			for t in turns
		]
		r = await self._fallback_client.post(
			settings.openrouter_base_url,
			headers=headers,
			json={"model": settings.openrouter_model, "messages": messages},
		)
		r.raise_for_status()
		data = r.json()
		return data["choices"][0]["message"]["content"]

	async def aclose(self) -> None:
		await self._client.aclose()
		if self._fallback_client is not None:
			await self._fallback_client.aclose()
