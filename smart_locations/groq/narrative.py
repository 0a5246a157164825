"""
AI narrative generation for place lists (visit plans, free-form Q&A).

Single-shot prompts sent to the Groq chat completions API. Retry policy:
at most two attempts, and only an "overloaded" (503) answer is retried after a
fixed pause. Rate limits, rejected requests and network errors fail at once.
"""

import asyncio
import json
import logging
from typing import Any, Dict, Iterable, List, Optional

import aiohttp

from smart_locations.config import get_config

logger = logging.getLogger(__name__)

GROQ_CHAT_URL = "https://api.groq.com/openai/v1/chat/completions"
MAX_ATTEMPTS = 2
RETRY_DELAY_SECONDS = 2.0


class NarrativeError(Exception):
    status = 503
    default_message = "Failed to get response from AI service"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class NarrativeOverloaded(NarrativeError):
    default_message = "AI service is temporarily overloaded. Please try again in a few moments."


class NarrativeRateLimited(NarrativeError):
    status = 429
    default_message = "Rate limit exceeded. Please wait a moment before trying again."


class NarrativeBadRequest(NarrativeError):
    status = 400
    default_message = "Invalid request format."


class NarrativeUnavailable(NarrativeError):
    """Missing key, network failure or an unexpected upstream answer."""


def build_report_prompt(elements: Iterable[Dict[str, Any]]) -> str:
    """Visit-plan prompt for a list of places (as returned by /api/search)."""
    return (
        f"Based on the data given {json.dumps(list(elements), ensure_ascii=False)}, "
        "make a plan why these places should be visited. Give a deep insight of the background "
        "of each notable place. Provide website links if possible."
    )


class NarrativeClient:
    """Groq chat client with the narrow retry policy described above."""

    def __init__(self, api_key: Optional[str], model: str = "llama-3.1-8b-instant",
                 session: Optional[aiohttp.ClientSession] = None, timeout: float = 30.0,
                 retry_delay: float = RETRY_DELAY_SECONDS):
        self.api_key = api_key
        self.model = model
        self.session = session
        self.timeout = timeout
        self.retry_delay = retry_delay

    @classmethod
    def from_config(cls, session=None, config=None) -> "NarrativeClient":
        config = config or get_config()
        return cls(config.groq_api_key, config.groq_model, session=session,
                   timeout=config.timeout_config.ai)

    async def _call_once(self, messages: List[Dict[str, str]], max_tokens: int, temperature: float) -> str:
        headers = {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}
        payload = {
            "model": self.model,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        session = self.session or aiohttp.ClientSession()
        try:
            async with session.post(GROQ_CHAT_URL, json=payload, headers=headers,
                                    timeout=aiohttp.ClientTimeout(total=self.timeout)) as resp:
                if resp.status == 200:
                    try:
                        data = await resp.json(content_type=None)
                    except ValueError as e:
                        logger.error("Groq returned unreadable JSON: %s", e)
                        raise NarrativeUnavailable("Invalid response from AI service")
                    try:
                        text = data["choices"][0]["message"]["content"]
                    except (KeyError, IndexError, TypeError):
                        text = None
                    if not isinstance(text, str) or not text.strip():
                        raise NarrativeUnavailable("No response from AI service")
                    return text.strip()
                body = await resp.text()
                logger.error("Groq API response: %s %s", resp.status, body[:300])
                if resp.status == 503:
                    raise NarrativeOverloaded()
                if resp.status == 429:
                    raise NarrativeRateLimited()
                if resp.status == 400:
                    raise NarrativeBadRequest()
                raise NarrativeUnavailable(f"AI service error: HTTP {resp.status}")
        except NarrativeError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error("Groq network error: %s", e)
            raise NarrativeUnavailable("Network connection failed. Please check your internet connection.")
        finally:
            if not self.session:
                await session.close()

    async def generate(self, prompt: str, max_tokens: int = 1024, temperature: float = 0.7) -> str:
        if not self.api_key:
            raise NarrativeUnavailable("AI API key not configured")
        messages = [{"role": "user", "content": prompt}]
        for attempt in range(1, MAX_ATTEMPTS + 1):
            try:
                return await self._call_once(messages, max_tokens, temperature)
            except NarrativeOverloaded:
                if attempt >= MAX_ATTEMPTS:
                    raise
                logger.warning("AI service overloaded (attempt %d), retrying in %.1fs", attempt, self.retry_delay)
                await asyncio.sleep(self.retry_delay)
        raise NarrativeUnavailable()

    async def generate_report(self, elements: Iterable[Dict[str, Any]]) -> str:
        return await self.generate(build_report_prompt(elements), max_tokens=2000, temperature=0.7)
