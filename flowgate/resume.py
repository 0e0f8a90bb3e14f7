"""Resume signals delivered to external systems waiting on a review."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Optional, Protocol

import httpx
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .config import ResumeConfig
from .constants import DEFAULT_RESUME_ATTEMPTS
from .contracts import utcnow
from .utils.retry import wait_before_retry

logger = logging.getLogger(__name__)


class ResumeSignal(BaseModel):
    """Outcome of a review, serialised with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    approved: bool
    review_id: str
    reviewer_notes: Optional[str] = None
    response_data: Optional[Dict[str, Any]] = None
    reviewed_at: datetime = Field(default_factory=utcnow)

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class ResumeSender(Protocol):
    async def send(self, signal: ResumeSignal, target: Dict[str, Any]) -> bool:
        """Deliver ``signal``; ``target`` is the review action payload."""


class HttpResumeSender:
    """POSTs resume signals to a waiting automation engine.

    The URL comes from the action payload's ``resume_url`` when present, else
    ``{base_url}/reviews/{review_id}/resume``. Failures are retried with
    exponential backoff and finally logged; they never raise.
    """

    def __init__(
        self,
        config: Optional[ResumeConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
        backoff_base: float = 1.5,
    ) -> None:
        self._config = config or ResumeConfig()
        self._client = client
        self._backoff_base = backoff_base

    def url_for(self, signal: ResumeSignal, target: Dict[str, Any]) -> Optional[str]:
        if target.get("resume_url"):
            return target["resume_url"]
        if self._config.base_url:
            return f"{self._config.base_url.rstrip('/')}/reviews/{signal.review_id}/resume"
        return None

    async def send(self, signal: ResumeSignal, target: Dict[str, Any]) -> bool:
        url = self.url_for(signal, target)
        if url is None:
            logger.debug(f"No resume target for review {signal.review_id}")
            return False

        headers = {"Content-Type": "application/json"}
        if self._config.api_key:
            headers["X-API-Key"] = self._config.api_key

        attempts = max(1, self._config.max_attempts or DEFAULT_RESUME_ATTEMPTS)
        client = self._client or httpx.AsyncClient(timeout=self._config.timeout)
        try:
            for attempt in range(attempts):
                try:
                    response = await client.post(url, json=signal.to_payload(), headers=headers)
                    response.raise_for_status()
                    logger.info(f"Resume signal for review {signal.review_id} sent to {url}")
                    return True
                except httpx.HTTPError as e:
                    logger.warning(
                        f"Resume delivery attempt {attempt + 1}/{attempts} to {url} failed: {e}"
                    )
                    if attempt + 1 < attempts:
                        await wait_before_retry(attempt, base=self._backoff_base)
        finally:
            if self._client is None:
                await client.aclose()

        logger.error(f"Giving up on resume signal for review {signal.review_id}")
        return False
