"""Client for the local inference service that condenses transcripts."""

from __future__ import annotations

import asyncio
from typing import Any, Dict, Optional

import httpx

from ...config import get_settings
from ...data.models import SummaryFailure, SummaryResult
from ...logging import get_logger

LOGGER = get_logger(__name__)

GENERATE_PATH = "/api/generate"


class SummarizationClient:
    """Send one transcript per call to ``POST /api/generate``.

    Transport problems never raise: they come back as a failed
    :class:`SummaryResult`. Cancelling the awaiting task aborts the request.
    No retries are attempted.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        prompt_template: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        settings = get_settings()
        self.base_url = (base_url or settings.summary_url).rstrip("/")
        if self.base_url.endswith(GENERATE_PATH):
            self.base_url = self.base_url[: -len(GENERATE_PATH)]
        self.model = model if model is not None else settings.summary_model
        self.timeout = timeout if timeout is not None else settings.summary_timeout
        self.prompt_template = prompt_template or settings.summary_prompt
        self._transport = transport

    def build_prompt(self, text: str, language: Optional[str] = None) -> str:
        return self.prompt_template.format(transcript=text, language=language or "unspecified")

    def build_payload(self, text: str, language: Optional[str] = None) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"prompt": self.build_prompt(text, language), "stream": False}
        if self.model:
            payload["model"] = self.model
        return payload

    async def summarize(
        self,
        text: str,
        timeout: Optional[float] = None,
        language: Optional[str] = None,
    ) -> SummaryResult:
        deadline = timeout if timeout is not None else self.timeout
        LOGGER.info("Requesting summary of %s characters from %s", len(text), self.base_url)
        try:
            result = await asyncio.wait_for(self._request(text, language, deadline), deadline)
        except asyncio.TimeoutError:
            result = SummaryResult.failed(SummaryFailure.TIMEOUT, f"No response within {deadline} s")
        if result.ok:
            LOGGER.info("Received summary of %s characters", len(result.text or ""))
        else:
            LOGGER.warning("Summarisation failed (%s): %s", result.failure.value, result.detail)
        return result

    async def _request(self, text: str, language: Optional[str], deadline: float) -> SummaryResult:
        payload = self.build_payload(text, language)
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=deadline,
                transport=self._transport,
            ) as client:
                response = await client.post(GENERATE_PATH, json=payload)
                response.raise_for_status()
        except httpx.TimeoutException as exc:
            return SummaryResult.failed(SummaryFailure.TIMEOUT, str(exc) or type(exc).__name__)
        except httpx.HTTPStatusError as exc:
            return SummaryResult.failed(
                SummaryFailure.NETWORK_ERROR,
                f"HTTP {exc.response.status_code} from {exc.request.url}",
            )
        except httpx.HTTPError as exc:
            return SummaryResult.failed(SummaryFailure.NETWORK_ERROR, str(exc) or type(exc).__name__)
        return self._parse(response)

    def _parse(self, response: httpx.Response) -> SummaryResult:
        try:
            data = response.json()
        except ValueError:
            return SummaryResult.failed(SummaryFailure.MALFORMED_RESPONSE, "Response body is not valid JSON")
        if not isinstance(data, dict):
            return SummaryResult.failed(SummaryFailure.MALFORMED_RESPONSE, "Response body is not a JSON object")
        summary = data.get("response")
        if not isinstance(summary, str):
            return SummaryResult.failed(
                SummaryFailure.MALFORMED_RESPONSE, "Response is missing the 'response' string"
            )
        summary = summary.strip()
        if not summary:
            return SummaryResult.failed(SummaryFailure.MALFORMED_RESPONSE, "Response text is empty")
        return SummaryResult.structured(summary)

    def summarize_blocking(
        self,
        text: str,
        timeout: Optional[float] = None,
        language: Optional[str] = None,
    ) -> SummaryResult:
        """Run a single summarisation to completion from synchronous code."""

        return asyncio.run(self.summarize(text, timeout=timeout, language=language))


__all__ = ["GENERATE_PATH", "SummarizationClient"]
