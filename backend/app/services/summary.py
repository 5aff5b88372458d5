"""Match summary text through Azure OpenAI chat completions.

Summaries are optional decoration on a match record. The generator raises
``ExternalServiceError`` on any transport or response problem and returns
``None`` when it is not configured; callers treat both as "no summary".
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional, Protocol

import httpx

from ..config import AzureOpenAISettings, get_azure_openai_settings

logger = logging.getLogger(__name__)

MAX_TOKENS = 150
TEMPERATURE = 0.7

BASE_SYSTEM_PROMPT = (
    "You are an enthusiastic table tennis commentator who writes brief, "
    "exciting summaries of matches."
)

COMMENTATOR_STYLES = {
    "siddhu": (
        "Start your commentary with 'O guru!' and use exaggerated expressions "
        "throughout."
    ),
    "john mcenroe": (
        "Use passionate and sometimes controversial commentary with phrases "
        "like 'You cannot be serious!' when appropriate."
    ),
    "tony romo": (
        "Include predictive analysis and excited exclamations in your "
        "commentary style."
    ),
}


class ExternalServiceError(Exception):
    """The summary service could not produce text."""


@dataclass(frozen=True)
class MatchSummaryRequest:
    match_type: str
    side1: tuple[str, ...]
    side2: tuple[str, ...]
    side1_score: int
    side2_score: int
    winners: tuple[str, ...] = field(default_factory=tuple)
    commentator_name: Optional[str] = None


class SummaryGenerator(Protocol):
    async def generate(self, request: MatchSummaryRequest) -> Optional[str]:
        ...


def build_system_prompt(commentator_name: Optional[str] = None) -> str:
    prompt = BASE_SYSTEM_PROMPT
    if commentator_name:
        prompt += f" You are emulating the style of {commentator_name}."
        style = COMMENTATOR_STYLES.get(commentator_name.strip().lower())
        if style:
            prompt += f" {style}"
    return prompt


def build_user_prompt(request: MatchSummaryRequest) -> str:
    score = f"{request.side1_score}-{request.side2_score}"
    if request.match_type == "singles":
        lines = [
            "Write a brief, exciting sports commentary style summary (2-3 "
            "sentences) of a table tennis match with these details:",
            f"Player 1: {request.side1[0]}",
            f"Player 2: {request.side2[0]}",
            f"Final Score: {score}",
            f"Winner: {' & '.join(request.winners)}",
        ]
    else:
        lines = [
            "Write a brief, exciting sports commentary style summary (2-3 "
            "sentences) of a table tennis doubles match with these details:",
            f"Team 1: {' & '.join(request.side1)}",
            f"Team 2: {' & '.join(request.side2)}",
            f"Final Score: {score}",
            f"Winners: {' & '.join(request.winners)}",
        ]
    if request.commentator_name:
        lines.append(f"Commentator: {request.commentator_name}")
    lines.append(
        "Be creative, enthusiastic, and mention the score. "
        "Don't use placeholder text."
    )
    return "\n".join(lines)


class DisabledSummaryGenerator:
    async def generate(self, request: MatchSummaryRequest) -> Optional[str]:
        return None


class AzureOpenAISummaryGenerator:
    def __init__(
        self,
        settings: AzureOpenAISettings,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.settings = settings
        self._transport = transport

    def _payload(self, request: MatchSummaryRequest) -> dict:
        return {
            "messages": [
                {
                    "role": "system",
                    "content": build_system_prompt(request.commentator_name),
                },
                {"role": "user", "content": build_user_prompt(request)},
            ],
            "max_tokens": MAX_TOKENS,
            "temperature": TEMPERATURE,
        }

    async def generate(self, request: MatchSummaryRequest) -> Optional[str]:
        """Return summary text, or ``None`` when the service is not configured.

        Raises:
            ExternalServiceError: On a network error, a non-2xx response or a
                response body without a completion.
        """
        if not self.settings.enabled:
            return None

        logger.debug(
            "Requesting %s match summary from deployment %s",
            request.match_type,
            self.settings.deployment_name,
        )
        try:
            async with httpx.AsyncClient(
                timeout=self.settings.timeout, transport=self._transport
            ) as client:
                response = await client.post(
                    self.settings.completions_url,
                    headers={"api-key": self.settings.api_key},
                    json=self._payload(request),
                )
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as exc:
            raise ExternalServiceError(
                f"Azure OpenAI returned {exc.response.status_code}"
            ) from exc
        except httpx.RequestError as exc:
            raise ExternalServiceError(f"Azure OpenAI request failed: {exc}") from exc
        except ValueError as exc:
            raise ExternalServiceError("Azure OpenAI returned invalid JSON") from exc

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise ExternalServiceError("Azure OpenAI response had no completion") from exc
        if not isinstance(content, str) or not content.strip():
            raise ExternalServiceError("Azure OpenAI returned an empty completion")
        return content.strip()


def get_summary_generator() -> SummaryGenerator:
    """FastAPI dependency returning the configured generator."""
    settings = get_azure_openai_settings()
    if not settings.enabled:
        return DisabledSummaryGenerator()
    return AzureOpenAISummaryGenerator(settings)
