"""Semantic judge: an LLM asked whether two risks describe the same scenario.

The judge answers in free text that should contain a JSON object
``{"score", "matchedFields", "reasoning"}``. Parsing degrades in stages:
strict JSON, then the first balanced ``{...}`` substring, then the first
standalone 1-3 digit number.
"""
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field

import httpx

from riskmatch.config import ProviderSettings
from riskmatch.domain import UNAVAILABLE, Record, Unavailable
from riskmatch.errors import JudgeParseFailure

logger = logging.getLogger(__name__)

_CODE_FENCE = re.compile(r"^```[A-Za-z0-9_-]*\s*|\s*```$")
_STANDALONE_NUMBER = re.compile(r"\b(\d{1,3})\b")

KNOWN_FIELDS = ("title", "threatDescription", "description")

RUBRIC_PROMPT = """You are a risk management expert. Compare these two information security risks and determine if they describe the SAME SPECIFIC RISK or DIFFERENT risks.

CRITICAL: Risks are only similar if they describe the EXACT SAME threat, scenario, or security issue. Being in the same category (e.g., "both are security risks") is NOT enough for a high score.

Risk 1:
Title: {title1}
Threat Description: {threat1}
Description: {desc1}

Risk 2:
Title: {title2}
Threat Description: {threat2}
Description: {desc2}

Scoring rules (BE STRICT):
- 90-100: Risks describe the EXACT SAME threat/scenario
- 80-89: Same threat with minor variations in wording or detail
- 70-79: Related risks describing different aspects of a threat
- 50-69: Same category but clearly different risks
- 30-49: Both are security risks but unrelated
- 0-29: Completely different risks

IMPORTANT:
- If risk data is incomplete (missing threat description or description), be MORE conservative
- Generic risks (e.g., "Security risk" or "Data breach") should score LOW unless they are truly identical
- Different attack vectors, different assets, or different scenarios = DIFFERENT risks

Respond with ONLY a JSON object:
{{
  "score": <number 0-100>,
  "matchedFields": ["title", "threatDescription", "description"],
  "reasoning": "<brief explanation of why this score>"
}}"""


@dataclass
class Judgement:
    """Parsed judge reply."""
    score: float
    matched_fields: list[str] = field(default_factory=list)
    reasoning: str = ""
    stage: str = "json"


def build_prompt(a: Record, b: Record) -> str:
    """Render the banded scoring rubric for two records."""
    return RUBRIC_PROMPT.format(
        title1=a.title or "N/A",
        threat1=a.threat_description or "N/A",
        desc1=a.description or "N/A",
        title2=b.title or "N/A",
        threat2=b.threat_description or "N/A",
        desc2=b.description or "N/A",
    )


def _strip_code_fences(text: str) -> str:
    t = text.strip()
    if t.startswith("```") and t.endswith("```"):
        t = _CODE_FENCE.sub("", t)
    return t.strip()


def first_balanced_object(text: str) -> str | None:
    """Return the first ``{...}`` substring with balanced braces.

    Braces inside JSON string literals are ignored.
    """
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return text[start:i + 1]
        # Unbalanced from this brace, try the next one
        start = text.find("{", start + 1)
    return None


def _judgement_from_object(data: object, stage: str) -> Judgement:
    if not isinstance(data, dict):
        raise ValueError("Judge JSON is not an object")

    raw_score = data.get("score", 0)
    if isinstance(raw_score, bool):
        raise ValueError("Judge score is not numeric")
    score = float(raw_score) if raw_score is not None else 0.0

    raw_fields = data.get("matchedFields") or []
    if not isinstance(raw_fields, list):
        raw_fields = []
    matched = []
    for name in raw_fields:
        if isinstance(name, str) and name in KNOWN_FIELDS and name not in matched:
            matched.append(name)

    reasoning = data.get("reasoning") or ""
    return Judgement(score=score, matched_fields=matched, reasoning=str(reasoning), stage=stage)


def parse_judgement(reply: str | None) -> Judgement:
    """Parse a judge reply.

    Raises:
        JudgeParseFailure: If the reply holds neither JSON nor a number
    """
    text = _strip_code_fences(reply or "")

    try:
        judgement = _judgement_from_object(json.loads(text), stage="json")
        logger.debug("[Judge] Parsed reply as strict JSON")
        return judgement
    except (ValueError, TypeError):
        pass

    block = first_balanced_object(text)
    if block is not None:
        try:
            judgement = _judgement_from_object(json.loads(block), stage="brace")
            logger.debug("[Judge] Parsed JSON object embedded in reply")
            return judgement
        except (ValueError, TypeError):
            logger.warning(f"[Judge] Failed to parse JSON object in reply: {block[:200]!r}")

    match = _STANDALONE_NUMBER.search(text)
    if match:
        score = int(match.group(1))
        logger.warning(f"[Judge] Could not parse JSON, extracted score {score} from reply")
        return Judgement(score=float(score), stage="number")

    raise JudgeParseFailure(f"No JSON object or score in judge reply: {text[:200]!r}")


class SemanticJudge:
    """Async client for a chat model behind an Ollama-compatible API."""

    def __init__(
        self,
        config: ProviderSettings,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = config
        self._client = http_client
        self._owns_client = http_client is None

    @property
    def model(self) -> str:
        return self.config.judge_model

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.config.judge_timeout)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def ask(self, prompt: str) -> str | Unavailable:
        """Send one user message and return the reply text.

        Returns ``UNAVAILABLE`` on transport failure, non-success status or an
        undecodable body. An empty reply is returned as ``""``.
        """
        url = f"{self.config.base_url.rstrip('/')}/api/chat"
        payload = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "stream": False,
        }

        try:
            response = await self._get_client().post(url, json=payload, timeout=self.config.judge_timeout)
        except httpx.TimeoutException as e:
            logger.error(f"[Judge] Timed out after {self.config.judge_timeout}s (model '{self.model}'): {e!r}")
            return UNAVAILABLE
        except httpx.HTTPError as e:
            logger.error(f"[Judge] Request to model '{self.model}' failed: {e!r}")
            return UNAVAILABLE

        if response.status_code >= 400:
            logger.error(f"[Judge] HTTP {response.status_code} from model '{self.model}': {response.text[:200]}")
            return UNAVAILABLE

        try:
            data = response.json()
        except ValueError as e:
            logger.error(f"[Judge] Response body is not JSON: {e}")
            return UNAVAILABLE

        if not isinstance(data, dict):
            logger.error("[Judge] Response body is not an object")
            return UNAVAILABLE

        message = data.get("message")
        content = message.get("content") if isinstance(message, dict) else None
        return str(content or data.get("response") or "")
