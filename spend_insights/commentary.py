"""
commentary.py — Natural-Language Commentary Client.

Sends finished analysis results to an OpenAI-compatible chat-completions API
for narrative framing. The language model never computes numbers: every
figure it sees comes from the deterministic analyzer, and every failure is
returned as an explicit result instead of being raised.

Environment:
    COMMENTARY_API_KEY   Bearer token for the commentary endpoint (optional)
"""

import json
import logging
import os
import re
from typing import Any

import requests

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?\n?")

CARD_SYSTEM_PROMPT = """You are a procurement AI assistant. You must return ONLY valid JSON with no additional text or markdown formatting.

Return this exact JSON structure:
{
  "executiveSummary": "Brief overview of key findings and total savings potential",
  "totalSavings": [total savings number from analysis],
  "insightCards": [
    {
      "title": "Specific actionable title",
      "type": "duplicate_vendors",
      "priority": "HIGH",
      "savings": [savings amount],
      "confidence": [0.0 to 1.0],
      "description": "Clear explanation of the issue found",
      "evidence": ["Specific calculation", "Data point", "Supporting fact"],
      "nextStep": "Specific action to take",
      "businessImpact": "Why this matters to procurement"
    }
  ]
}

CRITICAL: Return ONLY the JSON object, no other text."""

CONTRACT_PROMPT = """Analyze this procurement data and identify any contract renewal dates, contract terms, or expiration dates. Look for patterns in vendor names, PO numbers, amounts, or descriptions that suggest contract renewals.

Return ONLY a JSON array of contracts found:
[
  {{
    "vendor": "vendor name",
    "contractType": "annual_contract|service_agreement|license_renewal",
    "renewalDate": "YYYY-MM-DD",
    "annualValue": number,
    "confidence": 0.0-1.0,
    "evidence": "why you think this is a contract"
  }}
]

Data to analyze:
{data}"""


def strip_code_fences(text: str) -> str:
    """Remove markdown code fences a model may wrap around JSON."""
    return _FENCE_RE.sub("", text).strip()


def _findings_prompt(result: dict[str, Any]) -> str:
    summary = result["summary"]
    lines = [
        "Convert this procurement analysis into structured insight cards:",
        "",
        "FINDINGS:",
        f"- Total Savings: ${summary['totalSavings']:,.2f}",
        f"- Records Analyzed: {summary['recordsAnalyzed']}",
        f"- Key Insights: {len(result['insights'])} opportunities found",
        "",
        "DETAILED INSIGHTS:",
    ]
    for insight in result["insights"]:
        impact = insight.get("savings") or insight.get("risk_amount") or 0
        lines.append(f"- {insight['title']}: ${impact:,.2f} potential impact")
        lines.append(f"- Evidence: {', '.join(insight['evidence'])}")
        lines.append(f"- Action: {insight['next_step']}")
    lines.append("")
    lines.append("Convert to JSON format with professional language for procurement teams.")
    return "\n".join(lines)


class CommentaryClient:
    """Thin client for an OpenAI-compatible chat-completions endpoint."""

    def __init__(
        self,
        base_url: str,
        model: str,
        endpoint: str = "/api/chat/completions",
        api_key: str | None = None,
        temperature: float = 0.2,
        max_tokens: int = 2000,
        timeout_seconds: float = 30,
    ):
        self.base_url = base_url.rstrip("/")
        self.endpoint = endpoint
        self.model = model
        self.api_key = api_key
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout_seconds = timeout_seconds

    @classmethod
    def from_config(cls, cfg: dict[str, Any]) -> "CommentaryClient":
        """Build a client from the ``commentary`` section of config.yaml."""
        section = cfg["commentary"]
        return cls(
            base_url=section["base_url"],
            model=section["model"],
            endpoint=section.get("endpoint", "/api/chat/completions"),
            api_key=os.environ.get("COMMENTARY_API_KEY"),
            temperature=section.get("temperature", 0.2),
            max_tokens=section.get("max_tokens", 2000),
            timeout_seconds=section.get("timeout_seconds", 30),
        )

    @property
    def url(self) -> str:
        return f"{self.base_url}{self.endpoint}"

    def _chat(
        self,
        messages: list[dict[str, str]],
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str:
        """Post a chat request and return the first choice's content.

        Raises:
            requests.RequestException: On network or HTTP errors.
            ValueError: If the response body has no usable content.
        """
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        payload = {
            "model": self.model,
            "messages": messages,
            "temperature": self.temperature if temperature is None else temperature,
            "max_tokens": max_tokens or self.max_tokens,
            "stream": False,
        }

        response = requests.post(
            self.url, headers=headers, json=payload, timeout=self.timeout_seconds
        )
        response.raise_for_status()
        try:
            return response.json()["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise ValueError(f"Unexpected commentary response shape: {exc}") from exc

    def summarize(self, result: dict[str, Any]) -> dict[str, Any]:
        """Ask for a short narrative over a full analysis result."""
        messages = [
            {
                "role": "system",
                "content": (
                    "You are a procurement analyst. Explain the findings below for a "
                    "finance audience. Do not change or invent any figures."
                ),
            },
            {"role": "user", "content": _findings_prompt(result)},
        ]
        try:
            text = self._chat(messages, max_tokens=800)
        except (requests.RequestException, ValueError) as exc:
            logger.error("Commentary request failed: %s", exc)
            return {"success": False, "error": str(exc), "model": self.model}
        return {"success": True, "commentary": text, "model": self.model}

    def insight_cards(self, result: dict[str, Any]) -> dict[str, Any]:
        """Ask for structured insight cards, falling back to the raw analysis.

        If the model replies with text that is not valid JSON the analyzer's
        own structured output is returned with the raw reply attached.
        """
        messages = [
            {"role": "system", "content": CARD_SYSTEM_PROMPT},
            {"role": "user", "content": _findings_prompt(result)},
        ]
        try:
            text = self._chat(messages)
        except (requests.RequestException, ValueError) as exc:
            logger.error("Insight card request failed: %s", exc)
            return {"success": False, "error": str(exc), "model": self.model}

        try:
            data = json.loads(strip_code_fences(text))
        except json.JSONDecodeError:
            logger.warning("Insight card reply was not valid JSON — using structured analysis")
            data = {
                "executiveSummary": result["actionPlan"]["executiveSummary"],
                "totalSavings": result["summary"]["totalSavings"],
                "insightCards": result["insights"],
                "aiCommentary": text,
                "parseError": "AI response was not valid JSON, using structured analysis",
            }
        return {"success": True, "data": data, "model": self.model}

    def detect_contracts(self, records: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Ask the model to spot contract renewals in the first 20 records.

        Returns:
            List of contract candidates; empty on any failure.
        """
        prompt = CONTRACT_PROMPT.format(data=json.dumps(records[:20], indent=2, default=str))
        messages = [
            {"role": "system", "content": "You are a contract analysis expert. Return only valid JSON arrays."},
            {"role": "user", "content": prompt},
        ]
        try:
            contracts = json.loads(strip_code_fences(self._chat(messages, max_tokens=1500)))
        except (requests.RequestException, ValueError) as exc:
            logger.error("Contract detection failed: %s", exc)
            return []

        if not isinstance(contracts, list):
            logger.error("Contract detection returned %s, expected a list", type(contracts).__name__)
            return []
        logger.info("Commentary service proposed %d contract(s)", len(contracts))
        return [c for c in contracts if isinstance(c, dict)]

    def ping(self) -> dict[str, Any]:
        """Check connectivity to the commentary endpoint."""
        messages = [{"role": "user", "content": 'Respond with the JSON object {"status": "connected"}'}]
        try:
            reply = self._chat(messages, temperature=0.1, max_tokens=100)
        except (requests.RequestException, ValueError) as exc:
            return {"success": False, "error": str(exc), "endpoint": self.url, "model": self.model}
        return {"success": True, "response": reply, "endpoint": self.url, "model": self.model}
