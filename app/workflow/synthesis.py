"""
Summary synthesizer.

Builds one prompt from every assessment for a product and asks the
generative-text provider (Anthropic Messages API) for an executive summary.

The provider is best-effort: a missing API key, timeout, transport error,
non-2xx status or malformed body all come back as a SummaryResult with no
text. Nothing here raises into the caller and nothing here writes; the
decision manager only persists when text is returned.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Optional, Sequence

import httpx
import structlog

from app.core.config import Settings
from app.core.errors import DependencyError
from app.core.metrics import SUMMARY_GENERATIONS
from app.models.renewal import Product, RenewalAssessment

logger = structlog.get_logger()


PROMPT_PREAMBLE = (
    "You are an educational technology advisor helping an international school "
    "make renewal decisions for software subscriptions."
)

PROMPT_INSTRUCTIONS = """Please provide a concise executive summary (3-5 paragraphs) that:
1. Summarizes the overall sentiment and key themes from staff feedback
2. Highlights the main use cases and impact on teaching/learning
3. Notes any concerns or suggested improvements
4. Provides an aggregated recommendation based on the feedback

Be objective and data-driven. Focus on actionable insights for decision-makers."""

# (label, attribute) pairs rendered under each submission when present
SUBMISSION_FIELDS: list[tuple[str, str]] = [
    ("Usage", "usage_frequency"),
    ("Use cases", "primary_use_cases"),
    ("Learning impact", "learning_impact"),
    ("Workflow integration", "workflow_integration"),
    ("Alternatives considered", "alternatives_considered"),
    ("Unique value", "unique_value"),
    ("Justification", "justification"),
    ("Feedback", "stakeholder_feedback"),
    ("Proposed changes", "proposed_changes"),
]


def _describe_submission(index: int, assessment: RenewalAssessment) -> str:
    parts = [
        f"Submission {index} ({assessment.submitter_email}):",
        f"- Recommendation: {assessment.recommendation.replace('_', ' ')}",
    ]
    for label, attr in SUBMISSION_FIELDS:
        value = getattr(assessment, attr, None)
        if value:
            parts.append(f"- {label}: {value}")
    return "\n".join(parts)


def build_prompt(product: Optional[Product], assessments: Sequence[RenewalAssessment]) -> str:
    def _field(name: str) -> str:
        return (getattr(product, name, None) if product is not None else None) or "Unknown"

    submissions = "\n\n".join(
        _describe_submission(i, a) for i, a in enumerate(assessments, start=1)
    )
    return (
        f"{PROMPT_PREAMBLE}\n\n"
        f"App: {_field('product')}\n"
        f"Vendor: {_field('vendor')}\n"
        f"Category: {_field('category')}\n"
        f"Division: {_field('division')}\n\n"
        f"{len(assessments)} staff member(s) submitted renewal assessments:\n\n"
        f"{submissions}\n\n"
        f"{PROMPT_INSTRUCTIONS}"
    )


@dataclass(frozen=True)
class SummaryResult:
    text: Optional[str] = None
    failure_reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.text is not None


class SummaryClient:
    """Thin async client for the Anthropic Messages API."""

    def __init__(
        self,
        *,
        api_key: str,
        api_url: str,
        model: str,
        max_tokens: int,
        timeout_seconds: float,
        anthropic_version: str = "2023-06-01",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.api_key = api_key
        self.api_url = api_url
        self.model = model
        self.max_tokens = max_tokens
        self.timeout_seconds = timeout_seconds
        self.anthropic_version = anthropic_version
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None) -> "SummaryClient":
        return cls(
            api_key=settings.anthropic_api_key,
            api_url=settings.anthropic_api_url,
            model=settings.summary_model,
            max_tokens=settings.summary_max_tokens,
            timeout_seconds=settings.summary_timeout_seconds,
            anthropic_version=settings.anthropic_version,
            transport=transport,
        )

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def complete(self, prompt: str) -> str:
        """Send one user message and return the first text block. Raises DependencyError."""
        headers = {
            "content-type": "application/json",
            "x-api-key": self.api_key,
            "anthropic-version": self.anthropic_version,
        }
        body = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
                # httpx timeouts are per read; bound the whole exchange including the body
                resp = await asyncio.wait_for(
                    client.post(self.api_url, json=body, headers=headers),
                    timeout=self.timeout_seconds,
                )
        except asyncio.TimeoutError:
            raise DependencyError(
                f"Summary provider did not respond within {self.timeout_seconds}s",
                code="provider_timeout",
            )
        except httpx.TimeoutException as e:
            raise DependencyError(f"Summary provider timed out: {e}", code="provider_timeout")
        except httpx.HTTPError as e:
            raise DependencyError(f"Summary provider unreachable: {e}", code="provider_unreachable")

        if not resp.is_success:
            raise DependencyError(
                f"Summary provider returned HTTP {resp.status_code}",
                code="provider_http_error",
                status_code=resp.status_code,
            )

        try:
            payload = resp.json()
            text = payload["content"][0]["text"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise DependencyError(f"Malformed summary provider response: {e}", code="provider_malformed_response")

        if not isinstance(text, str) or not text.strip():
            raise DependencyError("Summary provider returned empty text", code="provider_malformed_response")
        return text.strip()


async def synthesize(
    client: SummaryClient,
    product: Optional[Product],
    assessments: Sequence[RenewalAssessment],
) -> SummaryResult:
    product_id = getattr(product, "id", None)

    if not client.configured:
        logger.info("summary_skipped_no_credential", product_id=product_id)
        SUMMARY_GENERATIONS.labels(outcome="not_configured").inc()
        return SummaryResult(failure_reason="Generative-text provider is not configured")

    if not assessments:
        SUMMARY_GENERATIONS.labels(outcome="no_assessments").inc()
        return SummaryResult(failure_reason="No assessments to summarize")

    prompt = build_prompt(product, assessments)
    try:
        text = await client.complete(prompt)
    except DependencyError as e:
        # Best-effort: log but don't fail the request
        logger.warning("summary_generation_failed", product_id=product_id, code=e.code, error=e.message)
        SUMMARY_GENERATIONS.labels(outcome="failed").inc()
        return SummaryResult(failure_reason=e.message)

    logger.info(
        "summary_generated",
        product_id=product_id,
        submissions=len(assessments),
        chars=len(text),
    )
    SUMMARY_GENERATIONS.labels(outcome="generated").inc()
    return SummaryResult(text=text)
