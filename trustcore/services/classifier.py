"""
TrustCore - Content Classifier
==============================

Moderation decision pipeline for user-generated text.

1. Deterministic keyword blacklist, loaded from the database on every check
2. Semantic check through the OpenAI chat completions API in JSON mode

The pipeline fails closed: a missing API key, transport error, timeout,
empty or malformed response all yield an unsafe verdict with a generic
"blocked for safety" reason. Internal error text is logged, never returned.
"""

import asyncio
import json
import sqlite3
import uuid
from dataclasses import dataclass, field
from typing import Optional

import openai
from openai import OpenAI

from trustcore.core.config import CLASSIFIER_MODEL, CLASSIFIER_TIMEOUT, OPENAI_API_KEY
from trustcore.core.constants import (
    CLASSIFIER_MAX_TOKENS,
    CLASSIFIER_PROFILES,
    CLASSIFIER_TEMPERATURE,
    CONTENT_KINDS,
    LOG_MESSAGE_TRUNCATION_LENGTH,
    REASON_API_ERROR,
    REASON_BLACKLIST_UNAVAILABLE,
    REASON_INVALID_RESPONSE,
    REASON_NO_RESPONSE,
    REASON_NOT_CONFIGURED,
    REASON_UNPARSEABLE,
)
from trustcore.core.errors import ContentRejected, DependencyFailure, NotFound, Unauthorized
from trustcore.core.logger import logger
from trustcore.services.db import ContentItem, QueueEntry, TrustDatabase
from trustcore.utils.helpers import Clock, parse_timestamp, to_timestamp, truncate, utcnow


# =============================================================================
# Prompts
# =============================================================================

GENERAL_PROMPT = """You are an automated content filter for a health and wellness community.

Return JSON: { "isSafe": boolean, "reason": string }

You MUST return isSafe: false if the text contains:
- Profanity or vulgarity
- Hate speech or discrimination
- Threats or violence
- Sexual content
- Personal attacks
- Health misinformation

EXAMPLES:
- "This product is garbage, you idiots" -> isSafe: false
- "This protocol helped me sleep" -> isSafe: true

ONLY return isSafe: true if the text is clean and professional.

Respond with JSON only:
{ "isSafe": true/false, "reason": "brief explanation" }"""

GUEST_PROMPT = """You are a nuanced content moderator for a health science platform.

Your goal: identify hate speech, harassment, severe profanity, spam and
self-promotion. Users discuss chemicals, lab results, potency and physical
effects. Do NOT flag technical, medical or scientific terminology.

Decision logic:
- Personal attack or slurs -> { "isSafe": false, "reason": "Contains hate speech or personal attacks", "confidence": "high" }
- Technical inquiry, even about toxins or side effects -> { "isSafe": true, "reason": "Technical/scientific discussion", "confidence": "high" }
- Personal health experience ("I felt sick") -> { "isSafe": true, "reason": "Personal health experience", "confidence": "high" }
- Promotional links or advertising -> { "isSafe": false, "reason": "Spam/promotional content", "confidence": "high" }
- Low-effort or off-topic but harmless -> { "isSafe": true, "reason": "Borderline quality", "confidence": "low" }

Respond with JSON only:
{ "isSafe": true/false, "reason": "brief explanation", "confidence": "high/low" }"""

PROMPTS = {
    "general": GENERAL_PROMPT,
    "guest": GUEST_PROMPT,
}


# =============================================================================
# Data Classes
# =============================================================================

@dataclass
class SemanticVerdict:
    """Validated answer from the semantic classifier."""
    is_safe: bool
    reason: str
    confidence: Optional[str] = None


@dataclass
class ClassificationResult:
    """Final moderation decision for one piece of text."""
    safe: bool
    reason: str
    matched_keywords: list[str] = field(default_factory=list)
    stage: str = "semantic"  # blacklist | semantic

    def to_dict(self) -> dict:
        return {
            "safe": self.safe,
            "reason": self.reason,
            "matched_keywords": self.matched_keywords,
        }


# =============================================================================
# Semantic Classifier
# =============================================================================

class OpenAISemanticClassifier:
    """
    Semantic check backed by OpenAI chat completions.

    Raises DependencyFailure for every failure mode; ContentClassifier
    turns that into an unsafe verdict.
    """

    def __init__(
        self,
        api_key: Optional[str] = OPENAI_API_KEY,
        model: str = CLASSIFIER_MODEL,
        timeout: float = CLASSIFIER_TIMEOUT,
    ) -> None:
        self.model = model
        self.timeout = timeout
        self.openai_client: Optional[OpenAI] = None
        self._init_openai(api_key)

    def _init_openai(self, api_key: Optional[str]) -> None:
        """Initialize OpenAI client with a bounded timeout and no retries."""
        if api_key:
            self.openai_client = OpenAI(api_key=api_key, timeout=self.timeout, max_retries=0)
            logger.info("OpenAI Client Initialized For Content Classification", [
                ("Model", self.model),
                ("Timeout", f"{self.timeout}s"),
            ])
        else:
            logger.warning("OPENAI_API_KEY Not Set - Semantic Checks Fail Closed")

    async def classify(self, text: str, profile: str = "general") -> SemanticVerdict:
        if not self.openai_client:
            raise DependencyFailure(REASON_NOT_CONFIGURED)

        try:
            response = await asyncio.wait_for(
                asyncio.to_thread(
                    self.openai_client.chat.completions.create,
                    model=self.model,
                    messages=[
                        {"role": "system", "content": PROMPTS[profile]},
                        {"role": "user", "content": f'Review this content: "{text}"'},
                    ],
                    max_tokens=CLASSIFIER_MAX_TOKENS[profile],
                    temperature=CLASSIFIER_TEMPERATURE,
                    response_format={"type": "json_object"},
                ),
                timeout=self.timeout + 1,
            )
        except (openai.OpenAIError, asyncio.TimeoutError) as e:
            logger.error("Semantic Classifier Request Failed", [
                ("Type", type(e).__name__),
                ("Error", truncate(str(e), LOG_MESSAGE_TRUNCATION_LENGTH)),
            ])
            raise DependencyFailure(REASON_API_ERROR) from e

        content = None
        if response.choices:
            content = response.choices[0].message.content
        return parse_verdict(content)


def parse_verdict(raw: Optional[str]) -> SemanticVerdict:
    """
    Validate a raw JSON verdict.

    Raises:
        DependencyFailure: Empty, unparseable, or isSafe is not a boolean
    """
    result_text = (raw or "").strip()
    if not result_text:
        logger.warning("Semantic Classifier Returned Empty Response")
        raise DependencyFailure(REASON_NO_RESPONSE)

    try:
        data = json.loads(result_text)
    except json.JSONDecodeError as e:
        logger.warning("Failed To Parse Classifier Response", [
            ("Error", str(e)),
            ("Raw", truncate(result_text, LOG_MESSAGE_TRUNCATION_LENGTH)),
        ])
        raise DependencyFailure(REASON_UNPARSEABLE) from e

    if not isinstance(data, dict) or not isinstance(data.get("isSafe"), bool):
        logger.warning("Invalid Classifier Response", [
            ("Raw", truncate(result_text, LOG_MESSAGE_TRUNCATION_LENGTH)),
        ])
        raise DependencyFailure(REASON_INVALID_RESPONSE)

    reason = data.get("reason")
    confidence = data.get("confidence")
    return SemanticVerdict(
        is_safe=data["isSafe"],
        reason=reason if isinstance(reason, str) and reason else "No reason given",
        confidence=confidence if confidence in ("high", "low") else None,
    )


# =============================================================================
# Content Classifier
# =============================================================================

class ContentClassifier:
    """Blacklist plus semantic moderation, with publish and re-check helpers."""

    def __init__(self, database: TrustDatabase, semantic, clock: Clock = utcnow) -> None:
        """
        Args:
            database: TrustDatabase instance
            semantic: Object with `async classify(text, profile) -> SemanticVerdict`
            clock: Returns the current time
        """
        self.db = database
        self.semantic = semantic
        self.clock = clock

    async def _scan_blacklist(self, text: str) -> list[tuple[str, Optional[str]]]:
        keywords = await asyncio.to_thread(self.db.list_keywords, True)
        lowered = text.lower()
        return [(kw.keyword, kw.reason) for kw in keywords if kw.keyword.lower() in lowered]

    async def classify(self, text: str, profile: str = "general") -> ClassificationResult:
        """
        Decide whether text may be published.

        Raises:
            ValueError: Unknown profile
        """
        if profile not in CLASSIFIER_PROFILES:
            raise ValueError(f"Unknown classifier profile: {profile}")

        try:
            matches = await self._scan_blacklist(text)
        except sqlite3.Error as e:
            logger.error_tree("Blacklist Load Failed", e, [("Profile", profile)])
            return ClassificationResult(safe=False, reason=REASON_BLACKLIST_UNAVAILABLE, stage="blacklist")

        if matches:
            keywords = [keyword for keyword, _ in matches]
            reasons = [reason for _, reason in matches if reason]
            reason = "Content contains blocked keywords"
            if reasons:
                reason += f": {'; '.join(reasons)}"
            logger.tree("Blacklist Match", [
                ("Keywords", ", ".join(keywords)),
                ("Profile", profile),
            ], emoji="🚫")
            return ClassificationResult(safe=False, reason=reason, matched_keywords=keywords, stage="blacklist")

        try:
            verdict = await self.semantic.classify(text, profile)
        except DependencyFailure as e:
            return ClassificationResult(safe=False, reason=e.reason)
        except Exception as e:
            logger.error_tree("Semantic Classifier Crashed", e, [("Profile", profile)])
            return ClassificationResult(safe=False, reason=REASON_API_ERROR)

        if not verdict.is_safe:
            logger.tree("Content Rejected By Classifier", [
                ("Profile", profile),
                ("Reason", verdict.reason),
                ("Confidence", verdict.confidence or "n/a"),
            ], emoji="🛑")
        else:
            logger.debug("Content Passed Classifier", [
                ("Profile", profile),
                ("Confidence", verdict.confidence or "n/a"),
            ])
        return ClassificationResult(safe=verdict.is_safe, reason=verdict.reason)

    async def ensure_safe(self, text: str, profile: str = "general") -> ClassificationResult:
        """Classify and raise ContentRejected when the text is not safe."""
        result = await self.classify(text, profile)
        if not result.safe:
            raise ContentRejected(result.reason, result.matched_keywords)
        return result

    async def publish_content(
        self,
        author_id: str,
        kind: str,
        body: str,
        parent_id: Optional[str] = None,
        profile: str = "general",
    ) -> ContentItem:
        """
        Screen and persist a new discussion, comment or review.

        Raises:
            NotFound: Unknown author or parent
            Unauthorized: Author is banned or serving a timed suspension
            ContentRejected: Empty or unsafe body
        """
        if kind not in CONTENT_KINDS:
            raise ValueError(f"Unknown content kind: {kind}")
        if not body or not body.strip():
            raise ContentRejected("Content cannot be empty")

        author = await self.db.get_actor_async(author_id)
        if author is None or not author.is_active:
            raise NotFound("Author not found.")
        now = self.clock()
        suspended_until = parse_timestamp(author.messaging_suspended_until)
        if author.messaging_banned or (suspended_until is not None and suspended_until > now):
            raise Unauthorized("Your account is suspended from posting.")

        await self.ensure_safe(body, profile)

        content = await self.db.insert_content_async(
            uuid.uuid4().hex, kind, author_id, body, to_timestamp(now), parent_id
        )
        logger.tree("Content Published", [
            ("ID", content.id),
            ("Kind", kind),
            ("Author", author_id),
            ("Length", len(body)),
        ], emoji="📝")
        return content

    async def recheck_content(
        self,
        content_id: str,
        profile: str = "general",
    ) -> tuple[ClassificationResult, Optional[QueueEntry]]:
        """
        Re-screen already visible content.

        Unsafe content is flagged and routed to the moderation queue,
        never deleted here.
        """
        content = await self.db.get_content_async(content_id)
        if content is None or content.is_removed:
            raise NotFound("Content not found.")

        result = await self.classify(content.body, profile)
        if result.safe:
            return result, None

        source = "blacklist" if result.matched_keywords else "classifier"
        entry, created = await self.db.enqueue_content_async(
            content_id, source, result.reason, to_timestamp(self.clock())
        )
        logger.tree("Content Flagged On Re-check", [
            ("Content", content_id),
            ("Source", source),
            ("Queue Entry", entry.id),
            ("New Entry", "Yes" if created else "No"),
        ], emoji="🚩")
        return result, entry


__all__ = [
    "SemanticVerdict",
    "ClassificationResult",
    "OpenAISemanticClassifier",
    "ContentClassifier",
    "parse_verdict",
]
