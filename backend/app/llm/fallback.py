"""
Offline Summary — Deterministic Fallback

Used when no summarization provider is configured. The output depends only
on the input text, file name and options, so repeated runs over the same
document produce the same summary.

Algorithm:
  1. Classify the document by keyword rules, first match wins:
       financial → technical → legal → business → research → travel → report
  2. Take key points / action items from the matched profile.
  3. Build the body from the first substantial sentences of the text.
  4. Tags come from the profile, else from the file name, else defaults.
  5. Apply caps: content ≤ max_length * 5 chars, ≤ 7 key points,
     ≤ 5 action items, ≤ 6 tags.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from app.llm.types import SummarizationOptions, SummaryResult

logger = logging.getLogger(__name__)

OFFLINE_MODEL = "offline-fallback"

MAX_KEY_POINTS   = 7
MAX_ACTION_ITEMS = 5
MAX_TAGS         = 6

_SENTENCE_SPLIT_RE = re.compile(r"[.!?]+")
_MIN_SENTENCE_CHARS = 20
_LEAD_SENTENCES = 5
_LEAD_CHARS = 300


# ---------------------------------------------------------------------------
# Document-type profiles
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class _Profile:
    label:        str
    pattern:      re.Pattern
    topics:       tuple[str, ...]
    key_points:   tuple[str, ...] | None = None
    action_items: tuple[str, ...] | None = None
    file_hint:    str | None = None


_GENERIC_ACTIONS = (
    "Review and analyze the key findings and recommendations",
    "Develop implementation timeline based on priority assessment",
    "Allocate necessary resources for recommended initiatives",
    "Establish monitoring systems for progress tracking",
)

_PROFILES: tuple[_Profile, ...] = (
    _Profile(
        label="Financial Report",
        pattern=re.compile(
            r"financial|revenue|profit|budget|cost|investment|money|dollar|\$|income"
            r"|expense|quarterly|annual",
            re.IGNORECASE,
        ),
        topics=("financial", "revenue", "budget"),
        key_points=(
            "Financial performance metrics and key indicators analyzed",
            "Revenue and cost analysis with trend identification",
            "Budget allocation and investment recommendations",
            "Operational efficiency opportunities identified",
            "Strategic financial planning insights provided",
        ),
        action_items=(
            "Review financial performance against established benchmarks",
            "Implement cost optimization strategies identified in analysis",
            "Develop budget allocation plan based on recommendations",
            "Monitor key financial indicators on regular basis",
        ),
    ),
    _Profile(
        label="Technical Document",
        pattern=re.compile(
            r"technical|system|software|api|implementation|architecture|code"
            r"|development|technology",
            re.IGNORECASE,
        ),
        topics=("technical", "system", "development"),
        key_points=(
            "Technical specifications and system requirements outlined",
            "Implementation guidelines and practices detailed",
            "Architecture and design considerations explained",
            "Performance optimization opportunities identified",
            "Development and deployment strategies provided",
        ),
        action_items=(
            "Review technical specifications and requirements",
            "Plan implementation timeline based on outlined guidelines",
            "Allocate development resources according to priorities",
            "Establish testing and quality assurance procedures",
        ),
    ),
    _Profile(
        label="Legal Document",
        pattern=re.compile(
            r"contract|agreement|legal|terms|clause|liability|compliance|regulation",
            re.IGNORECASE,
        ),
        topics=("legal", "contract", "compliance"),
    ),
    _Profile(
        label="Business Document",
        pattern=re.compile(
            r"business|strategy|market|customer|sales|growth|plan|analysis|management",
            re.IGNORECASE,
        ),
        topics=("business", "strategy", "analysis"),
        key_points=(
            "Business strategy and market analysis presented",
            "Customer insights and market opportunities identified",
            "Growth strategies and expansion plans outlined",
            "Operational improvements and efficiency gains highlighted",
            "Competitive analysis and positioning strategies discussed",
        ),
    ),
    _Profile(
        label="Research Document",
        pattern=re.compile(
            r"research|study|analysis|methodology|findings|conclusion|abstract|hypothesis",
            re.IGNORECASE,
        ),
        topics=("research", "study", "analysis"),
    ),
    _Profile(
        label="Travel Document",
        pattern=re.compile(
            r"booking|confirmation|travel|flight|hotel|reservation|itinerary",
            re.IGNORECASE,
        ),
        topics=("travel", "booking", "confirmation"),
        key_points=(
            "Travel arrangements and booking details confirmed",
            "Accommodation and transportation information provided",
            "Itinerary and schedule details outlined",
            "Payment and confirmation details included",
            "Contact information and support details available",
        ),
        action_items=(
            "Confirm all booking details and reservations",
            "Review travel itinerary and timing requirements",
            "Prepare necessary documentation and identification",
            "Save contact information for support and assistance",
        ),
    ),
    _Profile(
        label="Report",
        pattern=re.compile(r"report|summary|overview|findings|results", re.IGNORECASE),
        topics=("report", "summary", "findings"),
        file_hint="report",
    ),
)

_FILE_NAME_TOPICS = ("report", "analysis", "summary", "document")


def _classify(text: str, file_name: str) -> _Profile | None:
    lowered_name = file_name.lower()
    for profile in _PROFILES:
        if profile.file_hint and profile.file_hint in lowered_name:
            return profile
        if profile.pattern.search(text):
            return profile
    return None


def _generic_key_points(label: str) -> tuple[str, ...]:
    return (
        f"Comprehensive {label.lower()} with detailed analysis",
        "Strategic recommendations for implementation",
        "Data-driven findings based on content examination",
        "Actionable insights for improved decision-making",
        "Key themes and considerations identified",
        "Performance improvement opportunities highlighted",
    )


# ---------------------------------------------------------------------------
# Public entry point
# ---------------------------------------------------------------------------

def offline_summary(
    text:      str,
    file_name: str,
    options:   SummarizationOptions,
) -> SummaryResult:
    """Build a deterministic summary without calling any provider."""
    profile = _classify(text, file_name)
    label = profile.label if profile else "Document"
    word_count = len(text.split())

    sentences = [
        s.strip() for s in _SENTENCE_SPLIT_RE.split(text)
        if len(s.strip()) > _MIN_SENTENCE_CHARS
    ]
    lead = ". ".join(sentences[:_LEAD_SENTENCES])

    if len(lead) > 50:
        content = (
            f"This {label.lower()} provides insights based on the analyzed content. "
            f"{lead[:_LEAD_CHARS]}...\n\n"
            f"The document contains {word_count} words and covers several key areas. "
            "The main themes include strategic considerations, operational aspects "
            "and implementation guidelines."
        )
    else:
        content = (
            f"This {label.lower()} contains {word_count} words of content. "
            "The analysis highlights findings that can inform decision-making and "
            "future planning. Recommended approaches should be prioritized based on "
            "impact and resource availability."
        )
    content = content[: options.max_length * 5]

    key_points = list(
        (profile.key_points if profile and profile.key_points else None)
        or _generic_key_points(label)
    )

    action_items: list[str] = []
    if options.include_action_items:
        action_items = list(
            (profile.action_items if profile and profile.action_items else None)
            or _GENERIC_ACTIONS
        )

    tags = list(profile.topics) if profile else []
    if not tags:
        lowered_name = file_name.lower()
        tags = [t for t in _FILE_NAME_TOPICS if t in lowered_name]
    if not tags:
        tags = ["document", "analysis"]

    logger.info(
        "Offline summary | file=%s type=%s words=%d",
        file_name, label, word_count,
    )
    return SummaryResult(
        title=f"{label} Analysis",
        content=content,
        key_points=key_points[:MAX_KEY_POINTS],
        action_items=action_items[:MAX_ACTION_ITEMS],
        tags=tags[:MAX_TAGS],
        word_count=len(content.split()),
        model=OFFLINE_MODEL,
    )
