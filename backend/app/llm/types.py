"""Shared request/response types for the summarization backends."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class SummarizationOptions:
    """
    model                : provider model identifier
    max_length           : target summary length in words (content is capped
                           at max_length * 5 characters by the offline summary)
    include_action_items : False forces an empty action-item list
    """
    model:                str
    max_length:           int  = 1000
    include_action_items: bool = True


@dataclass
class SummaryResult:
    title:        str
    content:      str
    key_points:   list[str] = field(default_factory=list)
    action_items: list[str] = field(default_factory=list)
    tags:         list[str] = field(default_factory=list)
    word_count:   int = 0
    model:        str = ""
