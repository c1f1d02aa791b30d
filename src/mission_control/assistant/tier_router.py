"""Pick how an incoming chat message is answered.

Tiers, cheapest first:

- ``quick-path``: answered from stored state, no model call;
- ``fast``: small model for confirmations and short questions;
- ``deep``: large model for analysis, actions, images and long messages.

Rules are an ordered table; the first matching rule wins.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum


class ModelTier(str, Enum):
    QUICK_PATH = "quick-path"
    FAST = "fast"
    DEEP = "deep"


class QuickTopic(str, Enum):
    JOBS = "jobs"
    TASKS = "tasks"
    PROJECTS = "projects"
    AGENTS = "agents"
    BOARDS = "boards"
    SITREP = "sitrep"
    DEPLOY = "deploy"


QUICK_PATH_MAX_CHARS = 80
LONG_MESSAGE_CHARS = 300

_I = re.IGNORECASE

DEEP_TRIGGERS = (
    re.compile(r"\b(analy[sz]e|deep dive|strategy|write|draft|plan|compare|evaluate|assess)\b", _I),
    re.compile(r"\b(explain in detail|break down|investigate|root cause)\b", _I),
    re.compile(r"https?://\S+"),
)

CONFIRMATION_PATTERNS = (
    re.compile(
        r"^(yes|no|yep|nah|nope|ok|okay|sure|go|do it|approved?|confirm|reject|deny|cancel)\b",
        _I,
    ),
    re.compile(r"^(go ahead|ship it|sounds good|looks good|that works|let's do it|fine)\b", _I),
    re.compile(r"^(👍|✅)"),
    re.compile(r"^approve\b", _I),
    re.compile(r"^sign off\b", _I),
    re.compile(r"^option [a-d]\b", _I),
    re.compile(r"^go with\b", _I),
)

QUICK_PATH_PATTERNS: tuple[tuple[QuickTopic, re.Pattern[str]], ...] = (
    (
        QuickTopic.JOBS,
        re.compile(
            r"\b(jobs?|running|queued|active)\b.*\b(status|what|how|any|running|list)\b",
            _I,
        ),
    ),
    (
        QuickTopic.JOBS,
        re.compile(
            r"\b(status|what|how|any|running|list)\b.*\b(jobs?|running|queued|active)\b",
            _I,
        ),
    ),
    (
        QuickTopic.TASKS,
        re.compile(
            r"\b(tasks?|pending|decisions?|sign.?offs?)\b.*\b(what|list|show|my|pending|open)\b",
            _I,
        ),
    ),
    (
        QuickTopic.TASKS,
        re.compile(r"\b(what|show|list)\b.*\b(tasks?|pending|decisions?|sign.?offs?)\b", _I),
    ),
    (
        QuickTopic.TASKS,
        re.compile(r"what (do i|should i) need to (do|decide|approve|sign off)", _I),
    ),
    (QuickTopic.TASKS, re.compile(r"what('s| is) (pending|waiting|open)", _I)),
    (
        QuickTopic.PROJECTS,
        re.compile(r"\b(projects?|portfolio)\b.*\b(status|list|show|how|what)\b", _I),
    ),
    (
        QuickTopic.PROJECTS,
        re.compile(r"\b(status|list|show|how|what)\b.*\b(projects?|portfolio)\b", _I),
    ),
    (QuickTopic.AGENTS, re.compile(r"\b(agents?|team)\b.*\b(status|list|show|who|active)\b", _I)),
    (QuickTopic.AGENTS, re.compile(r"\b(status|list|show|who|active)\b.*\b(agents?|team)\b", _I)),
    (
        QuickTopic.BOARDS,
        re.compile(r"\b(challenge|board|decision)\b.*\b(status|open|pending|what|show)\b", _I),
    ),
    (
        QuickTopic.SITREP,
        re.compile(
            r"\b(sitrep|sit.?rep|situation|overview|what'?s happening|what'?s going on)\b",
            _I,
        ),
    ),
    (
        QuickTopic.DEPLOY,
        re.compile(r"\b(deploy|deployment)\b.*\b(status|latest|last|recent)\b", _I),
    ),
)

ACTION_TRIGGERS = (
    re.compile(
        r"\b(create|build|deploy|dispatch|spawn|queue|fix|launch|ship|push|set up|make|"
        r"implement)\b",
        _I,
    ),
    re.compile(r"\b(repo|repository|sprint|milestone|deadline)\b", _I),
    re.compile(r"\b(get .+ (working|done|started|going|built|delivered))\b", _I),
    re.compile(r"\b(i want|i need|we need|you need)\b.*\b(to|you)\b", _I),
    re.compile(r"\b(progress this|crack on|make it happen|get on with|move on)\b", _I),
)


@dataclass(slots=True, frozen=True)
class RoutingDecision:
    tier: ModelTier
    rule: str
    quick_topic: QuickTopic | None = None


def quick_topic(message: str) -> QuickTopic | None:
    """Topic of a short status query, or None when it is not one."""

    trimmed = message.strip()
    if len(trimmed) > QUICK_PATH_MAX_CHARS:
        return None
    for topic, pattern in QUICK_PATH_PATTERNS:
        if pattern.search(trimmed):
            return topic
    return None


def _any(patterns: tuple[re.Pattern[str], ...]) -> Callable[[str], bool]:
    return lambda text: any(pattern.search(text) for pattern in patterns)


_RULES: tuple[tuple[str, Callable[[str], bool], ModelTier], ...] = (
    ("quick_path", lambda text: quick_topic(text) is not None, ModelTier.QUICK_PATH),
    ("confirmation", _any(CONFIRMATION_PATTERNS), ModelTier.FAST),
    ("action", _any(ACTION_TRIGGERS), ModelTier.DEEP),
    ("analysis", _any(DEEP_TRIGGERS), ModelTier.DEEP),
    ("long_message", lambda text: len(text) > LONG_MESSAGE_CHARS, ModelTier.DEEP),
)


def route_message(message: str, *, has_images: bool = False) -> RoutingDecision:
    """Classify a message; images always go to the deep tier."""

    if has_images:
        return RoutingDecision(tier=ModelTier.DEEP, rule="image")
    trimmed = message.strip()
    for rule, predicate, tier in _RULES:
        if predicate(trimmed):
            return RoutingDecision(
                tier=tier,
                rule=rule,
                quick_topic=quick_topic(trimmed) if tier == ModelTier.QUICK_PATH else None,
            )
    return RoutingDecision(tier=ModelTier.FAST, rule="default")
