# devbrain/cognition/rules.py
"""
Rule tables for the cognition engines.

Everything here is plain data so tests (or deployments) can swap a table
without touching the engines. Phrases are matched case-insensitively on
word boundaries.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Mapping, Tuple

from ..schemas.emotion import EmotionalState

S = EmotionalState


# ─────────────────────────────────────────────
# Emotional detection
# ─────────────────────────────────────────────

STATE_TRIGGERS: Dict[EmotionalState, Tuple[str, ...]] = {
    S.FRUSTRATED: (
        "frustrated", "frustrating", "annoyed", "annoying", "stuck", "blocked",
        "not working", "isn't working", "doesn't work", "why doesn't", "still broken",
        "keeps failing", "nothing works", "fed up", "driving me crazy", "angry", "ugh",
    ),
    S.CONFUSED: (
        "confused", "confusing", "don't understand", "do not understand", "unclear",
        "i'm lost", "i am lost", "makes no sense", "what does this mean", "not sure what",
        "no idea why",
    ),
    S.RUSHED: (
        "urgent", "asap", "in a hurry", "hurry", "quickly", "quick fix", "no time",
        "deadline", "right away", "just tell me", "tl;dr",
    ),
    S.URGENT: (
        "critical", "emergency", "production is down", "prod is down", "outage",
        "immediately", "sev1", "p0",
    ),
    S.NEGATIVE: (
        "terrible", "awful", "horrible", "hate", "useless", "worst", "disappointed",
        "bad answer",
    ),
    S.CONFIDENT: (
        "i know", "i'm sure", "i am sure", "obviously", "i already", "i've done",
        "experienced", "edge case", "trade-off", "tradeoffs", "production-grade",
    ),
    S.CURIOUS: (
        "explain", "teach me", "how does this work", "curious", "wondering",
        "why does", "under the hood", "deep dive", "learn more",
    ),
    S.POSITIVE: (
        "thanks", "thank you", "great", "awesome", "perfect", "love", "appreciate",
        "works now", "excellent",
    ),
}

# The highest raw score wins; equal scores resolve by this order (earlier wins).
STATE_PRIORITY: Tuple[EmotionalState, ...] = (
    S.FRUSTRATED,
    S.CONFUSED,
    S.RUSHED,
    S.URGENT,
    S.NEGATIVE,
    S.CONFIDENT,
    S.CURIOUS,
    S.POSITIVE,
    S.NEUTRAL,
)

URGENCY_STATES: Tuple[EmotionalState, ...] = (S.RUSHED, S.URGENT)

EXPLORATORY_KEYWORDS: Tuple[str, ...] = (
    "explain", "teach me", "learn", "understand", "how does", "how do", "why does",
    "walk me through", "step by step", "examples", "what is the difference", "curious",
)

RECOMMENDED_TONE: Dict[EmotionalState, str] = {
    S.FRUSTRATED: "empathetic",
    S.CONFUSED: "patient",
    S.RUSHED: "direct",
    S.URGENT: "direct",
    S.NEGATIVE: "supportive",
    S.CONFIDENT: "technical",
    S.CURIOUS: "educational",
    S.POSITIVE: "enthusiastic",
    S.NEUTRAL: "neutral",
}

# raw / (raw + SATURATION)
SATURATION = 1.5
EXCLAMATION_BOOST = 0.25
MAX_EXCLAMATIONS = 4
SHOUTING_BOOST = 0.5
DOUBLE_QUESTION_BOOST = 0.5


# ─────────────────────────────────────────────
# Tone table
# ─────────────────────────────────────────────


@dataclass(frozen=True)
class ToneRule:
    prefix: str = ""
    suffix: str = ""
    include_examples: bool = False
    step_by_step: bool = False
    response_length: int = 400


TONE_RULES: Dict[EmotionalState, ToneRule] = {
    S.FRUSTRATED: ToneRule(
        prefix="I understand this is frustrating. Let's work through it step by step.\n\n",
        suffix="\n\nYou've got this! Feel free to ask if you need more help.",
        step_by_step=True,
        response_length=200,
    ),
    S.CONFUSED: ToneRule(
        prefix="This is a common question, so you're in good company. ",
        suffix=(
            "\n\nFor example, try the smallest version of this first and check the output "
            "after each step. A good next step is to run that one piece on its own."
        ),
        include_examples=True,
        step_by_step=True,
        response_length=500,
    ),
    S.RUSHED: ToneRule(
        prefix="Short version first:\n\n",
        suffix="\n\n(Details above can wait if you're short on time.)",
        response_length=200,
    ),
    S.URGENT: ToneRule(
        prefix="I understand this is urgent. Here's the fix first:\n\n",
        response_length=200,
    ),
    S.CONFIDENT: ToneRule(
        suffix=(
            "\n\nSince you know the basics already, it's worth comparing the advanced "
            "alternatives here and their trade-offs."
        ),
    ),
    S.CURIOUS: ToneRule(
        suffix=(
            "\n\nSome background: this behaviour follows from how the underlying pieces "
            "interact. Ask if you'd like a deeper look under the hood."
        ),
        include_examples=True,
        response_length=300,
    ),
    S.NEGATIVE: ToneRule(
        prefix="Sorry this has been a rough experience. ",
        suffix="\n\nLet me know what's still off and we'll sort it out.",
    ),
    S.POSITIVE: ToneRule(
        prefix="Glad to hear it! ",
        response_length=300,
    ),
    S.NEUTRAL: ToneRule(),
}


# ─────────────────────────────────────────────
# Mental model tables
# ─────────────────────────────────────────────

# phrase -> weight; positive for beginner cues, applied per level bucket
KNOWLEDGE_CUES: Dict[int, Mapping[str, int]] = {
    1: {"what is": 1, "how do i": 1, "can you explain": 1, "i don't understand": 2, "i'm new": 2, "beginner": 2},
    3: {"best practice": 1, "optimize": 1, "refactor": 1, "design pattern": 1, "dependency injection": 1},
    5: {"edge case": 1, "performance": 1, "scalability": 1, "trade-off": 1, "algorithm": 1, "lock-free": 2, "amortized": 2},
}

EXPERTISE_AREAS: Dict[str, Tuple[str, ...]] = {
    "frontend": ("react", "css", "html", "dom", "javascript", "typescript", "vue"),
    "backend": ("api", "database", "sql", "server", "endpoint", "rest"),
    "devops": ("docker", "kubernetes", "ci", "deploy", "pipeline", "terraform"),
    "security": ("auth", "oauth", "jwt", "xss", "injection", "encryption"),
    "performance": ("latency", "cache", "caching", "profiling", "throughput", "memory leak"),
    "architecture": ("microservice", "architecture", "monolith", "event-driven", "design"),
}

LEARNING_STYLE_CUES: Dict[str, Tuple[str, ...]] = {
    "code-heavy": ("show me the code", "code example", "snippet", "just the code"),
    "step-by-step": ("step by step", "walk me through", "one step at a time"),
    "visual": ("diagram", "visualize", "chart", "draw"),
    "textual": ("in words", "explain in detail", "describe"),
}


# ─────────────────────────────────────────────
# Scenario simulation tables
# ─────────────────────────────────────────────

# generation order matters: ties resolve to the earliest style
SCENARIO_STYLES: Tuple[str, ...] = (
    "empathetic_detailed",
    "concise_direct",
    "technical_advanced",
    "balanced",
)

# criteria whose raw value is "lower is better"
INVERTED_CRITERIA: Tuple[str, ...] = ("risk_of_misunderstanding",)

EMPATHY_FIT: Dict[str, Dict[EmotionalState, float]] = {
    "empathetic_detailed": {
        S.FRUSTRATED: 0.95, S.CONFUSED: 0.9, S.NEGATIVE: 0.9, S.RUSHED: 0.35,
        S.URGENT: 0.4, S.CONFIDENT: 0.4, S.CURIOUS: 0.7, S.POSITIVE: 0.7, S.NEUTRAL: 0.6,
    },
    "concise_direct": {
        S.FRUSTRATED: 0.6, S.CONFUSED: 0.4, S.NEGATIVE: 0.5, S.RUSHED: 0.95,
        S.URGENT: 0.95, S.CONFIDENT: 0.8, S.CURIOUS: 0.4, S.POSITIVE: 0.6, S.NEUTRAL: 0.7,
    },
    "technical_advanced": {
        S.FRUSTRATED: 0.3, S.CONFUSED: 0.2, S.NEGATIVE: 0.3, S.RUSHED: 0.4,
        S.URGENT: 0.5, S.CONFIDENT: 0.95, S.CURIOUS: 0.85, S.POSITIVE: 0.6, S.NEUTRAL: 0.6,
    },
    "balanced": {
        S.FRUSTRATED: 0.65, S.CONFUSED: 0.65, S.NEGATIVE: 0.65, S.RUSHED: 0.6,
        S.URGENT: 0.6, S.CONFIDENT: 0.7, S.CURIOUS: 0.7, S.POSITIVE: 0.7, S.NEUTRAL: 0.75,
    },
}

BASE_MISUNDERSTANDING_RISK: Dict[str, float] = {
    "empathetic_detailed": 0.15,
    "concise_direct": 0.4,
    "technical_advanced": 0.35,
    "balanced": 0.2,
}

JARGON_TERMS: Tuple[str, ...] = (
    "idempotent", "amortized", "monad", "invariant", "polymorphism", "asynchronous",
    "concurrency", "serialization", "memoization", "mutex", "semaphore", "heuristic",
)

REACTION_BANDS: Tuple[Tuple[float, str], ...] = (
    (0.85, "very satisfied"),
    (0.75, "satisfied"),
    (0.65, "mostly satisfied"),
    (0.0, "likely to ask a follow-up question"),
)
