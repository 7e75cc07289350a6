"""
Heuristic "should this query hit the web?" classifier.

The decision is an ordered list of rules. The first rule whose ``matches``
fires decides the outcome through its ``verdict``, unless the rule's
``override`` also fires, in which case evaluation moves on to the next rule.
Rule order matters: several patterns overlap and precedence is purely
positional.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date
from typing import Callable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QueryFeatures:
    text: str
    lowered: str
    word_count: int
    current_year: int

    @classmethod
    def from_query(cls, query: str, today: date | None = None) -> QueryFeatures:
        text = (query or "").strip()
        return cls(
            text=text,
            lowered=text.lower(),
            word_count=len(text.split()),
            current_year=(today or date.today()).year,
        )


Predicate = Callable[[QueryFeatures], bool]


@dataclass(frozen=True)
class SearchRule:
    name: str
    matches: Predicate
    verdict: Predicate
    override: Predicate | None = None


def _any(patterns: list[re.Pattern[str]], text: str) -> bool:
    return any(p.search(text) for p in patterns)


def _compile(*patterns: str) -> list[re.Pattern[str]]:
    return [re.compile(p, re.IGNORECASE) for p in patterns]


# -- vocabularies ------------------------------------------------------------

_SHORT_QUERY_TERMS = _compile(r"\b(latest|news|current|recent|today)\b")

_TIME_RELEVANCE = _compile(
    r"\b(latest|recent|recently|news|current|currently|today|tonight|yesterday)\b",
    r"\bthis (week|month|year|season)\b",
    r"\b(right now|as of now|upcoming|breaking|trending)\b",
    r"\bfacts about\b",
    r"\b(statistics|stats)\b",
)

_EXPLICIT_NOW = _compile(r"\b(current|currently|today|this year)\b")

_INTERNAL_KNOWLEDGE = _compile(
    # about the assistant itself
    r"^(can|could|would|will) you\b",
    r"\bhow (do|would|can) you\b",
    r"\bwhat (do|would) you\b",
    r"\b(who|what) are you\b",
    r"\babout yourself\b",
    r"\byour (name|opinion|thoughts|favorite)\b",
    # creative writing
    r"^tell me a (joke|story)",
    r"^(write|compose|draft) (a|an|some|me)\b",
    r"^(generate|create) (a|an|some|me)\b",
    r"\b(poem|haiku|limerick|short story|song lyrics)\b",
    # translation and summarization
    r"^translate\b",
    r"\btranslate (this|it|the following)\b",
    r"^summari[sz]e\b",
    r"\bsummary of (this|the following)\b",
    # opinion
    r"\bphilosophy\b",
    r"\bopinion\b",
    r"\bthoughts\b",
)

_COMMON_KNOWLEDGE = _compile(
    r"\bhistory of\b",
    r"\bdefinition of\b",
    r"^define\b",
    r"\bmeaning of\b",
    r"\bcapital (city )?of\b",
    r"\b(theory|concept|law|principle) of\b",
    r"\bscientific (theory|concept|principle)\b",
    r"\bwho (invented|discovered|wrote|painted)\b",
)

_FACTUAL_QUESTION = _compile(
    r"\bwhat (is|are|was|were) (?!your|my)",
    r"\bwho (is|are|was|were)\b",
    r"\bwhen (is|was|will|did)\b",
    r"\bwhere (is|are|was|were)\b",
    r"\bwhy (is|are|was|were|does|did)\b",
    r"\bhow (is|are|was|were|does|did) (?!.*feel)",
    r"\btell me about (?!yourself)",
    r"\b(find|search|look up)\b",
    r"\bhave you heard\b",
    r"\bnews\b",
    r"\b(statistics|stats)\b",
)

_TIME_SENSITIVE_DOMAINS = _compile(
    # politics
    r"\b(election|elections|president|prime minister|government|senate|congress|parliament|policy|vote)\b",
    # sports
    r"\b(score|scores|match|tournament|league|championship|playoffs|world cup|standings)\b",
    # tech
    r"\b(release date|launch|launched|iphone|android|update|version|ai model|gpu)\b",
    # business
    r"\b(stock|stocks|share price|market|earnings|ipo|merger|acquisition|economy|inflation|interest rate)\b",
)

_HISTORICAL_DOMAIN = _compile(
    r"\b(history|historical|ancient|medieval|century|centuries|empire|dynasty|civilization|renaissance)\b",
    r"\b(world war|cold war|revolution|middle ages|bronze age|iron age)\b",
)

_ENTITY_RE = re.compile(r"\b[A-Z][a-z]+(?: [A-Z][a-z]+)*\b")
_SENTENCE_END_RE = re.compile(r"[.!?:]\s*$")
_COMMON_WORDS = frozenset({
    "I", "My", "Me", "You", "Your", "We", "Our", "They", "Their", "He", "She",
    "It", "The", "A", "An", "This", "That", "These", "Those",
    "What", "Who", "When", "Where", "Why", "How", "Which",
    "Can", "Could", "Would", "Should", "Will", "Is", "Are", "Do", "Does",
    "Please", "Tell", "Hi", "Hello", "Thanks", "Ok", "Okay",
})

_YEAR_RE = re.compile(r"\b((?:19|20)\d{2})\b")
_DATE_RE = re.compile(
    r"\b\d{1,2}/\d{1,2}/\d{2,4}\b"
    r"|\b(jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec)[a-z]* \d{1,2}(st|nd|rd|th)?\b",
    re.IGNORECASE,
)

SHORT_QUERY_WORDS = 4
LONG_QUERY_WORDS = 15


# -- predicates --------------------------------------------------------------

def is_time_relevant(q: QueryFeatures) -> bool:
    return _any(_TIME_RELEVANCE, q.lowered)


def named_entities(text: str) -> list[str]:
    """Capitalized phrases that are neither sentence starters nor common words."""
    entities = []
    for match in _ENTITY_RE.finditer(text):
        before = text[:match.start()].rstrip()
        if not before or _SENTENCE_END_RE.search(before):
            continue
        entity = match.group(0)
        if entity in _COMMON_WORDS or len(entity) <= 1:
            continue
        entities.append(entity)
    return entities


def referenced_years(text: str) -> list[int]:
    years = [int(y) for y in _YEAR_RE.findall(text)]
    for match in _DATE_RE.finditer(text):
        tail = match.group(0).rsplit("/", 1)
        if len(tail) == 2 and len(tail[1]) == 4 and tail[1].isdigit():
            years.append(int(tail[1]))
    return years


def _has_recent_year(q: QueryFeatures) -> bool:
    return any(q.current_year - 2 <= y <= q.current_year for y in referenced_years(q.text))


def _factual_verdict(q: QueryFeatures) -> bool:
    return is_time_relevant(q) or _any(_TIME_SENSITIVE_DOMAINS, q.lowered)


def _never(q: QueryFeatures) -> bool:
    return False


def _always(q: QueryFeatures) -> bool:
    return True


SEARCH_RULES: tuple[SearchRule, ...] = (
    SearchRule(
        name="short_query",
        matches=lambda q: q.word_count < SHORT_QUERY_WORDS,
        verdict=_never,
        override=lambda q: _any(_SHORT_QUERY_TERMS, q.lowered),
    ),
    SearchRule(
        name="internal_knowledge",
        matches=lambda q: _any(_INTERNAL_KNOWLEDGE, q.lowered),
        verdict=_never,
        override=is_time_relevant,
    ),
    SearchRule(
        name="common_knowledge",
        matches=lambda q: _any(_COMMON_KNOWLEDGE, q.lowered),
        verdict=_never,
        override=lambda q: is_time_relevant(q) or _any(_EXPLICIT_NOW, q.lowered),
    ),
    SearchRule(
        name="factual_question",
        matches=lambda q: _any(_FACTUAL_QUESTION, q.lowered),
        verdict=_factual_verdict,
    ),
    SearchRule(
        name="named_entity",
        matches=lambda q: bool(named_entities(q.text)),
        verdict=is_time_relevant,
    ),
    SearchRule(
        name="date_reference",
        matches=lambda q: bool(_YEAR_RE.search(q.text) or _DATE_RE.search(q.text)),
        verdict=_has_recent_year,
    ),
    SearchRule(
        name="long_query",
        matches=lambda q: q.word_count > LONG_QUERY_WORDS,
        verdict=lambda q: not _any(_HISTORICAL_DOMAIN, q.lowered),
    ),
    SearchRule(name="default", matches=_always, verdict=_never),
)


def evaluate_rule(rule: SearchRule, features: QueryFeatures) -> bool | None:
    """Return the rule's verdict, or None when the rule defers to the next one."""
    if not rule.matches(features):
        return None
    if rule.override is not None and rule.override(features):
        return None
    return rule.verdict(features)


def should_search(query: str, today: date | None = None) -> bool:
    features = QueryFeatures.from_query(query, today)
    if not features.text:
        return False
    for rule in SEARCH_RULES:
        verdict = evaluate_rule(rule, features)
        if verdict is not None:
            logger.debug("Search decision %s by rule %s", verdict, rule.name)
            return verdict
    return False
