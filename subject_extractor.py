"""
Deterministic visual-subject extraction for one script line.

Candidates come from three tiers:
  1. canonical multi-word phrases found verbatim ("trevi fountain")
  2. modifier + head-noun reconstruction ("lovers fountain"), trigram > bigram > bare head noun
  3. object-hint words and frequent long words
A small boost is added for domain keywords, banned generic words are filtered, and the
ranked list is turned into one SubjectResult by an ordered chain of strategies.
"""

import os
import re
from dataclasses import dataclass, field

from stopwords import (
    BANNED_PRIMARY,
    CANONICAL_MULTI,
    HEAD_NOUNS,
    OBJECT_HINTS,
    STOPWORDS,
    norm,
    strip_stop_phrases,
    tokenize,
)

SUBJECT_DEBUG = os.getenv("DEBUG", "").lower() in ("1", "true", "yes")

CANONICAL_PHRASE_SCORE = 1.0
TRIGRAM_SCORE = 0.86
BIGRAM_SCORE = 0.82
HEAD_NOUN_SCORE = 0.65
OBJECT_HINT_SCORE = 0.74
FREQ_LONG_SCORE = 0.68
MAX_HEURISTIC_CONFIDENCE = 0.95
LOW_CONFIDENCE = 0.6
MAIN_TOPIC_CONFIDENCE = 0.62
MAIN_TOPIC_ONLY_CONFIDENCE = 0.6
GENERIC_SUBJECT = "Landmark"
GENERIC_CONFIDENCE = 0.5

CONTEXT_BOOSTS = (
    ("fountain", 0.08),
    ("bridge", 0.06),
    ("castle", 0.05),
    ("statue", 0.05),
    ("temple", 0.05),
)

_CANONICAL_BY_LENGTH = sorted(CANONICAL_MULTI, key=len, reverse=True)
_CANONICAL_RES = [(p, re.compile(r"\b" + re.escape(p) + r"\b")) for p in _CANONICAL_BY_LENGTH]


def _log(msg: str, verbose_only: bool = False) -> None:
    """Log with [SUBJECT] prefix. Use verbose_only for extra debug output."""
    if verbose_only and not SUBJECT_DEBUG:
        return
    print(f"[SUBJECT] {msg}")


def title_case(s: str) -> str:
    return " ".join(w[:1].upper() + w[1:] for w in (s or "").split())


@dataclass
class Candidate:
    text: str
    score: float
    reason: str


@dataclass
class SubjectResult:
    primary: str
    confidence: float
    candidates: list[str] = field(default_factory=list)
    source: str = "ranked"  # ranked | fallback-mainTopic | fallback-generic


def _dedupe(cands: list[Candidate]) -> list[Candidate]:
    seen = set()
    out = []
    for c in cands:
        key = norm(c.text)
        if key and key not in seen:
            seen.add(key)
            out.append(c)
    return out


def canonical_candidates(line: str) -> list[Candidate]:
    """Known multi-word subjects present in the line, original casing kept when found."""
    lower = norm(line)
    out = []
    for phrase, rx in _CANONICAL_RES:
        m = rx.search(lower)
        if m:
            original = (line or "")[m.start():m.end()]
            text = original if norm(original) == phrase else title_case(phrase)
            out.append(Candidate(text, CANONICAL_PHRASE_SCORE, "canonical-phrase"))
    return out


def head_noun_candidates(line: str) -> list[Candidate]:
    tokens = tokenize(line)
    out = []
    for i, tok in enumerate(tokens):
        if tok not in HEAD_NOUNS:
            continue
        prev = tokens[i - 1] if i >= 1 else None
        prev2 = tokens[i - 2] if i >= 2 else None
        if prev and prev not in STOPWORDS and len(prev) > 2:
            out.append(Candidate(title_case(f"{prev} {tok}"), BIGRAM_SCORE, "head-noun-bigram"))
        if prev and prev2 and prev not in STOPWORDS and prev2 not in STOPWORDS and len(prev2) >= 4:
            out.append(Candidate(title_case(f"{prev2} {prev} {tok}"), TRIGRAM_SCORE, "head-noun-trigram"))
        out.append(Candidate(title_case(tok), HEAD_NOUN_SCORE, "head-noun"))
    return _dedupe(out)


def object_hint_candidates(line: str) -> list[Candidate]:
    """Object-hint words, and any content word of 5+ chars seen at least twice."""
    freq: dict[str, int] = {}
    for tok in tokenize(strip_stop_phrases(line)):
        if tok in STOPWORDS or len(tok) <= 2:
            continue
        freq[tok] = freq.get(tok, 0) + 1
    out = []
    for word, count in freq.items():
        if word in OBJECT_HINTS:
            out.append(Candidate(title_case(word), OBJECT_HINT_SCORE + min(0.06, count * 0.01), "object-hint"))
        elif count >= 2 and len(word) >= 5:
            out.append(Candidate(title_case(word), FREQ_LONG_SCORE + min(0.05, count * 0.01), "freq-long"))
    return out


def apply_context_boost(cands: list[Candidate], line: str) -> list[Candidate]:
    lower = norm(line)
    for c in cands:
        text = norm(c.text)
        for keyword, add in CONTEXT_BOOSTS:
            if keyword in text or keyword in lower:
                c.score += add
    return cands


def rank_candidates(cands: list[Candidate]) -> list[Candidate]:
    """Score descending, then longer text, then alphabetical."""
    return sorted(cands, key=lambda c: (-c.score, -len(c.text), c.text))


def collect_candidates(line: str) -> list[Candidate]:
    merged = canonical_candidates(line) + head_noun_candidates(line) + object_hint_candidates(line)
    merged = apply_context_boost(merged, line)
    merged = [c for c in merged if norm(c.text) not in BANNED_PRIMARY]
    return rank_candidates(_dedupe(merged))


def _confidence(top: Candidate) -> float:
    if top.reason == "canonical-phrase":
        return CANONICAL_PHRASE_SCORE
    return max(0.0, min(MAX_HEURISTIC_CONFIDENCE, top.score))


def _usable_topic(main_topic: str) -> str | None:
    topic = title_case((main_topic or "").strip())
    if topic and norm(topic) not in BANNED_PRIMARY:
        return topic
    return None


# Strategies: (ranked candidates, main topic) -> SubjectResult | None, tried in order

def _confident_ranked(ranked, main_topic):
    if ranked and _confidence(ranked[0]) >= LOW_CONFIDENCE:
        return SubjectResult(ranked[0].text, _confidence(ranked[0]), [c.text for c in ranked], "ranked")
    return None


def _main_topic(ranked, main_topic):
    topic = _usable_topic(main_topic)
    if not topic:
        return None
    confidence = MAIN_TOPIC_CONFIDENCE if ranked else MAIN_TOPIC_ONLY_CONFIDENCE
    return SubjectResult(topic, confidence, [c.text for c in ranked], "fallback-mainTopic")


def _weak_ranked(ranked, main_topic):
    if ranked:
        return SubjectResult(ranked[0].text, _confidence(ranked[0]), [c.text for c in ranked], "ranked")
    return None


def _generic(ranked, main_topic):
    return SubjectResult(GENERIC_SUBJECT, GENERIC_CONFIDENCE, [], "fallback-generic")


SUBJECT_STRATEGIES = (_confident_ranked, _main_topic, _weak_ranked, _generic)


def extract_subject_detailed(line: str, main_topic: str = "") -> SubjectResult:
    """Resolve one line to a SubjectResult. Never raises and never returns a banned subject."""
    text = str(line or "")
    ranked = collect_candidates(text) if text.strip() else []
    for strategy in SUBJECT_STRATEGIES:
        result = strategy(ranked, main_topic)
        if result is not None:
            _log(
                f"'{text[:80]}' -> '{result.primary}' conf={result.confidence:.2f} source={result.source}",
                verbose_only=True,
            )
            return result
    return _generic(ranked, main_topic)


def extract_subject(line: str, main_topic: str = "") -> str:
    return extract_subject_detailed(line, main_topic).primary
