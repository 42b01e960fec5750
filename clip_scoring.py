"""
Scoring and selection of stock-media candidates against a visual subject.

Scores are additive (see score_candidate). Candidates whose ref matches an already-used
clip are excluded before ranking; the used penalty in score_candidate is a second line of
defense. Ranking is a total order: score desc, longer matching text, then ref.
"""

import os
import re
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from urllib.parse import urlparse

STRICT_MATCH_POINTS = 100
ALL_WORDS_POINTS = 35
ANY_WORD_POINTS = 15
SUBSTRING_POINTS = 12
PER_WORD_POINTS = 5
PORTRAIT_POINTS = 8
RESOLUTION_POINTS = 5
CODEC_POINTS = 3
USED_PENALTY = -5000
SHORT_CLIP_PENALTY = -10
OVERLAY_PENALTY = -200

MIN_GOOD_HEIGHT = 1080
MIN_GOOD_DURATION = 4.0

STRONG_MATCH_SCORE = float(os.getenv("CLIP_STRONG_MATCH_SCORE", "100"))
MIN_MATCH_SCORE = float(os.getenv("CLIP_MIN_MATCH_SCORE", "15"))

MINOR_WORDS = frozenset(["the", "of", "and", "in", "on", "with", "to", "is", "for", "at", "by", "as", "a", "an"])

_PORTRAIT_HINT_RE = re.compile(r"(^|[^0-9])9[_x:\- ]?16([^0-9]|$)|tiktok|shorts|reel|portrait")
_OVERLAY_RE = re.compile(r"(^|_)(sign|logo|text)(_|$)")


@dataclass
class ClipCandidate:
    """One searchable media file from a provider or the library."""

    source: str  # library | pexels | pixabay
    ref: str  # download URL or library object key
    width: int = 0
    height: int = 0
    duration: float = 0.0
    text: str = ""  # filename, tags, description joined
    file_type: str = ""
    kind: str = "video"  # video | photo
    score: float = 0.0
    meta: dict = field(default_factory=dict)

    @property
    def filename(self) -> str:
        path = urlparse(self.ref).path if "://" in self.ref else self.ref
        return PurePosixPath(path).name


def clean_for_filename(s) -> str:
    """Lowercase, runs of non-alphanumerics to '_', trimmed, max 70 chars."""
    cleaned = re.sub(r"[^a-z0-9]+", "_", str(s or "").lower())
    return re.sub(r"_+", "_", cleaned).strip("_")[:70]


def major_words(subject) -> list[str]:
    words = re.split(r"[^a-z0-9]+", str(subject or "").lower())
    return [w for w in words if len(w) > 2 and w not in MINOR_WORDS]


def ref_forms(ref) -> set[str]:
    """Every form a clip reference may be recorded under: full ref, path, basename, stem."""
    ref = str(ref or "").strip()
    if not ref:
        return set()
    path = urlparse(ref).path if "://" in ref else ref
    name = PurePosixPath(path).name
    forms = {ref, path.lstrip("/"), name, PurePosixPath(name).stem}
    return {f for f in forms if f}


def is_used(candidate: ClipCandidate, used) -> bool:
    used_forms = set()
    for u in used or ():
        used_forms |= ref_forms(u)
    return bool(ref_forms(candidate.ref) & used_forms)


def is_portrait(candidate: ClipCandidate) -> bool:
    if candidate.width and candidate.height and candidate.height > candidate.width:
        return True
    hint_text = f"{candidate.filename} {candidate.text} {candidate.meta.get('aspect', '')}".lower()
    return bool(_PORTRAIT_HINT_RE.search(hint_text))


def _haystack(candidate: ClipCandidate) -> str:
    """All metadata as one '_'-joined lowercase string (no length cap)."""
    joined = re.sub(r"[^a-z0-9]+", "_", f"{candidate.filename} {candidate.text} {candidate.file_type}".lower())
    return joined.strip("_")


def matching_text_length(candidate: ClipCandidate, subject) -> int:
    """Length of the subject words that appear in the candidate metadata (tie-break key)."""
    hay = _haystack(candidate)
    return sum(len(w) for w in major_words(subject) if w in hay)


def score_candidate(candidate: ClipCandidate, subject, used=()) -> float:
    hay = _haystack(candidate)
    subject_clean = clean_for_filename(subject)
    words = major_words(subject)
    score = 0.0

    if subject_clean and re.search(rf"(^|_){re.escape(subject_clean)}(_|$)", hay):
        score += STRICT_MATCH_POINTS
    if words and all(w in hay for w in words):
        score += ALL_WORDS_POINTS
    if any(w in hay for w in words):
        score += ANY_WORD_POINTS
    if subject_clean and subject_clean.replace("_", "") in hay.replace("_", ""):
        score += SUBSTRING_POINTS
    score += PER_WORD_POINTS * sum(1 for w in words if w in hay)

    if is_portrait(candidate):
        score += PORTRAIT_POINTS
    if candidate.height and min(candidate.width or candidate.height, candidate.height) >= MIN_GOOD_HEIGHT:
        score += RESOLUTION_POINTS
    ftype = f"{candidate.file_type} {candidate.filename}".lower()
    if "mp4" in ftype or "h264" in ftype:
        score += CODEC_POINTS
    if _OVERLAY_RE.search(clean_for_filename(candidate.filename)) and not _OVERLAY_RE.search(subject_clean or "_"):
        score += OVERLAY_PENALTY
    if candidate.kind == "video" and candidate.duration and candidate.duration < MIN_GOOD_DURATION:
        score += SHORT_CLIP_PENALTY
    if used and is_used(candidate, used):
        score += USED_PENALTY
    return score


def rank_candidates(candidates, subject, used=(), strong: float | None = None,
                    floor: float | None = None) -> list[ClipCandidate]:
    """
    Score and order candidates, dropping used ones first. When the best score clears
    `strong`, everything at or below `floor` is dropped so a junk match is never kept.
    """
    strong = STRONG_MATCH_SCORE if strong is None else strong
    floor = MIN_MATCH_SCORE if floor is None else floor
    fresh = [c for c in candidates if c.ref and not is_used(c, used)]
    for c in fresh:
        c.score = score_candidate(c, subject, used)
    ranked = sorted(fresh, key=lambda c: (-c.score, -matching_text_length(c, subject), c.ref))
    if ranked and ranked[0].score >= strong:
        ranked = [c for c in ranked if c.score > floor]
    return ranked


def select_best(candidates, subject, used=(), strong: float | None = None,
                floor: float | None = None) -> ClipCandidate | None:
    """Winner of rank_candidates; the best available even if nothing clears the floor."""
    ranked = rank_candidates(candidates, subject, used, strong, floor)
    return ranked[0] if ranked else None
