"""
Split a narration script into scenes.

Scene 0 is the hook (the line naming the topic, else the first line with filler removed,
else the first sentence). With two or more lines left, the next two become one mega-scene
that shares a single clip; every later line is its own scene. With one line left, it becomes
a single scene. Each scene carries a visual subject from the injected subject resolver.
"""

import re
import uuid
from collections import Counter
from dataclasses import dataclass, field
from typing import Callable

from multi_subject import has_multiple_subjects, resolve_multi_subject
from stopwords import STOPWORDS, is_generic, strip_stop_phrases
from subject_extractor import GENERIC_SUBJECT, extract_subject

SCENE_TYPES = ("hook-summary", "context-mega", "normal", "single")
_SENTENCE_SPLIT_RE = re.compile(r"[.?!]\s+")
_WORD_RE = re.compile(r"\W+")


@dataclass
class Scene:
    id: str
    texts: list[str]
    type: str = "normal"
    is_mega_scene: bool = False
    orig_indices: list[int] = field(default_factory=list)
    visual_subject: str = ""

    @property
    def text(self) -> str:
        return " ".join(self.texts)


def clean_scene_text(text) -> str:
    """Collapse whitespace and drop characters other than word chars and basic punctuation."""
    if not text:
        return ""
    return re.sub(r"\s+", " ", re.sub(r"[^\w\s.,?!'\-]", "", str(text))).strip()


def guess_main_topic(texts) -> str:
    """Most frequent non-stopword longer than 3 characters; first seen wins ties."""
    counts = Counter()
    for text in texts or ():
        for word in _WORD_RE.split(str(text or "").lower()):
            if len(word) > 3 and word not in STOPWORDS:
                counts[word] += 1
    if not counts:
        print("[SEGMENT] Main topic guess was empty")
        return ""
    word, n = counts.most_common(1)[0]
    print(f"[SEGMENT] Main topic guessed: '{word}' ({n}x)")
    return word


def resolve_scene_subject(line: str, main_topic: str = "", use_model: bool = True) -> str:
    """Combined phrase for multi-subject lines, otherwise the extractor's literal subject."""
    if has_multiple_subjects(line):
        combo = resolve_multi_subject(line, main_topic, use_model=use_model)
        if combo and not is_generic(combo):
            return combo
    return extract_subject(line, main_topic)


def split_lines(script: str) -> list[str]:
    lines = [ln.strip() for ln in str(script or "").split("\n") if ln.strip()]
    if len(lines) < 2:
        lines = [s.strip() for s in _SENTENCE_SPLIT_RE.split(str(script or "")) if s.strip()]
    return lines


def pick_hook(lines: list[str], script: str, topic: str = "") -> tuple[int | None, str]:
    """(index into lines or None, hook text)."""
    topic_l = (topic or "").strip().lower()
    if topic_l:
        for i, line in enumerate(lines):
            if topic_l in line.lower():
                return i, line
    if lines:
        stripped = strip_stop_phrases(lines[0], keep_case=True).strip(" ,;:-")
        if stripped:
            return 0, stripped
    first_sentence = next((s.strip() for s in _SENTENCE_SPLIT_RE.split(str(script or "")) if s.strip()), "")
    return None, first_sentence


def _new_id(n) -> str:
    return f"scene{n}-{uuid.uuid4()}"


def _safe_scene(value, idx: int, fallback_text: str) -> Scene:
    """Repair a malformed scene in place of dropping it, keeping positions stable."""
    if isinstance(value, Scene):
        texts = [str(t).strip() for t in value.texts or [] if t is not None and str(t).strip()]
        if texts:
            value.texts = texts
            return value
        print(f"[SEGMENT] Scene {value.id or idx} had no text, filling with fallback")
        value.texts = [fallback_text]
        return value
    print(f"[SEGMENT] Scene at index {idx} is not a Scene ({type(value).__name__}), wrapping")
    text = str(value).strip() if value is not None else ""
    return Scene(id=_new_id(idx + 1), texts=[text or fallback_text], type="normal", orig_indices=[idx])


def segment_script(script: str, topic: str = "",
                   subject_resolver: Callable[[str, str], str] | None = None) -> list[Scene]:
    """
    Scenes in script order. Never raises; an empty script gives [].
    subject_resolver(line, main_topic) -> visual subject; defaults to resolve_scene_subject.
    """
    subject_resolver = subject_resolver or resolve_scene_subject
    lines = split_lines(script)
    if not lines:
        print("[SEGMENT] No lines found in script")
        return []

    hook_idx, hook_text = pick_hook(lines, script, topic)
    remaining = [(i, ln) for i, ln in enumerate(lines) if i != hook_idx]
    main_topic = (topic or "").strip() or guess_main_topic([ln for _, ln in remaining])

    def subject_for(line: str) -> str:
        try:
            subject = subject_resolver(line, main_topic)
        except Exception as e:
            print(f"[SEGMENT] Subject resolver failed for '{line[:60]}': {e}")
            subject = None
        return subject or extract_subject(line, main_topic) or GENERIC_SUBJECT

    scenes: list = [Scene(
        id=_new_id(1),
        texts=[hook_text],
        type="hook-summary",
        orig_indices=[hook_idx] if hook_idx is not None else [],
        visual_subject=subject_for(hook_text),
    )]

    if len(remaining) >= 2:
        (i1, l1), (i2, l2) = remaining[0], remaining[1]
        scenes.append(Scene(
            id=_new_id(2),
            texts=[l1, l2],
            type="context-mega",
            is_mega_scene=True,
            orig_indices=[i1, i2],
            visual_subject=subject_for(l2),
        ))
        for n, (i, line) in enumerate(remaining[2:], start=3):
            scenes.append(Scene(id=_new_id(n), texts=[line], orig_indices=[i], visual_subject=subject_for(line)))
    elif len(remaining) == 1:
        i, line = remaining[0]
        scenes.append(Scene(id=_new_id(2), texts=[line], type="single", orig_indices=[i], visual_subject=subject_for(line)))

    fallback_text = main_topic or hook_text or GENERIC_SUBJECT
    scenes = [_safe_scene(s, idx, fallback_text) for idx, s in enumerate(scenes)]
    for idx, s in enumerate(scenes):
        print(f"[SEGMENT] [{idx}] {s.type}{' (mega)' if s.is_mega_scene else ''} lines={s.orig_indices} "
              f"subject='{s.visual_subject}' text=\"{' / '.join(s.texts)[:80]}\"")
    return scenes
