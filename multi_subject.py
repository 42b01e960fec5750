"""
Combined visual phrase for lines that name two or more things ("Cats and dogs are both popular pets.").

Asks the text model for one short literal phrase ("cute cat and dog together"). When the model
times out, errors, answers NO_MATCH, or answers something unusable, a local heuristic joins the
two strongest nouns as "A and B together", then the main topic is used, then None.
resolve_multi_subject never raises.
"""

import random
import re
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout

import config
import llm_utils
from stopwords import STOPWORDS, is_generic, strip_stop_phrases, tokenize

MIN_WORDS = 3
MAX_WORDS = 10
TEMPERATURE = 0.35
MAX_TOKENS = 25
RETRY_BASE_DELAY = 1.0

SYSTEM_PROMPT = """You are a viral video editor and expert visual scene picker.
Given a script line with multiple real, visual subjects or items, return the SINGLE BEST literal, visually clickable combination (combo, together, or side by side).
If no combo is possible, return the single most visually strong subject from the line.

Strict rules:
- NEVER output a full sentence, explanation, metaphor, or generic noun ("someone", "person", "thing", "it").
- 3 to 10 words, lowercase, no punctuation.
- Return only the visual, not a caption.

Examples:
Input: "Cats and dogs are both popular pets." Output: cute cat and dog together
Input: "Pizza and burgers are classic foods." Output: pizza and burger side by side
Input: "Sun and rain can happen together." Output: sun shining with rain
Input: "Eiffel Tower and Arc de Triomphe are Paris icons." Output: eiffel tower and arc de triomphe together

If not applicable, reply with NO_MATCH."""

GENERIC_REPLIES = frozenset([
    "something", "someone", "person", "people", "scene", "man", "woman", "it", "thing",
    "they", "we", "body", "face", "eyes", "animal", "animals",
])

_MULTI_RE = re.compile(r"\b(and|versus|vs\.?|plus)\b|[/&]", re.IGNORECASE)
_EMOJI_RE = re.compile("[\U0001F000-\U0001FAFF\u2600-\u27BF\uFE0F\u200D]")

# Heuristic category strength: animals > food > weather > places
CATEGORY_WORDS = {
    "animal": (4, frozenset([
        "cat", "dog", "puppy", "kitten", "goat", "horse", "cow", "pig", "sheep", "lion", "tiger", "bear",
        "wolf", "fox", "rabbit", "bird", "eagle", "owl", "parrot", "fish", "shark", "whale", "dolphin",
        "monkey", "orangutan", "gorilla", "elephant", "giraffe", "zebra", "penguin", "turtle", "snake",
        "frog", "duck", "chicken", "hamster", "deer", "pet",
    ])),
    "food": (3, frozenset([
        "pizza", "burger", "taco", "sushi", "pasta", "bread", "cake", "cookie", "donut", "apple", "banana",
        "orange", "grape", "strawberry", "cheese", "milk", "coffee", "tea", "chocolate", "icecream",
        "fries", "sandwich", "rice", "noodle", "egg", "honey", "salad", "soup", "steak",
    ])),
    "weather": (2, frozenset([
        "sun", "rain", "snow", "wind", "storm", "cloud", "lightning", "thunder", "rainbow", "fog", "hail",
        "tornado", "hurricane", "sunset", "sunrise",
    ])),
    "place": (1, frozenset([
        "beach", "city", "mountain", "forest", "desert", "ocean", "river", "lake", "island", "tower",
        "bridge", "castle", "temple", "street", "park", "village", "paris", "london", "rome", "tokyo",
    ])),
}


def has_multiple_subjects(line: str) -> bool:
    """True when the line joins things with and / versus / plus / slash / ampersand."""
    return bool(_MULTI_RE.search(line or ""))


def singularize(word: str) -> str:
    w = (word or "").lower()
    if len(w) > 4 and w.endswith("ies"):
        return w[:-3] + "y"
    if len(w) > 4 and w.endswith(("ches", "shes", "xes", "sses")):
        return w[:-2]
    if len(w) > 3 and w.endswith("s") and not w.endswith(("ss", "us", "is")):
        return w[:-1]
    return w


def sanitize_phrase(raw: str | None) -> str | None:
    """
    Clean a model reply into a usable phrase, or None when it breaks the contract
    (NO_MATCH, generic, sentence punctuation, outside 3 to 10 words).
    """
    text = _EMOJI_RE.sub("", str(raw or "")).strip()
    text = text.splitlines()[0].strip() if text else ""
    text = re.sub(r"^output\s*[:\-]\s*", "", text, flags=re.IGNORECASE)
    text = re.sub(r"^(show|display|combo)[:\-\s]*", "", text, flags=re.IGNORECASE)
    text = text.strip().strip("\"'").strip()
    text = re.sub(r"[\"'.!?]+$", "", text).strip()
    if not text or text.upper() == "NO_MATCH" or len(text) < 3:
        return None
    if re.search(r"[.!?;:]", text):
        return None
    text = re.sub(r"\s+", " ", text.lower())
    if text in GENERIC_REPLIES or is_generic(text):
        return None
    words = text.split()
    if not MIN_WORDS <= len(words) <= MAX_WORDS:
        return None
    return text


def heuristic_combo(line: str) -> str | None:
    """Join the two strongest category nouns as 'A and B together' (stable by first appearance)."""
    found: dict[str, tuple[int, int]] = {}
    for idx, tok in enumerate(tokenize(strip_stop_phrases(line))):
        if tok in STOPWORDS:
            continue
        word = singularize(tok)
        if word in found:
            continue
        for strength, words in CATEGORY_WORDS.values():
            if word in words:
                found[word] = (strength, idx)
                break
    ranked = sorted(found.items(), key=lambda kv: (-kv[1][0], kv[1][1]))
    if len(ranked) < 2:
        return None
    first, second = sorted(ranked[:2], key=lambda kv: kv[1][1])
    return f"{first[0]} and {second[0]} together"


def _ask_model(line: str, main_topic: str, timeout: float) -> str:
    prompt = (
        f'Script line: "{line}"\n'
        f'Main topic: "{main_topic or ""}"\n'
        "If the line includes multiple visual subjects or items, return the best COMBO visual "
        "(combo or side-by-side). If not, return just the single top visual subject (never generic). "
        'Only output the visual subject. If not applicable, reply "NO_MATCH".'
    )
    messages = [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": prompt},
    ]
    # The worker thread may outlive the timeout; the result is simply ignored
    executor = ThreadPoolExecutor(max_workers=1)
    try:
        future = executor.submit(
            llm_utils.generate_text,
            messages,
            temperature=TEMPERATURE,
            max_tokens=MAX_TOKENS,
            timeout=timeout,
        )
        return future.result(timeout=timeout)
    finally:
        executor.shutdown(wait=False, cancel_futures=True)


def request_combo_phrase(line: str, main_topic: str = "", timeout: float | None = None,
                         max_attempts: int | None = None, sleep=time.sleep) -> str | None:
    """Model phrase with bounded retry on errors/timeouts. None on NO_MATCH, bad reply or exhaustion."""
    timeout = config.MULTI_SUBJECT_TIMEOUT if timeout is None else timeout
    max_attempts = config.MULTI_SUBJECT_MAX_ATTEMPTS if max_attempts is None else max_attempts
    for attempt in range(1, max_attempts + 1):
        try:
            raw = _ask_model(line, main_topic, timeout)
        except FutureTimeout:
            print(f"[MULTI] Model timed out after {timeout:.0f}s (attempt {attempt}/{max_attempts})")
        except ValueError as e:
            # Missing key or provider; another attempt cannot succeed
            print(f"[MULTI] Model not available: {e}")
            return None
        except Exception as e:
            print(f"[MULTI] Model call failed (attempt {attempt}/{max_attempts}): {e}")
        else:
            phrase = sanitize_phrase(raw)
            if phrase is None:
                print(f"[MULTI] No usable combo from model: {str(raw or '').strip()[:60]!r}")
            return phrase
        if attempt < max_attempts:
            delay = RETRY_BASE_DELAY * (2 ** (attempt - 1)) * (0.8 + 0.4 * random.random())
            print(f"[RETRY] Multi-subject retry in {delay:.1f}s")
            sleep(delay)
    return None


def resolve_multi_subject(line: str, main_topic: str = "", use_model: bool = True, **kwargs) -> str | None:
    """
    Combined visual phrase for a multi-subject line. Fallback order:
    model phrase -> heuristic 'A and B together' -> main topic -> None.
    """
    phrase = None
    if use_model:
        try:
            phrase = request_combo_phrase(line, main_topic, **kwargs)
        except Exception as e:
            print(f"[MULTI] Unexpected error, using heuristic: {e}")
    if phrase:
        print(f"[MULTI] '{line[:60]}' -> '{phrase}'")
        return phrase
    phrase = heuristic_combo(line)
    if phrase:
        print(f"[MULTI] Heuristic combo: '{phrase}'")
        return phrase
    topic = (main_topic or "").strip().lower()
    if topic and topic not in GENERIC_REPLIES and not is_generic(topic):
        return topic
    print(f"[MULTI] No combo for '{line[:60]}'")
    return None
