"""
Word and phrase tables shared by subject extraction, multi-subject resolution and clip search.
Keep every list here so the extractors stay in sync.
"""

import re


def norm(s: str | None) -> str:
    """Lowercase and straighten curly quotes."""
    return (
        str(s or "")
        .lower()
        .replace("‘", "'")
        .replace("’", "'")
        .replace("“", '"')
        .replace("”", '"')
        .strip()
    )


ARTICLES = ["a", "an", "the"]

PRONOUNS = [
    "i", "me", "my", "mine", "myself",
    "you", "your", "yours", "yourself", "yourselves",
    "he", "him", "his", "himself",
    "she", "her", "hers", "herself",
    "it", "its", "itself",
    "we", "us", "our", "ours", "ourselves",
    "they", "them", "their", "theirs", "themselves",
    "someone", "somebody", "something", "anyone", "anybody", "anything", "everyone", "everybody", "everything",
    "who", "whom", "whose", "which", "that", "this", "these", "those",
]

AUX_BE_HAVE_DO = ["be", "am", "is", "are", "was", "were", "been", "being", "have", "has", "had", "having", "do", "does", "did", "doing"]

MODALS = ["can", "could", "may", "might", "must", "shall", "should", "will", "would", "ought"]

PREPOSITIONS = [
    "about", "above", "across", "after", "against", "along", "amid", "among", "around", "as", "at", "before", "behind",
    "below", "beneath", "beside", "besides", "between", "beyond", "but", "by", "despite", "down", "during", "except",
    "for", "from", "in", "inside", "into", "like", "near", "of", "off", "on", "onto", "opposite", "outside", "over",
    "past", "per", "plus", "since", "than", "through", "throughout", "till", "to", "toward", "towards", "under",
    "underneath", "unlike", "until", "up", "upon", "via", "with", "within", "without",
]

CONJUNCTIONS = ["and", "or", "nor", "but", "so", "yet", "either", "neither", "both", "whether", "though", "although", "while", "whereas", "because"]

QUANTIFIERS = ["all", "any", "both", "each", "enough", "every", "few", "fewer", "less", "little", "many", "more", "most", "much", "no", "none", "several", "some", "various"]

FILLERS = [
    "ok", "okay", "hey", "yo", "look", "listen", "alright", "right", "guys", "folks", "anyway",
    "kinda", "sorta", "literally", "actually", "basically", "really", "very", "super", "totally",
    "maybe", "perhaps", "almost", "nearly", "probably", "honestly", "seriously", "lowkey", "highkey",
    "remember", "try", "trying", "get", "got", "just", "also", "even", "still",
]

TIME_WORDS = [
    "now", "today", "tonight", "yesterday", "tomorrow", "currently", "immediately", "instantly", "eventually", "soon",
    "later", "morning", "afternoon", "evening", "week", "month", "year", "daily", "weekly", "monthly", "yearly",
]

PLATFORM = [
    "video", "clip", "footage", "content", "channel", "subscribe", "follow", "comment", "share", "button", "bell",
    "link", "bio", "tiktok", "youtube", "shorts", "reels", "instagram",
]

QUESTION_FLUFF = ["did", "ever", "wonder", "wondered", "guess", "imagine", "know", "knew", "heard", "believe", "think", "suppose", "curious"]

CONTRACTIONS = [
    "i'm", "you're", "we're", "they're", "he's", "she's", "it's", "that's", "there's", "what's", "who's", "where's",
    "when's", "how's", "i've", "you've", "we've", "they've", "should've", "would've", "could've",
    "i'll", "you'll", "we'll", "they'll", "he'll", "she'll", "it'll", "that'll",
    "i'd", "you'd", "we'd", "they'd", "he'd", "she'd", "it'd", "that'd",
    "don't", "doesn't", "didn't", "won't", "wouldn't", "shouldn't", "couldn't", "can't", "cannot", "ain't",
    "isn't", "aren't", "wasn't", "weren't", "haven't", "hasn't", "hadn't",
]
CONTRACTIONS_BARE = [c.replace("'", "") for c in CONTRACTIONS]

# Hype adjectives that never describe anything filmable
ADJECTIVE_FLUFF = [
    "iconic", "famous", "cinematic", "pretty", "untold", "largest",
    "amazing", "awesome", "incredible", "epic", "cool", "beautiful", "gorgeous", "stunning", "massive", "huge",
    "tiny", "classic", "beloved", "legendary", "popular",
]

# Multi-word phrases stripped before tokenizing
STOP_PHRASES = [
    "fun fact", "did you know", "here's why", "here is why", "let me tell you", "let me show you",
    "in this video", "today we", "today i'm", "today i am", "we're going to", "we are going to", "i'm going to",
    "i am going to", "stick around", "before we start", "without further ado", "the truth is", "the real reason",
    "smash that like", "hit the like", "link in bio", "turn on notifications", "subscribe for more",
    "the thing is", "the point is", "the crazy part is", "the wild part is", "you won't believe", "you will not believe",
    "isn't just", "not just", "more than just", "treasure trove of", "untold stories",
    "nestled in", "in the heart of", "one of the most", "in the world",
    "talk about", "legend has it", "and get this", "or so the story goes",
    "so next time you're", "standing before", "keeps on giving",
]

# Nouns that usually name something a camera can point at
OBJECT_HINTS = frozenset([
    "tower", "bridge", "castle", "temple", "statue", "cathedral", "church", "mosque", "palace", "museum", "fountain",
    "square", "plaza", "gate", "arch", "wall", "mount", "mountain", "volcano", "lake", "river", "waterfall", "canyon",
    "island", "beach", "coast", "harbor", "harbour", "port", "forest", "desert", "dune", "valley", "glacier", "reef",
    "cave", "city", "village", "town", "road", "street", "alley", "market", "painting", "sculpture", "artifact",
    "ship", "train", "plane", "skyscraper", "wheel", "observatory", "telescope", "bazaar", "chariot", "seahorse", "shell",
])

# Nouns that anchor a "<modifier> <head>" reconstruction
HEAD_NOUNS = frozenset([
    "fountain", "bridge", "castle", "temple", "statue", "cathedral", "church", "mosque", "palace", "museum", "square",
    "plaza", "gate", "arch", "tower", "wall", "mountain", "volcano", "lake", "river", "waterfall", "canyon", "island",
    "beach", "coast", "harbor", "harbour", "port", "forest", "desert", "dune", "valley", "glacier", "reef", "cave",
    "city", "village", "town", "road", "street", "alley", "market", "colosseum", "basilica", "arena", "monument",
    "pyramid", "observatory", "wheel",
])

# Well-known multi-word subjects, matched verbatim
CANONICAL_MULTI = [
    "eiffel tower", "trevi fountain", "great wall of china", "statue of liberty", "times square", "machu picchu",
    "grand canyon", "mount everest", "niagara falls", "burj khalifa", "colosseum", "sagrada familia", "tower bridge",
    "louvre museum", "chichen itza", "stonehenge", "golden gate bridge", "angkor wat", "petra jordan", "taj mahal",
    "leaning tower of pisa", "fontana degli innamorati", "big ben",
]

# Never acceptable as a resolved primary subject
BANNED_PRIMARY = frozenset([
    "someone", "something", "things", "stuff", "place", "thing", "fact", "truth", "reason",
    "face", "person", "man", "woman", "it", "someone", "body", "eyes", "people", "scene", "they", "we",
])

# Too vague to search stock media for
GENERIC_SUBJECTS = frozenset([
    "face", "person", "man", "woman", "it", "thing", "someone", "something", "body", "eyes", "kid", "boy", "girl",
    "they", "we", "people", "scene", "child", "children", "sign", "logo", "text", "view", "image", "photo",
    "background", "object", "animal", "animals",
])


def _build_stop_set() -> frozenset[str]:
    buckets = [
        ARTICLES, PRONOUNS, AUX_BE_HAVE_DO, MODALS, PREPOSITIONS, CONJUNCTIONS, QUANTIFIERS,
        FILLERS, TIME_WORDS, PLATFORM, QUESTION_FLUFF, CONTRACTIONS, CONTRACTIONS_BARE, ADJECTIVE_FLUFF,
    ]
    return frozenset(norm(item) for bucket in buckets for item in bucket)


STOPWORDS = _build_stop_set()

_STOP_PHRASE_RES = [
    re.compile(r"\b" + re.escape(p).replace("'", "['\u2018\u2019]") + r"\b", re.IGNORECASE) for p in STOP_PHRASES
]
_TOKEN_RE = re.compile(r"[a-z0-9]+(?:'[a-z0-9]+)?", re.IGNORECASE)


def strip_stop_phrases(text: str, keep_case: bool = False) -> str:
    """Remove every stop phrase, whitespace collapsed. Lowercased unless keep_case."""
    out = str(text or "") if keep_case else norm(text)
    for rx in _STOP_PHRASE_RES:
        out = rx.sub(" ", out)
    return re.sub(r"\s+", " ", out).strip()


def tokenize(text: str) -> list[str]:
    """Alphanumeric tokens, keeping inner apostrophes (don't, it's)."""
    return _TOKEN_RE.findall(norm(text))


def strip_all_stops(text: str) -> str:
    """Content words only: stop phrases, stopwords and tokens of 2 chars or less removed."""
    return " ".join(t for t in tokenize(strip_stop_phrases(text)) if t not in STOPWORDS and len(t) > 2)


def is_generic(subject: str | None) -> bool:
    s = norm(subject)
    return not s or s in GENERIC_SUBJECTS or s in BANNED_PRIMARY
