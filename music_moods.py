"""
Background music library: mood folders under MUSIC_DIR, keyword mood detection over the
script, and a random track pick that never repeats the previously picked track.
"""

import random
import re
import threading
from pathlib import Path

import config

# Mood -> subfolder of MUSIC_DIR
MUSIC_MOODS = {
    "action": "action_sports_intense",
    "adventure": "cinematic_epic_adventure",
    "explainer": "corporate_educational_explainer",
    "suspense": "dramatic_tense_suspense",
    "fantasy": "fantasy_magical",
    "funny": "funny_quirky_whimsical",
    "happy": "happy_summer",
    "lofi": "lofi_chill_ambient",
    "inspiring": "motivation_inspiration_uplifting",
    "ambient": "nature_ambient_relaxing",
    "documentary": "news_documentary_neutral",
    "retro": "retro_8-bit_gaming",
    "sad": "sad_emotional_reflective",
    "tech": "science_tech_futuristic",
    "spooky": "spooky_creepy_mystery_horror",
    "pop": "upbeat_energetic_pop",
}
DEFAULT_MOOD = "inspiring"
AUDIO_EXTENSIONS = (".mp3", ".wav", ".ogg")

MOOD_KEYWORDS = {
    "spooky": ["ghost", "haunted", "creepy", "horror", "scary", "witch", "zombie", "curse", "cursed", "vampire"],
    "suspense": ["mystery", "secret", "danger", "tense", "crime", "heist", "escape", "hidden", "unsolved"],
    "sad": ["sad", "tragic", "tragedy", "loss", "lonely", "grief", "tears", "died", "death", "heartbreak"],
    "action": ["fast", "race", "sport", "sports", "battle", "fight", "speed", "extreme", "chase", "war"],
    "adventure": ["adventure", "explore", "journey", "epic", "expedition", "quest", "mountain", "jungle"],
    "fantasy": ["magic", "magical", "dragon", "fairy", "wizard", "legend", "myth", "enchanted", "unicorn"],
    "funny": ["funny", "silly", "weird", "hilarious", "joke", "prank", "laugh", "ridiculous"],
    "happy": ["happy", "summer", "sunny", "joy", "party", "celebrate", "beach", "vacation"],
    "tech": ["technology", "robot", "future", "futuristic", "science", "space", "ai", "computer", "rocket"],
    "retro": ["retro", "arcade", "pixel", "gaming", "nintendo", "vintage", "80s", "90s"],
    "ambient": ["nature", "forest", "ocean", "calm", "relax", "peaceful", "river", "rain"],
    "documentary": ["history", "historic", "news", "report", "facts", "century", "ancient", "empire"],
    "explainer": ["how", "explain", "guide", "tips", "learn", "steps", "business"],
    "lofi": ["chill", "study", "cozy", "coffee", "night"],
    "pop": ["viral", "trend", "trending", "dance", "music", "celebrity", "tiktok"],
    "inspiring": ["inspire", "inspiring", "dream", "success", "hope", "achieve", "believe", "triumph"],
}

_WORD_RE = re.compile(r"[a-z0-9]+")


def detect_mood(script: str) -> str:
    """Mood with the most keyword hits; ties keep MOOD_KEYWORDS order. DEFAULT_MOOD when nothing matches."""
    words = _WORD_RE.findall(str(script or "").lower())
    best, best_hits = DEFAULT_MOOD, 0
    for mood, keywords in MOOD_KEYWORDS.items():
        kw = set(keywords)
        hits = sum(1 for w in words if w in kw)
        if hits > best_hits:
            best, best_hits = mood, hits
    print(f"[MUSIC] Detected mood: {best} ({best_hits} keyword hits)")
    return best


def get_mood_folder(mood: str | None, music_dir: Path | None = None) -> Path:
    music_dir = Path(music_dir or config.MUSIC_DIR)
    folder = MUSIC_MOODS.get((mood or "").strip().lower()) or MUSIC_MOODS[DEFAULT_MOOD]
    return music_dir / folder


def get_tracks_for_mood(mood: str | None, music_dir: Path | None = None) -> list[Path]:
    folder = get_mood_folder(mood, music_dir)
    if not folder.is_dir():
        return []
    return sorted(p for p in folder.iterdir() if p.is_file() and p.suffix.lower() in AUDIO_EXTENSIONS)


def get_all_tracks(music_dir: Path | None = None) -> list[Path]:
    tracks = []
    for mood in MUSIC_MOODS:
        tracks.extend(get_tracks_for_mood(mood, music_dir))
    return tracks


class MusicPicker:
    """Random track per mood, skipping the track this picker returned last time when possible."""

    def __init__(self, music_dir: Path | None = None, rng: random.Random | None = None):
        self.music_dir = music_dir
        self.rng = rng or random.Random()
        self._last: Path | None = None
        self._lock = threading.Lock()

    def pick(self, mood: str | None) -> Path | None:
        tracks = get_tracks_for_mood(mood, self.music_dir)
        if not tracks:
            tracks = get_all_tracks(self.music_dir)
            if tracks:
                print(f"[MUSIC] No tracks for mood '{mood}', picking from all moods")
        if not tracks:
            print(f"[MUSIC] No music files found under {self.music_dir or config.MUSIC_DIR}")
            return None
        with self._lock:
            choices = [t for t in tracks if t != self._last] or tracks
            track = self.rng.choice(choices)
            self._last = track
        print(f"[MUSIC] Mood '{mood}' -> {track.name}")
        return track

    def pick_for_script(self, script: str) -> Path | None:
        return self.pick(detect_mood(script))


default_picker = MusicPicker()
