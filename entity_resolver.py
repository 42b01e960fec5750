"""
Canonical subject ontology and staged query building.

A raw subject ("Lady Liberty crown", {"primary": "Trevi", "feature_or_action": "coin toss"})
is normalized to one canonical entity, and the entity is expanded into three stages of
stock-search terms:
  Stage A: canonical + feature/action (most specific)
  Stage B: canonical alone plus typical viewing variants (aerial, close-up, night)
  Stage C: synonyms, alternates and language variants

The seed table is read-only. Entities added at runtime (custom seeds or unknown subjects
seen for the first time) go into an append-only extension table; nothing is ever removed.
"""

import os
import re
import threading
import unicodedata
from dataclasses import dataclass, field
from types import MappingProxyType

ENTITY_DEBUG = os.getenv("DEBUG", "").lower() in ("1", "true", "yes")

ENTITY_TYPES = ("landmark", "animal", "object", "food", "person", "symbol", "other")


def _log(msg: str, verbose_only: bool = False) -> None:
    """Log with [ENTITY] prefix. Use verbose_only for extra debug output."""
    if verbose_only and not ENTITY_DEBUG:
        return
    print(f"[ENTITY] {msg}")


def slugify(s) -> str:
    """Strip diacritics, lowercase, collapse punctuation to single spaces ('Tour Eiffel!' -> 'tour eiffel')."""
    decomposed = unicodedata.normalize("NFKD", str(s or ""))
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch)).lower()
    return re.sub(r"\s+", " ", re.sub(r"[^a-z0-9]+", " ", stripped)).strip()


def _uniq(items) -> list[str]:
    """Order-preserving dedupe that drops empties."""
    seen: dict[str, None] = {}
    for item in items or []:
        item = (item or "").strip()
        if item and item not in seen:
            seen[item] = None
    return list(seen)


@dataclass(frozen=True)
class Entity:
    canonical: str
    type: str = "other"
    parents: tuple[str, ...] = ()
    synonyms: tuple[str, ...] = ()
    language_variants: tuple[str, ...] = ()
    features: tuple[str, ...] = ()
    actions: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: dict) -> "Entity":
        """Build a normalized entity from a loose dict (lists, mixed case, accents)."""
        def slugs(key, alt=None):
            raw = data.get(key)
            if raw is None and alt:
                raw = data.get(alt)
            if isinstance(raw, str):
                raw = [raw]
            return tuple(_uniq(slugify(x) for x in (raw or [])))

        etype = str(data.get("type") or "other").lower()
        return cls(
            canonical=slugify(data.get("canonical")),
            type=etype if etype in ENTITY_TYPES else "other",
            parents=slugs("parents"),
            synonyms=slugs("synonyms"),
            language_variants=slugs("language_variants", "languageVariants"),
            features=slugs("features"),
            actions=slugs("actions"),
        )


@dataclass
class ResolvedSubject:
    """A subject after alias resolution, ready for query staging."""

    canonical: str
    type: str
    feature_or_action: str = ""
    parent: str = ""
    alternates: list[str] = field(default_factory=list)
    synonyms: list[str] = field(default_factory=list)
    language_variants: list[str] = field(default_factory=list)
    features: list[str] = field(default_factory=list)
    actions: list[str] = field(default_factory=list)


@dataclass
class QueryStage:
    stage: str
    terms: list[str]


SEED_ENTITIES = [
    # Landmarks
    {
        "canonical": "eiffel tower",
        "type": "landmark",
        "parents": ["paris", "france", "landmark"],
        "synonyms": ["tour eiffel", "la tour eiffel", "eiffel", "paris tower"],
        "language_variants": ["tour eiffel"],
        "features": ["top", "summit", "arches", "base", "night lights", "iron lattice"],
        "actions": ["time-lapse", "fireworks", "light show"],
    },
    {
        "canonical": "statue of liberty",
        "type": "landmark",
        "parents": ["new york", "usa", "landmark"],
        "synonyms": ["lady liberty", "liberty island", "statue liberty"],
        "language_variants": ["statue de la liberté"],
        "features": ["crown", "torch", "pedestal", "face", "tablet"],
        "actions": ["aerial", "ferry passing", "close-up"],
    },
    {
        "canonical": "elizabeth tower",
        "type": "landmark",
        "parents": ["london", "uk", "landmark"],
        "synonyms": ["big ben", "clock tower", "palace of westminster clock", "westminster clock"],
        "features": ["clock face", "tower top", "belfry"],
        "actions": ["clock hands moving", "night lights"],
    },
    {
        "canonical": "trevi fountain",
        "type": "landmark",
        "parents": ["rome", "italy", "landmark"],
        "synonyms": ["fontana di trevi", "trevi"],
        "language_variants": ["fontana di trevi"],
        "features": ["central statue", "basin", "facade"],
        "actions": ["coin toss", "water flow"],
    },
    # Animals
    {
        "canonical": "goat",
        "type": "animal",
        "parents": ["animal", "livestock"],
        "synonyms": ["goats", "fainting goat", "fainting goats", "billy goat", "nanny goat"],
        "features": ["horns", "beard", "pupils"],
        "actions": ["drinking milk", "fainting", "grazing", "climbing"],
    },
    {
        "canonical": "orangutan",
        "type": "animal",
        "parents": ["animal", "primate"],
        "synonyms": ["orang-utan", "orangutang", "great ape"],
        "features": ["long arms", "orange fur"],
        "actions": ["climbing", "eating fruit", "swinging"],
    },
    {
        "canonical": "dog",
        "type": "animal",
        "parents": ["animal", "pet"],
        "synonyms": ["dogs", "puppy", "puppies", "canine"],
        "features": ["ears", "tail"],
        "actions": ["running", "playing", "drinking water"],
    },
    {
        "canonical": "cat",
        "type": "animal",
        "parents": ["animal", "pet"],
        "synonyms": ["cats", "kitten", "kittens", "feline"],
        "features": ["whiskers", "eyes"],
        "actions": ["sleeping", "purring", "drinking milk"],
    },
    # Objects / symbols
    {
        "canonical": "crown",
        "type": "object",
        "parents": ["object", "symbol"],
        "synonyms": ["royal crown", "king crown", "queen crown"],
        "features": ["jewels", "gold", "spikes"],
        "actions": ["close-up", "held", "worn"],
    },
    {
        "canonical": "torch",
        "type": "object",
        "parents": ["object", "light"],
        "synonyms": ["flaming torch", "handheld torch"],
        "features": ["flame", "handle"],
        "actions": ["burning"],
    },
    # Food
    {
        "canonical": "milk",
        "type": "food",
        "parents": ["food", "drink"],
        "synonyms": ["cow milk", "goat milk"],
        "features": ["glass of milk"],
        "actions": ["pouring", "drinking"],
    },
]

ANIMAL_HINTS = frozenset([
    "goat", "goats", "dog", "dogs", "puppy", "puppies", "cat", "cats", "kitten", "kittens",
    "lion", "lions", "tiger", "tigers", "bear", "bears", "eagle", "eagles", "monkey", "monkeys",
    "chimp", "chimpanzee", "orangutan", "gorilla", "primate", "cow", "cows", "horse", "horses",
])

LANDMARK_HINTS = frozenset([
    "tower", "statue", "fountain", "bridge", "castle", "cathedral", "temple", "mosque",
    "pyramid", "palace", "clock", "monument", "mount", "mountain",
])

# Actions that read better with the canonical in front ("goat grazing", not "grazing")
_ACTION_RE = re.compile(
    r"(drinking|pouring|grazing|climbing|running|sleeping|purring|swinging|time ?lapse|fireworks"
    r"|light show|aerial|close ?up|night|celebrating|coin toss|water flow)"
)


def guess_type(tokens) -> str:
    """Animal or landmark from hint words, else 'other'."""
    slugs = {slugify(t) for t in tokens or []}
    if slugs & ANIMAL_HINTS:
        return "animal"
    if slugs & LANDMARK_HINTS:
        return "landmark"
    return "other"


def normalize_action(feature_or_action: str, canonical: str) -> str:
    s = slugify(feature_or_action)
    if not s:
        return ""
    if _ACTION_RE.search(s):
        return f"{canonical} {s}"
    return s


class EntityResolver:
    """
    Owns the ontology: an immutable seed table plus an append-only extension table.
    Safe to share between scene threads; extension writes take a lock.
    """

    def __init__(self, seed_entities=None):
        seed: dict[str, Entity] = {}
        aliases: dict[str, str] = {}
        for raw in SEED_ENTITIES if seed_entities is None else seed_entities:
            entity = raw if isinstance(raw, Entity) else Entity.from_dict(raw)
            if not entity.canonical or entity.canonical in seed:
                continue
            seed[entity.canonical] = entity
            self._index_aliases(entity, aliases)
        self._seed = MappingProxyType(seed)
        self._seed_aliases = MappingProxyType(aliases)
        self._extra: dict[str, Entity] = {}
        self._extra_aliases: dict[str, str] = {}
        self._lock = threading.Lock()
        _log(f"Seed ontology indexed: {len(self._seed)} entities", verbose_only=True)

    @staticmethod
    def _index_aliases(entity: Entity, aliases: dict[str, str]) -> None:
        aliases.setdefault(entity.canonical, entity.canonical)
        for alias in entity.synonyms + entity.language_variants:
            aliases.setdefault(alias, entity.canonical)

    def __len__(self) -> int:
        return len(self._seed) + len(self._extra)

    def canonical_for(self, name) -> str | None:
        """Canonical slug for a name or alias, or None if the ontology has never seen it."""
        key = slugify(name)
        if not key:
            return None
        return self._seed_aliases.get(key) or self._extra_aliases.get(key)

    def get_entity(self, name_or_alias) -> Entity | None:
        key = slugify(name_or_alias)
        canonical = self.canonical_for(key) or key
        return self._seed.get(canonical) or self._extra.get(canonical)

    def is_same_canonical(self, a, b) -> bool:
        if not slugify(a) or not slugify(b):
            return False
        ca = self.canonical_for(a) or slugify(a)
        cb = self.canonical_for(b) or slugify(b)
        return ca == cb

    def _register(self, entity: Entity) -> bool:
        """Append one entity to the extension table. Existing canonicals are left untouched."""
        with self._lock:
            if entity.canonical in self._seed or entity.canonical in self._extra:
                return False
            self._extra[entity.canonical] = entity
            # An alias already owned by another canonical keeps its first owner
            for alias in (entity.canonical,) + entity.synonyms + entity.language_variants:
                if alias not in self._seed_aliases:
                    self._extra_aliases.setdefault(alias, entity.canonical)
            return True

    def synthesize_entity(self, canonical, type_hint: str | None = None) -> Entity:
        """
        Return the entity for `canonical`, creating and registering a minimal one
        (type guessed from its words) if the ontology does not know it yet.
        """
        slug = slugify(canonical)
        existing = self.get_entity(slug)
        if existing is not None:
            return existing
        etype = (type_hint or "").lower()
        if etype not in ENTITY_TYPES or etype == "other":
            etype = guess_type(slug.split())
        entity = Entity(canonical=slug, type=etype)
        if slug and self._register(entity):
            _log(f"Synthesized unknown entity '{slug}' ({etype})", verbose_only=True)
        return self.get_entity(slug) or entity

    def add_custom_entities(self, entities) -> int:
        """Add entities (dicts shaped like SEED_ENTITIES or Entity). Returns how many were new."""
        added = 0
        for raw in entities or []:
            entity = raw if isinstance(raw, Entity) else Entity.from_dict(raw)
            if entity.canonical and self._register(entity):
                added += 1
        _log(f"Added {added} entities (total={len(self)})")
        return added

    def resolve(self, subject, register_unknown: bool = True) -> ResolvedSubject:
        """
        Normalize a raw subject (string, or dict with primary / feature_or_action /
        parent / alternates / type) to its canonical entity description.
        Unknown subjects are synthesized and, when register_unknown, remembered.
        """
        hint = _interpret(subject)
        primary = slugify(hint["primary"])
        feature_or_action = slugify(hint["feature_or_action"])
        parent = slugify(hint["parent"]) or primary
        # An explicitly hinted parent becomes a broader Stage B term
        parent_term = (self.canonical_for(parent) or parent) if parent != primary else ""
        hinted_type = (hint["type"] or "").lower() or None

        canonical = self.canonical_for(primary) or self.canonical_for(parent) or primary or parent
        if not canonical:
            return ResolvedSubject(canonical="", type="other", feature_or_action=feature_or_action)

        entity = self.get_entity(canonical)
        if entity is None:
            if register_unknown:
                entity = self.synthesize_entity(canonical, hinted_type)
            else:
                entity = Entity(canonical=canonical, type=hinted_type or guess_type(canonical.split()))

        etype = hinted_type if hinted_type and hinted_type != "other" else entity.type
        if etype == "other":
            etype = guess_type(primary.split())

        alternates = [
            a for a in _uniq([slugify(a) for a in hint["alternates"]] + list(entity.synonyms) + list(entity.language_variants))
            if a != canonical
        ]
        resolved = ResolvedSubject(
            canonical=canonical,
            type=etype,
            feature_or_action=feature_or_action,
            parent=parent_term if parent_term != canonical else "",
            alternates=alternates,
            synonyms=list(entity.synonyms),
            language_variants=list(entity.language_variants),
            features=list(entity.features),
            actions=list(entity.actions),
        )
        _log(f"Resolved '{primary or parent}' -> '{canonical}' ({etype})", verbose_only=True)
        return resolved

    def query_stages(self, subject) -> list[QueryStage]:
        """Staged search terms, most concrete first. Stage lists may be empty but are always present."""
        e = self.resolve(subject)
        stages = [
            QueryStage("A", _uniq(_feature_first_terms(e))),
            QueryStage("B", _uniq(_canonical_terms(e))),
            QueryStage("C", _uniq(_alternate_terms(e))),
        ]
        _log(f"Queries for '{e.canonical}': " + "; ".join(f"{s.stage}={s.terms}" for s in stages), verbose_only=True)
        return stages


def _interpret(subject) -> dict:
    if isinstance(subject, dict):
        alternates = subject.get("alternates") or []
        if isinstance(alternates, str):
            alternates = [alternates]
        return {
            "primary": subject.get("primary") or subject.get("subject") or "",
            "feature_or_action": subject.get("feature_or_action") or subject.get("feature") or subject.get("action") or "",
            "parent": subject.get("parent") or subject.get("primary") or "",
            "alternates": [a for a in alternates if a and str(a).strip()],
            "type": subject.get("type"),
        }
    text = slugify(subject)
    return {"primary": text, "feature_or_action": "", "parent": text, "alternates": [], "type": None}


def _feature_first_terms(e: ResolvedSubject) -> list[str]:
    if not e.feature_or_action:
        return []
    c, fa = e.canonical, e.feature_or_action
    terms = [f"{c} {fa}", f"{fa} {c}"]
    normalized = normalize_action(fa, c)
    if normalized and normalized != fa:
        terms.append(normalized)
    terms.append(f"{c} {normalized}")
    if e.type == "animal":
        terms.append(f"{c} {fa} close-up")
        terms.append(f"{c} {fa} in field")
    return terms


def _canonical_terms(e: ResolvedSubject) -> list[str]:
    c = e.canonical
    terms = [c]
    if e.parent and e.parent != c:
        terms.append(e.parent)
    if e.type == "landmark":
        terms += [f"{c} aerial", f"{c} close-up", f"{c} night"]
    elif e.type == "animal":
        terms += [f"{c} close-up", f"{c} in field"]
    return terms


def _alternate_terms(e: ResolvedSubject) -> list[str]:
    terms = []
    for alt in _uniq(e.alternates + e.synonyms + e.language_variants):
        terms.append(alt)
        if e.feature_or_action:
            terms.append(f"{alt} {e.feature_or_action}")
            terms.append(f"{e.feature_or_action} {alt}")
    return terms


default_resolver = EntityResolver()


def resolve_canonical_subject(subject) -> ResolvedSubject:
    return default_resolver.resolve(subject)


def get_query_stages(subject) -> list[QueryStage]:
    return default_resolver.query_stages(subject)


def is_same_canonical(a, b) -> bool:
    return default_resolver.is_same_canonical(a, b)
