"""
Tiered clip search for one scene.

Tiers, each tried only when the previous one produced nothing usable:
  library -> each stock video provider (Pexels, Pixabay) -> stock photos panned with Ken Burns
  -> any unused library clip -> a generic still panned with Ken Burns.

Within a provider tier, query stages A/B/C from the entity resolver are searched in order
and the first stage with a scored winner is used. Clip references are claimed in the job's
UsedClips registry at selection time, under a lock, so sibling scenes never get the same clip.
"""

import threading
import uuid
from dataclasses import dataclass
from pathlib import Path

import requests

import config
import kenburns
from clip_scoring import ClipCandidate, clean_for_filename, ref_forms, select_best
from entity_resolver import EntityResolver, default_resolver
from media_library import MediaLibrary
from stock_providers import StockProvider, default_providers
from stopwords import is_generic
from subject_extractor import GENERIC_SUBJECT

PHOTO_EXTENSIONS = (".jpg", ".jpeg", ".png", ".webp")


class UsedClips:
    """Per-job registry of claimed clip references. Thread-safe."""

    def __init__(self, refs=()):
        self._forms: set[str] = set()
        self._refs: list[str] = []
        self._lock = threading.Lock()
        for ref in refs:
            self.claim(ref)

    def claim(self, ref) -> bool:
        """Record ref as used. False when it (or any form of it) was already claimed."""
        forms = ref_forms(ref)
        if not forms:
            return False
        with self._lock:
            if forms & self._forms:
                return False
            self._forms |= forms
            self._refs.append(str(ref))
            return True

    def release(self, ref) -> None:
        forms = ref_forms(ref)
        with self._lock:
            self._forms -= forms
            self._refs = [r for r in self._refs if r != str(ref)]

    def snapshot(self) -> list[str]:
        with self._lock:
            return list(self._refs)

    def __contains__(self, ref) -> bool:
        with self._lock:
            return bool(ref_forms(ref) & self._forms)

    def __len__(self) -> int:
        with self._lock:
            return len(self._refs)


@dataclass
class ClipResult:
    path: Path
    source: str  # library | pexels | pixabay | kenburns
    ref: str  # claimed reference (object key or download URL)
    subject: str
    kind: str = "video"


class ClipSearch:
    """Finds and downloads one clip per call. One instance per job (it owns the job's UsedClips)."""

    def __init__(self, providers: list[StockProvider] | None = None, library: MediaLibrary | None = None,
                 transcoder=None, resolver: EntityResolver | None = None, used: UsedClips | None = None,
                 job_id: str = ""):
        self.providers = default_providers() if providers is None else providers
        self.library = MediaLibrary() if library is None else library
        self.transcoder = transcoder
        self.resolver = resolver if resolver is not None else default_resolver
        self.used = used if used is not None else UsedClips()
        self.job_id = job_id
        self._downloaded: list[tuple[Path, str, int, str]] = []
        self._downloaded_lock = threading.Lock()

    def _log(self, scene_idx, msg: str) -> None:
        print(f"[CLIP][{self.job_id}][scene {scene_idx}] {msg}")

    @property
    def downloaded(self) -> list[tuple[Path, str, int, str]]:
        """(local_path, subject, scene_idx, source) for stock videos fetched in this job."""
        with self._downloaded_lock:
            return list(self._downloaded)

    def search_terms(self, subject) -> list[list[str]]:
        """Query terms per stage (A, B, C), each capped at MAX_QUERY_TERMS; empty stages dropped."""
        stages = self.resolver.query_stages(subject)
        out = []
        for stage in stages:
            terms = [t for t in stage.terms if t][: config.MAX_QUERY_TERMS]
            if terms:
                out.append(terms)
        return out

    def find_clip(self, subject, work_dir, scene_idx: int = 0) -> ClipResult | None:
        subject = str(subject or "").strip()
        if not subject or is_generic(subject):
            self._log(scene_idx, f"Subject '{subject}' is generic, searching for '{GENERIC_SUBJECT}'")
            subject = GENERIC_SUBJECT.lower()
        work_dir = Path(work_dir)
        work_dir.mkdir(parents=True, exist_ok=True)

        tiers = [("library", lambda: self._from_library(subject, work_dir, scene_idx))]
        for provider in self.providers:
            tiers.append((provider.name, lambda p=provider: self._from_provider(p, subject, work_dir, scene_idx)))
        tiers += [
            ("photo", lambda: self._from_photos(subject, work_dir, scene_idx)),
            ("library-any", lambda: self._any_library_clip(work_dir, scene_idx)),
            ("generic-photo", lambda: self._from_photos(GENERIC_SUBJECT.lower(), work_dir, scene_idx)),
        ]
        for name, tier in tiers:
            result = tier()
            if result:
                self._log(scene_idx, f"'{subject}' -> {name}: {result.path.name}")
                return result
            self._log(scene_idx, f"No usable {name} result for '{subject}'")
        self._log(scene_idx, f"No clip found for '{subject}' after every fallback")
        return None

    def _claim_best(self, candidates, subject) -> ClipCandidate | None:
        """Winner among unclaimed candidates; claims it. Retries if a sibling scene claimed it first."""
        remaining = list(candidates)
        while remaining:
            best = select_best(remaining, subject, used=self.used.snapshot())
            if best is None:
                return None
            if self.used.claim(best.ref):
                return best
            remaining = [c for c in remaining if c.ref != best.ref]
        return None

    def _from_library(self, subject, work_dir, scene_idx) -> ClipResult | None:
        if not self.library.enabled:
            return None
        candidates = self.library.find_candidates(subject, self.used.snapshot())
        best = self._claim_best(candidates, subject)
        if best is None:
            return None
        path = self.library.download(best, work_dir)
        if path is None:
            self.used.release(best.ref)
            return None
        return ClipResult(path=path, source="library", ref=best.ref, subject=subject)

    def _any_library_clip(self, work_dir, scene_idx) -> ClipResult | None:
        if not self.library.enabled:
            return None
        for candidate in self.library.find_any(self.used.snapshot()):
            if not self.used.claim(candidate.ref):
                continue
            path = self.library.download(candidate, work_dir)
            if path is not None:
                return ClipResult(path=path, source="library", ref=candidate.ref, subject=candidate.text)
            self.used.release(candidate.ref)
            return None
        return None

    def _from_provider(self, provider: StockProvider, subject, work_dir, scene_idx) -> ClipResult | None:
        if not provider.enabled:
            return None
        for terms in self.search_terms(subject):
            candidates = []
            try:
                for term in terms:
                    candidates.extend(provider.search_videos(term))
            except requests.RequestException as e:
                self._log(scene_idx, f"{provider.name} search failed: {e}")
                return None
            best = self._claim_best(candidates, subject)
            if best is None:
                continue
            out_path = work_dir / f"scene{scene_idx}-{provider.name}-{clean_for_filename(subject) or 'clip'}-{uuid.uuid4().hex[:8]}.mp4"
            try:
                path = provider.download(best, out_path)
            except requests.RequestException as e:
                self._log(scene_idx, f"{provider.name} download failed for {best.ref}: {e}")
                path = None
            if path is None:
                self.used.release(best.ref)
                return None
            with self._downloaded_lock:
                self._downloaded.append((path, subject, scene_idx, provider.name))
            return ClipResult(path=path, source=provider.name, ref=best.ref, subject=subject)
        return None

    def _from_photos(self, subject, work_dir, scene_idx) -> ClipResult | None:
        if self.transcoder is None:
            return None
        candidates = []
        for provider in self.providers:
            if not provider.enabled:
                continue
            for terms in self.search_terms(subject)[:2]:
                try:
                    for term in terms:
                        candidates.extend(provider.search_photos(term))
                except requests.RequestException as e:
                    self._log(scene_idx, f"{provider.name} photo search failed: {e}")
                    break
        best = self._claim_best(candidates, subject)
        if best is None:
            return None
        provider = next((p for p in self.providers if p.name == best.source), self.providers[0])
        ext = Path(best.filename).suffix.lower()
        ext = ext if ext in PHOTO_EXTENSIONS else ".jpg"
        tag = uuid.uuid4().hex[:8]
        try:
            image = provider.download(best, work_dir / f"scene{scene_idx}-photo-{tag}{ext}")
        except requests.RequestException as e:
            self._log(scene_idx, f"Photo download failed for {best.ref}: {e}")
            image = None
        if image is None:
            self.used.release(best.ref)
            return None
        clip = kenburns.make_ken_burns_clip(image, work_dir / f"scene{scene_idx}-kenburns-{tag}.mp4", self.transcoder)
        if clip is None:
            return None
        return ClipResult(path=clip, source="kenburns", ref=best.ref, subject=subject, kind="photo")
