"""
Stock-media search providers (Pexels, Pixabay) and streaming download.

Each provider returns ClipCandidate lists for a query; a missing API key disables the
provider (empty results, logged once per call). HTTP failures propagate as
requests.RequestException so the clip search can log them and move to the next tier.
"""

import re
from abc import ABC, abstractmethod
from pathlib import Path

import requests

import config
from clip_scoring import ClipCandidate

USER_AGENT = "VideoGenerator/1.0 (stock clip search)"
DOWNLOAD_CHUNK = 1024 * 256


def clean_query(query, limit: int = 100) -> str:
    """Strip punctuation, collapse whitespace, cap length."""
    cleaned = re.sub(r"[^\w\s]", " ", str(query or ""))
    return re.sub(r"\s+", " ", cleaned).strip()[:limit]


class StockProvider(ABC):
    """Base class for a stock-media search service."""

    name = "stock"

    @property
    @abstractmethod
    def enabled(self) -> bool:
        """True when the provider has the credentials it needs."""
        pass

    @abstractmethod
    def search_videos(self, query: str) -> list[ClipCandidate]:
        pass

    @abstractmethod
    def search_photos(self, query: str) -> list[ClipCandidate]:
        pass

    def download(self, candidate: ClipCandidate, out_path: Path) -> Path | None:
        return download_file(candidate.ref, out_path, tag=self.name.upper())

    def _get(self, url: str, params: dict, headers: dict | None = None) -> dict:
        merged = {"User-Agent": USER_AGENT}
        merged.update(headers or {})
        resp = requests.get(url, params=params, headers=merged, timeout=config.HTTP_TIMEOUT)
        resp.raise_for_status()
        return resp.json()


class PexelsProvider(StockProvider):
    name = "pexels"
    VIDEO_URL = "https://api.pexels.com/videos/search"
    PHOTO_URL = "https://api.pexels.com/v1/search"

    def __init__(self, api_key: str | None = None, per_page: int | None = None):
        self.api_key = config.PEXELS_API_KEY if api_key is None else api_key
        self.per_page = per_page or config.STOCK_RESULTS_PER_QUERY

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    def search_videos(self, query: str) -> list[ClipCandidate]:
        q = clean_query(query)
        if not self.enabled or not q:
            if not self.enabled:
                print("[PEXELS] No API key set, skipping video search")
            return []
        data = self._get(
            self.VIDEO_URL,
            {"query": q, "per_page": self.per_page, "orientation": "portrait"},
            {"Authorization": self.api_key},
        )
        out = []
        for video in data.get("videos") or []:
            files = [f for f in video.get("video_files") or [] if f.get("link")]
            if not files:
                continue
            hd = [f for f in files if f.get("quality") == "hd"]
            best = max(hd or files, key=lambda f: (f.get("height") or 0) * (f.get("width") or 0))
            slug = slug_from_url(video.get("url"))
            tags = " ".join(video.get("tags") or [])
            out.append(ClipCandidate(
                source=self.name,
                ref=best["link"],
                width=best.get("width") or video.get("width") or 0,
                height=best.get("height") or video.get("height") or 0,
                duration=float(video.get("duration") or 0),
                text=f"{slug} {tags}".strip(),
                file_type=best.get("file_type") or "",
                meta={"id": video.get("id"), "page": video.get("url")},
            ))
        print(f"[PEXELS] '{q}': {len(out)} videos")
        return out

    def search_photos(self, query: str) -> list[ClipCandidate]:
        q = clean_query(query, 90)
        if not self.enabled or not q:
            return []
        data = self._get(
            self.PHOTO_URL,
            {"query": q, "per_page": self.per_page, "orientation": "portrait"},
            {"Authorization": self.api_key},
        )
        out = []
        for photo in data.get("photos") or []:
            src = photo.get("src") or {}
            link = src.get("original") or src.get("large2x") or src.get("large")
            if not link:
                continue
            out.append(ClipCandidate(
                source=self.name,
                ref=link,
                width=photo.get("width") or 0,
                height=photo.get("height") or 0,
                text=f"{slug_from_url(photo.get('url'))} {photo.get('alt') or ''}".strip(),
                kind="photo",
                meta={"id": photo.get("id")},
            ))
        print(f"[PEXELS] '{q}': {len(out)} photos")
        return out


class PixabayProvider(StockProvider):
    name = "pixabay"
    VIDEO_URL = "https://pixabay.com/api/videos/"
    PHOTO_URL = "https://pixabay.com/api/"
    RENDITIONS = ("large", "medium", "small", "tiny")

    def __init__(self, api_key: str | None = None, per_page: int | None = None):
        self.api_key = config.PIXABAY_API_KEY if api_key is None else api_key
        self.per_page = per_page or config.STOCK_RESULTS_PER_QUERY

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    def search_videos(self, query: str) -> list[ClipCandidate]:
        q = clean_query(query)
        if not self.enabled or not q:
            if not self.enabled:
                print("[PIXABAY] No API key set, skipping video search")
            return []
        data = self._get(self.VIDEO_URL, {"key": self.api_key, "q": q, "per_page": self.per_page})
        out = []
        for hit in data.get("hits") or []:
            videos = hit.get("videos") or {}
            for rendition in self.RENDITIONS:
                vid = videos.get(rendition) or {}
                if not vid.get("url"):
                    continue
                out.append(ClipCandidate(
                    source=self.name,
                    ref=vid["url"],
                    width=vid.get("width") or 0,
                    height=vid.get("height") or 0,
                    duration=float(hit.get("duration") or 0),
                    text=hit.get("tags") or "",
                    file_type="video/mp4",
                    meta={"id": hit.get("id"), "rendition": rendition},
                ))
        print(f"[PIXABAY] '{q}': {len(out)} video files")
        return out

    def search_photos(self, query: str) -> list[ClipCandidate]:
        q = clean_query(query, 90)
        if not self.enabled or not q:
            return []
        data = self._get(self.PHOTO_URL, {
            "key": self.api_key,
            "q": q,
            "image_type": "photo",
            "per_page": 12,
            "orientation": "vertical",
        })
        out = []
        for hit in data.get("hits") or []:
            link = hit.get("largeImageURL")
            if not link:
                continue
            out.append(ClipCandidate(
                source=self.name,
                ref=link,
                width=hit.get("imageWidth") or 0,
                height=hit.get("imageHeight") or 0,
                text=hit.get("tags") or "",
                kind="photo",
                meta={"id": hit.get("id")},
            ))
        print(f"[PIXABAY] '{q}': {len(out)} photos")
        return out


def slug_from_url(url) -> str:
    """Readable words from a provider page URL (pexels.com/video/eiffel-tower-at-night-123/)."""
    parts = [p for p in str(url or "").rstrip("/").split("/") if p]
    if not parts:
        return ""
    slug = re.sub(r"-?\d+$", "", parts[-1])
    return slug.replace("-", " ").strip()


def download_file(url: str, out_path: Path, tag: str = "DOWNLOAD", min_bytes: int | None = None) -> Path | None:
    """
    Stream url to out_path. Returns the path, or None (and removes the partial file)
    when the result is smaller than min_bytes. Network errors propagate.
    """
    min_bytes = config.MIN_DOWNLOAD_BYTES if min_bytes is None else min_bytes
    out_path = Path(out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    print(f"[{tag}] Downloading {url} -> {out_path.name}")
    with requests.get(url, stream=True, timeout=config.DOWNLOAD_TIMEOUT, headers={"User-Agent": USER_AGENT}) as resp:
        resp.raise_for_status()
        with open(out_path, "wb") as f:
            for chunk in resp.iter_content(chunk_size=DOWNLOAD_CHUNK):
                if chunk:
                    f.write(chunk)
    size = out_path.stat().st_size if out_path.exists() else 0
    if size < min_bytes:
        print(f"[{tag}] Downloaded file too small or broken ({size} bytes): {out_path.name}")
        out_path.unlink(missing_ok=True)
        return None
    return out_path


def default_providers() -> list[StockProvider]:
    """Video-search order: Pexels first, then Pixabay."""
    return [PexelsProvider(), PixabayProvider()]
