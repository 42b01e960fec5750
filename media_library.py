"""
Internal media library on R2: list eligible clip keys, match them to a subject,
download the winner, and archive freshly downloaded stock clips back into the library.
"""

import os
import re
import shutil
import threading
import uuid
from pathlib import Path, PurePosixPath

from botocore.exceptions import BotoCoreError, ClientError

import config
import storage
from clip_scoring import ClipCandidate, clean_for_filename, major_words, ref_forms

LIBRARY_DEBUG = os.getenv("DEBUG", "").lower() in ("1", "true", "yes")

ELIGIBLE_EXTENSIONS = (".mp4", ".mov")
EXCLUDED_PREFIXES = (
    "jobs/", "final/", "videos/", "outro/", "hook/", "mega/",
    "thumb/", "thumbnails/", "tmp/", "cache/",
)
CONTENT_TYPES = {".mp4": "video/mp4", ".mov": "video/quicktime", ".jpg": "image/jpeg", ".jpeg": "image/jpeg"}


def _log(msg: str, verbose_only: bool = False) -> None:
    """Log with [LIBRARY] prefix. Use verbose_only for extra debug output."""
    if verbose_only and not LIBRARY_DEBUG:
        return
    print(f"[LIBRARY] {msg}")


def normalize_for_match(s) -> str:
    """'Trevi_Fountain-night.mp4' -> 'trevi fountain night mp4'."""
    return re.sub(r"\s+", " ", re.sub(r"[\s_\-.]+", " ", str(s or "").lower())).strip()


def is_eligible_key(key, used=()) -> bool:
    """Video keys outside reserved prefixes that no used clip already points at."""
    lower = str(key or "").lower()
    if not lower.endswith(ELIGIBLE_EXTENSIONS):
        return False
    if lower.startswith(EXCLUDED_PREFIXES):
        return False
    used_forms = set()
    for u in used or ():
        used_forms |= {f.lower() for f in ref_forms(u)}
    return not ({f.lower() for f in ref_forms(key)} & used_forms)


def matches_subject(key, subject) -> bool:
    """Every major subject word appears in the normalized key."""
    words = major_words(subject)
    name = normalize_for_match(key)
    return bool(words) and all(w in name for w in words)


def archive_key(subject, scene_idx, source, local_path, category: str | None = None) -> str:
    """'<category>/<subject>__<sceneIdx>-<source>-<basename><ext>'."""
    local_path = Path(local_path)
    ext = local_path.suffix or ".mp4"
    cat = clean_for_filename(category or config.LIBRARY_ARCHIVE_CATEGORY) or "misc"
    subj = clean_for_filename(subject) or "unknown_subject"
    src = clean_for_filename(source) or "unknown_source"
    return f"{cat}/{subj}__{scene_idx}-{src}-{local_path.stem}{ext}"


class MediaLibrary:
    """R2 bucket of previously used clips. All network errors are logged and become 'no result'."""

    def __init__(self, bucket: str | None = None, client=None):
        self.bucket = bucket or config.R2_LIBRARY_BUCKET
        self._client = client
        self._keys: list[str] | None = None
        self._lock = threading.Lock()

    @property
    def enabled(self) -> bool:
        return self._client is not None or bool(config.R2_ENDPOINT and config.R2_ACCESS_KEY_ID)

    @property
    def client(self):
        if self._client is None:
            self._client = storage.get_r2_client()
        return self._client

    def list_keys(self, prefix: str = "", refresh: bool = False) -> list[str]:
        """All object keys (paginated). Cached per instance; a failed listing returns []."""
        with self._lock:
            if self._keys is not None and not refresh and not prefix:
                return list(self._keys)
            keys = []
            try:
                paginator = self.client.get_paginator("list_objects_v2")
                for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
                    keys.extend(obj["Key"] for obj in page.get("Contents") or [] if obj.get("Key"))
            except (ClientError, BotoCoreError, ValueError) as e:
                _log(f"List failed for bucket {self.bucket}: {e}")
                return []
            if not prefix:
                self._keys = keys
            _log(f"Listed {len(keys)} keys from {self.bucket}", verbose_only=True)
            return list(keys)

    def find_candidates(self, subject, used=()) -> list[ClipCandidate]:
        """Eligible keys whose filename contains every subject word."""
        if not self.enabled or not major_words(subject):
            return []
        out = []
        for key in self.list_keys():
            if is_eligible_key(key, used) and matches_subject(key, subject):
                out.append(ClipCandidate(
                    source="library",
                    ref=key,
                    text=normalize_for_match(PurePosixPath(key).stem),
                    file_type=PurePosixPath(key).suffix.lstrip("."),
                ))
        _log(f"'{subject}': {len(out)} library matches")
        return out

    def find_any(self, used=()) -> list[ClipCandidate]:
        """Every eligible key regardless of subject, in listing order (last-resort tier)."""
        if not self.enabled:
            return []
        return [
            ClipCandidate(
                source="library",
                ref=key,
                text=normalize_for_match(PurePosixPath(key).stem),
                file_type=PurePosixPath(key).suffix.lstrip("."),
            )
            for key in self.list_keys()
            if is_eligible_key(key, used)
        ]

    def download(self, candidate: ClipCandidate, work_dir) -> Path | None:
        ext = PurePosixPath(candidate.ref).suffix.lower() or ".mp4"
        out_path = Path(work_dir) / f"r2-{uuid.uuid4()}{ext}"
        try:
            self.client.download_file(self.bucket, candidate.ref, str(out_path))
        except (ClientError, BotoCoreError) as e:
            _log(f"Download failed for {candidate.ref}: {e}")
            return None
        size = out_path.stat().st_size if out_path.exists() else 0
        if size < config.MIN_DOWNLOAD_BYTES:
            _log(f"Downloaded file too small ({size} bytes): {candidate.ref}")
            out_path.unlink(missing_ok=True)
            return None
        return out_path

    def _exists(self, key: str) -> bool:
        try:
            self.client.head_object(Bucket=self.bucket, Key=key)
            return True
        except ClientError:
            return False

    def archive_clip(self, local_path, subject, scene_idx, source, category: str | None = None) -> str | None:
        """Upload one stock clip into the library unless the key already exists. Returns the key or None."""
        local_path = Path(local_path)
        if not local_path.exists():
            _log(f"Archive skipped, file missing: {local_path}")
            return None
        key = archive_key(subject, scene_idx, source, local_path, category)
        try:
            if self._exists(key):
                _log(f"Already archived: {key}", verbose_only=True)
                return key
            self.client.upload_file(
                str(local_path), self.bucket, key,
                ExtraArgs={"ContentType": CONTENT_TYPES.get(local_path.suffix.lower(), "application/octet-stream")},
            )
        except (ClientError, BotoCoreError, ValueError) as e:
            _log(f"Archive failed for {local_path.name}: {e}")
            return None
        _log(f"Archived {local_path.name} -> {self.bucket}/{key}")
        return key

    def archive_in_background(self, items, category: str | None = None) -> threading.Thread | None:
        """
        Archive (local_path, subject, scene_idx, source) tuples on a daemon thread.
        Files are copied first because the job directory is removed right after the job.
        """
        if not config.LIBRARY_ARCHIVE_ENABLED or not items or not self.enabled:
            return None
        staging = config.JOBS_DIR / "_archive" / uuid.uuid4().hex
        staging.mkdir(parents=True, exist_ok=True)
        staged = []
        for local_path, subject, scene_idx, source in items:
            src = Path(local_path)
            if src.exists():
                dest = staging / src.name
                shutil.copy2(src, dest)
                staged.append((dest, subject, scene_idx, source))

        def _run():
            try:
                for dest, subject, scene_idx, source in staged:
                    self.archive_clip(dest, subject, scene_idx, source, category)
            finally:
                for dest, *_ in staged:
                    dest.unlink(missing_ok=True)
                try:
                    staging.rmdir()
                except OSError:
                    pass

        thread = threading.Thread(target=_run, name="library-archive", daemon=True)
        thread.start()
        return thread
