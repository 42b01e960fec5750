"""
Per-scene processing: clip -> narration -> trim -> mux, for every scene of a job at once.

Narration audio and muxed scene videos are cached across jobs in flat directories of
content-hash-named files. A cache file above the configured byte threshold is a hit; anything
smaller is treated as absent and rebuilt. Writers publish with os.replace from a unique temp
name, so two jobs racing on the same key both end with a complete file (last writer wins).

The mega-scene (two narration lines, one clip) yields two scene files cut from disjoint
time ranges of the same clip.
"""

import hashlib
import json
import os
import threading
import time
import uuid
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

import config
import tts
from script_segmenter import Scene, clean_scene_text

MIN_AUDIO_SECONDS = 0.01


class ArtifactError(RuntimeError):
    """A produced file is missing or smaller than its minimum size."""


class SceneError(RuntimeError):
    """Any unrecoverable failure while processing one scene."""

    def __init__(self, index: int, message: str):
        super().__init__(f"Scene {index + 1}: {message}")
        self.index = index


def cache_key(**parts) -> str:
    """sha1 of the parts as canonical JSON."""
    return hashlib.sha1(json.dumps(parts, sort_keys=True, ensure_ascii=False).encode("utf-8")).hexdigest()


def unique_name(prefix: str, ext: str = ".mp4") -> str:
    """'<prefix>-<ms timestamp>-<random>.ext'; never collides across retries."""
    return f"{prefix}-{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}{ext}"


def file_size(path) -> int:
    try:
        return Path(path).stat().st_size
    except (OSError, TypeError):
        return 0


def assert_artifact(path, label: str, min_bytes: int | None = None) -> Path:
    min_bytes = config.MIN_ARTIFACT_BYTES if min_bytes is None else min_bytes
    if not path or not Path(path).exists():
        raise ArtifactError(f"{label}: file does not exist: {path}")
    size = file_size(path)
    if size < min_bytes:
        raise ArtifactError(f"{label}: file too small ({size} bytes, need {min_bytes}): {path}")
    return Path(path)


class ContentCache:
    """Flat directory of '<sha1><ext>' files."""

    def __init__(self, cache_dir, ext: str, min_bytes: int, tag: str):
        self.cache_dir = Path(cache_dir)
        self.ext = ext
        self.min_bytes = min_bytes
        self.tag = tag

    def path_for(self, **parts) -> Path:
        return self.cache_dir / f"{cache_key(**parts)}{self.ext}"

    def is_hit(self, path) -> bool:
        return file_size(path) > self.min_bytes

    def get_or_create(self, build: Callable[[Path], object], **parts) -> tuple[Path, bool]:
        """
        (cached path, was_hit). On a miss, build(tmp_path) writes the artifact, which is then
        checked and moved into place.
        """
        path = self.path_for(**parts)
        if self.is_hit(path):
            print(f"[CACHE] {self.tag} hit: {path.name}")
            return path, True
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        tmp = self.cache_dir / f"{path.stem}.{uuid.uuid4().hex[:8]}.tmp{self.ext}"
        try:
            build(tmp)
            assert_artifact(tmp, f"{self.tag} cache write", self.min_bytes)
            os.replace(tmp, path)
        finally:
            tmp.unlink(missing_ok=True)
        print(f"[CACHE] {self.tag} miss, stored: {path.name} ({file_size(path)} bytes)")
        return path, False


class AudioCache(ContentCache):
    def __init__(self, cache_dir=None, synthesize=None, min_bytes: int | None = None):
        super().__init__(
            cache_dir or config.AUDIO_CACHE_DIR, ".mp3",
            config.MIN_AUDIO_CACHE_BYTES if min_bytes is None else min_bytes, "audio",
        )
        self.synthesize = synthesize or tts.synthesize

    def narration(self, text: str, voice: str, provider: str) -> Path:
        spoken = clean_scene_text(text) or text

        def build(tmp):
            self.synthesize(spoken, voice, provider, tmp)
            assert_artifact(tmp, "narration", config.MIN_AUDIO_BYTES)

        path, _ = self.get_or_create(build, text=text, voice=voice, provider=provider)
        return path


class MuxCache(ContentCache):
    def __init__(self, cache_dir=None, min_bytes: int | None = None):
        super().__init__(
            cache_dir or config.VIDEO_CACHE_DIR, ".mp4",
            config.MIN_VIDEO_CACHE_BYTES if min_bytes is None else min_bytes, "video",
        )


@dataclass
class MegaSplit:
    """Two disjoint windows of one clip sized to two narrations plus head/tail padding."""

    start1: float
    length1: float
    start2: float
    length2: float


def plan_mega_split(video_duration: float, d1: float, d2: float, head: float, tail: float) -> MegaSplit:
    len1 = head + d1 + tail
    len2 = head + d2 + tail
    # Second window follows the first when the clip is long enough, otherwise it restarts at 0
    start2 = len1 if video_duration >= len1 + len2 else 0.0
    return MegaSplit(0.0, len1, start2, len2)


@dataclass
class PipelineContext:
    job_id: str
    work_dir: Path
    voice: str
    provider: str
    clip_search: object  # ClipSearch
    transcoder: object  # Transcoder
    audio_cache: AudioCache = field(default_factory=AudioCache)
    mux_cache: MuxCache = field(default_factory=MuxCache)
    lead_in: float = config.SCENE_LEAD_IN
    trail_out: float = config.SCENE_TRAIL_OUT
    cancel_event: threading.Event = field(default_factory=threading.Event)


class ScenePipeline:
    def __init__(self, ctx: PipelineContext):
        self.ctx = ctx
        self._mega_splits: dict[str, tuple[Path, Path]] = {}
        self._mega_lock = threading.Lock()

    def _log(self, idx: int, msg: str) -> None:
        print(f"[SCENE][{self.ctx.job_id}][{idx + 1}] {msg}")

    def _check_cancelled(self, idx: int) -> None:
        if self.ctx.cancel_event.is_set():
            raise SceneError(idx, "job cancelled")

    def _narration(self, idx: int, text: str) -> tuple[Path, float]:
        audio = self.ctx.audio_cache.narration(text, self.ctx.voice, self.ctx.provider)
        duration = self.ctx.transcoder.duration(audio)
        if duration <= MIN_AUDIO_SECONDS:
            raise ArtifactError(f"narration is empty or corrupted: {audio}")
        self._log(idx, f"Narration {duration:.2f}s: {audio.name}")
        return audio, duration

    def _trim(self, clip_path: Path, clip_duration: float, start: float, length: float, label: str) -> Path:
        out = self.ctx.work_dir / unique_name(label)
        loop = clip_duration - start < length
        self.ctx.transcoder.trim(clip_path, out, start, length, tail=self.ctx.trail_out, loop=loop)
        return assert_artifact(out, label)

    def _mega_segments(self, clip, d1: float, d2: float) -> tuple[Path, Path]:
        """Cut the shared clip once per job; later calls reuse the two segments."""
        with self._mega_lock:
            cached = self._mega_splits.get(clip.ref)
            if cached:
                return cached
            clip_duration = self.ctx.transcoder.duration(clip.path)
            plan = plan_mega_split(clip_duration, d1, d2, self.ctx.lead_in, self.ctx.trail_out)
            print(f"[SCENE][{self.ctx.job_id}] Mega split of {clip.path.name} ({clip_duration:.2f}s): {plan}")
            seg1 = self._trim(clip.path, clip_duration, plan.start1, plan.length1, "mega-part1")
            seg2 = self._trim(clip.path, clip_duration, plan.start2, plan.length2, "mega-part2")
            self._mega_splits[clip.ref] = (seg1, seg2)
            return seg1, seg2

    def _mux_into(self, video: Path, audio: Path):
        def build(tmp):
            self.ctx.transcoder.mux(video, audio, tmp, audio_delay=self.ctx.lead_in)
        return build

    def process_scene(self, scene: Scene, idx: int) -> list[Path]:
        """Scene file(s) in narration order: one for a normal scene, two for the mega-scene."""
        ctx = self.ctx
        self._check_cancelled(idx)
        clip = ctx.clip_search.find_clip(scene.visual_subject, ctx.work_dir, idx)
        if clip is None:
            raise SceneError(idx, f"no clip found for '{scene.visual_subject}'")
        assert_artifact(clip.path, "clip")
        self._log(idx, f"Clip from {clip.source}: {clip.path.name}")

        self._check_cancelled(idx)
        narrations = [self._narration(idx, text) for text in scene.texts]

        self._check_cancelled(idx)
        outputs = []
        if scene.is_mega_scene and len(narrations) == 2:
            (a1, d1), (a2, d2) = narrations
            for seg_idx, (audio, text) in enumerate([(a1, scene.texts[0]), (a2, scene.texts[1])]):
                def build(tmp, seg_idx=seg_idx, audio=audio):
                    segments = self._mega_segments(clip, d1, d2)
                    self._mux_into(segments[seg_idx], audio)(tmp)

                path, _ = ctx.mux_cache.get_or_create(
                    build, text=text, voice=ctx.voice, provider=ctx.provider, clip=clip.ref, segment=seg_idx,
                )
                outputs.append(path)
        else:
            for text, (audio_path, duration) in zip(scene.texts, narrations):
                total = ctx.lead_in + duration + ctx.trail_out

                def build(tmp, audio_path=audio_path, total=total):
                    clip_duration = ctx.transcoder.duration(clip.path)
                    trimmed = self._trim(clip.path, clip_duration, 0.0, total, f"scene{idx + 1}-trimmed")
                    self._mux_into(trimmed, audio_path)(tmp)

                path, _ = ctx.mux_cache.get_or_create(
                    build, text=text, voice=ctx.voice, provider=ctx.provider, clip=clip.ref,
                )
                outputs.append(path)

        for n, path in enumerate(outputs):
            assert_artifact(path, f"scene {idx + 1} part {n + 1}")
        self._log(idx, f"Done: {', '.join(p.name for p in outputs)}")
        return outputs

    def _run_one(self, scene: Scene, idx: int) -> list[Path]:
        try:
            return self.process_scene(scene, idx)
        except SceneError:
            raise
        except Exception as e:
            raise SceneError(idx, str(e)) from e

    def run_scenes(self, scenes: list[Scene]) -> list[Path]:
        """
        Process every scene concurrently (one worker per scene) and return scene files in
        script order. The first failure cancels the rest and is raised as SceneError.
        """
        if not scenes:
            return []
        results: list[list[Path] | None] = [None] * len(scenes)
        with ThreadPoolExecutor(max_workers=len(scenes)) as executor:
            futures = {executor.submit(self._run_one, scene, i): i for i, scene in enumerate(scenes)}
            for future in as_completed(futures):
                idx = futures[future]
                try:
                    results[idx] = future.result()
                except SceneError as e:
                    print(f"[SCENE][{self.ctx.job_id}] {e}")
                    self.ctx.cancel_event.set()
                    for f in futures:
                        f.cancel()
                    raise
        return [path for scene_files in results for path in scene_files]
