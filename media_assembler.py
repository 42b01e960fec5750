"""
Final assembly: bulletproof scene files against a reference format, concatenate, guarantee an
audio stream, mix background music, append the outro.

Every step writes a new uniquely-named file in the job directory; inputs are never modified.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

import config
from music_moods import MusicPicker, default_picker
from scene_pipeline import assert_artifact, unique_name
from transcoder import MediaInfo, Transcoder

TARGET_CODEC = "h264"
TARGET_PIXEL_FORMAT = "yuv420p"


@dataclass
class AssemblyOptions:
    music_enabled: bool = True
    music_volume: float = config.MUSIC_VOLUME
    outro_enabled: bool = True
    outro_path: Path | None = field(default_factory=lambda: config.OUTRO_PATH)


def needs_normalizing(info: MediaInfo | None, reference: MediaInfo) -> bool:
    """True when a file would break concatenation: unknown, off-format, off-size, or silent."""
    if info is None or not info.has_audio:
        return True
    target_w, target_h = config.OUTPUT_RESOLUTION_VERTICAL
    if (info.width, info.height) != (target_w, target_h):
        return True
    return not info.matches(reference)


class MediaAssembler:
    def __init__(self, transcoder: Transcoder, work_dir, job_id: str = "",
                 picker: MusicPicker | None = None,
                 progress: Callable[[int, str], None] | None = None):
        self.transcoder = transcoder
        self.work_dir = Path(work_dir)
        self.job_id = job_id
        self.picker = picker or default_picker
        self.progress = progress or (lambda percent, status: None)

    def _log(self, msg: str) -> None:
        print(f"[ASSEMBLE][{self.job_id}] {msg}")

    def _probe(self, path) -> MediaInfo | None:
        try:
            return self.transcoder.probe(path)
        except RuntimeError as e:
            self._log(f"Probe failed for {Path(path).name}: {e}")
            return None

    def reference_info(self, first_file) -> MediaInfo:
        info = self._probe(first_file)
        if info is None:
            raise RuntimeError(f"Could not probe reference scene file {first_file}")
        self._log(f"Reference format: {info.width}x{info.height} {info.codec}/{info.pixel_format} audio={info.has_audio}")
        return info

    def bulletproof(self, files, reference: MediaInfo) -> list[Path]:
        """Same order as `files`; off-format files are replaced by normalized copies."""
        fixed = []
        for i, path in enumerate(files):
            info = self._probe(path)
            if needs_normalizing(info, reference):
                out = self.work_dir / unique_name(f"fixed{i + 1}")
                self._log(f"Normalizing file {i + 1} ({Path(path).name}): {info}")
                self.transcoder.normalize(path, out)
                assert_artifact(out, f"normalized file {i + 1}")
                # concat needs an audio stream in every input
                fixed.append(self.ensure_audio(out))
            else:
                fixed.append(Path(path))
        return fixed

    def concatenate(self, files) -> Path:
        out = self.work_dir / unique_name("concat")
        self.transcoder.concatenate(files, out)
        return assert_artifact(out, "concat")

    def ensure_audio(self, path) -> Path:
        info = self._probe(path)
        if info is not None and info.has_audio:
            return Path(path)
        self._log(f"No audio stream in {Path(path).name}, adding silence")
        out = self.work_dir / unique_name("audiofix")
        self.transcoder.add_silent_audio(path, out)
        return assert_artifact(out, "silent audio")

    def add_music(self, path, script: str, volume: float) -> Path:
        track = self.picker.pick_for_script(script)
        if track is None:
            self.progress(80, "No music found, skipping...")
            return Path(path)
        out = self.work_dir / unique_name("with-music")
        self.transcoder.mix_music(path, track, out, volume)
        self.progress(82, "Background music ready!")
        return assert_artifact(out, "music mix")

    def append_outro(self, path, outro_path, reference: MediaInfo) -> Path:
        outro_path = Path(outro_path)
        if not outro_path.exists():
            self._log(f"Outro file missing at {outro_path}, skipping")
            return Path(path)
        self.progress(90, "Adding your outro...")
        outro = self.bulletproof([outro_path], reference)[0]
        out = self.work_dir / unique_name("final-with-outro")
        self.transcoder.concatenate([path, outro], out)
        self.progress(92, "Outro added! Wrapping up...")
        return assert_artifact(out, "outro")

    def assemble(self, scene_files, script: str = "", options: AssemblyOptions | None = None) -> Path:
        options = options or AssemblyOptions()
        if not scene_files:
            raise ValueError("No scene files to assemble")
        self.work_dir.mkdir(parents=True, exist_ok=True)

        self.progress(44, "Checking video quality...")
        reference = self.reference_info(scene_files[0])
        files = self.bulletproof(scene_files, reference)
        self.progress(48, "Perfecting your video quality...")

        self.progress(60, "Combining everything into one amazing video...")
        current = self.concatenate(files)

        self.progress(70, "Finalizing your audio...")
        current = self.ensure_audio(current)

        if options.music_enabled:
            self.progress(80, "Adding background music...")
            current = self.add_music(current, script, options.music_volume)
        else:
            self.progress(80, "Music skipped (user setting).")

        if options.outro_enabled and options.outro_path:
            current = self.append_outro(current, options.outro_path, reference)
        else:
            self.progress(90, "Outro skipped (user setting).")

        final = assert_artifact(current, "final output")
        self._log(f"Final video: {final} ({final.stat().st_size} bytes)")
        return final
