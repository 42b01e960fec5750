"""
Transcoding capability: probe, trim, pad, mux, concatenate, mix and still-image clips.

Transcoder is the interface the pipeline depends on; FFmpegTranscoder implements it with
ffmpeg/ffprobe subprocess calls. Every method writes a new output file and never touches
its inputs. Failures raise RuntimeError carrying ffmpeg's stderr.
"""

import json
import shutil
import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path

import imageio_ffmpeg

import config

WIDTH, HEIGHT = config.OUTPUT_RESOLUTION_VERTICAL
SCALE_PAD_FILTER = (
    f"scale={WIDTH}:{HEIGHT}:force_original_aspect_ratio=decrease,"
    f"pad={WIDTH}:{HEIGHT}:(ow-iw)/2:(oh-ih)/2,setsar=1"
)
# Kept short so errors stay readable in the job status
STDERR_TAIL = 1500


@dataclass
class MediaInfo:
    width: int = 0
    height: int = 0
    codec: str = ""
    pixel_format: str = ""
    has_audio: bool = False
    duration: float = 0.0

    def matches(self, other: "MediaInfo") -> bool:
        """Same frame size, codec and pixel format (audio presence is checked separately)."""
        return (
            self.width == other.width
            and self.height == other.height
            and self.codec == other.codec
            and self.pixel_format == other.pixel_format
        )


def portrait_trim_filter(start: float, end: float, total: float, tail: float) -> str:
    """
    Blurred-fill portrait graph: a cropped, blurred copy fills 1080x1920 behind the clip
    scaled to fit, the last frame is held for `tail` seconds, and output is cut to `total`.
    """
    s = max(0.0, float(start or 0))
    e = max(s, float(end or s))
    dur = max(0.2, float(total or (e - s)))
    tail = max(0.0, float(tail or 0))
    return ";".join([
        f"[0:v]trim=start={s:.3f}:end={e:.3f},setpts=PTS-STARTPTS[v0]",
        "[v0]split=2[v1][v2]",
        f"[v1]scale={WIDTH}:{HEIGHT}:force_original_aspect_ratio=increase,crop={WIDTH}:{HEIGHT},boxblur=32:2[bg]",
        f"[v2]scale={WIDTH}:{HEIGHT}:force_original_aspect_ratio=decrease:flags=lanczos,"
        f"pad={WIDTH}:{HEIGHT}:(ow-iw)/2:(oh-ih)/2[fg]",
        "[bg][fg]overlay=(W-w)/2:(H-h)/2,"
        f"crop='min(iw,{WIDTH})':'min(ih,{HEIGHT})':(iw-{WIDTH})/2:(ih-{HEIGHT})/2,"
        "format=yuv420p,"
        f"tpad=stop_mode=clone:stop_duration={tail:.3f},"
        f"trim=0:{dur:.3f},setpts=N/FRAME_RATE/TB[vout]",
    ])


def ken_burns_filter(duration: float, direction: str = "ltr") -> str:
    """Oversized scale+pad then a horizontal crop window sliding across over `duration`."""
    big_w, big_h = int(WIDTH * 1.4), int(HEIGHT * 1.4)
    if direction == "rtl":
        x_expr = f"(iw-{WIDTH})-(iw-{WIDTH})*t/{duration:.3f}"
    else:
        x_expr = f"(iw-{WIDTH})*t/{duration:.3f}"
    return (
        f"[0:v]scale={big_w}:{big_h}:force_original_aspect_ratio=decrease,"
        f"pad={big_w}:{big_h}:(ow-iw)/2:(oh-ih)/2,setsar=1,"
        f"crop={WIDTH}:{HEIGHT}:x='{x_expr}':y='(ih-{HEIGHT})/2'"
    )


def concat_list_line(path) -> str:
    """One concat-demuxer line; single quotes are escaped the way ffmpeg expects."""
    escaped = str(Path(path).resolve()).replace("'", "'\\''")
    return f"file '{escaped}'"


class Transcoder(ABC):
    """Media operations the pipeline needs. All paths are local files."""

    @abstractmethod
    def probe(self, path) -> MediaInfo:
        pass

    @abstractmethod
    def trim(self, src, out, start: float, duration: float, tail: float = 0.0, loop: bool = False) -> Path:
        """Portrait (blurred-fill) segment of `src` starting at `start`, exactly `duration` long, silent."""
        pass

    @abstractmethod
    def scale_and_pad_with_blur(self, src, out) -> Path:
        pass

    @abstractmethod
    def normalize(self, src, out) -> Path:
        """Re-encode to the reference format: 1080x1920, yuv420p, h264 + stereo aac."""
        pass

    @abstractmethod
    def add_silent_audio(self, src, out) -> Path:
        pass

    @abstractmethod
    def mux(self, video, audio, out, audio_delay: float = 0.0) -> Path:
        pass

    @abstractmethod
    def concatenate(self, files, out) -> Path:
        pass

    @abstractmethod
    def mix_music(self, video, music, out, volume: float) -> Path:
        pass

    @abstractmethod
    def ken_burns(self, image, out, duration: float, direction: str = "ltr") -> Path:
        pass

    @abstractmethod
    def image_to_video(self, image, out, duration: float) -> Path:
        """Static (no motion) clip from a still."""
        pass

    def duration(self, path) -> float:
        return self.probe(path).duration


class FFmpegTranscoder(Transcoder):
    def __init__(self, ffmpeg_path: str | None = None, ffprobe_path: str | None = None):
        self.ffmpeg = ffmpeg_path or config.FFMPEG_PATH or _find_ffmpeg()
        self.ffprobe = ffprobe_path or config.FFPROBE_PATH or "ffprobe"

    def _run(self, cmd: list[str], label: str, timeout: float | None = None) -> subprocess.CompletedProcess:
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
        except subprocess.TimeoutExpired:
            raise RuntimeError(f"ffmpeg {label} timed out after {timeout:.0f}s")
        except FileNotFoundError:
            raise RuntimeError(f"{cmd[0]} not found. Install ffmpeg or set FFMPEG_PATH / FFPROBE_PATH.")
        if result.returncode != 0:
            stderr = (result.stderr or "").strip()[-STDERR_TAIL:]
            print(f"[FFMPEG] {label} failed: {stderr}")
            raise RuntimeError(f"ffmpeg {label} failed: {stderr}")
        return result

    def _encode(self, args: list[str], out, label: str, timeout: float | None = None) -> Path:
        out = Path(out)
        out.parent.mkdir(parents=True, exist_ok=True)
        self._run([self.ffmpeg, "-y", "-hide_banner", "-loglevel", "error", *args, str(out)], label, timeout)
        if not out.exists():
            raise RuntimeError(f"ffmpeg {label} produced no output: {out}")
        return out

    def probe(self, path) -> MediaInfo:
        result = self._run(
            [self.ffprobe, "-v", "error", "-show_streams", "-show_format", "-of", "json", str(path)],
            "probe",
        )
        data = json.loads(result.stdout or "{}")
        streams = data.get("streams") or []
        video = next((s for s in streams if s.get("codec_type") == "video"), {})
        has_audio = any(s.get("codec_type") == "audio" for s in streams)
        raw_duration = (data.get("format") or {}).get("duration") or video.get("duration") or 0
        return MediaInfo(
            width=int(video.get("width") or 0),
            height=int(video.get("height") or 0),
            codec=video.get("codec_name") or "",
            pixel_format=video.get("pix_fmt") or "",
            has_audio=has_audio,
            duration=float(raw_duration),
        )

    def trim(self, src, out, start: float, duration: float, tail: float = 0.0, loop: bool = False) -> Path:
        graph = portrait_trim_filter(start, start + duration, duration, tail)
        inputs = ["-stream_loop", "-1"] if loop else []
        return self._encode(
            [*inputs, "-i", str(src), "-filter_complex", graph, "-map", "[vout]",
             "-r", str(config.FPS), "-fps_mode", "cfr", "-an",
             "-c:v", "libx264", "-preset", "veryfast", "-profile:v", "high",
             "-pix_fmt", "yuv420p", "-movflags", "+faststart"],
            out, "trim",
        )

    def scale_and_pad_with_blur(self, src, out) -> Path:
        total = self.duration(src)
        return self.trim(src, out, 0.0, total, tail=0.0)

    def normalize(self, src, out) -> Path:
        """Re-encode to the h264/aac target; a source without audio gets a silent track."""
        try:
            has_audio = self.probe(src).has_audio
        except RuntimeError:
            has_audio = True
        audio_args = [] if has_audio else [
            "-f", "lavfi", "-i", "anullsrc=channel_layout=stereo:sample_rate=44100",
            "-map", "0:v:0", "-map", "1:a:0", "-shortest",
        ]
        return self._encode(
            ["-i", str(src), *audio_args, "-vf", SCALE_PAD_FILTER, "-r", str(config.FPS),
             "-pix_fmt", "yuv420p", "-c:v", "libx264", "-preset", "ultrafast",
             "-c:a", "aac", "-ar", "44100", "-ac", "2", "-b:a", "128k", "-movflags", "+faststart"],
            out, "normalize",
        )

    def add_silent_audio(self, src, out) -> Path:
        return self._encode(
            ["-i", str(src), "-f", "lavfi", "-i", "anullsrc=channel_layout=stereo:sample_rate=48000",
             "-map", "0:v:0", "-map", "1:a:0", "-shortest",
             "-c:v", "copy", "-c:a", "aac", "-movflags", "+faststart"],
            out, "add-silent-audio",
        )

    def mux(self, video, audio, out, audio_delay: float = 0.0) -> Path:
        video_dur = self.duration(video)
        audio_filter = "aresample=async=1"
        if audio_delay > 0:
            ms = int(round(audio_delay * 1000))
            audio_filter = f"adelay={ms}|{ms},{audio_filter}"
        return self._encode(
            ["-i", str(video), "-i", str(audio),
             "-map", "0:v:0", "-map", "1:a:0",
             "-c:v", "libx264", "-c:a", "aac", "-b:v", "2200k", "-b:a", "160k",
             "-t", f"{video_dur:.3f}", "-filter:a", audio_filter,
             "-r", str(config.FPS), "-fps_mode", "cfr", "-pix_fmt", "yuv420p",
             "-movflags", "+faststart", "-preset", "veryfast"],
            out, "mux",
        )

    def concatenate(self, files, out) -> Path:
        out = Path(out)
        list_path = out.with_suffix(".txt")
        list_path.write_text("\n".join(concat_list_line(f) for f in files) + "\n", encoding="utf-8")
        try:
            return self._encode(
                ["-f", "concat", "-safe", "0", "-i", str(list_path),
                 "-vf", SCALE_PAD_FILTER, "-r", str(config.FPS),
                 "-c:v", "libx264", "-preset", "veryfast", "-pix_fmt", "yuv420p",
                 "-c:a", "aac", "-ar", "44100", "-ac", "2", "-b:a", "128k", "-movflags", "+faststart"],
                out, "concat",
            )
        finally:
            list_path.unlink(missing_ok=True)

    def mix_music(self, video, music, out, volume: float) -> Path:
        graph = (
            f"[0:a]volume=1.0[a0];[1:a]volume={volume:.3f}[a1];"
            "[a0][a1]amix=inputs=2:duration=first:dropout_transition=2[aout]"
        )
        return self._encode(
            ["-i", str(video), "-stream_loop", "-1", "-i", str(music),
             "-filter_complex", graph, "-map", "0:v", "-map", "[aout]",
             "-c:v", "copy", "-c:a", "aac", "-shortest", "-movflags", "+faststart"],
            out, "mix-music",
        )

    def ken_burns(self, image, out, duration: float, direction: str = "ltr") -> Path:
        return self._encode(
            ["-loop", "1", "-i", str(image), "-t", f"{duration:.3f}",
             "-filter_complex", ken_burns_filter(duration, direction),
             "-r", str(config.FPS), "-pix_fmt", "yuv420p", "-c:v", "libx264", "-preset", "ultrafast"],
            out, "ken-burns", timeout=config.KENBURNS_TIMEOUT,
        )

    def image_to_video(self, image, out, duration: float) -> Path:
        return self._encode(
            ["-loop", "1", "-i", str(image), "-t", f"{duration:.3f}",
             "-vf", SCALE_PAD_FILTER, "-r", str(config.FPS),
             "-pix_fmt", "yuv420p", "-c:v", "libx264", "-preset", "ultrafast"],
            out, "image-to-video", timeout=config.KENBURNS_TIMEOUT,
        )


def _find_ffmpeg() -> str:
    """System ffmpeg when on PATH, otherwise the imageio-ffmpeg bundled binary."""
    system = shutil.which("ffmpeg")
    if system:
        return system
    return imageio_ffmpeg.get_ffmpeg_exe()
