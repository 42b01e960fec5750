"""
Configuration settings for the video pipeline.
Values come from the environment (.env is loaded here); a few can be overridden via command line arguments.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


DEBUG = _env_flag("DEBUG")

# Final video format (vertical 9:16)
OUTPUT_RESOLUTION_VERTICAL = (1080, 1920)
FPS = 30

# Breathing room around narration in every scene
SCENE_LEAD_IN = float(os.getenv("SCENE_LEAD_IN", "0.5"))
SCENE_TRAIL_OUT = float(os.getenv("SCENE_TRAIL_OUT", "1.0"))

# Minimum byte sizes for a file to count as valid (tuned empirically, not format guarantees)
MIN_AUDIO_BYTES = int(os.getenv("MIN_AUDIO_BYTES", "1024"))
MIN_AUDIO_CACHE_BYTES = int(os.getenv("MIN_AUDIO_CACHE_BYTES", "10000"))
MIN_VIDEO_CACHE_BYTES = int(os.getenv("MIN_VIDEO_CACHE_BYTES", "100000"))
MIN_ARTIFACT_BYTES = int(os.getenv("MIN_ARTIFACT_BYTES", "10240"))
MIN_DOWNLOAD_BYTES = int(os.getenv("MIN_DOWNLOAD_BYTES", "2048"))

# Shared caches and per-job working directories
AUDIO_CACHE_DIR = Path(os.getenv("AUDIO_CACHE_DIR", "audio_cache"))
VIDEO_CACHE_DIR = Path(os.getenv("VIDEO_CACHE_DIR", "video_cache"))
JOBS_DIR = Path(os.getenv("JOBS_DIR", "jobs"))
MUSIC_DIR = Path(os.getenv("MUSIC_DIR", "music_library"))
FINAL_DIR = Path(os.getenv("FINAL_DIR", "final_videos"))
OUTRO_PATH = Path(os.getenv("OUTRO_PATH", "assets/outro.mp4"))

# Timeouts (seconds)
JOB_TIMEOUT_SECONDS = float(os.getenv("JOB_TIMEOUT_SECONDS", "900"))
# How long a timed-out job gets to notice cancellation before its directory is removed
JOB_CANCEL_GRACE = float(os.getenv("JOB_CANCEL_GRACE", "10"))
MULTI_SUBJECT_TIMEOUT = float(os.getenv("MULTI_SUBJECT_TIMEOUT", "15"))
MULTI_SUBJECT_MAX_ATTEMPTS = int(os.getenv("MULTI_SUBJECT_MAX_ATTEMPTS", "2"))
HTTP_TIMEOUT = float(os.getenv("HTTP_TIMEOUT", "15"))
DOWNLOAD_TIMEOUT = float(os.getenv("DOWNLOAD_TIMEOUT", "60"))
KENBURNS_TIMEOUT = float(os.getenv("KENBURNS_TIMEOUT", "30"))
PROGRESS_DELETE_DELAY = float(os.getenv("PROGRESS_DELETE_DELAY", "30"))

# Background music level under narration (linear gain)
MUSIC_VOLUME = float(os.getenv("MUSIC_VOLUME", "0.16"))

# Stock media
PEXELS_API_KEY = os.getenv("PEXELS_API_KEY", "")
PIXABAY_API_KEY = os.getenv("PIXABAY_API_KEY", "")
STOCK_RESULTS_PER_QUERY = int(os.getenv("STOCK_RESULTS_PER_QUERY", "15"))
MAX_QUERY_TERMS = int(os.getenv("MAX_QUERY_TERMS", "4"))

# Cloudflare R2 (S3-compatible) object storage
R2_ENDPOINT = os.getenv("R2_ENDPOINT", "")
R2_ACCESS_KEY_ID = os.getenv("R2_ACCESS_KEY_ID") or os.getenv("R2_ACCESS_KEY", "")
R2_SECRET_ACCESS_KEY = os.getenv("R2_SECRET_ACCESS_KEY") or os.getenv("R2_SECRET_KEY", "")
R2_LIBRARY_BUCKET = os.getenv("R2_LIBRARY_BUCKET", "media-library")
R2_VIDEOS_BUCKET = os.getenv("R2_VIDEOS_BUCKET", "final-videos")
R2_PUBLIC_BASE_URL = os.getenv("R2_PUBLIC_BASE_URL", "")
LIBRARY_ARCHIVE_ENABLED = _env_flag("LIBRARY_ARCHIVE_ENABLED")
LIBRARY_ARCHIVE_CATEGORY = os.getenv("LIBRARY_ARCHIVE_CATEGORY", "misc")

# TTS
AWS_REGION = os.getenv("AWS_REGION", "us-east-1")
DEFAULT_TTS_PROVIDER = os.getenv("TTS_PROVIDER", "polly").lower()

# Transcoding binaries (ffmpeg falls back to the imageio-ffmpeg bundled binary)
FFMPEG_PATH = os.getenv("FFMPEG_PATH", "")
FFPROBE_PATH = os.getenv("FFPROBE_PATH", "ffprobe")


class Config:
    """Per-run settings. Module constants are the defaults; build_video overrides from CLI flags."""

    music_enabled = True
    outro_enabled = True
    outro_path = OUTRO_PATH
    lead_in = SCENE_LEAD_IN
    trail_out = SCENE_TRAIL_OUT
    job_timeout = JOB_TIMEOUT_SECONDS
    keep_workdir = False  # True keeps jobs/<id>/ around for debugging

    @property
    def output_resolution(self):
        return OUTPUT_RESOLUTION_VERTICAL

    @property
    def scene_padding(self):
        """Seconds of picture added around each narration (lead-in + trail-out)."""
        return self.lead_in + self.trail_out
