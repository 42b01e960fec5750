"""
Ken Burns fallback: turn a still image into a short horizontally panned 9:16 clip.

Renderers are tried in order until one produces a file:
  1. ffmpeg crop-pan (Transcoder.ken_burns)
  2. in-process pan rendered frame by frame with OpenCV warpAffine through moviepy
  3. ffmpeg static scale+pad (Transcoder.image_to_video)
"""

import math
import os
import random
from pathlib import Path

import cv2
import numpy as np
from moviepy import VideoClip
from PIL import Image

import config

KENBURNS_MIN_DURATION = float(os.getenv("KENBURNS_MIN_DURATION", "5.0"))
KENBURNS_MAX_DURATION = float(os.getenv("KENBURNS_MAX_DURATION", "6.0"))
KENBURNS_FPS = int(os.getenv("KENBURNS_FPS", "24"))  # in-process renderer only
KENBURNS_DIRECTIONS = ["ltr", "rtl"]
# Source images above this edge length are downscaled before panning
MAX_IMAGE_EDGE = 4000
# Oversize factor of the pan canvas relative to the output frame
PAN_OVERSIZE = 1.4


def pick_duration(rng=random) -> float:
    return round(rng.uniform(KENBURNS_MIN_DURATION, KENBURNS_MAX_DURATION), 2)


def pick_direction(rng=random) -> str:
    return rng.choice(KENBURNS_DIRECTIONS)


def prepare_image(src, out_path=None) -> Path:
    """Re-save any decodable image as an RGB JPEG, downscaled when either edge exceeds MAX_IMAGE_EDGE."""
    src = Path(src)
    out_path = Path(out_path) if out_path else src.with_name(f"{src.stem}-prepared.jpg")
    with Image.open(src) as img:
        img = img.convert("RGB")
        if max(img.size) > MAX_IMAGE_EDGE:
            img.thumbnail((MAX_IMAGE_EDGE, MAX_IMAGE_EDGE), Image.LANCZOS)
        img.save(out_path, "JPEG", quality=92)
    return out_path


def render_pan_in_process(image_path, out_path, duration: float, direction: str = "ltr") -> Path:
    """
    Pan across the image with OpenCV warpAffine, one frame at a time via VideoClip(make_frame).
    The image is scaled to cover an oversized canvas; the output window slides horizontally
    with a cosine ease.
    """
    out_w, out_h = config.OUTPUT_RESOLUTION_VERTICAL

    pil_img = Image.open(image_path).convert("RGB")
    in_w, in_h = pil_img.size
    src = np.asarray(pil_img)
    pil_img.close()

    zoom = max(out_w * PAN_OVERSIZE / in_w, out_h / in_h)
    crop_w = out_w / zoom
    crop_h = out_h / zoom
    travel = max(in_w - crop_w, 0.0)
    top = max((in_h - crop_h) / 2, 0.0)

    M = np.zeros((2, 3), dtype=np.float64)
    M[0, 0] = M[1, 1] = 1.0 / zoom
    M[1, 2] = top

    def make_frame(t):
        progress = min(t / duration, 1.0) if duration > 0 else 0.0
        ease = (1 - math.cos(progress * math.pi)) / 2
        if direction == "rtl":
            ease = 1 - ease
        # WARP_INVERSE_MAP: output pixel (x, y) samples source (x/zoom + left, y/zoom + top)
        M[0, 2] = travel * ease
        return cv2.warpAffine(
            src, M, (out_w, out_h),
            flags=cv2.INTER_LINEAR | cv2.WARP_INVERSE_MAP,
            borderMode=cv2.BORDER_REFLECT_101,
        )

    clip = VideoClip(make_frame, duration=duration).with_fps(KENBURNS_FPS)
    try:
        clip.write_videofile(
            str(out_path), fps=config.FPS, codec="libx264", audio=False,
            preset="ultrafast", ffmpeg_params=["-pix_fmt", "yuv420p"], logger=None,
        )
    finally:
        clip.close()
    return Path(out_path)


def make_ken_burns_clip(image_path, out_path, transcoder, duration: float | None = None,
                        direction: str | None = None) -> Path | None:
    """
    Panned clip from a still, or None when every renderer failed.
    Returned files are checked for existence and a non-trivial size.
    """
    duration = duration or pick_duration()
    direction = direction or pick_direction()
    out_path = Path(out_path)
    try:
        image_path = prepare_image(image_path)
    except OSError as e:
        print(f"[KENBURNS] Could not decode image {Path(image_path).name}: {e}")
        return None

    renderers = (
        ("ffmpeg pan", lambda: transcoder.ken_burns(image_path, out_path, duration, direction)),
        ("in-process pan", lambda: render_pan_in_process(image_path, out_path, duration, direction)),
        ("static", lambda: transcoder.image_to_video(image_path, out_path, duration)),
    )
    for name, render in renderers:
        try:
            result = render()
        except Exception as e:
            print(f"[KENBURNS] {name} failed: {e}")
            continue
        if result and Path(result).exists() and Path(result).stat().st_size >= config.MIN_DOWNLOAD_BYTES:
            print(f"[KENBURNS] {name} -> {out_path.name} ({duration:.1f}s, {direction})")
            return Path(result)
        print(f"[KENBURNS] {name} produced no usable file")
    return None
