import json
import math
import os
import re
import subprocess
from dataclasses import dataclass


@dataclass
class VideoMetadata:
    duration: float
    width: int
    height: int
    has_audio: bool = True


def ffprobe_binary() -> str:
    return os.getenv("PULSECUT_FFPROBE") or "ffprobe"


def get_video_duration(video_path: str) -> float:
    """Get video duration in seconds using ffprobe."""
    cmd = [
        ffprobe_binary(), "-v", "error",
        "-show_entries", "format=duration",
        "-of", "default=noprint_wrappers=1:nokey=1",
        video_path,
    ]
    result = subprocess.run(cmd, capture_output=True, text=True)
    if result.returncode != 0 or not result.stdout.strip():
        return 0.0
    try:
        return float(result.stdout.strip())
    except ValueError:
        return 0.0


def probe_video(video_path: str) -> VideoMetadata | None:
    """Read duration, frame size of the first video stream and audio presence.

    Returns None when ffprobe fails or reports no usable duration.
    """
    cmd = [
        ffprobe_binary(), "-v", "error",
        "-show_entries", "format=duration:stream=codec_type,width,height",
        "-of", "json",
        video_path,
    ]
    result = subprocess.run(cmd, capture_output=True, text=True)
    if result.returncode != 0 or not result.stdout.strip():
        return None

    try:
        payload = json.loads(result.stdout)
        duration = float(payload.get("format", {}).get("duration", 0.0))
    except (json.JSONDecodeError, TypeError, ValueError):
        return None
    if not math.isfinite(duration) or duration <= 0:
        return None

    streams = [stream for stream in payload.get("streams") or [] if isinstance(stream, dict)]
    video = next((s for s in streams if s.get("codec_type") == "video"), {})
    return VideoMetadata(
        duration=duration,
        width=int(video.get("width") or 0),
        height=int(video.get("height") or 0),
        has_audio=any(s.get("codec_type") == "audio" for s in streams),
    )


def format_seconds(value: float) -> str:
    """Format seconds as MM:SS.mmm; negative values read as zero."""
    # Work in whole milliseconds so 9.43 prints as .430, not .429.
    total_millis = math.floor(max(0.0, value) * 1000 + 0.5)
    minutes = total_millis // 60000
    seconds = (total_millis // 1000) % 60
    millis = total_millis % 1000
    return f"{minutes:02d}:{seconds:02d}.{millis:03d}"


def make_safe_filename(title: str) -> str:
    safe = re.sub(r"[^a-zA-Z0-9_-]", "_", title)
    return safe[:50]


def parse_time_str(time_str: str) -> float:
    """Convert HH:MM:SS or MM:SS or SS to seconds."""
    parts = time_str.strip().split(":")
    seconds = 0.0
    for part in parts:
        seconds = seconds * 60 + float(part)
    return seconds
