import os
import subprocess
from typing import Callable, List, Sequence

from src.planner import ClipSuggestion
from src.timeline import MAX_TRIM_SECONDS, TrimWindow

VAAPI_DEVICE = "/dev/dri/renderD128"
DEFAULT_PRESET = "veryfast"
DEFAULT_MAX_WIDTH = 1080
DEFAULT_CANVAS = (1280, 720)
DEFAULT_FPS = 30
TRANSITION_SECONDS = 0.4
GLITCH_SECONDS = 0.25

# idle is the state before an export starts; the encoders report the rest.
EXPORT_STATUSES = ("idle", "preparing", "rendering", "ready", "error")

StatusCallback = Callable[[str], None]

EFFECT_FILTERS = {
    "cinematic": "eq=contrast=1.08:saturation=1.15,vignette=PI/5",
    "flash-cut": "eq=brightness=0.06:contrast=1.2",
    "story-beat": "eq=saturation=1.05",
    # slow-pan is built per clip, its pan speed depends on the clip duration.
}


def ffmpeg_binary() -> str:
    return os.getenv("PULSECUT_FFMPEG") or "ffmpeg"


def _report(on_status: StatusCallback | None, status: str) -> None:
    if status not in EXPORT_STATUSES:
        raise ValueError(f"Unknown export status: {status}")
    if on_status is not None:
        on_status(status)


def _format_time(value: float) -> str:
    return f"{value:.6f}".rstrip("0").rstrip(".") or "0"


def _effect_filter(effect: str, duration: float) -> str:
    if effect == "slow-pan":
        # Push in 10% and drift the crop window left to right over the clip.
        return (
            "scale=trunc(iw*1.1/2)*2:-2,"
            f"crop=iw/1.1:ih/1.1:x='(in_w-out_w)*min(1,t/{_format_time(duration)})':"
            "y=(in_h-out_h)/2"
        )
    return EFFECT_FILTERS.get(effect, EFFECT_FILTERS["cinematic"])


def _transition_filter(transition: str, width: int, height: int, fps: int) -> str | None:
    if transition == "crossfade":
        return f"fade=t=in:st=0:d={TRANSITION_SECONDS}"
    if transition == "glitch":
        return f"rgbashift=rh=-8:bh=8:enable='lt(t,{GLITCH_SECONDS})'"
    if transition == "zoom":
        return (
            f"zoompan=z='max(1,1.25-0.6*in_time)':"
            f"x='iw/2-(iw/zoom/2)':y='ih/2-(ih/zoom/2)':"
            f"d=1:s={width}x{height}:fps={fps}"
        )
    return None


def _canvas_filter(width: int, height: int, fps: int) -> str:
    return (
        f"scale={width}:{height}:force_original_aspect_ratio=decrease,"
        f"pad={width}:{height}:(ow-iw)/2:(oh-ih)/2,setsar=1,fps={fps}"
    )


def _build_trim_filter(max_width: int = DEFAULT_MAX_WIDTH) -> str:
    return f"scale='min({max_width},iw)':-2,format=yuv420p"


def _build_plan_filter_complex(
    clips: Sequence[ClipSuggestion],
    offset: float = 0.0,
    width: int = DEFAULT_CANVAS[0],
    height: int = DEFAULT_CANVAS[1],
    fps: int = DEFAULT_FPS,
    has_audio: bool = True,
) -> tuple[str, str, str | None]:
    if not clips:
        raise ValueError("Plan filter requested without clips")

    count = len(clips)
    v_sources = [f"[v_src{i}]" for i in range(count)]
    a_sources = [f"[a_src{i}]" for i in range(count)]

    parts = [f"[0:v]split={count}{''.join(v_sources)}"]
    if has_audio:
        parts.append(f"[0:a]asplit={count}{''.join(a_sources)}")

    concat_inputs = []
    for i, clip in enumerate(clips):
        abs_start = offset + clip.start
        abs_end = abs_start + clip.duration

        video_chain = [
            f"trim=start={_format_time(abs_start)}:end={_format_time(abs_end)}",
            "setpts=PTS-STARTPTS",
            _effect_filter(clip.effect, clip.duration),
            _canvas_filter(width, height, fps),
        ]
        transition = _transition_filter(clip.transition, width, height, fps)
        if transition:
            video_chain.append(transition)

        audio_chain = [
            f"atrim=start={_format_time(abs_start)}:end={_format_time(abs_end)}",
            "asetpts=PTS-STARTPTS",
        ]
        if clip.transition == "crossfade":
            audio_chain.append(f"afade=t=in:st=0:d={TRANSITION_SECONDS}")

        parts.append(f"{v_sources[i]}{','.join(video_chain)}[v{i}]")
        if has_audio:
            parts.append(f"{a_sources[i]}{','.join(audio_chain)}[a{i}]")
            concat_inputs.append(f"[v{i}][a{i}]")
        else:
            concat_inputs.append(f"[v{i}]")

    if has_audio:
        parts.append(f"{''.join(concat_inputs)}concat=n={count}:v=1:a=1[outv_raw][outa]")
    else:
        parts.append(f"{''.join(concat_inputs)}concat=n={count}:v=1:a=0[outv_raw]")
    parts.append("[outv_raw]format=yuv420p[outv]")

    return ";".join(parts), "[outv]", "[outa]" if has_audio else None


def _build_vaapi_filter_complex(filter_complex: str, video_map: str) -> tuple[str, str]:
    return f"{filter_complex};{video_map}format=nv12,hwupload[outv_hw]", "[outv_hw]"


def _build_cpu_cmd(
    input_args: List[str],
    filter_args: List[str],
    output_path: str,
    preset: str = DEFAULT_PRESET,
) -> List[str]:
    return [
        ffmpeg_binary(),
        "-y",
        *input_args,
        *filter_args,
        "-c:v",
        "libx264",
        "-crf",
        "23",
        "-preset",
        preset,
        "-c:a",
        "aac",
        "-b:a",
        "128k",
        "-movflags",
        "+faststart",
        output_path,
    ]


def _build_vaapi_cmd(
    input_args: List[str],
    filter_args: List[str],
    output_path: str,
) -> List[str]:
    return [
        ffmpeg_binary(),
        "-y",
        "-init_hw_device",
        f"vaapi=va:{VAAPI_DEVICE}",
        "-filter_hw_device",
        "va",
        *input_args,
        *filter_args,
        "-c:v",
        "h264_vaapi",
        "-qp",
        "23",
        "-c:a",
        "aac",
        "-b:a",
        "128k",
        "-movflags",
        "+faststart",
        output_path,
    ]


def _vaapi_available() -> bool:
    disabled = os.getenv("PULSECUT_DISABLE_VAAPI", "").strip().lower()
    if disabled in {"1", "true", "yes"}:
        return False
    return os.path.exists(VAAPI_DEVICE) and os.access(VAAPI_DEVICE, os.R_OK | os.W_OK)


def _run_encode(cpu_cmd: List[str], vaapi_cmd: List[str], output_path: str) -> bool:
    result = None
    if _vaapi_available():
        print("  Running FFmpeg (VAAPI)...")
        result = subprocess.run(vaapi_cmd, capture_output=True, text=True)
        if result.returncode != 0:
            print("  VAAPI encoding failed, falling back to CPU...")
    else:
        print("  VAAPI device unavailable. Using CPU encoding.")

    if result is None or result.returncode != 0:
        print("  Running FFmpeg (CPU)...")
        result = subprocess.run(cpu_cmd, capture_output=True, text=True)

    if result.returncode != 0:
        print(f"  FFmpeg exited with code {result.returncode}")
        print(f"  FFmpeg error:\n{(result.stderr or '')[-500:]}")
        return False

    if not os.path.isfile(output_path) or os.path.getsize(output_path) == 0:
        print("  FFmpeg produced an empty output file.")
        return False

    return True


def export_trim(
    video_path: str,
    trim: TrimWindow,
    output_path: str,
    on_status: StatusCallback | None = None,
    max_width: int = DEFAULT_MAX_WIDTH,
    preset: str = DEFAULT_PRESET,
) -> bool:
    """Encode a single trim window of the source, capped at 60 seconds."""
    _report(on_status, "preparing")

    start = max(0.0, trim.start)
    duration = min(trim.duration, MAX_TRIM_SECONDS)
    if duration <= 0:
        print("  Invalid trim window: end must be greater than start.")
        _report(on_status, "error")
        return False

    input_args = ["-ss", f"{start:.2f}", "-t", f"{duration:.2f}", "-i", video_path]
    visual_filter = _build_trim_filter(max_width)
    cpu_cmd = _build_cpu_cmd(input_args, ["-vf", visual_filter], output_path, preset)
    vaapi_cmd = _build_vaapi_cmd(
        input_args, ["-vf", f"{visual_filter},format=nv12,hwupload"], output_path
    )

    _report(on_status, "rendering")
    ok = _run_encode(cpu_cmd, vaapi_cmd, output_path)
    _report(on_status, "ready" if ok else "error")
    return ok


def render_plan(
    video_path: str,
    clips: Sequence[ClipSuggestion],
    output_path: str,
    offset: float = 0.0,
    on_status: StatusCallback | None = None,
    width: int = DEFAULT_CANVAS[0],
    height: int = DEFAULT_CANVAS[1],
    preset: str = DEFAULT_PRESET,
    has_audio: bool = True,
) -> bool:
    """Render every suggested beat with its effect and incoming transition.

    Clip offsets are relative to `offset` seconds into the source. Segments
    are normalized to a `width`x`height` canvas and joined in order. Sources
    without an audio stream are rendered as a silent video.
    """
    _report(on_status, "preparing")

    if not clips:
        print("  Nothing to render: the plan has no clips.")
        _report(on_status, "error")
        return False

    filter_complex, map_v, map_a = _build_plan_filter_complex(
        clips, offset=max(0.0, offset), width=width, height=height, has_audio=has_audio
    )
    audio_maps = ["-map", map_a] if map_a else []
    input_args = ["-i", video_path]
    cpu_cmd = _build_cpu_cmd(
        input_args,
        ["-filter_complex", filter_complex, "-map", map_v, *audio_maps],
        output_path,
        preset,
    )
    vaapi_filter, vaapi_map_v = _build_vaapi_filter_complex(filter_complex, map_v)
    vaapi_cmd = _build_vaapi_cmd(
        input_args,
        ["-filter_complex", vaapi_filter, "-map", vaapi_map_v, *audio_maps],
        output_path,
    )

    print(f"  Rendering {len(clips)} beats...")
    _report(on_status, "rendering")
    ok = _run_encode(cpu_cmd, vaapi_cmd, output_path)
    _report(on_status, "ready" if ok else "error")
    return ok
