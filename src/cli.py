import argparse
import math
import os
import sys

from src.config import DEFAULT_PROMPT, load_config
from src.parsing import dump_plan, parse_plan_manifest
from src.planner import MAX_SOURCE_SECONDS, PlanResult, generate_timeline_plan
from src.timeline import TrimWindow, clamp_trim, default_trim, trim_for_clip, trim_from_plan
from src.utils import format_seconds, get_video_duration, make_safe_filename, parse_time_str, probe_video
from src.video import export_trim, render_plan

PLAN_FILENAME = "plan.json"
RENDER_MODES = ("none", "trim", "plan")


def _exit_with_error(message: str, code: int = 1) -> None:
    print(message)
    raise SystemExit(code)


def _parse_timestamp(value: object, label: str) -> float:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{label} must be a non-empty timestamp string")
    try:
        return parse_time_str(value)
    except (AttributeError, TypeError, ValueError):
        raise ValueError(f"{label} '{value}' is not parseable")


def _resolve_source(video_path: str | None, duration: float | None) -> tuple[float, bool]:
    """Return the source duration and whether the source carries audio."""
    if duration is not None:
        if not math.isfinite(duration) or duration <= 0:
            _exit_with_error(f"Duration must be a positive number of seconds (got {duration}).")
        return duration, True

    if not video_path:
        _exit_with_error("Provide a video file or --duration to plan against.")

    metadata = probe_video(video_path)
    if metadata is not None:
        print(
            f"Source: {format_seconds(metadata.duration)} "
            f"- {metadata.width}x{metadata.height}px"
        )
        if not metadata.has_audio:
            print("Source has no audio stream.")
        return metadata.duration, metadata.has_audio

    probed = get_video_duration(video_path)
    if probed <= 0:
        _exit_with_error(f"Could not determine duration of {video_path}")
    print(f"Source: {format_seconds(probed)}")
    return probed, True


def _load_plan_file(path: str) -> PlanResult:
    try:
        with open(path, "r", encoding="utf-8") as file_handle:
            text = file_handle.read()
    except OSError as exc:
        _exit_with_error(f"Could not read plan file '{path}': {exc}")
    return parse_plan_manifest(text)


def _save_plan(path: str, plan: PlanResult, prompt: str, source_duration: float) -> None:
    try:
        with open(path, "w", encoding="utf-8") as file_handle:
            file_handle.write(dump_plan(plan, prompt, source_duration))
    except OSError as exc:
        print(f"Warning: Failed to write plan '{path}': {exc}")
        return

    print(f"Saved plan: {path}")


def _resolve_trim(
    plan: PlanResult,
    source_duration: float,
    trim_args: list[str] | None,
    clip_number: int | None,
) -> TrimWindow:
    if trim_args:
        start_sec = _parse_timestamp(trim_args[0], "Trim start")
        end_sec = _parse_timestamp(trim_args[1], "Trim end")
        if start_sec >= end_sec:
            raise ValueError(
                f"start must be before end (got {trim_args[0]} >= {trim_args[1]})"
            )
        if start_sec >= source_duration:
            raise ValueError(
                f"start {trim_args[0]} is past the end of the source ({source_duration:.2f}s)"
            )
        return clamp_trim(start_sec, end_sec, source_duration)

    if clip_number is not None:
        if not 1 <= clip_number <= len(plan.clips):
            raise ValueError(
                f"--clip must be between 1 and {len(plan.clips)} (got {clip_number})"
            )
        return trim_for_clip(plan.clips[clip_number - 1], source_duration)

    return trim_from_plan(plan, source_duration) or default_trim(source_duration)


def _print_plan(plan: PlanResult) -> None:
    insights = plan.insights
    keywords = ", ".join(insights.keywords) or "auto-inferred"
    print("Insights:")
    print(f"  Energy: {insights.energy_score * 100:.0f}%")
    print(f"  Narrative arc: {insights.narrative_arc}")
    print(f"  Soundtrack mood: {insights.soundtrack_mood}")
    print(f"  Keywords: {keywords}")

    print(f"  Planned {len(plan.clips)} beats:")
    for i, clip in enumerate(plan.clips):
        print(
            f"    {i+1}. {clip.label} [{format_seconds(clip.start)} -> {format_seconds(clip.end)}] "
            f"{clip.duration:.1f}s {clip.effect} / {clip.transition} / {clip.pace_tag} "
            f"({clip.confidence * 100:.0f}%)"
        )


def _print_status(status: str) -> None:
    print(f"  Status: {status}")


def main():
    parser = argparse.ArgumentParser(
        description="PulseCut - prompt-driven cut planning and 60s exports"
    )

    parser.add_argument("video", nargs="?", default=None, help="Path to video file (optional with --duration)")
    parser.add_argument("-p", "--prompt", default=None, help="Creative direction for the plan")
    parser.add_argument("--duration", type=float, default=None, help="Source duration in seconds (skips probing)")
    parser.add_argument("--plan-file", default=None, help="Load an edited plan manifest instead of planning")
    parser.add_argument("--trim", nargs=2, metavar=("START", "END"), help="Manual trim window")
    parser.add_argument("--clip", type=int, default=None, help="Trim to suggested beat N (1-based)")
    parser.add_argument("--render", choices=RENDER_MODES, default="none", help="What to encode after planning")
    parser.add_argument("-d", "--output-dir", default=None, help="Output directory")
    parser.add_argument("--config", default=None, help="Path to config TOML file")
    parser.add_argument("--json", action="store_true", help="Print the plan manifest as JSON")

    args = parser.parse_args()

    # Load config
    cfg = load_config(args.config)

    # Resolve output dir and prompt: CLI flag > config > default
    output_dir = args.output_dir or cfg.output_dir
    prompt = args.prompt if args.prompt is not None else (cfg.prompt or DEFAULT_PROMPT)

    # Validate inputs
    if args.video and not os.path.isfile(args.video):
        print(f"Video not found: {args.video}")
        sys.exit(1)

    if args.render != "none" and not args.video:
        print("Rendering requires a video file.")
        sys.exit(1)

    if args.trim and args.clip is not None:
        parser.error("--trim and --clip cannot be combined")

    source_duration, has_audio = _resolve_source(args.video, args.duration)

    # Step 1: Plan (or load an edited manifest)
    if args.plan_file:
        print(f"Loading plan: {args.plan_file}")
        plan = _load_plan_file(args.plan_file)
    else:
        plan = generate_timeline_plan(prompt, min(source_duration, MAX_SOURCE_SECONDS))

    os.makedirs(output_dir, exist_ok=True)
    _save_plan(os.path.join(output_dir, PLAN_FILENAME), plan, prompt, source_duration)

    if args.json:
        print(dump_plan(plan, prompt, source_duration))
    else:
        _print_plan(plan)

    # Step 2: Trim window
    try:
        trim = _resolve_trim(plan, source_duration, args.trim, args.clip)
    except ValueError as exc:
        _exit_with_error(f"Invalid trim: {exc}")

    print(
        f"Trim window: {format_seconds(trim.start)} -> {format_seconds(trim.end)} "
        f"({trim.duration:.1f}s)"
    )

    if args.render == "none":
        return

    # Step 3: Encode
    base_name = make_safe_filename(prompt) or "pulsecut"
    if args.render == "trim":
        out_path = os.path.join(output_dir, f"{base_name}_trim.mp4")
        print(f"\nExporting trim window to {out_path}")
        success = export_trim(
            args.video,
            trim,
            out_path,
            on_status=_print_status,
            max_width=cfg.max_width,
            preset=cfg.preset,
        )
    else:
        offset = trim.start if args.trim else 0.0
        out_path = os.path.join(output_dir, f"{base_name}_plan.mp4")
        if plan.clips and offset + plan.clips[-1].end > source_duration:
            print("  Warning: plan runs past the end of the source; last beats will be short.")
        print(f"\nRendering plan to {out_path}")
        success = render_plan(
            args.video,
            plan.clips,
            out_path,
            offset=offset,
            on_status=_print_status,
            width=cfg.width,
            height=cfg.height,
            preset=cfg.preset,
            has_audio=has_audio,
        )

    if not success:
        _exit_with_error("Rendering failed. Try a shorter window or check the FFmpeg output above.")

    mb = os.path.getsize(out_path) / (1024 * 1024)
    print(f"\n+ {out_path} ({mb:.1f} MB)")
