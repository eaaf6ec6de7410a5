from dataclasses import dataclass

from src.planner import ClipSuggestion, PlanResult, clamp, round_half_up

MAX_TRIM_SECONDS = 60
MIN_TRIM_SECONDS = 1


@dataclass(frozen=True)
class TrimWindow:
    start: float
    end: float

    @property
    def duration(self) -> float:
        return max(0.0, self.end - self.start)


def default_trim(source_duration: float) -> TrimWindow:
    return TrimWindow(0.0, round_half_up(min(source_duration, MAX_TRIM_SECONDS)))


def clamp_trim(start: float, end: float, source_duration: float) -> TrimWindow:
    """Clamp a requested window to the source: at least 1s long, at most 60s."""
    clamped_start = max(0.0, min(start, source_duration - MIN_TRIM_SECONDS))
    max_end = min(source_duration, clamped_start + MAX_TRIM_SECONDS)
    clamped_end = min(max_end, max(end, clamped_start + MIN_TRIM_SECONDS))
    return TrimWindow(round_half_up(clamped_start), round_half_up(clamped_end))


def trim_for_clip(clip: ClipSuggestion, source_duration: float) -> TrimWindow:
    ceiling = min(source_duration, MAX_TRIM_SECONDS)
    end = clamp(clip.start + clip.duration, clip.start + MIN_TRIM_SECONDS, ceiling)
    return TrimWindow(clip.start, round_half_up(end))


def trim_from_plan(plan: PlanResult, source_duration: float) -> TrimWindow | None:
    if not plan.clips:
        return None
    first = plan.clips[0]
    end = min(first.start + first.duration, first.start + MAX_TRIM_SECONDS, source_duration)
    return TrimWindow(first.start, round_half_up(end))
