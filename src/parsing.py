import json
import math
import re
import sys

from src.planner import (
    CONFIDENCE_RANGE,
    EFFECTS,
    ENERGY_RANGE,
    MAX_CLIP_COUNT,
    NARRATIVE_ARCS,
    PACE_TAGS,
    SOUNDTRACK_MOODS,
    TRANSITIONS,
    ClipSuggestion,
    PlannerInsights,
    PlanResult,
)

REQUIRED_CLIP_FIELDS = (
    "id", "start", "duration", "label", "effect", "transition", "paceTag", "confidence",
)
REQUIRED_INSIGHT_FIELDS = ("energyScore", "narrativeArc", "soundtrackMood", "keywords")
# Two-decimal rounding of starts and scaled durations can open tiny gaps.
ORDER_TOLERANCE_SECONDS = 0.01


def insights_to_dict(insights: PlannerInsights) -> dict:
    return {
        "energyScore": insights.energy_score,
        "narrativeArc": insights.narrative_arc,
        "soundtrackMood": insights.soundtrack_mood,
        "keywords": list(insights.keywords),
    }


def clip_to_dict(clip: ClipSuggestion) -> dict:
    return {
        "id": clip.id,
        "start": clip.start,
        "duration": clip.duration,
        "label": clip.label,
        "effect": clip.effect,
        "transition": clip.transition,
        "paceTag": clip.pace_tag,
        "confidence": clip.confidence,
    }


def plan_to_dict(plan: PlanResult, prompt: str | None = None, source_duration: float | None = None) -> dict:
    payload: dict = {}
    if prompt is not None:
        payload["prompt"] = prompt
    if source_duration is not None:
        payload["sourceDuration"] = source_duration
    payload["insights"] = insights_to_dict(plan.insights)
    payload["clips"] = [clip_to_dict(clip) for clip in plan.clips]
    return payload


def dump_plan(plan: PlanResult, prompt: str | None = None, source_duration: float | None = None) -> str:
    return json.dumps(plan_to_dict(plan, prompt, source_duration), ensure_ascii=False, indent=2)


def _parse_json_payload(text: str) -> dict:
    """Parse JSON from a manifest, including markdown-wrapped JSON."""
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as direct_error:
        payload = None
        for block in re.findall(r"```(?:json)?\s*([\s\S]*?)```", text, flags=re.IGNORECASE):
            try:
                payload = json.loads(block)
                break
            except json.JSONDecodeError:
                continue
        if payload is None:
            raise ValueError(f"Invalid JSON: {direct_error.msg}") from direct_error

    if not isinstance(payload, dict):
        raise ValueError("Manifest must be a JSON object with 'insights' and 'clips'.")
    return payload


def _number(value: object, label: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{label} must be a number.")
    number = float(value)
    if not math.isfinite(number):
        raise ValueError(f"{label} must be finite.")
    return number


def _choice(value: object, label: str, allowed: tuple[str, ...]) -> str:
    if value not in allowed:
        expected = ", ".join(allowed)
        raise ValueError(f"{label} '{value}' is not one of: {expected}.")
    return value


def _parse_insights(payload: object) -> PlannerInsights:
    if not isinstance(payload, dict):
        raise ValueError("'insights' must be a JSON object.")

    missing = [field for field in REQUIRED_INSIGHT_FIELDS if field not in payload]
    if missing:
        raise ValueError(f"Insights missing required field(s): {', '.join(missing)}.")

    energy = _number(payload["energyScore"], "Insights energyScore")
    low, high = ENERGY_RANGE
    if not low <= energy <= high:
        raise ValueError(f"Insights energyScore {energy} is outside {low}-{high}.")

    keywords = payload["keywords"]
    if not isinstance(keywords, list) or not all(isinstance(word, str) for word in keywords):
        raise ValueError("Insights keywords must be a list of strings.")

    return PlannerInsights(
        energy_score=energy,
        narrative_arc=_choice(payload["narrativeArc"], "Insights narrativeArc", NARRATIVE_ARCS),
        soundtrack_mood=_choice(payload["soundtrackMood"], "Insights soundtrackMood", SOUNDTRACK_MOODS),
        keywords=tuple(keywords),
    )


def _parse_clip(clip: object, clip_index: int) -> ClipSuggestion:
    if not isinstance(clip, dict):
        raise ValueError(f"Clip {clip_index} must be a JSON object.")

    missing = [field for field in REQUIRED_CLIP_FIELDS if field not in clip]
    if missing:
        raise ValueError(f"Clip {clip_index} missing required field(s): {', '.join(missing)}.")

    for field in ("id", "label"):
        if not isinstance(clip[field], str) or not clip[field].strip():
            raise ValueError(f"Clip {clip_index} field '{field}' must be a non-empty string.")

    start = _number(clip["start"], f"Clip {clip_index} start")
    duration = _number(clip["duration"], f"Clip {clip_index} duration")
    confidence = _number(clip["confidence"], f"Clip {clip_index} confidence")
    if start < 0:
        raise ValueError(f"Clip {clip_index} start cannot be negative.")
    if duration <= 0:
        raise ValueError(f"Clip {clip_index} duration must be positive.")
    low, high = CONFIDENCE_RANGE
    if not low <= confidence <= high:
        raise ValueError(f"Clip {clip_index} confidence {confidence} is outside {low}-{high}.")

    return ClipSuggestion(
        id=clip["id"].strip(),
        start=start,
        duration=duration,
        label=clip["label"].strip(),
        effect=_choice(clip["effect"], f"Clip {clip_index} effect", EFFECTS),
        transition=_choice(clip["transition"], f"Clip {clip_index} transition", TRANSITIONS),
        pace_tag=_choice(clip["paceTag"], f"Clip {clip_index} paceTag", PACE_TAGS),
        confidence=confidence,
    )


def _validate_sequence(clips: list[ClipSuggestion]) -> None:
    seen_ids: set[str] = set()
    for index, clip in enumerate(clips, start=1):
        if clip.id in seen_ids:
            raise ValueError(f"Clip {index} reuses id '{clip.id}'.")
        seen_ids.add(clip.id)

    for index in range(1, len(clips)):
        previous, current = clips[index - 1], clips[index]
        if current.start + ORDER_TOLERANCE_SECONDS < previous.end:
            raise ValueError(
                f"Clip {index + 1} starts at {current.start}s, before clip {index} ends."
            )


def parse_plan_manifest(text: str) -> PlanResult:
    try:
        payload = _parse_json_payload(text)
        if "clips" not in payload or "insights" not in payload:
            raise ValueError("Manifest must include 'insights' and 'clips' keys.")

        raw_clips = payload["clips"]
        if not isinstance(raw_clips, list):
            raise ValueError("'clips' must be a JSON array.")
        if not raw_clips:
            raise ValueError("No clips found in manifest; provide at least one clip.")
        if len(raw_clips) > MAX_CLIP_COUNT:
            raise ValueError(
                f"Manifest has {len(raw_clips)} clips; at most {MAX_CLIP_COUNT} are allowed."
            )

        insights = _parse_insights(payload["insights"])
        clips = [_parse_clip(clip, index + 1) for index, clip in enumerate(raw_clips)]
        _validate_sequence(clips)
        return PlanResult(clips=tuple(clips), insights=insights)
    except ValueError as error:
        print(f"Failed to parse plan manifest: {error}")
        sys.exit(1)
