import math
import re
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from types import MappingProxyType
from typing import Callable

MIN_SOURCE_SECONDS = 5
MAX_SOURCE_SECONDS = 60
MIN_CLIP_COUNT = 3
MAX_CLIP_COUNT = 6
EARLY_STOP_MARGIN_SECONDS = 4

LCG_MODULUS = 233280
LCG_MULTIPLIER = 9301
LCG_INCREMENT = 49297

DEFAULT_SEED_TEXT = "default-seed"
DEFAULT_ENERGY = 0.55
UNMATCHED_ENERGY = 0.58
ENERGY_RANGE = (0.25, 0.95)
CONFIDENCE_RANGE = (0.55, 0.94)

NARRATIVE_ARCS = ("rise", "burst", "wave")
SOUNDTRACK_MOODS = ("uplifting", "driving", "moody")
EFFECTS = ("cinematic", "flash-cut", "story-beat", "slow-pan")
TRANSITIONS = ("cut", "crossfade", "glitch", "zoom")
PACE_TAGS = ("calm", "dynamic", "aggressive")

TOKEN_SPLIT_PATTERN = re.compile(r"[^a-z]+")


@dataclass(frozen=True)
class KeywordTraits:
    energy: float
    mood: str
    narrative: str


KEYWORD_TABLE = MappingProxyType(
    {
        "adrenaline": KeywordTraits(0.92, "driving", "burst"),
        "upbeat": KeywordTraits(0.80, "uplifting", "rise"),
        "cinematic": KeywordTraits(0.65, "moody", "wave"),
        "chill": KeywordTraits(0.35, "moody", "wave"),
        "product": KeywordTraits(0.58, "uplifting", "rise"),
        "travel": KeywordTraits(0.66, "uplifting", "wave"),
        "dance": KeywordTraits(0.88, "driving", "burst"),
        "vlog": KeywordTraits(0.54, "uplifting", "rise"),
        "tutorial": KeywordTraits(0.42, "moody", "rise"),
        "dramatic": KeywordTraits(0.72, "moody", "wave"),
    }
)


@dataclass(frozen=True)
class PlannerInsights:
    energy_score: float
    narrative_arc: str
    soundtrack_mood: str
    keywords: tuple[str, ...] = ()


@dataclass(frozen=True)
class ClipSuggestion:
    id: str
    start: float
    duration: float
    label: str
    effect: str
    transition: str
    pace_tag: str
    confidence: float

    @property
    def end(self) -> float:
        return self.start + self.duration


@dataclass(frozen=True)
class PlanResult:
    clips: tuple[ClipSuggestion, ...]
    insights: PlannerInsights


DEFAULT_INSIGHTS = PlannerInsights(
    energy_score=DEFAULT_ENERGY,
    narrative_arc="rise",
    soundtrack_mood="uplifting",
)


def clamp(value: float, minimum: float, maximum: float) -> float:
    # NaN falls through max() as the lower bound.
    return min(maximum, max(minimum, value))


def round_half_up(value: float, places: int = 2) -> float:
    """Round on the exact binary value of `value`, ties away from zero.

    Same result as JavaScript's Number.prototype.toFixed. Python's round()
    would pick the even neighbour.
    """
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(value).quantize(quantum, rounding=ROUND_HALF_UP))


def _running_total(values) -> float:
    # Plain left-to-right addition; sum() uses compensated summation on 3.12+.
    total = 0.0
    for value in values:
        total += value
    return total


def _utf16_units(text: str) -> list[int]:
    data = text.encode("utf-16-le")
    return [int.from_bytes(data[i : i + 2], "little") for i in range(0, len(data), 2)]


def create_seed(text: str) -> int:
    """Hash trimmed, lower-cased text into a positive 32-bit seed."""
    value = 0
    for unit in _utf16_units(text.strip().lower()):
        value = (value * 31 + unit) & 0xFFFFFFFF
        if value >= 0x80000000:
            value -= 0x100000000
    return abs(value) + 1


def seeded_random(seed: int) -> Callable[[], float]:
    state = seed

    def draw() -> float:
        nonlocal state
        state = (state * LCG_MULTIPLIER + LCG_INCREMENT) % LCG_MODULUS
        return state / LCG_MODULUS

    return draw


def tokenize(prompt: str) -> list[str]:
    return [token for token in TOKEN_SPLIT_PATTERN.split(prompt.lower()) if token]


def _most_common(values: list[str], fallback: str) -> str:
    if not values:
        return fallback
    tally: dict[str, int] = {}
    for value in values:
        tally[value] = tally.get(value, 0) + 1
    # max() keeps the first entry on ties, i.e. the earliest vote.
    return max(tally.items(), key=lambda item: item[1])[0]


def analyze_prompt(prompt: str) -> PlannerInsights:
    words = tokenize(prompt)
    if not words:
        return DEFAULT_INSIGHTS

    matched = [(word, KEYWORD_TABLE[word]) for word in words if word in KEYWORD_TABLE]
    if matched:
        energy = _running_total(traits.energy for _, traits in matched) / len(matched)
    else:
        energy = UNMATCHED_ENERGY

    return PlannerInsights(
        energy_score=clamp(energy, *ENERGY_RANGE),
        narrative_arc=_most_common([traits.narrative for _, traits in matched], "rise"),
        soundtrack_mood=_most_common([traits.mood for _, traits in matched], "uplifting"),
        keywords=tuple(word for word, _ in matched),
    )


def _pick(table: tuple[str, ...], draw: float, fallback: str) -> str:
    index = math.floor(draw * len(table))
    if 0 <= index < len(table):
        return table[index]
    return fallback


def pace_for_energy(energy_score: float) -> str:
    index = math.floor(clamp(energy_score * len(PACE_TAGS), 0, len(PACE_TAGS) - 1))
    return PACE_TAGS[index]


def planned_clip_count(energy_score: float) -> int:
    # Half-up rounding, not banker's.
    return int(clamp(math.floor(energy_score * 4.5 + 0.5), MIN_CLIP_COUNT, MAX_CLIP_COUNT))


def generate_timeline_plan(prompt: str, source_duration: float) -> PlanResult:
    """Turn a creative prompt into a contiguous list of timed clip suggestions.

    The output depends only on the prompt text and the clamped duration, so
    the same arguments always produce the same plan. Clips are laid out
    back to back from zero and their total never exceeds the clamped
    source duration (5-60 seconds).
    """
    safe_duration = clamp(source_duration, MIN_SOURCE_SECONDS, MAX_SOURCE_SECONDS)
    insights = analyze_prompt(prompt)
    random = seeded_random(create_seed(prompt if prompt.strip() else DEFAULT_SEED_TEXT))

    clip_count = planned_clip_count(insights.energy_score)
    baseline = safe_duration / clip_count
    pace_tag = pace_for_energy(insights.energy_score)

    drafts: list[ClipSuggestion] = []
    cursor = 0.0
    for index in range(clip_count):
        variance = (random() - 0.5) * 0.25
        raw_duration = clamp(baseline * (1 + variance), 5, safe_duration / 2)
        effect = _pick(EFFECTS, random(), "cinematic")
        transition = _pick(TRANSITIONS, random(), "cut")
        confidence = clamp(0.55 + random() * 0.35, *CONFIDENCE_RANGE)

        drafts.append(
            ClipSuggestion(
                id=f"clip-{index}",
                start=round_half_up(cursor),
                duration=round_half_up(min(raw_duration, safe_duration - cursor)),
                label=f"Beat {index + 1}",
                effect=effect,
                transition=transition,
                pace_tag=pace_tag,
                confidence=round_half_up(confidence),
            )
        )

        # Advance by the unclamped duration so early stopping tracks the raw budget.
        cursor += raw_duration
        if cursor >= safe_duration - EARLY_STOP_MARGIN_SECONDS:
            break

    total = _running_total(clip.duration for clip in drafts)
    scale = safe_duration / total if total > safe_duration else 1

    clips = []
    offset = 0.0
    for clip in drafts:
        clips.append(
            ClipSuggestion(
                id=clip.id,
                start=round_half_up(offset),
                duration=round_half_up(clip.duration * scale),
                label=clip.label,
                effect=clip.effect,
                transition=clip.transition,
                pace_tag=clip.pace_tag,
                confidence=clip.confidence,
            )
        )
        offset += clip.duration

    return PlanResult(clips=tuple(clips), insights=insights)
