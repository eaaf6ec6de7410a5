import math

import pytest

from src import planner
from src.planner import (
    EFFECTS,
    PACE_TAGS,
    TRANSITIONS,
    ClipSuggestion,
    PlannerInsights,
    analyze_prompt,
    create_seed,
    generate_timeline_plan,
    seeded_random,
)

PROMPTS = [
    "",
    "   ",
    "adrenaline dance",
    "chill tutorial",
    "Test",
    "xyz qwerty",
    "cinematic travel vlog with dramatic upbeat moments",
    "kinetic product teaser with fast punchy cuts, neon glow accents, and bass-driven soundtrack",
    "Adrenaline, adrenaline & DANCE!!",
]
DURATIONS = [-10, 0, 3, 5, 12, 25, 40, 59.99, 60, 90, 3600, math.inf, math.nan]


def _clip(index, start, duration, effect, transition, pace, confidence):
    return ClipSuggestion(
        id=f"clip-{index}",
        start=start,
        duration=duration,
        label=f"Beat {index + 1}",
        effect=effect,
        transition=transition,
        pace_tag=pace,
        confidence=confidence,
    )


def test_analyze_empty_prompt_returns_default_insights():
    expected = PlannerInsights(0.55, "rise", "uplifting", ())

    assert analyze_prompt("") == expected
    assert analyze_prompt("   ") == expected
    assert analyze_prompt("123 !!! ...") == expected


def test_analyze_unmatched_vocabulary_falls_back():
    insights = analyze_prompt("xyz qwerty")

    assert insights.energy_score == pytest.approx(0.58)
    assert insights.narrative_arc == "rise"
    assert insights.soundtrack_mood == "uplifting"
    assert insights.keywords == ()


def test_analyze_averages_matched_keywords_and_keeps_duplicates():
    insights = analyze_prompt("Adrenaline, adrenaline & DANCE!!")

    assert insights.keywords == ("adrenaline", "adrenaline", "dance")
    assert insights.energy_score == pytest.approx((0.92 + 0.92 + 0.88) / 3)
    assert insights.narrative_arc == "burst"
    assert insights.soundtrack_mood == "driving"


def test_analyze_splits_on_any_non_letter():
    insights = analyze_prompt("travel_vlog2chill")

    assert insights.keywords == ("travel", "vlog", "chill")


def test_analyze_majority_vote_tie_prefers_first_vote():
    # upbeat -> rise/uplifting, chill -> wave/moody: one vote each.
    insights = analyze_prompt("upbeat chill")
    assert insights.narrative_arc == "rise"
    assert insights.soundtrack_mood == "uplifting"

    reversed_insights = analyze_prompt("chill upbeat")
    assert reversed_insights.narrative_arc == "wave"
    assert reversed_insights.soundtrack_mood == "moody"


def test_analyze_majority_vote_counts():
    insights = analyze_prompt("tutorial chill dramatic")

    assert insights.narrative_arc == "wave"
    assert insights.soundtrack_mood == "moody"


def test_energy_score_is_clamped(monkeypatch):
    table = dict(planner.KEYWORD_TABLE)
    table["calm"] = planner.KeywordTraits(0.05, "moody", "wave")
    table["boom"] = planner.KeywordTraits(1.0, "driving", "burst")
    monkeypatch.setattr(planner, "KEYWORD_TABLE", table)

    assert analyze_prompt("calm").energy_score == 0.25
    assert analyze_prompt("boom").energy_score == 0.95


def test_high_energy_prompts_score_above_low_energy_prompts():
    assert analyze_prompt("adrenaline dance").energy_score >= analyze_prompt("chill tutorial").energy_score


def test_seed_trims_and_lowercases():
    assert create_seed("test") == 3556499
    assert create_seed("Test") == create_seed("  test  ")
    assert create_seed("Test ") == create_seed("test")


def test_seed_wraps_to_signed_32_bits():
    assert create_seed("default-seed") == 696460676
    assert create_seed("the quick brown fox jumps over the lazy dog") == 2082818702


def test_seed_hashes_utf16_code_units():
    # One astral character is two UTF-16 code units.
    assert create_seed("\U0001F600") == 1772900


def test_seed_is_at_least_one():
    assert create_seed("") == 1


def test_seeded_random_follows_lcg_recurrence():
    draw = seeded_random(1)

    assert draw() == 58598 / 233280
    assert draw() == 127215 / 233280
    assert draw() == 79852 / 233280


def test_seeded_random_is_reproducible():
    first = seeded_random(create_seed("travel"))
    second = seeded_random(create_seed("travel"))

    assert [first() for _ in range(50)] == [second() for _ in range(50)]


def test_generate_adrenaline_dance_plan():
    result = generate_timeline_plan("adrenaline dance", 40)

    assert result.insights == PlannerInsights(0.9, "burst", "driving", ("adrenaline", "dance"))
    assert result.clips == (
        _clip(0, 0.0, 9.43, "story-beat", "zoom", "aggressive", 0.56),
        _clip(1, 9.43, 9.15, "flash-cut", "crossfade", "aggressive", 0.62),
        _clip(2, 18.58, 10.59, "cinematic", "cut", "aggressive", 0.74),
        _clip(3, 29.17, 9.0, "flash-cut", "cut", "aggressive", 0.59),
    )


def test_generate_scales_down_rounding_overshoot():
    result = generate_timeline_plan("cinematic travel vlog with dramatic upbeat moments", 90)

    assert result.insights.keywords == ("cinematic", "travel", "vlog", "dramatic", "upbeat")
    assert result.insights.narrative_arc == "wave"
    assert result.insights.soundtrack_mood == "uplifting"
    assert result.clips == (
        _clip(0, 0.0, 22.09, "slow-pan", "zoom", "aggressive", 0.56),
        _clip(1, 22.09, 20.6, "slow-pan", "cut", "aggressive", 0.72),
        _clip(2, 42.69, 17.32, "story-beat", "zoom", "aggressive", 0.6),
    )


def test_generate_empty_and_blank_prompts_share_default_seed():
    empty = generate_timeline_plan("", 25)
    blank = generate_timeline_plan("   ", 25)

    assert empty == blank
    assert empty.clips == (
        _clip(0, 0.0, 8.82, "cinematic", "crossfade", "dynamic", 0.57),
        _clip(1, 8.82, 8.09, "flash-cut", "zoom", "dynamic", 0.63),
        _clip(2, 16.91, 8.1, "slow-pan", "cut", "dynamic", 0.59),
    )


def test_generate_stops_early_on_short_sources():
    # A 5s budget caps each beat at 2.5s, which already crosses the stop margin.
    result = generate_timeline_plan("xyz qwerty", 3)

    assert result.clips == (
        _clip(0, 0.0, 2.5, "cinematic", "crossfade", "dynamic", 0.63),
    )


def test_generate_short_budget_stops_before_planned_count():
    # Both beats are lifted to the 5s floor; after the second one the cursor
    # passes the stop margin, one beat short of the planned three.
    result = generate_timeline_plan("chill tutorial", 12)

    assert [clip.duration for clip in result.clips] == [5.0, 5.0]
    assert [clip.start for clip in result.clips] == [0.0, 5.0]
    assert planner.planned_clip_count(result.insights.energy_score) == 3


def test_generate_clamps_last_beat_to_remaining_budget():
    # The third beat draws ~20.88s but only 60 - 40.76s of source is left.
    prompt = "kinetic product teaser with fast punchy cuts, neon glow accents, and bass-driven soundtrack"
    result = generate_timeline_plan(prompt, 60)

    assert result.insights.keywords == ("product",)
    assert [(clip.start, clip.duration) for clip in result.clips] == [
        (0.0, 21.38),
        (21.38, 19.38),
        (40.76, 19.24),
    ]
    assert [clip.effect for clip in result.clips] == ["flash-cut", "cinematic", "slow-pan"]
    assert [clip.transition for clip in result.clips] == ["glitch", "glitch", "zoom"]


def test_generate_is_deterministic():
    for prompt in PROMPTS:
        for duration in (5, 33.3, 60):
            assert generate_timeline_plan(prompt, duration) == generate_timeline_plan(prompt, duration)


@pytest.mark.parametrize("prompt", PROMPTS)
@pytest.mark.parametrize("duration", DURATIONS)
def test_generate_plan_invariants(prompt, duration):
    result = generate_timeline_plan(prompt, duration)
    safe_duration = min(60, max(5, duration))
    clips = result.clips

    assert 1 <= len(clips) <= 6
    assert len(clips) <= planner.planned_clip_count(result.insights.energy_score)
    # Each two-decimal duration can round up by half a cent.
    assert sum(clip.duration for clip in clips) <= safe_duration + 0.005 * len(clips)

    running = 0.0
    for index, clip in enumerate(clips):
        assert clip.id == f"clip-{index}"
        assert clip.label == f"Beat {index + 1}"
        assert clip.start == pytest.approx(running, abs=0.02)
        assert clip.duration > 0
        assert clip.effect in EFFECTS
        assert clip.transition in TRANSITIONS
        assert clip.pace_tag in PACE_TAGS
        assert 0.55 <= clip.confidence <= 0.94
        assert round(clip.confidence, 2) == clip.confidence
        running += clip.duration

    assert [clip.start for clip in clips] == sorted(clip.start for clip in clips)
    assert len({clip.pace_tag for clip in clips}) == 1


@pytest.mark.parametrize("duration", [40, 45, 59, 60])
def test_full_length_sources_get_at_least_three_clips(duration):
    for prompt in PROMPTS:
        assert 3 <= len(generate_timeline_plan(prompt, duration).clips) <= 6


def test_non_finite_durations_clamp_to_bounds():
    assert generate_timeline_plan("vlog", math.nan) == generate_timeline_plan("vlog", 5)
    assert generate_timeline_plan("vlog", -3) == generate_timeline_plan("vlog", 5)
    assert generate_timeline_plan("vlog", math.inf) == generate_timeline_plan("vlog", 60)
    assert generate_timeline_plan("vlog", 600) == generate_timeline_plan("vlog", 60)


def test_planned_clip_count_rounds_half_up():
    # 0.5 * 4.5 = 2.25 -> 2 -> clamped to 3; 0.9 * 4.5 = 4.05 -> 4.
    assert planner.planned_clip_count(0.5) == 3
    assert planner.planned_clip_count(0.9) == 4
    assert planner.planned_clip_count(0.95) == 4
    assert planner.planned_clip_count(1.0) == 5


def test_pace_follows_energy():
    assert planner.pace_for_energy(0.25) == "calm"
    assert planner.pace_for_energy(0.35) == "dynamic"
    assert planner.pace_for_energy(0.58) == "dynamic"
    assert planner.pace_for_energy(0.9) == "aggressive"


def test_round_half_up_matches_exact_binary_value():
    assert planner.round_half_up(0.125) == 0.13
    assert planner.round_half_up(2.675) == 2.67
    assert planner.round_half_up(1.005) == 1.0
    assert planner.round_half_up(29.990000000000002) == 29.99
