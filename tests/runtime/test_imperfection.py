import numpy as np
import pytest

from persona_core.runtime.pipeline.imperfection import (
    IMPERFECTION_PROFILES,
    ImperfectionProfile,
    add_typo,
    apply_imperfections,
)

TEXT = "Maybe we should rest tonight and think about the launch tomorrow."


def test_same_seed_gives_same_text():
    for seed in range(10):
        first = apply_imperfections(TEXT, 0.8, seed, "messy")
        assert apply_imperfections(TEXT, 0.8, seed, "messy") == first
        assert first.strip()


def test_intensity_is_clamped_to_unit_range():
    assert apply_imperfections(TEXT, 0.0, 7) == TEXT
    assert apply_imperfections(TEXT, -2.5, 7) == TEXT
    for seed in range(10):
        assert apply_imperfections(TEXT, 4.0, seed, "tired") == apply_imperfections(TEXT, 1.0, seed, "tired")


def test_full_intensity_tired_profile_always_drops_formality():
    for seed in range(20):
        result = apply_imperfections(TEXT, 1.0, seed, "tired")
        assert not result[0].isupper()
        assert result.endswith("...") or not result.endswith(".")


def test_questions_keep_their_question_mark():
    for seed in range(20):
        result = apply_imperfections("Are you free tomorrow?", 1.0, seed, "tired")
        assert result.endswith("?")


def test_profile_rates_select_the_transform():
    abbreviate_only = ImperfectionProfile(
        typo_rate=0.0, punctuation_skip_rate=0.0, lowercase_rate=0.0, abbreviation_rate=1.0, trail_off_rate=0.0
    )
    untouched = ImperfectionProfile(0.0, 0.0, 0.0, 0.0, 0.0)

    assert apply_imperfections("I am going to rest now", 0.5, 3, abbreviate_only) == "I am gonna rest now"
    assert apply_imperfections(TEXT, 1.0, 3, untouched) == TEXT


def test_common_words_use_known_misspellings():
    result = add_typo("see you soon", np.random.default_rng(0))
    assert result in {"see yuo soon", "see ypu soon"}


def test_short_and_blank_text_never_becomes_empty():
    assert apply_imperfections("   ", 1.0, 1) == "   "
    for seed in range(20):
        assert apply_imperfections("a.", 1.0, seed, "tired")
        assert apply_imperfections("k", 1.0, seed, "tired") == "k"


def test_presets_are_rates():
    for profile in IMPERFECTION_PROFILES.values():
        for rate in (profile.typo_rate, profile.punctuation_skip_rate, profile.lowercase_rate,
                     profile.abbreviation_rate, profile.trail_off_rate):
            assert 0.0 <= rate <= 1.0


def test_unknown_profile_name_raises():
    with pytest.raises(KeyError):
        apply_imperfections(TEXT, 0.5, 1, "sloppy")
