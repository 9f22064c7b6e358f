"""
Imperfection Model - Seeded typing slips for humanized chunks

WHAT: Adds typos, casual abbreviations, lowercase starts, skipped or trailing punctuation
WHERE: persona_core/runtime/pipeline/imperfection.py - humanizer sub-model
WHO: Humanizer, once per chunk, before timing and revision are computed
TIME: O(len(text)) per chunk

Every draw comes from a generator built from ``seed``, so the same
``(text, intensity, seed, profile)`` always yields the same string.
Intensity scales the profile rates: 0 leaves the text untouched, 0.5
applies the profile as written, 1 doubles every rate (capped at 1).

Boundary Notes:
- Never returns an empty string for non-empty input
- Question marks are preserved so question detection downstream still works
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, List, Tuple

import numpy as np


@dataclass(frozen=True, slots=True)
class ImperfectionProfile:
    typo_rate: float
    punctuation_skip_rate: float
    lowercase_rate: float
    abbreviation_rate: float
    trail_off_rate: float


IMPERFECTION_PROFILES: Dict[str, ImperfectionProfile] = {
    "minimal": ImperfectionProfile(
        typo_rate=0.02, punctuation_skip_rate=0.1, lowercase_rate=0.15, abbreviation_rate=0.02, trail_off_rate=0.02
    ),
    "casual": ImperfectionProfile(
        typo_rate=0.05, punctuation_skip_rate=0.3, lowercase_rate=0.4, abbreviation_rate=0.05, trail_off_rate=0.08
    ),
    "messy": ImperfectionProfile(
        typo_rate=0.1, punctuation_skip_rate=0.5, lowercase_rate=0.6, abbreviation_rate=0.15, trail_off_rate=0.12
    ),
    "tired": ImperfectionProfile(
        typo_rate=0.15, punctuation_skip_rate=0.6, lowercase_rate=0.7, abbreviation_rate=0.1, trail_off_rate=0.2
    ),
}
DEFAULT_PROFILE = "casual"

COMMON_TYPOS: Dict[str, Tuple[str, ...]] = {
    "the": ("teh", "hte"),
    "and": ("adn", "nad"),
    "you": ("yuo", "ypu"),
    "that": ("taht", "thta"),
    "have": ("ahve", "hvae"),
    "with": ("wiht", "wtih"),
    "this": ("tihs", "htis"),
    "what": ("waht", "whta"),
    "from": ("form", "fron"),
    "your": ("yuor", "yoru"),
    "about": ("abotu", "abuot"),
    "just": ("jsut", "juts"),
    "like": ("liek", "likr"),
    "know": ("knwo", "konw"),
    "think": ("thikn", "thiink"),
    "because": ("becuase", "becasue"),
    "really": ("relly", "realy"),
    "going": ("goign", "giong"),
    "something": ("somethign", "someting"),
}

ADJACENT_KEYS: Dict[str, str] = {
    "a": "sqz", "b": "vng", "c": "xvd", "d": "sfe", "e": "wrd", "f": "dgr", "g": "fht",
    "h": "gjy", "i": "uok", "j": "hku", "k": "jli", "l": "kop", "m": "nk", "n": "bmh",
    "o": "ipl", "p": "ol", "q": "wa", "r": "etf", "s": "adw", "t": "ryg", "u": "yij",
    "v": "cbf", "w": "qes", "x": "zcs", "y": "tuh", "z": "ax",
}

# Only abbreviations nearly everyone accepts in casual chat.
ABBREVIATIONS: Tuple[Tuple[re.Pattern, str], ...] = (
    (re.compile(r"\bgoing to\b", re.IGNORECASE), "gonna"),
    (re.compile(r"\bwant to\b", re.IGNORECASE), "wanna"),
    (re.compile(r"\bkind of\b", re.IGNORECASE), "kinda"),
    (re.compile(r"\bgot to\b", re.IGNORECASE), "gotta"),
)


def _clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


def _pick(rng: np.random.Generator, options) -> str:
    return options[int(rng.integers(len(options)))]


def add_typo(text: str, rng: np.random.Generator) -> str:
    """Introduce one typo: a known misspelling if available, else a keyboard slip."""
    words = text.split(" ")
    for index, word in enumerate(words):
        typos = COMMON_TYPOS.get(word.lower())
        if typos:
            words[index] = _pick(rng, typos)
            return " ".join(words)

    candidates: List[int] = [i for i, word in enumerate(words) if len(word) >= 3 and word.isalpha()]
    if not candidates:
        return text
    index = candidates[int(rng.integers(len(candidates)))]
    word = words[index]
    pos = int(rng.integers(len(word) - 1))
    kind = int(rng.integers(4))
    if kind == 0:
        word = word[: pos + 1] + word[pos] + word[pos + 1 :]
    elif kind == 1:
        neighbours = ADJACENT_KEYS.get(word[pos].lower())
        if neighbours:
            word = word[:pos] + _pick(rng, neighbours) + word[pos + 1 :]
    elif kind == 2:
        word = word[:pos] + word[pos + 1 :]
    else:
        word = word[:pos] + word[pos + 1] + word[pos] + word[pos + 2 :]
    words[index] = word
    return " ".join(words)


def apply_imperfections(
    text: str,
    intensity: float,
    seed: int,
    profile: ImperfectionProfile | str = DEFAULT_PROFILE,
) -> str:
    """
    Return ``text`` with seeded, intensity-scaled imperfections.

    Args:
        text: One chunk of model output
        intensity: Clamped to [0, 1]
        seed: Generator seed (the humanizer uses payload timestamp + chunk index)
        profile: Profile or profile name from IMPERFECTION_PROFILES

    Returns:
        The altered chunk, or ``text`` unchanged at intensity 0
    """
    rates = IMPERFECTION_PROFILES[profile] if isinstance(profile, str) else profile
    level = _clamp(float(intensity), 0.0, 1.0)
    result = text.strip()
    if level == 0.0 or not result:
        return text

    scale = 2.0 * level
    rng = np.random.default_rng(abs(int(seed)))
    # Fixed draw order keeps outputs stable when only one rate changes.
    abbreviate, typo, lowercase, trail_off, skip = rng.random(5)

    if abbreviate < min(1.0, rates.abbreviation_rate * scale):
        for pattern, replacement in ABBREVIATIONS:
            if pattern.search(result):
                result = pattern.sub(replacement, result, count=1)
                break
    if typo < min(1.0, rates.typo_rate * scale):
        result = add_typo(result, rng)
    if lowercase < min(1.0, rates.lowercase_rate * scale) and result[:1].isupper():
        result = result[0].lower() + result[1:]
    if result.endswith(".") and not result.endswith("..."):
        if trail_off < min(1.0, rates.trail_off_rate * scale):
            result = result[:-1] + "..."
        elif skip < min(1.0, rates.punctuation_skip_rate * scale) and len(result) > 1:
            result = result[:-1]
    elif result.endswith("!") and len(result) > 1 and skip < min(1.0, rates.punctuation_skip_rate * scale):
        result = result[:-1]
    return result


__all__ = [
    "DEFAULT_PROFILE",
    "IMPERFECTION_PROFILES",
    "ImperfectionProfile",
    "add_typo",
    "apply_imperfections",
]
