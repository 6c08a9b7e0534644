# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Spaced Repetition (SM-2) theory implementation.

SuperMemo-2 converts a recall-quality score into the next review interval
and an updated ease factor. Everything here is pure and deterministic; the
mastery engine persists the results.

Quality scale (0-5):
    0 - Complete blackout, no recall
    1 - Incorrect, but remembered on seeing the answer
    2 - Incorrect, but the answer seemed easy to recall
    3 - Correct with serious difficulty
    4 - Correct after hesitation
    5 - Perfect, instant recall

Quality >= 3 counts as a successful recall.
"""

import math
from dataclasses import dataclass

DEFAULT_EASE_FACTOR = 2.5
MIN_EASE_FACTOR = 1.3
DEFAULT_INTERVAL_DAYS = 1
PASSING_QUALITY = 3

# Mastery adjustment per recall quality
QUALITY_MASTERY_DELTAS: dict[int, float] = {
    5: 0.15,
    4: 0.10,
    3: 0.05,
    2: -0.02,
    1: -0.05,
    0: -0.08,
}


@dataclass(frozen=True)
class SM2Result:
    """Outcome of one SM-2 step.

    Attributes:
        interval: Days until the next review (>= 1).
        ease_factor: Updated ease factor (>= 1.3).
        repetitions: Consecutive successful repetitions.
    """

    interval: int
    ease_factor: float
    repetitions: int


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def clamp_quality(quality: float) -> int:
    """Round a quality score (halves up), then clamp it to the 0-5 scale."""
    return max(0, min(5, _round_half_up(quality)))


def sm2_schedule(
    quality: float,
    previous_interval: int = DEFAULT_INTERVAL_DAYS,
    previous_ease: float = DEFAULT_EASE_FACTOR,
    previous_repetitions: int = 0,
) -> SM2Result:
    """Calculate the next review schedule using SM-2.

    Args:
        quality: Recall quality; rounded and clamped to 0-5.
        previous_interval: Current interval in days.
        previous_ease: Current ease factor.
        previous_repetitions: Current successful repetition count.

    Returns:
        The new interval, ease factor and repetition count.
    """
    q = clamp_quality(quality)

    if q >= PASSING_QUALITY:
        repetitions = previous_repetitions + 1
        if repetitions == 1:
            interval = 1
        elif repetitions == 2:
            interval = 6
        else:
            interval = max(1, _round_half_up(previous_interval * previous_ease))
        # EF' = EF + (0.1 - (5-q) * (0.08 + (5-q) * 0.02))
        miss = 5 - q
        ease_factor = previous_ease + (0.1 - miss * (0.08 + miss * 0.02))
    else:
        repetitions = 0
        interval = 1
        ease_factor = previous_ease

    return SM2Result(
        interval=interval,
        ease_factor=max(MIN_EASE_FACTOR, ease_factor),
        repetitions=repetitions,
    )


def quality_to_mastery_delta(quality: float) -> float:
    """Map a recall quality to a fixed mastery adjustment.

    Example:
        >>> quality_to_mastery_delta(4)
        0.1
        >>> quality_to_mastery_delta(9)
        0.15
    """
    return QUALITY_MASTERY_DELTAS[clamp_quality(quality)]
