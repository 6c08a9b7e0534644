# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Bayesian Knowledge Tracing (BKT).

A four-parameter hidden Markov model of whether a learner knows a concept:

    P(L) - probability the concept is currently known
    P(T) - probability of learning at each opportunity
    P(S) - probability of slipping (knows it, performs wrong)
    P(G) - probability of guessing (does not know it, performs right)

The mastery engine tracks P(L) next to the clamped mastery level and
surfaces it in prompt summaries. It never replaces the level itself.
"""

from dataclasses import dataclass, replace
from typing import Any


@dataclass(frozen=True)
class BKTParams:
    """BKT parameters for one learner and concept."""

    p_learned: float = 0.1
    p_transit: float = 0.15
    p_slip: float = 0.05
    p_guess: float = 0.25

    def to_dict(self) -> dict[str, float]:
        return {
            "pL": self.p_learned,
            "pT": self.p_transit,
            "pS": self.p_slip,
            "pG": self.p_guess,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "BKTParams":
        """Build params from a stored mapping, defaulting missing keys."""
        if not data:
            return cls()
        defaults = cls()
        return cls(
            p_learned=float(data.get("pL", defaults.p_learned)),
            p_transit=float(data.get("pT", defaults.p_transit)),
            p_slip=float(data.get("pS", defaults.p_slip)),
            p_guess=float(data.get("pG", defaults.p_guess)),
        )


DEFAULT_BKT = BKTParams()


def bkt_update(params: BKTParams, correct: bool) -> float:
    """Posterior P(L) after one observation, including the learning step.

    Args:
        params: Current parameters.
        correct: Whether the learner performed correctly.

    Returns:
        Updated probability that the concept is known.
    """
    p_l = params.p_learned
    if correct:
        evidence = p_l * (1 - params.p_slip) + (1 - p_l) * params.p_guess
        posterior = p_l * (1 - params.p_slip) / evidence
    else:
        evidence = p_l * params.p_slip + (1 - p_l) * (1 - params.p_guess)
        posterior = p_l * params.p_slip / evidence
    return posterior + (1 - posterior) * params.p_transit


def observe(params: BKTParams, correct: bool) -> BKTParams:
    """Return params with P(L) advanced by one observation."""
    return replace(params, p_learned=bkt_update(params, correct))
