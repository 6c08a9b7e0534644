"""Adeline Brain Backend.

Learning orchestration pipeline and mastery engine behind the Adeline
tutoring companion: intent routing, agent nodes, spaced repetition and
zone-of-proximal-development concept selection.

Copyright (C) 2025 Global Digital Labs (gdlabs.io)
SPDX-License-Identifier: LGPL-3.0-or-later
"""

__version__ = "1.0.0"
