# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Core package for Adeline Brain.

This package contains the core business logic:
- config: Infrastructure settings and the YAML tutor configuration
- educational: SM-2, ZPD and knowledge tracing algorithms
- intelligence: LiteLLM completion, transcription and embedding clients
- memory: Store contracts, the mastery engine and the semantic cache
- orchestration: The LangGraph learning pipeline and asynchronous jobs
"""
