# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Binds Dramatiq message identity into the structlog context.

Every log line emitted while an actor runs carries ``actor`` and
``message_id``, and the context is cleared once the message is done.
"""

import logging
from typing import Any

import dramatiq
from dramatiq import Message, Middleware

from src.utils.logging import bind_context, clear_context

logger = logging.getLogger(__name__)


class LogContextMiddleware(Middleware):
    """Scope structlog context variables to one message."""

    def before_process_message(self, broker: dramatiq.Broker, message: Message) -> None:
        bind_context(actor=message.actor_name, message_id=message.message_id)
        logger.debug("Processing message %s (%s)", message.message_id, message.actor_name)

    def after_process_message(
        self,
        broker: dramatiq.Broker,
        message: Message,
        *,
        result: Any = None,
        exception: BaseException | None = None,
    ) -> None:
        if exception is not None:
            logger.warning(
                "Message %s (%s) raised: %s",
                message.message_id,
                message.actor_name,
                exception,
            )
        clear_context()

    def after_skip_message(self, broker: dramatiq.Broker, message: Message) -> None:
        clear_context()
