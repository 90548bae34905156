from __future__ import annotations

import logging
from dataclasses import asdict, dataclass

from returns.result import Failure, Result, Success

from report_checkout.core.domain.model.errors import PublishError
from report_checkout.core.ports.outbound.events import CheckoutEvent, EventPublisher

logger = logging.getLogger("report_checkout.events")


@dataclass
class LoggingEventPublisher(EventPublisher):
    fail: bool = False

    def publish(self, event: CheckoutEvent) -> Result[None, PublishError]:
        if self.fail:
            return Failure(PublishError("publisher is down"))
        logger.info("[event] %s: %s", type(event).__name__, asdict(event))
        return Success(None)
