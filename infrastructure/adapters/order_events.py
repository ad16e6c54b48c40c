"""
Order payment notification publisher.

Downstream side effects (fulfillment, customer email) are outside this
service; notifications are emitted as structured log records so an
external log pipeline can pick them up.
"""
from __future__ import annotations

from dataclasses import asdict

from core.logging_config import get_logger
from domain.order.events import OrderPaymentEvent


logger = get_logger(__name__)


class LoggingOrderEventPublisher:
    async def publish(self, event: OrderPaymentEvent) -> None:
        payload = {k: (str(v) if v is not None and not isinstance(v, (int, bool, str)) else v) for k, v in asdict(event).items()}
        logger.info("order_payment_notification", notification=type(event).__name__, **payload)
