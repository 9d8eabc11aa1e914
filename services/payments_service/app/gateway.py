"""Simulated external payment gateway."""
import asyncio
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

import structlog

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class GatewayResult:
    success: bool
    transaction_id: Optional[str] = None


class SimulatedGateway:
    """
    Stands in for Stripe/PayPal/etc: waits ``latency`` seconds, then approves
    (or declines, when built with ``approve=False``). Real gateway errors
    surface as exceptions, which the processor treats as failures.
    """

    name = "MockGateway"

    def __init__(self, latency: float = 2.0, approve: bool = True):
        self.latency = latency
        self.approve = approve

    async def charge(self, order_id: int, amount: Decimal) -> GatewayResult:
        logger.info("gateway_charge_started", order_id=order_id, amount=str(amount))
        await asyncio.sleep(self.latency)
        if not self.approve:
            return GatewayResult(success=False)
        return GatewayResult(success=True, transaction_id=f"txn_{uuid.uuid4().hex}")
