from urllib.parse import quote

import httpx
import structlog
from pydantic import ValidationError

from shared.errors import UpstreamUnavailable
from .schemas import CartSnapshot

logger = structlog.get_logger(__name__)


class CartClient:
    """Read-only client for the cart service (``GET /cart/{userId}``)."""

    def __init__(self, base_url: str, timeout: float = 5.0, transport: httpx.AsyncBaseTransport | None = None):
        self._client = httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport)

    async def get_cart(self, user_id: str) -> CartSnapshot:
        try:
            resp = await self._client.get(f"/cart/{quote(user_id, safe='')}")
            resp.raise_for_status()
            return CartSnapshot.model_validate(resp.json())
        except httpx.HTTPError as exc:
            logger.error("cart_fetch_failed", user_id=user_id, error=str(exc))
            raise UpstreamUnavailable() from exc
        except (ValueError, ValidationError) as exc:
            # тело ответа не JSON или не похоже на корзину
            logger.error("cart_snapshot_invalid", user_id=user_id, error=str(exc))
            raise UpstreamUnavailable() from exc

    async def aclose(self) -> None:
        await self._client.aclose()
