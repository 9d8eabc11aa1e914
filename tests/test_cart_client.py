from decimal import Decimal

import httpx
import pytest
from pydantic import ValidationError

from shared.errors import UpstreamUnavailable
from services.orders_service.app.cart_client import CartClient
from services.orders_service.app.schemas import CartSnapshot


async def test_user_id_is_escaped_in_path():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url.raw_path)
        return httpx.Response(200, json={"items": [], "totalAmount": 0})

    client = CartClient("http://cart-service", transport=httpx.MockTransport(handler))
    try:
        await client.get_cart("a/b?c")
    finally:
        await client.aclose()

    assert seen == [b"/cart/a%2Fb%3Fc"]


async def test_sub_cent_reply_is_upstream_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"items": [{"productId": "p1", "quantity": 1, "price": 1.999}], "totalAmount": 1.999})

    client = CartClient("http://cart-service", transport=httpx.MockTransport(handler))
    try:
        with pytest.raises(UpstreamUnavailable):
            await client.get_cart("u1")
    finally:
        await client.aclose()


def test_snapshot_keeps_float_amounts_exact():
    cart = CartSnapshot.model_validate({
        "items": [{"productId": "p1", "quantity": 1, "price": 10.1}],
        "totalAmount": 10.1,
    })

    assert cart.total_amount == Decimal("10.1")
    assert cart.items[0].price == Decimal("10.1")


@pytest.mark.parametrize("total", [10.005, "NaN", "Infinity"])
def test_snapshot_rejects_amounts_that_cannot_be_stored(total):
    with pytest.raises(ValidationError):
        CartSnapshot.model_validate({"items": [], "totalAmount": total})
