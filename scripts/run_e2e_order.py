#!/usr/bin/env python3
"""Простой e2e-скрипт: наполняет корзину, создаёт заказ и ждёт статуса Paid."""
import json
import sys
import time
import urllib.request
import uuid

CART_URL = "http://localhost:3000/cart"
ORDERS_URL = "http://localhost:3001/orders"


def call(method, url, payload=None):
    data = json.dumps(payload).encode('utf-8') if payload is not None else None
    req = urllib.request.Request(url, data=data, method=method, headers={"Content-Type": "application/json"})
    with urllib.request.urlopen(req, timeout=15) as resp:
        body = resp.read().decode('utf-8')
        return resp.status, json.loads(body) if body else None


user_id = f"e2e-{uuid.uuid4().hex[:8]}"
try:
    status, cart = call("POST", f"{CART_URL}/{user_id}/items", {"productId": "p1", "quantity": 2, "price": 10.0})
    print('Cart:', status, cart)

    status, created = call("POST", ORDERS_URL, {"userId": user_id, "shippingAddress": "221B Baker St"})
    print('Order:', status, created)
    order_id = created["orderId"]

    for _ in range(30):
        status, order = call("GET", f"{ORDERS_URL}/{order_id}")
        print('Status:', order["status"])
        if order["status"] == "Paid":
            break
        time.sleep(1)
    else:
        print('Order was not paid in time')
        sys.exit(1)
except Exception as e:
    print('Request failed:', e)
    sys.exit(1)
