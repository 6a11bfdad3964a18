"""
测试 orders 服务层：下单、查询与通知处理。
"""

from datetime import datetime, timedelta, timezone

import pytest

from src.server.alipay.client import MockGateway, NotifyVerifier
from src.server.alipay.errors import ConfigurationError, GatewayBusinessError
from src.server.alipay.schemas import PreOrderResult
from src.server.orders import services
from src.server.orders.plans import PLANS, find_plan
from src.server.orders.qr import build_qr_image_url
from src.server.orders.schemas import CreateOrderRequest, OrderRecord, OrderStatus
from src.server.orders.store import InMemoryOrderStore


class StubGateway:
    """记录预下单请求并返回固定结果的网关替身。"""

    def __init__(self, public_key: str | None = None, error: Exception | None = None):
        self.requests = []
        self.public_key = public_key
        self.error = error

    async def create_pre_order(self, request, timeout=None):
        self.requests.append(request)
        if self.error:
            raise self.error
        return PreOrderResult(trade_no="2024...001", qr_code="https://qr.alipay.com/abc")

    def get_notify_verifier(self):
        return NotifyVerifier(self.public_key)

    async def aclose(self):
        return None


def _order(order_id="abc123", email="user@example.com", created_at=None) -> OrderRecord:
    now = created_at or datetime.now(timezone.utc)
    return OrderRecord(
        id=order_id,
        email=email,
        plan_id="starter",
        amount=29,
        currency="CNY",
        tutorial_url="https://example.com/tutorials/starter",
        trade_no="T-0",
        qr_code="https://qr.alipay.com/abc",
        created_at=now,
        updated_at=now,
    )


def test_find_plan():
    assert find_plan("pro").price == 79
    assert find_plan("missing") is None
    assert {p.id for p in PLANS} == {"starter", "pro", "enterprise"}


def test_build_qr_image_url():
    url = build_qr_image_url(" https://qr.alipay.com/abc ")
    assert url == (
        "https://api.qrserver.com/v1/create-qr-code/?size=280x280"
        "&data=https%3A%2F%2Fqr.alipay.com%2Fabc"
    )
    assert build_qr_image_url("") == ""
    assert build_qr_image_url(None) == ""


@pytest.mark.asyncio
async def test_create_order_happy_path():
    gateway = StubGateway()
    store = InMemoryOrderStore()
    resp = await services.create_order(
        gateway, store, CreateOrderRequest(email="User@Example.com", plan_id="starter"), "https://n"
    )

    assert resp.trade_no == "2024...001"
    assert resp.qr_code == "https://qr.alipay.com/abc"
    assert resp.qr_image.startswith("https://api.qrserver.com/")
    assert resp.status == OrderStatus.PENDING

    sent = gateway.requests[0]
    assert sent.out_trade_no == resp.order_id
    assert sent.total_amount == "29.00"
    assert sent.subject == "入门版"
    assert sent.notify_url == "https://n"

    stored = store.find_by_id(resp.order_id)
    assert stored.email == "user@example.com"
    assert stored.trade_no == "2024...001"


@pytest.mark.asyncio
async def test_create_order_validation():
    store = InMemoryOrderStore()
    with pytest.raises(ValueError):
        await services.create_order(StubGateway(), store, CreateOrderRequest(email="nope", plan_id="starter"))
    with pytest.raises(ValueError):
        await services.create_order(StubGateway(), store, CreateOrderRequest(email="a@b.c", plan_id="gold"))


@pytest.mark.asyncio
async def test_create_order_gateway_failure_stores_nothing():
    gateway = StubGateway(error=GatewayBusinessError("40004", sub_msg="insufficient balance"))
    store = InMemoryOrderStore()
    with pytest.raises(GatewayBusinessError):
        await services.create_order(gateway, store, CreateOrderRequest(email="a@b.c", plan_id="pro"))
    assert store.find_by_email("a@b.c") == []


@pytest.mark.asyncio
async def test_create_order_with_mock_gateway():
    store = InMemoryOrderStore()
    resp = await services.create_order(
        MockGateway(), store, CreateOrderRequest(email="a@b.c", plan_id="pro")
    )
    assert resp.gateway == "mock"
    assert resp.qr_code == f"MOCK_PAYMENT://{resp.order_id}"


def test_legitimate_notification_marks_order_paid(rsa_keys, sign_notification):
    store = InMemoryOrderStore()
    store.create(_order())
    payload = sign_notification(
        {"out_trade_no": "abc123", "trade_status": "TRADE_SUCCESS", "trade_no": "2024...001"},
        rsa_keys["private_pem"],
    )
    updated = services.handle_notification(StubGateway(rsa_keys["public_pem"]), store, payload)
    assert updated.status == OrderStatus.PAID
    assert updated.trade_no == "2024...001"
    assert updated.gateway_payload["trade_status"] == "TRADE_SUCCESS"
    assert store.find_by_id("abc123").status == OrderStatus.PAID


def test_forged_notification_leaves_order_untouched(rsa_keys, other_rsa_keys, sign_notification):
    store = InMemoryOrderStore()
    store.create(_order())
    payload = sign_notification(
        {"out_trade_no": "abc123", "trade_status": "TRADE_SUCCESS"}, other_rsa_keys["private_pem"]
    )
    with pytest.raises(services.InvalidNotificationError):
        services.handle_notification(StubGateway(rsa_keys["public_pem"]), store, payload)
    assert store.find_by_id("abc123").status == OrderStatus.PENDING


def test_notification_for_unknown_order(rsa_keys, sign_notification):
    payload = sign_notification(
        {"out_trade_no": "missing", "trade_status": "TRADE_SUCCESS"}, rsa_keys["private_pem"]
    )
    with pytest.raises(services.OrderNotFoundError):
        services.handle_notification(StubGateway(rsa_keys["public_pem"]), InMemoryOrderStore(), payload)


def test_notification_without_out_trade_no(rsa_keys, sign_notification):
    payload = sign_notification({"trade_status": "TRADE_SUCCESS"}, rsa_keys["private_pem"])
    with pytest.raises(services.InvalidNotificationError):
        services.handle_notification(StubGateway(rsa_keys["public_pem"]), InMemoryOrderStore(), payload)


def test_non_terminal_trade_status_keeps_pending(rsa_keys, sign_notification):
    store = InMemoryOrderStore()
    store.create(_order())
    payload = sign_notification(
        {"out_trade_no": "abc123", "trade_status": "WAIT_BUYER_PAY"}, rsa_keys["private_pem"]
    )
    order = services.handle_notification(StubGateway(rsa_keys["public_pem"]), store, payload)
    assert order.status == OrderStatus.PENDING


def test_closed_trade_expires_pending_order(rsa_keys, sign_notification):
    store = InMemoryOrderStore()
    store.create(_order())
    payload = sign_notification(
        {"out_trade_no": "abc123", "trade_status": "TRADE_CLOSED"}, rsa_keys["private_pem"]
    )
    order = services.handle_notification(StubGateway(rsa_keys["public_pem"]), store, payload)
    assert order.status == OrderStatus.EXPIRED
    assert store.find_by_id("abc123").status == OrderStatus.EXPIRED


def test_closed_trade_does_not_expire_paid_order(rsa_keys, sign_notification):
    """全额退款后网关同样发送 TRADE_CLOSED，已支付订单保持 paid"""
    store = InMemoryOrderStore()
    store.create(_order().model_copy(update={"status": OrderStatus.PAID}))
    payload = sign_notification(
        {"out_trade_no": "abc123", "trade_status": "TRADE_CLOSED"}, rsa_keys["private_pem"]
    )
    services.handle_notification(StubGateway(rsa_keys["public_pem"]), store, payload)
    assert store.find_by_id("abc123").status == OrderStatus.PAID


def test_notification_without_trust_material_fails_closed():
    store = InMemoryOrderStore()
    store.create(_order())
    with pytest.raises(ConfigurationError):
        services.handle_notification(
            MockGateway(), store, {"out_trade_no": "abc123", "trade_status": "TRADE_SUCCESS"}
        )
    assert store.find_by_id("abc123").status == OrderStatus.PENDING


def test_get_orders_newest_first():
    store = InMemoryOrderStore()
    old = datetime.now(timezone.utc) - timedelta(days=1)
    store.create(_order("old", created_at=old))
    store.create(_order("new"))
    store.create(_order("other", email="other@example.com"))
    history = services.get_orders(store, "USER@example.com")
    assert [o.id for o in history.orders] == ["new", "old"]


def test_get_order_detail_checks_email():
    store = InMemoryOrderStore()
    store.create(_order())
    detail = services.get_order_detail(store, "abc123", "User@Example.com")
    assert detail.payment_url == "https://qr.alipay.com/abc"
    assert detail.qr_image.startswith("https://api.qrserver.com/")
    with pytest.raises(services.OrderNotFoundError):
        services.get_order_detail(store, "abc123", "someone@else.com")


def test_store_rejects_duplicate_ids():
    store = InMemoryOrderStore()
    store.create(_order())
    with pytest.raises(ValueError):
        store.create(_order())
    assert store.update("missing", status=OrderStatus.PAID) is None
