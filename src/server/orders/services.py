"""
订单业务逻辑层。
此模块封装下单、查询与网关通知处理，供路由层调用。
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, List, Mapping

from loguru import logger

from ..alipay.client import PaymentGateway
from ..alipay.schemas import PrecreateRequest
from .plans import find_plan
from .qr import build_qr_image_url
from .schemas import (
    CreateOrderRequest,
    CreateOrderResponse,
    OrderDetailResponse,
    OrderHistoryItem,
    OrderHistoryResponse,
    OrderRecord,
    OrderStatus,
)
from .store import InMemoryOrderStore

PAID_TRADE_STATUSES = {"TRADE_SUCCESS", "TRADE_FINISHED"}
# 未付款交易超时关闭
CLOSED_TRADE_STATUS = "TRADE_CLOSED"


class InvalidNotificationError(ValueError):
    pass


class OrderNotFoundError(LookupError):
    pass


def _now() -> datetime:
    return datetime.now(timezone.utc)


async def create_order(
    gateway: PaymentGateway,
    store: InMemoryOrderStore,
    req: CreateOrderRequest,
    notify_url: str | None = None,
) -> CreateOrderResponse:
    """
    创建订单并向网关预下单。
    :raises ValueError: 邮箱或套餐无效。
    :raises AlipayError: 网关预下单失败（订单不会被保存）。
    """
    if "@" not in req.email:
        raise ValueError("请输入有效的邮箱地址")
    plan = find_plan(req.plan_id)
    if plan is None:
        raise ValueError("请选择有效的套餐")

    now = _now()
    order = OrderRecord(
        id=uuid.uuid4().hex,
        email=req.email.lower(),
        plan_id=plan.id,
        amount=plan.price,
        currency=plan.currency,
        tutorial_url=plan.tutorial_url,
        status=OrderStatus.PENDING,
        created_at=now,
        updated_at=now,
    )

    pre_order = await gateway.create_pre_order(
        PrecreateRequest(
            out_trade_no=order.id,
            total_amount=f"{order.amount:.2f}",
            subject=plan.name,
            notify_url=notify_url,
        )
    )

    order.trade_no = pre_order.trade_no
    order.qr_code = pre_order.qr_code
    order.gateway_payload = pre_order.payload
    store.create(order)
    logger.info(f"订单已创建: id={order.id}, plan={plan.id}, gateway={pre_order.gateway}")

    return CreateOrderResponse(
        order_id=order.id,
        trade_no=pre_order.trade_no,
        qr_code=pre_order.qr_code,
        qr_image=build_qr_image_url(pre_order.qr_code),
        status=order.status,
        gateway=pre_order.gateway,
        tutorial_url=order.tutorial_url,
    )


def mark_order_status(
    store: InMemoryOrderStore,
    order_id: str,
    status: OrderStatus,
    gateway_payload: Mapping[str, Any] | None = None,
    trade_no: str | None = None,
) -> OrderRecord | None:
    updated = store.update(
        order_id,
        status=status,
        gateway_payload=dict(gateway_payload) if gateway_payload is not None else None,
        trade_no=trade_no,
        updated_at=_now(),
    )
    if updated is not None:
        logger.info(f"订单状态更新: id={order_id}, status={status.value}")
    return updated


def get_orders(store: InMemoryOrderStore, email: str) -> OrderHistoryResponse:
    orders: List[OrderRecord] = store.find_by_email(email.lower())
    return OrderHistoryResponse(
        orders=[
            OrderHistoryItem(
                id=o.id,
                plan_id=o.plan_id,
                amount=o.amount,
                currency=o.currency,
                status=o.status,
                trade_no=o.trade_no,
                qr_code=o.qr_code,
                tutorial_url=o.tutorial_url,
                created_at=o.created_at,
                updated_at=o.updated_at,
            )
            for o in orders
        ]
    )


def get_stored_payment_url(order: OrderRecord) -> str | None:
    """二维码内容本身是网址时，可直接作为支付链接跳转。"""
    if order.qr_code and order.qr_code.startswith(("http://", "https://")):
        return order.qr_code
    return None


def get_order_detail(store: InMemoryOrderStore, order_id: str, email: str) -> OrderDetailResponse:
    """
    :raises OrderNotFoundError: 订单不存在或邮箱不匹配。
    """
    order = store.find_by_id(order_id)
    if order is None or order.email != email.lower():
        raise OrderNotFoundError("订单不存在")
    return OrderDetailResponse(
        id=order.id,
        status=order.status,
        qr_code=order.qr_code,
        qr_image=build_qr_image_url(order.qr_code) if order.qr_code else None,
        payment_url=get_stored_payment_url(order),
        tutorial_url=order.tutorial_url,
        trade_no=order.trade_no,
        updated_at=order.updated_at,
    )


def handle_notification(
    gateway: PaymentGateway,
    store: InMemoryOrderStore,
    payload: Mapping[str, str],
) -> OrderRecord:
    """
    处理网关异步通知：先验签，验签通过后才允许修改订单状态。
    :raises ConfigurationError: 网关没有可用的信任材料。
    :raises InvalidNotificationError: 验签失败或缺少 out_trade_no。
    :raises OrderNotFoundError: 订单不存在。
    """
    verifier = gateway.get_notify_verifier()
    if not verifier.verify(payload):
        raise InvalidNotificationError("invalid signature")

    out_trade_no = payload.get("out_trade_no")
    if not out_trade_no:
        raise InvalidNotificationError("missing out_trade_no")

    order = store.find_by_id(out_trade_no)
    if order is None:
        raise OrderNotFoundError("order not found")

    trade_status = payload.get("trade_status")
    if trade_status in PAID_TRADE_STATUSES:
        updated = mark_order_status(
            store,
            order.id,
            OrderStatus.PAID,
            gateway_payload=payload,
            trade_no=payload.get("trade_no") or order.trade_no,
        )
        return updated or order

    if trade_status == CLOSED_TRADE_STATUS and order.status == OrderStatus.PENDING:
        updated = mark_order_status(store, order.id, OrderStatus.EXPIRED, gateway_payload=payload)
        return updated or order

    logger.info(f"忽略非支付成功通知: id={order.id}, trade_status={trade_status}")
    return order
