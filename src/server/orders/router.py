"""
订单与网关通知的 FastAPI 路由定义。
"""

from urllib.parse import parse_qsl

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import PlainTextResponse
from loguru import logger

from ..alipay.client import PaymentGateway
from ..alipay.errors import AlipayError, ConfigurationError
from . import services
from .schemas import (
    CreateOrderRequest,
    CreateOrderResponse,
    OrderDetailResponse,
    OrderHistoryResponse,
)
from .store import InMemoryOrderStore

router = APIRouter(tags=["Orders"])


def get_gateway(request: Request) -> PaymentGateway:
    return request.app.state.gateway


def get_store(request: Request) -> InMemoryOrderStore:
    return request.app.state.order_store


def get_notify_url(request: Request) -> str | None:
    return getattr(request.app.state, "notify_url", None)


@router.post("/orders", response_model=CreateOrderResponse)
async def create_order(
    req: CreateOrderRequest,
    gateway: PaymentGateway = Depends(get_gateway),
    store: InMemoryOrderStore = Depends(get_store),
    notify_url: str | None = Depends(get_notify_url),
) -> CreateOrderResponse:
    """
    创建订单并返回支付二维码。
    """
    try:
        return await services.create_order(gateway, store, req, notify_url)
    except AlipayError as e:
        # 网关失败返回可读信息与调试日志
        logger.error(f"[orders:create] 预下单失败: {e.debug_log}")
        raise HTTPException(status_code=500, detail={"error": e.message, "debug_log": e.debug_log})
    except ValueError as e:
        raise HTTPException(status_code=400, detail={"error": str(e)})


@router.get("/orders/history", response_model=OrderHistoryResponse)
async def order_history(
    email: str | None = None,
    store: InMemoryOrderStore = Depends(get_store),
) -> OrderHistoryResponse:
    """
    按邮箱查询订单历史。
    """
    if not email:
        raise HTTPException(status_code=400, detail={"error": "缺少邮箱参数"})
    return services.get_orders(store, email)


@router.get("/orders/{order_id}", response_model=OrderDetailResponse)
async def order_detail(
    order_id: str,
    email: str | None = None,
    store: InMemoryOrderStore = Depends(get_store),
) -> OrderDetailResponse:
    """
    查询单个订单，邮箱需与下单邮箱一致。
    """
    if not email:
        raise HTTPException(status_code=400, detail={"error": "缺少邮箱信息"})
    try:
        return services.get_order_detail(store, order_id, email)
    except services.OrderNotFoundError as e:
        raise HTTPException(status_code=404, detail={"error": str(e)})


@router.post("/alipay/notify", response_class=PlainTextResponse)
async def alipay_notify(
    request: Request,
    gateway: PaymentGateway = Depends(get_gateway),
    store: InMemoryOrderStore = Depends(get_store),
) -> PlainTextResponse:
    """
    接收网关异步通知（application/x-www-form-urlencoded），验签通过后更新订单状态。
    """
    body = (await request.body()).decode("utf-8")
    payload = dict(parse_qsl(body, keep_blank_values=True))
    try:
        services.handle_notification(gateway, store, payload)
    except ConfigurationError as e:
        logger.error(f"[alipay:notify] 无法验证通知: {e.message}")
        raise HTTPException(status_code=503, detail={"error": "notification verification unavailable"})
    except services.InvalidNotificationError as e:
        raise HTTPException(status_code=400, detail={"error": str(e)})
    except services.OrderNotFoundError as e:
        raise HTTPException(status_code=404, detail={"error": str(e)})
    return PlainTextResponse("success")
