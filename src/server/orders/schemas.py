"""
文件功能：
    订单与套餐相关的数据模型（Pydantic）。

公开接口：
    - OrderStatus: 订单状态
    - SubscriptionPlan: 套餐
    - OrderRecord: 订单存储记录
    - CreateOrderRequest / CreateOrderResponse
    - OrderHistoryItem / OrderHistoryResponse
    - OrderDetailResponse
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List

from pydantic import BaseModel, Field


class OrderStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    EXPIRED = "expired"


class SubscriptionPlan(BaseModel):
    """订阅套餐。"""

    id: str
    name: str
    price: float
    currency: str = "CNY"
    description: str
    features: List[str] = Field(default_factory=list)
    tutorial_url: str
    highlight: str | None = None


class OrderRecord(BaseModel):
    """订单存储记录。"""

    id: str
    email: str
    plan_id: str
    amount: float
    currency: str
    tutorial_url: str
    status: OrderStatus = OrderStatus.PENDING
    trade_no: str | None = None
    qr_code: str | None = None
    gateway_payload: Dict[str, Any] | None = None
    created_at: datetime
    updated_at: datetime


class CreateOrderRequest(BaseModel):
    """
    创建订单请求。
    """
    email: str
    plan_id: str = Field(alias="planId")

    model_config = {"populate_by_name": True}


class CreateOrderResponse(BaseModel):
    """
    创建订单响应。
    """
    order_id: str
    trade_no: str
    qr_code: str
    qr_image: str
    status: OrderStatus
    gateway: str
    tutorial_url: str


class OrderHistoryItem(BaseModel):
    id: str
    plan_id: str
    amount: float
    currency: str
    status: OrderStatus
    trade_no: str | None = None
    qr_code: str | None = None
    tutorial_url: str
    created_at: datetime
    updated_at: datetime


class OrderHistoryResponse(BaseModel):
    orders: List[OrderHistoryItem]


class OrderDetailResponse(BaseModel):
    id: str
    status: OrderStatus
    qr_code: str | None = None
    qr_image: str | None = None
    payment_url: str | None = None
    tutorial_url: str
    trade_no: str | None = None
    updated_at: datetime
