"""
支付宝网关客户端的数据模型定义。
"""

from __future__ import annotations

from typing import Any, Dict, Literal

from pydantic import BaseModel, Field


class PrecreateRequest(BaseModel):
    """
    当面付预下单请求。
    """
    out_trade_no: str
    total_amount: str  # 以元为单位，两位小数，如 "20.00"
    subject: str
    notify_url: str | None = None
    product_code: str = "FACE_TO_FACE_PAYMENT"
    extra: Dict[str, Any] = Field(default_factory=dict, description="额外的业务参数，合并进 biz_content")

    def biz_content(self) -> Dict[str, Any]:
        content: Dict[str, Any] = {
            "out_trade_no": self.out_trade_no,
            "total_amount": self.total_amount,
            "subject": self.subject,
            "product_code": self.product_code,
        }
        content.update(self.extra)
        return content


class PreOrderResult(BaseModel):
    """
    预下单结果。
    """
    trade_no: str
    qr_code: str
    gateway: Literal["alipay", "mock"] = "alipay"
    payload: Dict[str, Any] = Field(default_factory=dict)
