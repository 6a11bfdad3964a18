"""
文件功能：
    网关响应包络的解包与结果提取（纯函数，便于测试）。

公开接口：
    - SUCCESS_CODE: 网关成功码 "10000"
    - response_key(method) -> str
      "alipay.trade.precreate" -> "alipay_trade_precreate_response"
    - unwrap_envelope(body, method, trace_id=None, raw_body=None) -> dict
    - ensure_success(envelope, trace_id=None, raw_body=None) -> dict
    - extract_precreate_result(data, trace_id=None, raw_body=None) -> PreOrderResult
      同时接受 snake_case 与 camelCase 字段名。
    - extract_signed_content(raw_body, key) -> str | None
      从原始 JSON 文本中截取参与响应验签的包络文本。
"""

from __future__ import annotations

from typing import Any, Dict, Mapping

from .errors import GatewayBusinessError, ProtocolError
from .schemas import PreOrderResult

SUCCESS_CODE = "10000"
ERROR_RESPONSE_KEY = "error_response"


def response_key(method: str) -> str:
    return method.replace(".", "_") + "_response"


def unwrap_envelope(
    body: Any,
    method: str,
    trace_id: str | None = None,
    raw_body: str | None = None,
) -> Dict[str, Any]:
    """
    取出 "<method>_response" 包络。
    :raises ProtocolError: 响应体不是对象，或包络缺失/不是对象。
    """
    if not isinstance(body, dict):
        raise ProtocolError(
            "网关响应不是 JSON 对象", stage="unwrap", trace_id=trace_id, raw_body=raw_body
        )
    key = response_key(method)
    envelope = body.get(key)
    if envelope is None and isinstance(body.get(ERROR_RESPONSE_KEY), dict):
        envelope = body[ERROR_RESPONSE_KEY]
    if not isinstance(envelope, dict):
        raise ProtocolError(
            f"网关响应中缺少 {key}", stage="unwrap", trace_id=trace_id, raw_body=raw_body
        )
    return envelope


def ensure_success(
    envelope: Mapping[str, Any],
    trace_id: str | None = None,
    raw_body: str | None = None,
) -> Dict[str, Any]:
    """code 不为 10000 时抛出 GatewayBusinessError，原样携带 code/msg/sub_code/sub_msg。"""
    code = envelope.get("code")
    if code is None:
        raise ProtocolError(
            "网关响应包络中缺少 code", stage="extract", trace_id=trace_id, raw_body=raw_body
        )
    if str(code) != SUCCESS_CODE:
        raise GatewayBusinessError(
            str(code),
            msg=envelope.get("msg"),
            sub_code=envelope.get("sub_code"),
            sub_msg=envelope.get("sub_msg"),
            stage="extract",
            trace_id=trace_id,
            raw_body=raw_body,
        )
    return dict(envelope)


def _pick(data: Mapping[str, Any], *names: str) -> Any:
    for name in names:
        value = data.get(name)
        if value:
            return value
    return None


def extract_precreate_result(
    data: Mapping[str, Any],
    trace_id: str | None = None,
    raw_body: str | None = None,
) -> PreOrderResult:
    """
    从成功的预下单响应中提取交易号与二维码。
    :raises ProtocolError: 成功响应中缺少 trade_no 或 qr_code。
    """
    trade_no = _pick(data, "trade_no", "tradeNo")
    qr_code = _pick(data, "qr_code", "qrCode")
    if not qr_code or not trade_no:
        raise ProtocolError(
            "预下单成功响应中缺少 trade_no 或 qr_code",
            stage="extract",
            trace_id=trace_id,
            raw_body=raw_body,
        )
    return PreOrderResult(trade_no=str(trade_no), qr_code=str(qr_code), payload=dict(data))


def extract_signed_content(raw_body: str, key: str) -> str | None:
    start = raw_body.find(f'"{key}"')
    if start < 0:
        return None
    colon = raw_body.find(":", start + len(key) + 2)
    if colon < 0:
        return None
    # 包络之后依次可能出现 alipay_cert_sn 与 sign
    candidates = [
        index
        for index in (raw_body.rfind(',"alipay_cert_sn"'), raw_body.rfind(',"sign"'))
        if index > colon
    ]
    if not candidates:
        return None
    return raw_body[colon + 1 : min(candidates)].strip()
