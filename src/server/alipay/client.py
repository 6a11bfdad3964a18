"""
文件功能：
    支付宝网关客户端：组装并签名请求参数、发送请求、解包响应，以及绑定同一信任材料的通知验签器。

公开接口：
    - PRODUCTION_ENDPOINT / SANDBOX_ENDPOINT
    - AlipayClient
      - exec(method, biz_content, ...) -> (envelope, trace_id, raw_body)   gateway.do 调用
      - curl(http_method, path, body, ...) -> (data, trace_id, raw_body)  OpenAPI v3 调用
      - create_pre_order(request, timeout=None) -> PreOrderResult
      - get_notify_verifier() -> NotifyVerifier
    - NotifyVerifier: verify(params) -> bool
    - MockGateway: 演示用的模拟网关，不具备验签能力
    - PaymentGateway: AlipayClient 与 MockGateway 的公共协议

内部方法：
    - AlipayClient._send(...)
    - AlipayClient._verify_exec_response(...) / _verify_curl_response(...)
    - format_timestamp(now=None) -> str
"""

from __future__ import annotations

import json
import time
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence, Tuple

import httpx
from loguru import logger

from . import signing
from .envelope import ERROR_RESPONSE_KEY, extract_signed_content, response_key, unwrap_envelope
from .errors import (
    AlipayError,
    ConfigurationError,
    GatewayBusinessError,
    ProtocolError,
    TransportError,
)
from .http_pool import GatewayHttpPool
from .schemas import PrecreateRequest, PreOrderResult
from .strategies import AttemptResult, PrecreateStrategy, build_strategies
from .trust import ResolvedTrust, TrustMaterial, resolve_trust

PRODUCTION_ENDPOINT = "https://openapi.alipay.com"
SANDBOX_ENDPOINT = "https://openapi-sandbox.dl.alipaydev.com"

DEFAULT_STRATEGIES = ("openapi_v3", "gateway")

_GATEWAY_TZ = timezone(timedelta(hours=8))


def format_timestamp(now: Optional[datetime] = None) -> str:
    """网关要求的 UTC+8 时间戳，形如 2024-01-01 12:00:00。"""
    current = now or datetime.now(_GATEWAY_TZ)
    return current.astimezone(_GATEWAY_TZ).strftime("%Y-%m-%d %H:%M:%S")


def _trace_id(response: httpx.Response) -> str | None:
    return response.headers.get("trace_id") or response.headers.get("alipay-trace-id")


class NotifyVerifier:
    """绑定到某个客户端信任材料的异步通知验签器。"""

    def __init__(self, public_key: str, default_sign_type: str = signing.SIGN_TYPE_RSA2) -> None:
        if not public_key:
            raise ConfigurationError("未配置支付宝公钥，拒绝验证网关通知")
        self._public_key = public_key
        self._default_sign_type = default_sign_type

    def verify(self, params: Mapping[str, Any]) -> bool:
        verified = signing.verify(params, self._public_key, self._default_sign_type)
        if not verified:
            logger.warning(f"异步通知验签失败: out_trade_no={params.get('out_trade_no')}")
        return verified


class PaymentGateway(Protocol):
    async def create_pre_order(
        self, request: PrecreateRequest, timeout: float | None = None
    ) -> PreOrderResult:
        ...

    def get_notify_verifier(self) -> NotifyVerifier:
        ...

    async def aclose(self) -> None:
        ...


class AlipayClient:
    """
    支付宝开放平台客户端。信任材料在构造时解析并校验，之后只读。
    """

    def __init__(
        self,
        app_id: str,
        private_key: str,
        trust: Optional[TrustMaterial],
        *,
        sign_type: str = signing.SIGN_TYPE_RSA2,
        key_type: str = "PKCS1",
        endpoint: str = PRODUCTION_ENDPOINT,
        timeout: float = 15.0,
        check_response_sign: bool = False,
        strategies: Optional[Sequence[PrecreateStrategy]] = None,
        http_pool: Optional[GatewayHttpPool] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        if not app_id:
            raise ConfigurationError("未配置 app_id")
        if not private_key:
            raise ConfigurationError("未配置应用私钥")
        if sign_type not in signing.SIGN_ALGORITHMS:
            raise ConfigurationError(f"不支持的签名类型: {sign_type}")

        self.app_id = app_id
        self.sign_type = sign_type
        self.endpoint = endpoint.rstrip("/")
        self.timeout = timeout
        self.check_response_sign = check_response_sign
        self._private_key = signing.normalize_private_key(private_key, key_type)
        signing.load_rsa_private_key(self._private_key)
        self.trust: ResolvedTrust = resolve_trust(trust)
        self.strategies: List[PrecreateStrategy] = list(
            strategies if strategies is not None else build_strategies(DEFAULT_STRATEGIES)
        )
        if not self.strategies:
            raise ConfigurationError("至少需要配置一种预下单调用方式")
        self.http_pool = http_pool or GatewayHttpPool(self.endpoint, timeout, transport)

    # ---------- 签名 ----------

    def sign_params(self, params: Mapping[str, Any]) -> str:
        content = signing.get_sign_content(params)
        return signing.sign_content(content, self._private_key, self.sign_type)

    def build_request_params(
        self,
        method: str,
        biz_content: Mapping[str, Any],
        *,
        notify_url: str | None = None,
        return_url: str | None = None,
        timestamp: str | None = None,
    ) -> Dict[str, str]:
        params: Dict[str, Any] = {
            "app_id": self.app_id,
            "method": method,
            "format": "JSON",
            "charset": "utf-8",
            "sign_type": self.sign_type,
            "timestamp": timestamp or format_timestamp(),
            "version": "1.0",
            "biz_content": json.dumps(biz_content, ensure_ascii=False, separators=(",", ":")),
            "notify_url": notify_url,
            "return_url": return_url,
            "app_cert_sn": self.trust.app_cert_sn,
            "alipay_root_cert_sn": self.trust.alipay_root_cert_sn,
        }
        return {key: str(value) for key, value in params.items() if value is not None and value != ""}

    # ---------- 传输 ----------

    async def _send(
        self,
        http_method: str,
        path: str,
        *,
        timeout: float | None,
        **kwargs: Any,
    ) -> httpx.Response:
        client = self.http_pool.get()
        try:
            return await client.request(
                http_method,
                path,
                timeout=timeout if timeout is not None else self.timeout,
                **kwargs,
            )
        except httpx.HTTPError as e:
            raise TransportError(f"请求网关失败: {e!r}", stage="transmit") from e

    async def exec(
        self,
        method: str,
        biz_content: Mapping[str, Any],
        *,
        notify_url: str | None = None,
        return_url: str | None = None,
        timeout: float | None = None,
    ) -> Tuple[Dict[str, Any], str | None, str]:
        """
        调用 gateway.do：构建参数 -> 签名 -> 发送 -> 解包。
        :return: (包络, trace id, 原始响应体)；业务 code 由调用方判断。
        :raises TransportError / ProtocolError
        """
        params = self.build_request_params(
            method, biz_content, notify_url=notify_url, return_url=return_url
        )
        params["sign"] = self.sign_params(params)
        logger.info(f"调用网关 {method}: app_id={self.app_id}")

        response = await self._send("POST", "/gateway.do", data=params, timeout=timeout)
        trace_id = _trace_id(response)
        raw_body = response.text
        if not response.is_success:
            raise TransportError(
                f"网关返回 HTTP {response.status_code}",
                stage="transmit",
                trace_id=trace_id,
                raw_body=raw_body,
                status_code=response.status_code,
            )
        try:
            body = response.json()
        except ValueError as e:
            raise ProtocolError(
                "网关响应不是合法 JSON", stage="unwrap", trace_id=trace_id, raw_body=raw_body
            ) from e

        envelope = unwrap_envelope(body, method, trace_id=trace_id, raw_body=raw_body)
        if self.check_response_sign:
            # error_response 分支按其自身的键截取验签原文
            key = response_key(method)
            if key not in body:
                key = ERROR_RESPONSE_KEY
            self._verify_exec_response(body, raw_body, key, trace_id)
        return envelope, trace_id, raw_body

    def _verify_exec_response(
        self, body: Dict[str, Any], raw_body: str, key: str, trace_id: str | None
    ) -> None:
        signature = body.get("sign")
        if not signature and key == ERROR_RESPONSE_KEY:
            # 网关无法识别应用时返回未签名的 error_response，只携带失败码
            logger.warning(f"网关返回未签名的 error_response: trace_id={trace_id}")
            return
        content = extract_signed_content(raw_body, key)
        if not signature or content is None:
            raise ProtocolError(
                "网关响应缺少签名", stage="verify_response", trace_id=trace_id, raw_body=raw_body
            )
        if not signing.verify_content(content, signature, self.trust.public_key, self.sign_type):
            raise ProtocolError(
                "网关响应验签失败", stage="verify_response", trace_id=trace_id, raw_body=raw_body
            )

    def _auth_string(self) -> str:
        parts = [f"app_id={self.app_id}"]
        if self.trust.app_cert_sn:
            parts.append(f"app_cert_sn={self.trust.app_cert_sn}")
        parts.append(f"nonce={uuid.uuid4()}")
        parts.append(f"timestamp={int(time.time() * 1000)}")
        return ",".join(parts)

    async def curl(
        self,
        http_method: str,
        path: str,
        body: Optional[Mapping[str, Any]] = None,
        *,
        timeout: float | None = None,
    ) -> Tuple[Dict[str, Any], str | None, str]:
        """
        调用 OpenAPI v3 接口，签名放在 authorization 请求头中（固定 SHA256withRSA）。
        :return: (响应 JSON, trace id, 原始响应体)
        :raises TransportError / ProtocolError / GatewayBusinessError
        """
        http_method = http_method.upper()
        body_text = (
            json.dumps(body, ensure_ascii=False, separators=(",", ":")) if body is not None else ""
        )
        auth = self._auth_string()
        content = f"{auth}\n{http_method}\n{path}\n{body_text}\n"
        signature = signing.sign_content(content, self._private_key, signing.SIGN_TYPE_RSA2)
        headers = {
            "authorization": f"ALIPAY-SHA256withRSA {auth},sign={signature}",
            "content-type": "application/json; charset=utf-8",
            "accept": "application/json",
            "alipay-request-id": uuid.uuid4().hex,
        }
        if self.trust.alipay_root_cert_sn:
            headers["alipay-root-cert-sn"] = self.trust.alipay_root_cert_sn
        logger.info(f"调用网关 {http_method} {path}: app_id={self.app_id}")

        response = await self._send(
            http_method, path, content=body_text.encode("utf-8"), headers=headers, timeout=timeout
        )
        trace_id = _trace_id(response)
        raw_body = response.text
        try:
            data = response.json() if raw_body else {}
        except ValueError:
            data = None

        if not response.is_success:
            if 400 <= response.status_code < 500 and isinstance(data, dict) and data.get("code"):
                raise GatewayBusinessError(
                    str(data["code"]),
                    msg=data.get("message"),
                    stage="transmit",
                    trace_id=trace_id,
                    raw_body=raw_body,
                    status_code=response.status_code,
                )
            raise TransportError(
                f"网关返回 HTTP {response.status_code}",
                stage="transmit",
                trace_id=trace_id,
                raw_body=raw_body,
                status_code=response.status_code,
            )
        if not isinstance(data, dict):
            raise ProtocolError(
                "网关响应不是 JSON 对象", stage="unwrap", trace_id=trace_id, raw_body=raw_body
            )
        if self.check_response_sign:
            self._verify_curl_response(response, raw_body, trace_id)
        return data, trace_id, raw_body

    def _verify_curl_response(
        self, response: httpx.Response, raw_body: str, trace_id: str | None
    ) -> None:
        timestamp = response.headers.get("alipay-timestamp")
        nonce = response.headers.get("alipay-nonce")
        signature = response.headers.get("alipay-signature")
        if not (timestamp and nonce and signature):
            raise ProtocolError(
                "网关响应缺少签名头", stage="verify_response", trace_id=trace_id, raw_body=raw_body
            )
        content = f"{timestamp}\n{nonce}\n{raw_body}\n"
        if not signing.verify_content(content, signature, self.trust.public_key, signing.SIGN_TYPE_RSA2):
            raise ProtocolError(
                "网关响应验签失败", stage="verify_response", trace_id=trace_id, raw_body=raw_body
            )

    # ---------- 业务入口 ----------

    async def create_pre_order(
        self, request: PrecreateRequest, timeout: float | None = None
    ) -> PreOrderResult:
        """
        按配置顺序尝试各调用方式，第一个成功的结果即返回。
        全部失败时抛出最后一次尝试的异常，attempts 中保留所有尝试的诊断信息。
        """
        attempts: List[AttemptResult] = []
        for strategy in self.strategies:
            outcome = await strategy.attempt(self, request, timeout)
            attempts.append(outcome)
            if outcome.ok:
                assert outcome.result is not None
                logger.info(
                    f"预下单成功: out_trade_no={request.out_trade_no}, "
                    f"trade_no={outcome.result.trade_no}, via={strategy.name}"
                )
                return outcome.result
            logger.warning(f"预下单尝试失败: {outcome.describe()}")

        error: AlipayError = attempts[-1].error  # type: ignore[assignment]
        error.attempts = attempts
        raise error

    def get_notify_verifier(self) -> NotifyVerifier:
        return NotifyVerifier(self.trust.public_key, self.sign_type)

    async def aclose(self) -> None:
        await self.http_pool.aclose()


class MockGateway:
    """
    无密钥时的演示网关。只生成模拟交易号与二维码内容，不能验证任何通知。
    """

    async def create_pre_order(
        self, request: PrecreateRequest, timeout: float | None = None
    ) -> PreOrderResult:
        qr_content = f"MOCK_PAYMENT://{request.out_trade_no}"
        logger.info(f"模拟网关预下单: out_trade_no={request.out_trade_no}")
        return PreOrderResult(
            trade_no=f"MOCK-{uuid.uuid4()}",
            qr_code=qr_content,
            gateway="mock",
            payload={"qr_content": qr_content},
        )

    def get_notify_verifier(self) -> NotifyVerifier:
        raise ConfigurationError("模拟网关没有信任材料，无法验证网关通知")

    async def aclose(self) -> None:
        return None
