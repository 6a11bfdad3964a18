"""
文件功能：
    支付宝网关客户端的异常体系。

公开接口：
    - AlipayError: 所有网关相关异常的基类，携带阶段、trace id、原始响应体
    - ConfigurationError: 密钥/证书等信任材料缺失或格式错误
    - CertificateParseError: X.509 证书内容无法解析
    - TransportError: 网络失败或非 2xx 响应
    - ProtocolError: 响应包络缺失/格式错误，或成功码下缺少必要字段
    - GatewayBusinessError: 网关明确返回的非成功 code/sub_code
"""

from __future__ import annotations

from typing import Any, Dict, List


class AlipayError(Exception):
    """网关异常基类。"""

    def __init__(
        self,
        message: str,
        *,
        stage: str | None = None,
        trace_id: str | None = None,
        raw_body: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.stage = stage
        self.trace_id = trace_id
        self.raw_body = raw_body
        self.status_code = status_code
        # 由调用编排层在多策略全部失败时填充
        self.attempts: List[Any] = []

    def diagnostics(self) -> Dict[str, Any]:
        """返回便于记录日志的诊断信息字典。"""
        data: Dict[str, Any] = {"error": type(self).__name__, "message": self.message}
        if self.stage:
            data["stage"] = self.stage
        if self.status_code is not None:
            data["status_code"] = self.status_code
        if self.trace_id:
            data["trace_id"] = self.trace_id
        if self.raw_body:
            data["raw_body"] = self.raw_body[:2000]
        return data

    @property
    def debug_log(self) -> str:
        """多次尝试的诊断信息汇总成一段文本，单次失败时只描述自身。"""
        if not self.attempts:
            return _render(self.diagnostics())
        return "\n".join(attempt.describe() for attempt in self.attempts)


class ConfigurationError(AlipayError):
    pass


class CertificateParseError(AlipayError, ValueError):
    pass


class TransportError(AlipayError):
    pass


class ProtocolError(AlipayError):
    pass


class GatewayBusinessError(AlipayError):
    """网关返回的业务失败，原样携带 code/msg/sub_code/sub_msg。"""

    def __init__(
        self,
        code: str,
        msg: str | None = None,
        sub_code: str | None = None,
        sub_msg: str | None = None,
        **kwargs: Any,
    ) -> None:
        message = sub_msg or msg or f"gateway returned code {code}"
        super().__init__(message, **kwargs)
        self.code = code
        self.msg = msg
        self.sub_code = sub_code
        self.sub_msg = sub_msg

    def diagnostics(self) -> Dict[str, Any]:
        data = super().diagnostics()
        data["code"] = self.code
        if self.msg:
            data["msg"] = self.msg
        if self.sub_code:
            data["sub_code"] = self.sub_code
        if self.sub_msg:
            data["sub_msg"] = self.sub_msg
        return data


def _render(data: Dict[str, Any]) -> str:
    return " ".join(f"{key}={value}" for key, value in data.items())
