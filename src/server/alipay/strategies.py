"""
文件功能：
    预下单的调用方式（策略）。客户端按顺序尝试，每个策略返回成功结果或带诊断的失败结果。

公开接口：
    - AttemptResult: 单次尝试的结果
    - PrecreateStrategy: 策略协议
    - OpenApiV3Strategy: POST /v3/alipay/trade/precreate（JSON + Authorization 头签名）
    - GatewayDoStrategy: POST /gateway.do（表单 + 参数签名）
    - STRATEGIES: 名称到策略类的映射
    - build_strategies(names) -> list[PrecreateStrategy]
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, List, Optional, Protocol, Sequence

from loguru import logger

from .envelope import ensure_success, extract_precreate_result
from .errors import AlipayError, ConfigurationError
from .schemas import PrecreateRequest, PreOrderResult

if TYPE_CHECKING:
    from .client import AlipayClient

PRECREATE_METHOD = "alipay.trade.precreate"
PRECREATE_V3_PATH = "/v3/alipay/trade/precreate"


@dataclass
class AttemptResult:
    strategy: str
    result: Optional[PreOrderResult] = None
    error: Optional[AlipayError] = None

    @property
    def ok(self) -> bool:
        return self.result is not None

    def describe(self) -> str:
        if self.ok:
            return f"[{self.strategy}] ok trade_no={self.result.trade_no}"
        assert self.error is not None
        details = " ".join(f"{key}={value}" for key, value in self.error.diagnostics().items())
        return f"[{self.strategy}] {details}"


class PrecreateStrategy(Protocol):
    name: str

    async def attempt(
        self, client: "AlipayClient", request: PrecreateRequest, timeout: float | None
    ) -> AttemptResult:
        ...


class OpenApiV3Strategy:
    name = "openapi_v3"

    async def attempt(
        self, client: "AlipayClient", request: PrecreateRequest, timeout: float | None
    ) -> AttemptResult:
        body = request.biz_content()
        if request.notify_url:
            body["notify_url"] = request.notify_url
        try:
            data, trace_id, raw_body = await client.curl(
                "POST", PRECREATE_V3_PATH, body, timeout=timeout
            )
            result = extract_precreate_result(data, trace_id=trace_id, raw_body=raw_body)
        except AlipayError as e:
            return AttemptResult(self.name, error=e)
        return AttemptResult(self.name, result=result)


class GatewayDoStrategy:
    name = "gateway"

    async def attempt(
        self, client: "AlipayClient", request: PrecreateRequest, timeout: float | None
    ) -> AttemptResult:
        try:
            envelope, trace_id, raw_body = await client.exec(
                PRECREATE_METHOD,
                request.biz_content(),
                notify_url=request.notify_url,
                timeout=timeout,
            )
            data = ensure_success(envelope, trace_id=trace_id, raw_body=raw_body)
            result = extract_precreate_result(data, trace_id=trace_id, raw_body=raw_body)
        except AlipayError as e:
            return AttemptResult(self.name, error=e)
        return AttemptResult(self.name, result=result)


STRATEGIES: Dict[str, type] = {
    OpenApiV3Strategy.name: OpenApiV3Strategy,
    GatewayDoStrategy.name: GatewayDoStrategy,
}


def build_strategies(names: Sequence[str]) -> List[PrecreateStrategy]:
    strategies: List[PrecreateStrategy] = []
    for name in names:
        strategy_cls = STRATEGIES.get(name)
        if strategy_cls is None:
            raise ConfigurationError(f"未知的预下单调用方式: {name}")
        strategies.append(strategy_cls())
    if not strategies:
        raise ConfigurationError("至少需要配置一种预下单调用方式")
    logger.debug(f"预下单调用顺序: {[s.name for s in strategies]}")
    return strategies
