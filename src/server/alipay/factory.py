"""
文件功能：
    根据配置构建网关实例，供应用启动时（组合根）调用一次。

公开接口：
    - build_trust(cfg) -> TrustMaterial | None
    - build_gateway(cfg, transport=None) -> PaymentGateway
"""

from __future__ import annotations

from typing import Optional

import httpx
from loguru import logger

from ..config import Config
from .client import PRODUCTION_ENDPOINT, SANDBOX_ENDPOINT, AlipayClient, MockGateway, PaymentGateway
from .errors import ConfigurationError
from .strategies import build_strategies
from .trust import CertificateTrust, PlainKeyTrust, TrustMaterial


def build_trust(cfg: Config) -> Optional[TrustMaterial]:
    """证书模式优先于公钥模式；两者都未配置时返回 None。"""
    if cfg.alipay_public_cert or cfg.alipay_public_cert_path:
        if cfg.alipay_app_cert and cfg.alipay_public_cert and cfg.alipay_root_cert:
            return CertificateTrust(
                app_cert=cfg.alipay_app_cert,
                alipay_public_cert=cfg.alipay_public_cert,
                alipay_root_cert=cfg.alipay_root_cert,
            )
        if cfg.alipay_app_cert_path and cfg.alipay_public_cert_path and cfg.alipay_root_cert_path:
            return CertificateTrust.from_paths(
                cfg.alipay_app_cert_path,
                cfg.alipay_public_cert_path,
                cfg.alipay_root_cert_path,
            )
        raise ConfigurationError("证书模式需要同时配置应用公钥证书、支付宝公钥证书与根证书")
    if cfg.alipay_public_key:
        return PlainKeyTrust(alipay_public_key=cfg.alipay_public_key)
    return None


def _endpoint(cfg: Config) -> str:
    if cfg.alipay_endpoint:
        return cfg.alipay_endpoint
    return SANDBOX_ENDPOINT if cfg.alipay_use_sandbox else PRODUCTION_ENDPOINT


def build_gateway(
    cfg: Config, transport: Optional[httpx.AsyncBaseTransport] = None
) -> PaymentGateway:
    """
    构建网关。
    :raises ConfigurationError: 未配置密钥且未开启模拟模式，或密钥/证书无效。
    """
    if not cfg.has_key_material:
        if cfg.alipay_mock_mode:
            logger.warning("未配置支付宝密钥，使用模拟网关；异步通知将一律拒绝")
            return MockGateway()
        raise ConfigurationError("未配置支付宝 app_id、应用私钥或支付宝公钥/证书")

    endpoint = _endpoint(cfg)
    client = AlipayClient(
        app_id=cfg.alipay_app_id,
        private_key=cfg.alipay_private_key,
        trust=build_trust(cfg),
        sign_type=cfg.alipay_sign_type,
        key_type=cfg.alipay_private_key_type,
        endpoint=endpoint,
        timeout=cfg.alipay_timeout_seconds,
        check_response_sign=cfg.alipay_check_response_sign,
        strategies=build_strategies(cfg.alipay_precreate_strategies),
        transport=transport,
    )
    logger.info(f"支付宝网关已就绪: endpoint={endpoint}, sign_type={client.sign_type}")
    return client
