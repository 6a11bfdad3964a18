"""
文件功能：
    验签信任材料的两种模式，以及在客户端构造时将其一次性解析为统一的公钥。

公开接口：
    - PlainKeyTrust: 直接配置的支付宝公钥
    - CertificateTrust: 应用公钥证书 + 支付宝公钥证书 + 支付宝根证书
    - ResolvedTrust: 解析后的 PEM 公钥与证书 SN
    - resolve_trust(trust) -> ResolvedTrust
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from loguru import logger

from . import certutil
from .errors import CertificateParseError, ConfigurationError
from .signing import load_rsa_public_key, normalize_public_key


@dataclass(frozen=True)
class PlainKeyTrust:
    alipay_public_key: str


@dataclass(frozen=True)
class CertificateTrust:
    app_cert: str
    alipay_public_cert: str
    alipay_root_cert: str

    @classmethod
    def from_paths(
        cls,
        app_cert_path: Union[str, Path],
        alipay_public_cert_path: Union[str, Path],
        alipay_root_cert_path: Union[str, Path],
    ) -> "CertificateTrust":
        try:
            return cls(
                app_cert=Path(app_cert_path).read_text(encoding="utf-8"),
                alipay_public_cert=Path(alipay_public_cert_path).read_text(encoding="utf-8"),
                alipay_root_cert=Path(alipay_root_cert_path).read_text(encoding="utf-8"),
            )
        except OSError as e:
            raise ConfigurationError(f"读取证书文件失败: {e}") from e


TrustMaterial = Union[PlainKeyTrust, CertificateTrust]


@dataclass(frozen=True)
class ResolvedTrust:
    public_key: str
    app_cert_sn: Optional[str] = None
    alipay_root_cert_sn: Optional[str] = None

    @property
    def is_cert_mode(self) -> bool:
        return self.app_cert_sn is not None


def resolve_trust(trust: Optional[TrustMaterial]) -> ResolvedTrust:
    """
    将信任材料解析为可直接用于验签的 PEM 公钥。
    :raises ConfigurationError: 未配置信任材料，或公钥/证书无法解析。
    """
    if trust is None:
        raise ConfigurationError("未配置支付宝公钥或公钥证书，无法验证网关通知")

    if isinstance(trust, PlainKeyTrust):
        if not trust.alipay_public_key:
            raise ConfigurationError("支付宝公钥为空")
        public_key = normalize_public_key(trust.alipay_public_key)
        load_rsa_public_key(public_key)
        return ResolvedTrust(public_key=public_key)

    if isinstance(trust, CertificateTrust):
        try:
            public_key = normalize_public_key(certutil.load_public_key(trust.alipay_public_cert))
            app_cert_sn = certutil.get_sn(trust.app_cert)
            root_cert_sn = certutil.get_sn(trust.alipay_root_cert, is_root=True)
        except CertificateParseError as e:
            raise ConfigurationError(f"证书信任材料无效: {e.message}") from e
        logger.info(f"已加载证书模式信任材料，app_cert_sn={app_cert_sn}")
        return ResolvedTrust(
            public_key=public_key,
            app_cert_sn=app_cert_sn,
            alipay_root_cert_sn=root_cert_sn,
        )

    raise ConfigurationError(f"未知的信任材料类型: {type(trust).__name__}")
