"""
文件功能：
    支付宝公钥证书模式下的证书工具：提取证书序列号（SN）与公钥。

公开接口：
    - load_public_key(content) -> str
      从证书内容（str 或 bytes）中提取公钥，返回不含 PEM 头尾与换行的 base64 文本。
    - load_public_key_from_path(path) -> str
    - get_sn(content, is_root=False) -> str
      计算证书 SN：md5(颁发者 DN + 十进制序列号)。根证书链会对所有 RSA 签名的证书
      分别计算后以 "_" 连接。
    - get_sn_from_path(path, is_root=False) -> str

内部方法：
    - _to_bytes(content) -> bytes
    - _load_certificate(data) -> x509.Certificate
    - _split_pem_blocks(data) -> list[bytes]
    - _principal_name(name) -> str
    - _cert_sn(cert) -> str
    - _root_cert_sn(data) -> str
"""

from __future__ import annotations

import base64
import hashlib
import re
from pathlib import Path
from typing import List, Union

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.x509.oid import SignatureAlgorithmOID
from loguru import logger

from .errors import CertificateParseError

CertContent = Union[str, bytes]

_PEM_CERT_PATTERN = re.compile(
    rb"-----BEGIN CERTIFICATE-----[\s\S]*?-----END CERTIFICATE-----"
)

# 根证书链中仅保留 RSA 签名的证书参与 SN 计算
_ROOT_SIGNATURE_ALGORITHMS = {
    SignatureAlgorithmOID.RSA_WITH_SHA1,
    SignatureAlgorithmOID.RSA_WITH_SHA256,
}


def _to_bytes(content: CertContent) -> bytes:
    if isinstance(content, str):
        return content.encode("utf-8")
    if isinstance(content, (bytes, bytearray)):
        return bytes(content)
    raise CertificateParseError(f"不支持的证书内容类型: {type(content).__name__}")


def _load_certificate(data: bytes) -> x509.Certificate:
    if not data.strip():
        raise CertificateParseError("证书内容为空")
    try:
        return x509.load_pem_x509_certificate(data)
    except ValueError as e:
        raise CertificateParseError(f"无效的 X.509 证书: {e}") from e


def _split_pem_blocks(data: bytes) -> List[bytes]:
    return _PEM_CERT_PATTERN.findall(data)


def _principal_name(name: x509.Name) -> str:
    """按 RDN 逆序拼接颁发者名称，形如 CN=...,OU=...,O=...,C=CN。"""
    parts = []
    for rdn in reversed(name.rdns):
        parts.append(
            "+".join(f"{attr.rfc4514_attribute_name}={attr.value}" for attr in rdn)
        )
    return ",".join(parts)


def _cert_sn(cert: x509.Certificate) -> str:
    principal = _principal_name(cert.issuer)
    decimal_serial = str(cert.serial_number)
    return hashlib.md5((principal + decimal_serial).encode("utf-8")).hexdigest()


def _root_cert_sn(data: bytes) -> str:
    blocks = _split_pem_blocks(data)
    if not blocks:
        raise CertificateParseError("根证书内容中没有 PEM 证书块")

    sn_list: List[str] = []
    for block in blocks:
        cert = _load_certificate(block)
        if cert.signature_algorithm_oid not in _ROOT_SIGNATURE_ALGORITHMS:
            logger.debug(
                f"跳过非 RSA 签名的根证书: {cert.signature_algorithm_oid.dotted_string}"
            )
            continue
        sn_list.append(_cert_sn(cert))

    if not sn_list:
        raise CertificateParseError("根证书链中没有可用的 RSA 签名证书")
    return "_".join(sn_list)


def load_public_key(content: CertContent) -> str:
    """
    从证书中提取 SubjectPublicKeyInfo 公钥。
    :param content: PEM 证书文本或字节。
    :return: 去掉 PEM 头尾和换行的 base64 公钥。
    :raises CertificateParseError: 内容不是合法证书。
    """
    cert = _load_certificate(_to_bytes(content))
    der = cert.public_key().public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return base64.b64encode(der).decode("ascii")


def load_public_key_from_path(path: Union[str, Path]) -> str:
    return load_public_key(Path(path).read_bytes())


def get_sn(content: CertContent, is_root: bool = False) -> str:
    """
    计算证书序列号指纹。
    :param content: PEM 证书文本或字节；根证书可为多个证书拼接。
    :param is_root: 是否按根证书链处理。
    :return: 32 位小写十六进制 md5；根证书链为多段以 "_" 连接。
    :raises CertificateParseError: 内容为空或无法解析。
    """
    data = _to_bytes(content)
    if is_root:
        return _root_cert_sn(data)
    return _cert_sn(_load_certificate(data))


def get_sn_from_path(path: Union[str, Path], is_root: bool = False) -> str:
    return get_sn(Path(path).read_bytes(), is_root)
