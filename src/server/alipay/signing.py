"""
文件功能：
    请求参数规范化、RSA 签名与验签。

公开接口：
    - get_sign_content(params) -> str
      去掉 None 与空字符串的参数，按 key 升序以 key=value 用 & 拼接（不做 URL 编码）。
    - normalize_private_key(key, key_type="PKCS1") -> str
    - normalize_public_key(key) -> str
      没有 BEGIN 标记的裸 base64 密钥会被包装成 64 列的 PEM。
    - sign_content(content, private_key, sign_type) -> str
    - verify_content(content, signature, public_key, sign_type) -> bool
    - sign(params, private_key, sign_type="RSA2", key_type="PKCS1") -> str
    - verify(params, public_key, default_sign_type="RSA2") -> bool
      从参数中取出 sign/sign_type，对其余参数验签；伪造或格式错误的签名返回 False。
    - load_rsa_private_key(pem) / load_rsa_public_key(pem)

内部方法：
    - _wrap_pem(body, label) -> str
    - _hash_for(sign_type)
"""

from __future__ import annotations

import base64
import binascii
from typing import Any, Dict, Mapping

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from loguru import logger

from .errors import ConfigurationError

SIGN_TYPE_RSA = "RSA"
SIGN_TYPE_RSA2 = "RSA2"

SIGN_ALGORITHMS: Dict[str, type] = {
    SIGN_TYPE_RSA: hashes.SHA1,
    SIGN_TYPE_RSA2: hashes.SHA256,
}

PRIVATE_KEY_LABELS = {
    "PKCS1": "RSA PRIVATE KEY",
    "PKCS8": "PRIVATE KEY",
}


def get_sign_content(params: Mapping[str, Any]) -> str:
    """生成待签名字符串，结果与参数插入顺序无关。"""
    pairs = [
        (key, str(value))
        for key, value in params.items()
        if value is not None and value != ""
    ]
    pairs.sort(key=lambda item: item[0])
    return "&".join(f"{key}={value}" for key, value in pairs)


def _wrap_pem(body: str, label: str) -> str:
    compact = "".join(body.split())
    lines = [compact[i : i + 64] for i in range(0, len(compact), 64)]
    return "\n".join([f"-----BEGIN {label}-----", *lines, f"-----END {label}-----"])


def normalize_private_key(key: str, key_type: str = "PKCS1") -> str:
    if "BEGIN" in key:
        return key
    label = PRIVATE_KEY_LABELS.get(key_type.upper())
    if label is None:
        raise ConfigurationError(f"不支持的私钥类型: {key_type}")
    return _wrap_pem(key, label)


def normalize_public_key(key: str) -> str:
    if "BEGIN" in key:
        return key
    return _wrap_pem(key, "PUBLIC KEY")


def _hash_for(sign_type: str) -> hashes.HashAlgorithm:
    algorithm = SIGN_ALGORITHMS.get(sign_type)
    if algorithm is None:
        raise ValueError(f"不支持的签名类型: {sign_type}")
    return algorithm()


def load_rsa_private_key(pem: str) -> rsa.RSAPrivateKey:
    try:
        key = serialization.load_pem_private_key(pem.encode("utf-8"), password=None)
    except (ValueError, TypeError) as e:
        raise ConfigurationError(f"无法解析应用私钥: {e}") from e
    if not isinstance(key, rsa.RSAPrivateKey):
        raise ConfigurationError("应用私钥不是 RSA 密钥")
    return key


def load_rsa_public_key(pem: str) -> rsa.RSAPublicKey:
    try:
        key = serialization.load_pem_public_key(pem.encode("utf-8"))
    except (ValueError, TypeError) as e:
        raise ConfigurationError(f"无法解析支付宝公钥: {e}") from e
    if not isinstance(key, rsa.RSAPublicKey):
        raise ConfigurationError("支付宝公钥不是 RSA 密钥")
    return key


def sign_content(content: str, private_key: str, sign_type: str = SIGN_TYPE_RSA2) -> str:
    """
    对字符串签名。
    :param private_key: PEM 私钥（已规范化）。
    :return: base64 编码的签名。
    """
    key = load_rsa_private_key(private_key)
    signature = key.sign(content.encode("utf-8"), padding.PKCS1v15(), _hash_for(sign_type))
    return base64.b64encode(signature).decode("ascii")


def verify_content(
    content: str, signature: str, public_key: str, sign_type: str = SIGN_TYPE_RSA2
) -> bool:
    """
    验证字符串签名。签名不匹配、格式错误或签名类型未知时返回 False；
    公钥本身缺失或无法解析属于配置错误，抛出 ConfigurationError。
    """
    if not public_key:
        raise ConfigurationError("未配置用于验签的支付宝公钥")
    key = load_rsa_public_key(public_key)
    if not signature or sign_type not in SIGN_ALGORITHMS:
        return False
    try:
        raw_signature = base64.b64decode(signature, validate=True)
    except (binascii.Error, ValueError):
        return False
    try:
        key.verify(raw_signature, content.encode("utf-8"), padding.PKCS1v15(), _hash_for(sign_type))
        return True
    except InvalidSignature:
        return False


def sign(
    params: Mapping[str, Any],
    private_key: str,
    sign_type: str = SIGN_TYPE_RSA2,
    key_type: str = "PKCS1",
) -> str:
    content = get_sign_content(params)
    return sign_content(content, normalize_private_key(private_key, key_type), sign_type)


def verify(
    params: Mapping[str, Any],
    public_key: str,
    default_sign_type: str = SIGN_TYPE_RSA2,
) -> bool:
    """
    验证一组带签名的参数（如异步通知）。
    sign 与 sign_type 不参与待签名字符串；签名算法以参数声明的 sign_type 为准，
    缺失时才使用 default_sign_type。
    """
    remaining = dict(params)
    signature = remaining.pop("sign", None)
    declared = remaining.pop("sign_type", None) or default_sign_type
    if not public_key:
        raise ConfigurationError("未配置用于验签的支付宝公钥")
    if not signature:
        logger.warning("待验签参数中缺少 sign 字段")
        return False
    if declared not in SIGN_ALGORITHMS:
        logger.warning(f"未知的签名类型: {declared}")
        return False
    content = get_sign_content(remaining)
    return verify_content(content, signature, normalize_public_key(public_key), declared)
