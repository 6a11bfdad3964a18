"""
测试共用夹具：RSA 密钥对与证书构造工具。
"""

from datetime import datetime, timedelta, timezone
from typing import Dict

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.x509.oid import NameOID


def _strip_armor(pem: str) -> str:
    return "".join(line for line in pem.splitlines() if "-----" not in line)


def _make_keypair() -> Dict[str, str]:
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()
    public_pem = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode()
    return {
        "private_pem": private_pem,
        "public_pem": public_pem,
        "private_b64": _strip_armor(private_pem),
        "public_b64": _strip_armor(public_pem),
    }


@pytest.fixture(scope="session")
def rsa_keys() -> Dict[str, str]:
    """应用私钥 / 支付宝公钥所用的一对 RSA 密钥。"""
    return _make_keypair()


@pytest.fixture(scope="session")
def other_rsa_keys() -> Dict[str, str]:
    """另一对不相关的 RSA 密钥，用于构造伪造签名。"""
    return _make_keypair()


def build_name(cn: str, org: str = "Ant Financial") -> x509.Name:
    # 顺序为 C, O, CN，逆序拼接后为 CN=...,O=...,C=CN
    return x509.Name(
        [
            x509.NameAttribute(NameOID.COUNTRY_NAME, "CN"),
            x509.NameAttribute(NameOID.ORGANIZATION_NAME, org),
            x509.NameAttribute(NameOID.COMMON_NAME, cn),
        ]
    )


def build_certificate(
    subject: x509.Name,
    issuer: x509.Name,
    public_key,
    signing_key,
    serial: int,
    algorithm=None,
) -> str:
    now = datetime.now(timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer)
        .public_key(public_key)
        .serial_number(serial)
        .not_valid_before(now - timedelta(minutes=1))
        .not_valid_after(now + timedelta(days=365))
        .sign(signing_key, algorithm if algorithm is not None else hashes.SHA256())
    )
    return cert.public_bytes(serialization.Encoding.PEM).decode()


@pytest.fixture(scope="session")
def cert_bundle(rsa_keys) -> Dict[str, object]:
    """
    构造一套证书模式的信任材料：
    - 根证书链：RSA 根 + ECDSA 根 + 另一 RSA 根
    - 支付宝公钥证书：由第一个 RSA 根签发，公钥为 rsa_keys 的公钥
    - 应用公钥证书：由第一个 RSA 根签发
    """
    root_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    root_name = build_name("Ant Financial Certification Authority R1")
    root_pem = build_certificate(root_name, root_name, root_key.public_key(), root_key, 1001)

    ec_root_key = ec.generate_private_key(ec.SECP256R1())
    ec_root_name = build_name("Ant Financial Certification Authority E1")
    ec_root_pem = build_certificate(
        ec_root_name, ec_root_name, ec_root_key.public_key(), ec_root_key, 2002
    )

    root2_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    root2_name = build_name("Ant Financial Certification Authority R2")
    root2_pem = build_certificate(root2_name, root2_name, root2_key.public_key(), root2_key, 3003)

    alipay_public_key = serialization.load_pem_public_key(rsa_keys["public_pem"].encode())
    alipay_cert_serial = 0x7513DAAAA48AA3BA2E4018D84402479C
    alipay_public_cert = build_certificate(
        build_name("支付宝(杭州)信息技术有限公司", org="Ant Financial"),
        root_name,
        alipay_public_key,
        root_key,
        alipay_cert_serial,
    )

    app_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    app_cert_serial = 0x866EFEF280DEC9137A87D047AC446315
    app_cert = build_certificate(
        build_name("2021001161683774", org="Demo Merchant"),
        root_name,
        app_key.public_key(),
        root_key,
        app_cert_serial,
    )

    return {
        "root_bundle": "\n".join([root_pem, ec_root_pem, root2_pem]),
        "root_pem": root_pem,
        "ec_root_pem": ec_root_pem,
        "alipay_public_cert": alipay_public_cert,
        "app_cert": app_cert,
        "issuer_principal": "CN=Ant Financial Certification Authority R1,O=Ant Financial,C=CN",
        "root2_principal": "CN=Ant Financial Certification Authority R2,O=Ant Financial,C=CN",
        "alipay_cert_serial": alipay_cert_serial,
        "app_cert_serial": app_cert_serial,
        "root_serials": [1001, 3003],
    }


@pytest.fixture
def sign_notification():
    """返回按网关规则为通知参数签名的函数，结果带 sign/sign_type。"""
    from src.server.alipay import signing

    def _sign(params: Dict[str, str], private_pem: str, sign_type: str = "RSA2") -> Dict[str, str]:
        signature = signing.sign(params, private_pem, sign_type)
        return {**params, "sign": signature, "sign_type": sign_type}

    return _sign
