"""
配置加载模块：支持 .env、环境变量、工作目录 config.json（或 CONFIG_FILE 指定）多来源合并。
公开接口：
- Config: 读取配置的设置类
- config: Config 的单例实例
内部方法：
- Config.settings_customise_sources: 自定义配置来源顺序
- Config.parse_strategies: 将字符串/JSON 解析为 List[str]
- Config.notify_url: 推导异步通知地址
"""

from __future__ import annotations

import json
import os
import re
from pathlib import Path
from typing import Any, Dict, List, Tuple, Union

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict, PydanticBaseSettingsSource


class Config(BaseSettings):
    # 应用身份与密钥
    alipay_app_id: str = ""
    alipay_private_key: str = ""
    alipay_private_key_type: str = "PKCS1"
    alipay_sign_type: str = "RSA2"

    # 公钥模式
    alipay_public_key: str = ""

    # 公钥证书模式：内容与路径二选一，内容优先
    alipay_app_cert: str = ""
    alipay_app_cert_path: str = ""
    alipay_public_cert: str = ""
    alipay_public_cert_path: str = ""
    alipay_root_cert: str = ""
    alipay_root_cert_path: str = ""

    # 网关
    alipay_use_sandbox: bool = False
    alipay_endpoint: str = ""
    alipay_timeout_seconds: float = 15.0
    alipay_check_response_sign: bool = False
    # 形如 "openapi_v3,gateway" 或 JSON 数组
    alipay_precreate_strategies: Union[List[str], str] = ["openapi_v3", "gateway"]

    # 通知地址：显式配置优先，否则由 public_base_url 推导
    alipay_notify_url: str = ""
    public_base_url: str = ""

    # 未配置密钥时使用模拟网关（需显式开启）
    alipay_mock_mode: bool = False

    # pydantic v2 风格配置（等价于旧版的 class Config）
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("alipay_precreate_strategies", mode="before")
    @classmethod
    def parse_strategies(cls, value: Any) -> List[str]:
        """支持从环境变量以 JSON 或分隔符（逗号/分号/空白）解析调用方式列表。"""
        if value is None or value == "":
            return []
        if isinstance(value, list):
            return [str(v) for v in value]
        if isinstance(value, str):
            text = value.strip()
            # 优先尝试 JSON
            try:
                loaded = json.loads(text)
                if isinstance(loaded, list):
                    return [str(v) for v in loaded]
            except ValueError:
                pass
            # 回退为分隔符拆分（, ; 空白）
            return [p for p in re.split(r"[\s,;]+", text) if p]
        return value

    @property
    def notify_url(self) -> str | None:
        if self.alipay_notify_url:
            return self.alipay_notify_url
        if self.public_base_url:
            return f"{self.public_base_url.rstrip('/')}/v1/alipay/notify"
        return None

    @property
    def has_key_material(self) -> bool:
        has_trust = bool(
            self.alipay_public_key
            or self.alipay_public_cert
            or self.alipay_public_cert_path
        )
        return bool(self.alipay_app_id and self.alipay_private_key and has_trust)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        """自定义配置来源顺序：入参 > 环境变量 > .env > config.json > secrets。"""

        class JsonFileSettingsSource(PydanticBaseSettingsSource):
            """从工作目录的 config.json（或 CONFIG_FILE 指定路径）加载配置的自定义 Source。"""

            def __init__(self, settings_cls):
                super().__init__(settings_cls)
                self._data: Dict[str, Any] | None = None

            def _load(self) -> None:
                if self._data is not None:
                    return
                cfg_path = os.environ.get("CONFIG_FILE")
                path = Path(cfg_path) if cfg_path else Path.cwd() / "config.json"
                if not path.exists():
                    self._data = {}
                    return
                try:
                    with path.open("r", encoding="utf-8") as f:
                        data = json.load(f)
                    self._data = data if isinstance(data, dict) else {}
                except (OSError, ValueError):
                    self._data = {}

            def __call__(self) -> Dict[str, Any]:
                self._load()
                return dict(self._data or {})

            def get_field_value(self, field, field_name):  # type: ignore[override]
                """为满足抽象基类要求，按键名/别名返回字段值。"""
                self._load()
                data = self._data or {}
                key_alias = getattr(field, "alias", None) or field_name
                if key_alias in data:
                    return data[key_alias], key_alias, True
                if field_name in data:
                    return data[field_name], field_name, True
                return None, field_name, False

        return (
            init_settings,
            env_settings,
            dotenv_settings,
            JsonFileSettingsSource(settings_cls),
            file_secret_settings,
        )


config = Config()
