"""
配置加载模块：支持 .env、环境变量、config.json 多来源合并。
公开接口：
- Config: 读取配置的设置类
- config: Config 的单例实例
内部方法：
- Config.settings_customise_sources: 自定义配置来源顺序
- Config.parse_paths: 将字符串/JSON 解析为 List[str]
- Config.resolve_store_paths: 相对路径按 config_store 解析
"""

from __future__ import annotations

import json
import os
import re
from pathlib import Path
from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict, PydanticBaseSettingsSource

from src.providore.errors import ConfigurationError


def _config_file_candidates() -> List[Path]:
    """config.json 的查找顺序：CONFIG_FILE > /etc/providore > ~/.providore > 工作目录。"""
    candidates: List[Path] = []
    cfg_path = os.environ.get("CONFIG_FILE")
    if cfg_path:
        candidates.append(Path(cfg_path))
    candidates.append(Path("/etc/providore/config.json"))
    candidates.append(Path.home() / ".providore" / "config.json")
    candidates.append(Path.cwd() / "config.json")
    return candidates


class Config(BaseSettings):
    protocol: Literal["http", "https"] = "http"
    bind: str = "0.0.0.0"
    port: int = 3000
    ssl_cert_path: Optional[Path] = None
    ssl_key_path: Optional[Path] = None
    ca_cert_path: Optional[Path] = None

    # 存放 devices.json 与设备配置文件的目录
    config_store: Path = Path.cwd()
    firmware_store: Optional[Path] = None
    certificate_store: Optional[Path] = None

    openssl_binary: str = "openssl"
    openssl_config_file: Optional[Path] = None
    openssl_password_file: Optional[Path] = None
    openssl_extensions: str = "usr_cert"
    openssl_digest: str = "sha256"
    openssl_timeout: float = 30.0
    openssl_database_file: Optional[Path] = None
    openssl_new_certs_dir: Optional[Path] = None
    crl_file: Optional[Path] = None

    # 环境变量中的列表由 parse_paths 自行解析
    public_paths: Annotated[List[str], NoDecode] = ["/crl.pem"]
    version_required_paths: Annotated[List[str], NoDecode] = []

    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="PROVIDORE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("public_paths", "version_required_paths", mode="before")
    @classmethod
    def parse_paths(cls, value: Any) -> List[str]:
        """支持从环境变量以 JSON 或分隔符（逗号/分号/空白）解析路径列表。"""
        if value is None or value == "":
            return []
        if isinstance(value, list):
            return [str(v) for v in value]
        if isinstance(value, str):
            text = value.strip()
            try:
                loaded = json.loads(text)
                if isinstance(loaded, list):
                    return [str(v) for v in loaded]
            except ValueError:
                pass
            return [p for p in re.split(r"[\s,;]+", text) if p]
        return value

    @model_validator(mode="after")
    def resolve_store_paths(self) -> "Config":
        """相对路径一律按 config_store 解析，与设备配置放在一起。"""
        base = self.config_store
        for name in (
            "ssl_cert_path",
            "ssl_key_path",
            "ca_cert_path",
            "firmware_store",
            "certificate_store",
            "openssl_config_file",
            "openssl_password_file",
            "openssl_database_file",
            "openssl_new_certs_dir",
            "crl_file",
        ):
            value = getattr(self, name)
            if value is not None and not value.is_absolute():
                setattr(self, name, base / value)
        return self

    @property
    def openssl_dir(self) -> Path | None:
        if self.openssl_config_file is None:
            return None
        return self.openssl_config_file.parent

    @property
    def resolved_crl_file(self) -> Path | None:
        if self.crl_file is not None:
            return self.crl_file
        directory = self.openssl_dir
        return directory / "crl.pem" if directory is not None else None

    def check_tls(self) -> None:
        if self.protocol == "https" and (self.ssl_cert_path is None or self.ssl_key_path is None):
            raise ConfigurationError("启用 https 时必须配置 ssl_cert_path 与 ssl_key_path")

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
            """按查找顺序加载第一个存在的 config.json。"""

            def __init__(self, settings_cls):
                super().__init__(settings_cls)
                self._data: Dict[str, Any] | None = None

            def _load(self) -> None:
                if self._data is not None:
                    return
                self._data = {}
                for path in _config_file_candidates():
                    if not path.exists():
                        continue
                    try:
                        with path.open("r", encoding="utf-8") as f:
                            data = json.load(f)
                    except (OSError, ValueError) as e:
                        raise ConfigurationError(f"无法读取配置文件 {path}: {e}") from e
                    if isinstance(data, dict):
                        # 未显式指定 config_store 时，以 config.json 所在目录为准
                        data.setdefault("config_store", str(path.parent))
                        self._data = data
                    return

            def __call__(self) -> Dict[str, Any]:
                self._load()
                return dict(self._data or {})

            def get_field_value(self, field, field_name):  # type: ignore[override]
                """为满足抽象基类要求，按字段名返回字段值。"""
                self._load()
                data = self._data or {}
                if field_name in data:
                    return data[field_name], field_name, False
                return None, field_name, False

        return (
            init_settings,
            env_settings,
            dotenv_settings,
            JsonFileSettingsSource(settings_cls),
            file_secret_settings,
        )


config = Config()
