"""
设备下发服务的业务逻辑层。
此模块只负责定位并读取文件、调用证书生命周期管理，签名与 HTTP 细节由路由层处理。
"""

from __future__ import annotations

from pathlib import Path

from cryptography import x509
from loguru import logger

from src.providore.ca.lifecycle import CertificateLifecycleManager
from src.providore.config import Config
from src.providore.devices.schemas import Device
from src.providore.errors import ConfigurationError


def _require(path: Path | None, name: str) -> Path:
    if path is None:
        raise ConfigurationError(f"未配置 {name}")
    return path


def get_device_config(settings: Config, device: Device, version: str | None) -> bytes:
    """
    读取设备配置。固件项声明了 config 时使用该文件，否则使用 <device>.json。
    :raises FileNotFoundError: 配置文件不存在。
    """
    firmware = device.firmware_for(version)
    name = firmware.config if firmware is not None and firmware.config else f"{device.id}.json"
    return (settings.config_store / name).read_bytes()


def get_firmware(settings: Config, device: Device, version: str | None) -> bytes:
    """
    读取应下发的固件：<firmware_store>/<type>/<version>/<file>。
    :raises FileNotFoundError: 没有匹配的固件项或文件不存在。
    """
    store = _require(settings.firmware_store, "firmware_store")
    firmware = device.firmware_for(version)
    if firmware is None:
        raise FileNotFoundError(f"设备 {device.id} 没有可用于版本 {version} 的固件")
    return (store / firmware.type / firmware.version / firmware.file).read_bytes()


def get_certificate(settings: Config, device: Device) -> bytes:
    store = _require(settings.certificate_store, "certificate_store")
    return (store / f"{device.id}.cert.pem").read_bytes()


def get_crl_path(settings: Config) -> Path:
    """
    :raises ConfigurationError: 未配置 openssl 配置文件或密码文件。
    """
    _require(settings.openssl_config_file, "openssl_config_file")
    _require(settings.openssl_password_file, "openssl_password_file")
    return _require(settings.resolved_crl_file, "crl_file")


def issue_certificate_service(
    settings: Config,
    lifecycle: CertificateLifecycleManager | None,
    device: Device,
    csr: bytes,
) -> str:
    """
    处理 CSR 提交。
    :raises ValueError: CSR 为空或不是 PEM 格式的 CSR。
    :raises SubjectExtractionFailure: CSR 中没有 CN。
    :raises ConfigurationError / CertificateAuthorityFailure: 服务端错误。
    """
    if not csr.strip():
        raise ValueError("CSR 为空")
    try:
        x509.load_pem_x509_csr(csr)
    except ValueError as e:
        logger.warning(f"设备 {device.id} 提交了无效的 CSR: {e}")
        raise ValueError("无效的 CSR 格式") from e

    store = _require(settings.certificate_store, "certificate_store")
    if lifecycle is None:
        raise ConfigurationError("未配置 CA（openssl_config_file / openssl_password_file）")

    return lifecycle.issue(csr, device.id, store)
