"""
设备目录：启动时从 devices.json 加载一次，进程生命周期内只读。
"""

from __future__ import annotations

import json
from pathlib import Path
from types import MappingProxyType
from typing import Any, Iterator, Mapping

from loguru import logger
from pydantic import ValidationError

from src.providore.devices.schemas import Device
from src.providore.errors import ConfigurationError


class DeviceDirectory:
    def __init__(self, devices: Mapping[str, Device]) -> None:
        self._devices = MappingProxyType(dict(devices))

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "DeviceDirectory":
        """从 {"<id>": {"secretKey": ..., "firmware": [...]}} 结构构建目录。"""
        devices = {}
        for device_id, entry in data.items():
            devices[device_id] = Device.model_validate({**entry, "id": device_id})
        return cls(devices)

    def get(self, device_id: str) -> Device | None:
        return self._devices.get(device_id)

    def __contains__(self, device_id: object) -> bool:
        return device_id in self._devices

    def __iter__(self) -> Iterator[str]:
        return iter(self._devices)

    def __len__(self) -> int:
        return len(self._devices)


def load_devices(path: Path) -> DeviceDirectory:
    """
    读取 devices.json。
    :raises ConfigurationError: 文件不存在或格式不正确。
    """
    try:
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        raise ConfigurationError(f"无法读取设备文件 {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"设备文件格式错误，应为对象: {path}")

    try:
        directory = DeviceDirectory.from_mapping(data)
    except ValidationError as e:
        raise ConfigurationError(f"设备文件内容无效 {path}: {e}") from e

    logger.info(f"已加载 {len(directory)} 个设备: {path}")
    return directory
