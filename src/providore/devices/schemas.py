"""
设备目录的数据模型定义。
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class Firmware(BaseModel):
    """设备可用的一个固件版本。"""

    type: str
    version: str
    config: str | None = Field(default=None, description="该版本对应的配置文件（相对 config_store）")
    file: str = Field(default="firmware.bin", description="固件文件名")
    next: str | None = Field(default=None, description="应升级到的版本")


class Device(BaseModel):
    """
    服务端已知的设备。id 同时作为 HMAC 的 key-id。
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    secret_key: str = Field(alias="secretKey")
    firmware: tuple[Firmware, ...] = ()

    def firmware_for(self, version: str | None) -> Firmware | None:
        """
        根据设备上报的当前版本选择要下发的固件。
        :param version: x-firmware-version 请求头的值，可为空。
        :return: 未上报版本时返回第一项；当前版本声明了 next 时返回 next 对应项；
                 否则返回当前版本项；找不到时返回 None。
        """
        if not self.firmware:
            return None
        if version is None:
            return self.firmware[0]
        current = next((f for f in self.firmware if f.version == version), None)
        if current is None:
            return None
        if current.next is None:
            return current
        return next((f for f in self.firmware if f.version == current.next), None)
