"""
文件功能：
    定义 HMAC 请求认证相关的数据模型。

公开接口：
    - RejectionKind: 认证失败类别（含 HTTP 状态码与是否硬失败）
    - ParsedAuthorization / MalformedAuthorization: Authorization 头的解析结果
    - AuthenticatedDevice / Rejection: authenticate() 的结果
"""

from __future__ import annotations

from enum import Enum
from typing import Union

from pydantic import BaseModel, ConfigDict, Field

from src.providore.devices.schemas import Device


class RejectionKind(str, Enum):
    MALFORMED_REQUEST = "MalformedRequest"
    UNSUPPORTED_SCHEME = "UnsupportedScheme"
    MALFORMED_AUTHORIZATION = "MalformedAuthorization"
    MISSING_HEADERS = "MissingHeaders"
    INVALID_TIMESTAMP = "InvalidTimestamp"
    EXPIRED = "Expired"
    UNKNOWN_DEVICE = "UnknownDevice"
    SIGNATURE_MISMATCH = "SignatureMismatch"

    @property
    def status_code(self) -> int:
        if self in (
            RejectionKind.MALFORMED_REQUEST,
            RejectionKind.UNSUPPORTED_SCHEME,
            RejectionKind.INVALID_TIMESTAMP,
        ):
            return 400
        return 401

    @property
    def is_hard(self) -> bool:
        """硬失败直接结束请求；其余交给后续路由决定。"""
        return self in (
            RejectionKind.MALFORMED_REQUEST,
            RejectionKind.UNSUPPORTED_SCHEME,
            RejectionKind.INVALID_TIMESTAMP,
            RejectionKind.EXPIRED,
        )


class ParsedAuthorization(BaseModel):
    """Authorization: Hmac key-id="...", signature="..." 的解析结果。"""

    model_config = ConfigDict(frozen=True)

    key_id: str = Field(min_length=1)
    signature: str = Field(min_length=1)


class MalformedAuthorization(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: RejectionKind
    reason: str


AuthorizationResult = Union[ParsedAuthorization, MalformedAuthorization]


class AuthenticatedDevice(BaseModel):
    model_config = ConfigDict(frozen=True)

    device: Device

    @property
    def device_id(self) -> str:
        return self.device.id


class Rejection(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: RejectionKind
    reason: str

    @property
    def status_code(self) -> int:
        return self.kind.status_code

    @property
    def is_hard(self) -> bool:
        return self.kind.is_hard
