"""
HMAC-SHA256 签名与响应签名。

请求认证与响应签名共用 sign()，保证设备端能按同样的规则重新计算签名。
"""

from __future__ import annotations

import base64
import hashlib
import hmac
from datetime import timedelta

from starlette.responses import Response

from src.providore.clock import Clock, format_timestamp

# 响应签名有效期，设计常量
RESPONSE_VALIDITY = timedelta(minutes=15)


def _to_bytes(value: bytes | str) -> bytes:
    return value.encode("utf-8") if isinstance(value, str) else value


def sign(message: bytes | str, secret: bytes | str) -> str:
    """
    计算 HMAC-SHA256 并返回 Base64 编码的摘要。
    :param message: 待签名的规范消息。
    :param secret: 设备共享密钥。
    """
    digest = hmac.new(_to_bytes(secret), _to_bytes(message), hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def verify(message: bytes | str, secret: bytes | str, signature: str) -> bool:
    """常量时间比较签名。"""
    expected = sign(message, secret)
    return hmac.compare_digest(expected.encode("ascii"), signature.encode("utf-8"))


def canonical_message(
    method: str,
    path: str,
    created_at: str,
    expiry: str,
    version: str | None = None,
) -> bytes:
    """
    构造请求的规范消息：method(小写) \\n path [\\n version] \\n created-at \\n expiry。
    字段顺序与大小写是与设备端的线上约定，不可调整。
    """
    fields = [method.lower(), path]
    if version is not None:
        fields.append(version)
    fields.extend([created_at, expiry])
    return "\n".join(fields).encode("utf-8")


def payload_message(body: bytes | str, created_at: str, expiry: str) -> bytes:
    """响应签名消息：body \\n created-at \\n expiry。"""
    return _to_bytes(body) + b"\n" + created_at.encode("utf-8") + b"\n" + expiry.encode("utf-8")


def attach_signature(response: Response, body: bytes | str, secret: str, clock: Clock) -> None:
    """
    为响应设置 created-at / expiry / signature 三个头。
    必须在 body 完整生成之后、发送之前调用。
    """
    created = clock.now()
    created_at = format_timestamp(created)
    expiry = format_timestamp(created + RESPONSE_VALIDITY)

    response.headers["created-at"] = created_at
    response.headers["expiry"] = expiry
    response.headers["signature"] = sign(payload_message(body, created_at, expiry), secret)
