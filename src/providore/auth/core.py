"""
HMAC 请求认证的核心逻辑。
包括解析 Authorization 头、重建规范消息、校验有效期与签名。

认证失败不抛异常，而是返回 Rejection，由中间件决定返回状态码还是交给后续路由。
"""

from __future__ import annotations

import re
from typing import Mapping, Protocol

from loguru import logger

from src.providore.auth import signing
from src.providore.auth.schemas import (
    AuthenticatedDevice,
    AuthorizationResult,
    MalformedAuthorization,
    ParsedAuthorization,
    Rejection,
    RejectionKind,
)
from src.providore.clock import Clock, parse_timestamp
from src.providore.devices.schemas import Device

SCHEME = "Hmac"
CREATED_AT_HEADER = "created-at"
EXPIRY_HEADER = "expiry"
VERSION_HEADER = "x-firmware-version"

_PARAM_RE = re.compile(r'^\s*([A-Za-z0-9-]+)\s*=\s*(?:"([^"]*)"|([^",\s]*))\s*$')


class DeviceLookup(Protocol):
    def get(self, device_id: str) -> Device | None: ...


def parse_authorization(header: str) -> AuthorizationResult:
    """
    解析 `Hmac key-id="<id>", signature="<base64>"`。
    :param header: Authorization 头的完整值。
    :return: ParsedAuthorization 或 MalformedAuthorization。
    """
    scheme, _, params = header.strip().partition(" ")
    if scheme != SCHEME:
        return MalformedAuthorization(
            kind=RejectionKind.UNSUPPORTED_SCHEME,
            reason=f"不支持的认证方式: {scheme}",
        )

    values: dict[str, str] = {}
    for part in params.split(","):
        match = _PARAM_RE.match(part)
        if not match:
            return MalformedAuthorization(
                kind=RejectionKind.MALFORMED_AUTHORIZATION,
                reason="Authorization 参数格式错误",
            )
        key = match.group(1)
        value = match.group(2) if match.group(2) is not None else match.group(3)
        if key in values:
            return MalformedAuthorization(
                kind=RejectionKind.MALFORMED_AUTHORIZATION,
                reason=f"重复的参数: {key}",
            )
        values[key] = value

    key_id = values.get("key-id")
    signature = values.get("signature")
    if not key_id or not signature:
        return MalformedAuthorization(
            kind=RejectionKind.MALFORMED_AUTHORIZATION,
            reason="缺少 key-id 或 signature",
        )
    return ParsedAuthorization(key_id=key_id, signature=signature)


def _reject(kind: RejectionKind, reason: str) -> Rejection:
    return Rejection(kind=kind, reason=reason)


def authenticate(
    method: str,
    path: str,
    headers: Mapping[str, str],
    devices: DeviceLookup,
    clock: Clock,
    require_version: bool = False,
) -> AuthenticatedDevice | Rejection:
    """
    校验一次请求，按顺序检查，第一个失败项决定结果。
    :param method: HTTP 方法。
    :param path: 请求路径（不含查询串）。
    :param headers: 请求头（键名大小写不敏感或已小写）。
    :param devices: 设备目录。
    :param clock: 时间源。
    :param require_version: 当前路由是否要求 x-firmware-version。
    """
    header = headers.get("authorization")
    if not header:
        return _reject(RejectionKind.MALFORMED_REQUEST, "no authorization header")

    parsed = parse_authorization(header)
    if isinstance(parsed, MalformedAuthorization):
        return _reject(parsed.kind, parsed.reason)

    created_at = headers.get(CREATED_AT_HEADER)
    expiry = headers.get(EXPIRY_HEADER)
    version = headers.get(VERSION_HEADER)
    if not created_at or not expiry or (require_version and not version):
        return _reject(RejectionKind.MISSING_HEADERS, "缺少 created-at / expiry / 版本头")

    try:
        parse_timestamp(created_at)
        expires = parse_timestamp(expiry)
    except ValueError:
        return _reject(RejectionKind.INVALID_TIMESTAMP, "无法解析的时间戳")

    if expires < clock.now():
        return _reject(RejectionKind.EXPIRED, f"请求已过期: {expiry}")

    device = devices.get(parsed.key_id)
    if device is None:
        return _reject(RejectionKind.UNKNOWN_DEVICE, f"未知设备: {parsed.key_id}")

    message = signing.canonical_message(method, path, created_at, expiry, version)
    if not signing.verify(message, device.secret_key, parsed.signature):
        return _reject(RejectionKind.SIGNATURE_MISMATCH, f"签名不匹配: {parsed.key_id}")

    logger.debug(f"设备认证通过: {device.id}")
    return AuthenticatedDevice(device=device)
