"""
openssl ca 记录库（index.txt）的读取与解析。

每行以 TAB 分隔：状态、过期时间、吊销时间、序列号、文件名占位、subject。
状态码 V/R/E 分别映射为 valid/revoked/expired；未知状态码按 revoked 处理，
只有显式标记为 V 的记录才被视为有效。
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterable, List

from loguru import logger

from .schemas import CertificateRecord, CertificateStatus

_STATUS_CODES = {
    "V": CertificateStatus.VALID,
    "R": CertificateStatus.REVOKED,
    "E": CertificateStatus.EXPIRED,
}

# 未知状态码的默认映射
UNKNOWN_STATUS_DEFAULT = CertificateStatus.REVOKED


def parse_status(code: str) -> CertificateStatus:
    status = _STATUS_CODES.get(code)
    if status is None:
        logger.warning(f"未知的证书状态码 {code!r}，按 revoked 处理")
        return UNKNOWN_STATUS_DEFAULT
    return status


def parse_time(value: str) -> datetime | None:
    """解析 YYMMDDHHMMSSZ（UTCTime）或 YYYYMMDDHHMMSSZ（GeneralizedTime）。"""
    text = value.strip()
    if not text:
        return None
    fmt = "%y%m%d%H%M%SZ" if len(text) == 13 else "%Y%m%d%H%M%SZ"
    try:
        return datetime.strptime(text, fmt).replace(tzinfo=timezone.utc)
    except ValueError:
        logger.warning(f"无法解析的时间字段: {text!r}")
        return None


def parse_line(line: str) -> CertificateRecord | None:
    """解析一行记录；状态列为空或列数不足时返回 None。"""
    columns = line.rstrip("\r\n").split("\t")
    if len(columns) < 6 or not columns[0].strip():
        return None

    status_code, expiration, revocation, serial, filename = (c.strip() for c in columns[:5])
    # subject 中理论上不会出现 TAB，防御性地拼回去
    subject = "\t".join(columns[5:]).strip()

    reason = None
    if "," in revocation:
        revocation, reason = revocation.split(",", 1)

    return CertificateRecord(
        status=parse_status(status_code),
        expiration=parse_time(expiration),
        revocation=parse_time(revocation),
        revocation_reason=reason or None,
        serial=serial,
        filename=filename or "unknown",
        subject=subject,
    )


def parse_database(text: str) -> List[CertificateRecord]:
    records = []
    for line in text.splitlines():
        record = parse_line(line)
        if record is not None:
            records.append(record)
    return records


def subject_common_name(subject: str) -> str | None:
    """
    从 subject 中取出 CN。
    支持 /C=US/O=Org/CN=abc 与 CN = abc, O = Org 两种输出形式，可带 "subject=" 前缀。
    """
    text = subject.strip()
    if text.lower().startswith("subject="):
        text = text[len("subject="):].strip()

    if text.startswith("/"):
        components = text.split("/")
    else:
        components = re.split(r"\s*,\s*", text)

    for component in components:
        key, sep, value = component.partition("=")
        if sep and key.strip() == "CN":
            value = value.strip()
            return value or None
    return None


def filter_by_common_name(records: Iterable[CertificateRecord], cn: str) -> List[CertificateRecord]:
    return [r for r in records if subject_common_name(r.subject) == cn]


def read_database(path: Path) -> List[CertificateRecord]:
    if not path.exists():
        # 新建的 CA 可能还没有任何记录
        return []
    return parse_database(path.read_text(encoding="utf-8"))


def certificates_for(cn: str, database_file: Path, refresh: Callable[[], None]) -> List[CertificateRecord]:
    """
    返回 CN 完全匹配的所有记录。
    读取前先执行 refresh（openssl ca -updatedb），否则过期状态不会被更新。
    """
    refresh()
    records = filter_by_common_name(read_database(database_file), cn)
    logger.debug(f"CN={cn} 共有 {len(records)} 条证书记录")
    return records
