"""
CA 记录库的数据模型定义。
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict


class CertificateStatus(str, Enum):
    VALID = "valid"
    REVOKED = "revoked"
    EXPIRED = "expired"


class CertificateRecord(BaseModel):
    """
    CA 数据库（index.txt）中的一行。
    revocation 仅在 status 为 revoked 时有意义。
    """

    model_config = ConfigDict(frozen=True)

    status: CertificateStatus
    expiration: datetime | None = None
    revocation: datetime | None = None
    revocation_reason: str | None = None
    serial: str
    filename: str = "unknown"
    subject: str

    @property
    def is_valid(self) -> bool:
        return self.status is CertificateStatus.VALID
