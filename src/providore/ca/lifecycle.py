"""
证书生命周期管理：CSR -> 取 CN -> 吊销该 CN 现有的有效证书 -> 重建 CRL -> 签发新证书。

同一 CN 在任何时刻最多只有一张有效证书：吊销必须在签发之前完成，
且整个流程按 CN 加锁，避免同一设备的并发请求交错执行。
不同 CN 之间对 CA 文件的写入由 OpenSSLCertificateAuthority 内部的共享锁串行化。
"""

from __future__ import annotations

from pathlib import Path

from loguru import logger

from src.providore.errors import CertificateAuthorityFailure

from .authority import CertificateAuthority
from .locks import KeyedLock


class CertificateLifecycleManager:
    def __init__(self, authority: CertificateAuthority, locks: KeyedLock | None = None) -> None:
        self.authority = authority
        self.locks = locks or KeyedLock()

    def issue(self, csr: bytes, device_id: str, certificate_store: Path) -> str:
        """
        为设备签发新证书并返回 PEM 文本。
        :param csr: PEM 格式的 CSR。
        :param device_id: 已认证的设备 ID，仅用于决定输出文件名。
        :param certificate_store: 证书输出目录。
        :raises SubjectExtractionFailure: CSR 中没有 CN。
        :raises CertificateAuthorityFailure: CA 工具任一步骤失败。
        """
        # CN 以 CSR 为准，不使用设备自报的 ID
        cn = self.authority.subject(csr)

        with self.locks.hold(cn):
            revoked = self._revoke_existing(cn)

            output = certificate_store / f"{device_id}.cert.pem"
            try:
                certificate_store.mkdir(parents=True, exist_ok=True)
                self.authority.sign(csr, output)
            except CertificateAuthorityFailure:
                if revoked:
                    logger.error(
                        f"CN={cn} 的旧证书已吊销 ({', '.join(revoked)})，但新证书签发失败，需要人工处理"
                    )
                raise

            logger.info(f"已为设备 {device_id} (CN={cn}) 签发证书: {output}")
            return output.read_text(encoding="utf-8")

    def _revoke_existing(self, cn: str) -> list[str]:
        revoked: list[str] = []
        for record in self.authority.query(cn):
            if not record.is_valid:
                continue
            try:
                self.authority.revoke(record)
                revoked.append(record.serial)
                # 每次吊销后都重建 CRL
                self.authority.regenerate_crl()
            except CertificateAuthorityFailure:
                if revoked:
                    logger.error(f"CN={cn} 吊销过程中断，已吊销: {', '.join(revoked)}")
                raise
        return revoked
