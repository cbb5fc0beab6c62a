"""
CA 抽象接口与基于 openssl ca 命令行的实现。

生命周期管理只依赖 CertificateAuthority，将来换成进程内的加密库实现时，
不需要改动签发流程。
"""

from __future__ import annotations

import abc
import threading
from pathlib import Path
from typing import Callable, List, Sequence

from loguru import logger

from src.providore.config import Config
from src.providore.errors import (
    CertificateAuthorityFailure,
    ConfigurationError,
    ProcessFailure,
    SubjectExtractionFailure,
)

from . import database, runner
from .runner import Argument, BinaryArgument
from .schemas import CertificateRecord


class CertificateAuthority(abc.ABC):
    @abc.abstractmethod
    def subject(self, csr: bytes) -> str:
        """返回 CSR 的 CN（只读查询）。"""

    @abc.abstractmethod
    def query(self, cn: str) -> List[CertificateRecord]:
        """返回 CN 匹配的所有记录（读取前先刷新记录库）。"""

    @abc.abstractmethod
    def revoke(self, record: CertificateRecord) -> None:
        """吊销一条记录对应的证书。"""

    @abc.abstractmethod
    def regenerate_crl(self) -> Path:
        """整体重写 CRL 文件并返回其路径。"""

    @abc.abstractmethod
    def sign(self, csr: bytes, output: Path) -> None:
        """签发 CSR 并将证书写入 output。"""


class OpenSSLCertificateAuthority(CertificateAuthority):
    def __init__(
        self,
        config_file: Path,
        password_file: Path,
        binary: str = "openssl",
        extensions: str = "usr_cert",
        digest: str = "sha256",
        timeout: float | None = runner.DEFAULT_TIMEOUT,
        database_file: Path | None = None,
        new_certs_dir: Path | None = None,
        crl_file: Path | None = None,
        run: Callable[..., str] = runner.run,
    ) -> None:
        ca_dir = config_file.parent
        self.config_file = config_file
        self.password_file = password_file
        self.binary = binary
        self.extensions = extensions
        self.digest = digest
        self.timeout = timeout
        self.database_file = database_file or ca_dir / "index.txt"
        self.new_certs_dir = new_certs_dir or ca_dir / "newcerts"
        self.crl_file = crl_file or ca_dir / "crl.pem"
        self._run = run
        self._state_lock = threading.RLock()

    @classmethod
    def from_settings(cls, settings: Config) -> "OpenSSLCertificateAuthority":
        """
        :raises ConfigurationError: 未配置 openssl 配置文件或密码文件。
        """
        if settings.openssl_config_file is None:
            raise ConfigurationError("未配置 openssl_config_file")
        if settings.openssl_password_file is None:
            raise ConfigurationError("未配置 openssl_password_file")
        return cls(
            config_file=settings.openssl_config_file,
            password_file=settings.openssl_password_file,
            binary=settings.openssl_binary,
            extensions=settings.openssl_extensions,
            digest=settings.openssl_digest,
            timeout=settings.openssl_timeout,
            database_file=settings.openssl_database_file,
            new_certs_dir=settings.openssl_new_certs_dir,
            crl_file=settings.crl_file,
        )

    def _ca_args(self, *extra: Argument) -> list[Argument]:
        # 密码只从文件读取，不出现在命令行里
        return [
            "ca",
            "-config", str(self.config_file),
            "-batch",
            "-passin", f"file:{self.password_file}",
            *extra,
        ]

    def _invoke(self, step: str, args: Sequence[Argument], exclusive: bool = True) -> str:
        try:
            if not exclusive:
                return self._run(args, binary=self.binary, timeout=self.timeout)
            # openssl ca 整体读写 index.txt / serial / crlnumber，所有 CN 共用一把锁
            with self._state_lock:
                return self._run(args, binary=self.binary, timeout=self.timeout)
        except ProcessFailure as e:
            logger.error(f"CA 步骤 {step} 失败 (reason={e.reason}, exit={e.exit_code}): {e.output}")
            raise CertificateAuthorityFailure(step, str(e)) from e

    def subject(self, csr: bytes) -> str:
        output = self._invoke(
            "subject",
            [
                "req",
                "-in", BinaryArgument("request.csr.pem", csr),
                "-noout",
                "-subject",
                "-nameopt", "compat",
            ],
            exclusive=False,
        )
        cn = database.subject_common_name(output)
        if not cn:
            raise SubjectExtractionFailure(f"CSR 中没有 CN: {output.strip()}")
        return cn

    def refresh(self) -> None:
        self._invoke(
            "updatedb",
            [
                "ca",
                "-config", str(self.config_file),
                "-updatedb",
                "-passin", f"file:{self.password_file}",
            ],
        )

    def query(self, cn: str) -> List[CertificateRecord]:
        # 刷新与读取之间不允许其他 CN 的写入
        with self._state_lock:
            return database.certificates_for(cn, self.database_file, self.refresh)

    def revoke(self, record: CertificateRecord) -> None:
        certificate = self.new_certs_dir / f"{record.serial}.pem"
        logger.info(f"吊销证书 serial={record.serial} subject={record.subject}")
        self._invoke("revoke", self._ca_args("-revoke", str(certificate)))

    def regenerate_crl(self) -> Path:
        self._invoke("gencrl", self._ca_args("-gencrl", "-out", str(self.crl_file)))
        logger.info(f"CRL 已更新: {self.crl_file}")
        return self.crl_file

    def sign(self, csr: bytes, output: Path) -> None:
        self._invoke(
            "sign",
            self._ca_args(
                "-extensions", self.extensions,
                "-md", self.digest,
                "-notext",
                "-in", BinaryArgument("request.csr.pem", csr),
                "-out", str(output),
            ),
        )
