"""
服务内部使用的异常类型。

客户端问题继承 ValueError（路由层映射为 400），服务端问题继承 RuntimeError
（路由层映射为 500）。认证失败不走异常，见 auth.schemas.RejectionKind。
"""

from __future__ import annotations


class ConfigurationError(RuntimeError):
    """缺少或错误的配置，属于致命错误，不重试。"""


class ProcessFailure(RuntimeError):
    """
    外部 CA 进程执行失败。
    :param exit_code: 进程退出码，超时时为 None。
    :param output: stderr（为空时回退为 stdout）。
    :param reason: "exit" 或 "timeout"。
    """

    def __init__(self, exit_code: int | None, output: str, reason: str = "exit") -> None:
        self.exit_code = exit_code
        self.output = output
        self.reason = reason
        if reason == "timeout":
            message = "CA 进程执行超时"
        else:
            message = f"CA 进程退出码 {exit_code}"
        super().__init__(message)


class CertificateAuthorityFailure(RuntimeError):
    """CA 工具在某一步骤失败，step 标明是哪一步。"""

    def __init__(self, step: str, message: str) -> None:
        self.step = step
        super().__init__(f"{step}: {message}")


class SubjectExtractionFailure(ValueError):
    """CSR 中无法解析出 CN。"""
