"""
调用外部 CA 工具（openssl）的进程封装。

二进制参数（如 CSR）不能直接放进命令行，先写入本次调用独享的临时目录，
再把文件路径替换进参数列表；临时目录在任何退出路径上都会被删除。
"""

from __future__ import annotations

import os
import subprocess
import tempfile
from dataclasses import dataclass
from typing import Sequence, Union

from loguru import logger

from src.providore.errors import ProcessFailure

DEFAULT_TIMEOUT = 30.0


@dataclass(frozen=True)
class BinaryArgument:
    """需要落盘后以文件路径传给进程的参数。name 仅作为文件名使用。"""

    name: str
    data: bytes


Argument = Union[str, BinaryArgument]


def _materialize(args: Sequence[Argument], tmpdir: str) -> list[str]:
    resolved: list[str] = []
    for index, arg in enumerate(args):
        if isinstance(arg, BinaryArgument):
            # 同一次调用内可能有多个同名参数，加序号保证唯一
            path = os.path.join(tmpdir, f"{index}-{os.path.basename(arg.name)}")
            with open(path, "wb") as f:
                f.write(arg.data)
            resolved.append(path)
        else:
            resolved.append(arg)
    return resolved


def run(
    args: Sequence[Argument],
    binary: str = "openssl",
    timeout: float | None = DEFAULT_TIMEOUT,
) -> str:
    """
    执行 CA 工具并返回 stdout。
    :param args: 参数列表，可混合字符串与 BinaryArgument。
    :param binary: 可执行文件路径或名称。
    :param timeout: 超时秒数，None 表示不限制。
    :return: 进程结束后的 stdout 文本。
    :raises ProcessFailure: 退出码非 0 或超时。
    """
    with tempfile.TemporaryDirectory(prefix="providore-") as tmpdir:
        cmd = [binary, *_materialize(args, tmpdir)]
        logger.debug(f"Executing command: {' '.join(cmd)}")

        try:
            # subprocess.run 在进程结束后才返回输出
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired as e:
            output = e.stderr or e.stdout or ""
            if isinstance(output, bytes):
                output = output.decode("utf-8", errors="replace")
            logger.error(f"CA 进程超时 ({timeout}s): {' '.join(cmd)}")
            raise ProcessFailure(None, output, reason="timeout") from e
        except OSError as e:
            logger.error(f"无法启动 CA 进程 {binary}: {e}")
            raise ProcessFailure(None, str(e)) from e

    if result.returncode != 0:
        output = result.stderr or result.stdout
        logger.error(f"CA 进程退出码 {result.returncode}: {output}")
        raise ProcessFailure(result.returncode, output)

    return result.stdout
