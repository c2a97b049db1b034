"""基于 subprocess 的命令执行器"""

import os
import subprocess
from pathlib import Path
from typing import Dict, List, Optional, Union

from wt.core.data_structures import ExecutionResult
from wt.core.interfaces.executor import ICommandExecutor
from wt.core.logger import get_logger


logger = get_logger("command_executor")


class SubprocessExecutor(ICommandExecutor):
    """通过 subprocess.run 执行命令，捕获 stdout/stderr"""

    def run(
        self,
        command: Union[str, List[str]],
        cwd: Optional[Path] = None,
        env: Optional[Dict[str, str]] = None,
        stdin: Optional[str] = None,
        timeout: Optional[float] = None,
        shell: bool = False,
    ) -> ExecutionResult:
        full_env = dict(os.environ)
        if env:
            full_env.update(env)

        display = command if isinstance(command, str) else " ".join(command)
        logger.debug("Running command", command=display, cwd=str(cwd) if cwd else None, shell=shell)

        try:
            result = subprocess.run(
                command,
                cwd=str(cwd) if cwd else None,
                env=full_env,
                input=stdin,
                capture_output=True,
                text=True,
                shell=shell,
                timeout=timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            logger.warning("Command timed out", command=display, timeout=timeout)
            return ExecutionResult(
                returncode=-1,
                stdout=_decode(e.stdout),
                stderr=_decode(e.stderr) or f"timed out after {timeout}s",
                timed_out=True,
            )
        except OSError as e:
            # 可执行文件不存在等情况按 shell 的约定返回 127
            logger.error("Command could not be started", command=display, error=str(e))
            return ExecutionResult(returncode=127, stderr=str(e))

        if result.returncode != 0:
            logger.info("Command exited non-zero", command=display, return_code=result.returncode)
        return ExecutionResult(
            returncode=result.returncode,
            stdout=result.stdout or "",
            stderr=result.stderr or "",
        )


def _decode(data) -> str:
    if data is None:
        return ""
    if isinstance(data, bytes):
        return data.decode("utf-8", errors="replace")
    return data
