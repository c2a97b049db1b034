"""命令执行接口定义"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional, Union

from wt.core.data_structures import ExecutionResult


class ICommandExecutor(ABC):
    """命令执行器接口

    Hook 命令与提交信息生成命令都通过它执行，测试中用假实现替换。
    """

    @abstractmethod
    def run(
        self,
        command: Union[str, List[str]],
        cwd: Optional[Path] = None,
        env: Optional[Dict[str, str]] = None,
        stdin: Optional[str] = None,
        timeout: Optional[float] = None,
        shell: bool = False,
    ) -> ExecutionResult:
        """执行命令并捕获输出

        Args:
            command: shell 字符串（shell=True）或参数列表
            cwd: 工作目录
            env: 追加到当前进程环境变量之上的变量
            stdin: 写入标准输入的文本
            timeout: 超时秒数，超时时 timed_out 为 True
            shell: 是否通过 shell 执行
        """
        pass
