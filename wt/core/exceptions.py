"""wt 异常体系"""

from typing import Any, Dict, List, Optional, Sequence


class WTException(Exception):
    """基础异常类"""
    def __init__(self, message: str, details: Any = None):
        self.message = message
        self.details = details
        super().__init__(self.message)


# 名称解析相关异常
class ResolutionException(WTException):
    """名称解析异常"""
    pass


class NotFound(ResolutionException):
    """没有任何候选项匹配"""

    def __init__(self, name: str, candidates: Sequence[str], message: Optional[str] = None):
        self.name = name
        self.candidates = sorted(candidates)
        listed = ", ".join(self.candidates) if self.candidates else "(无)"
        super().__init__(
            message or f"未找到分支或 worktree：{name}。可用候选：{listed}",
            details={"name": name, "candidates": self.candidates},
        )


class Ambiguous(ResolutionException):
    """模糊匹配得到多个同样好的候选项"""

    def __init__(self, name: str, matches: Sequence[str]):
        self.name = name
        self.matches = sorted(matches)
        super().__init__(
            f"名称 '{name}' 有歧义，匹配到：{', '.join(self.matches)}。请输入更完整的名称",
            details={"name": name, "matches": self.matches},
        )


# Hook 相关异常
class HookException(WTException):
    """Hook 执行异常"""
    pass


class ApprovalRequired(HookException):
    """Hook 命令缺少有效授权，且当前会话无法交互确认"""

    def __init__(self, stage: str, commands: Dict[str, str], failures: Optional[List[Dict[str, Any]]] = None):
        self.stage = stage
        self.commands = dict(commands)
        self.failures = list(failures or [])
        listed = "; ".join(f"{name}: {cmd}" for name, cmd in self.commands.items())
        message = (
            f"{stage} 阶段的命令未获授权：{listed}。"
            "请在交互终端中确认，或使用 --force 授权并执行"
        )
        details: Dict[str, Any] = {"stage": stage, "commands": self.commands}
        if self.failures:
            summary = ", ".join(f"{f['name']} (exit {f['exit_code']})" for f in self.failures)
            message += f"；已执行的命令中失败的有：{summary}"
            details["failures"] = self.failures
        super().__init__(message, details=details)


class HookFailed(HookException):
    """Hook 命令以非零状态退出"""

    def __init__(self, stage: str, failures: List[Dict[str, Any]]):
        self.stage = stage
        self.failures = failures
        summary = ", ".join(
            f"{f['name']} (exit {f['exit_code']})" for f in failures
        )
        super().__init__(
            f"{stage} 阶段命令执行失败：{summary}",
            details={"stage": stage, "failures": failures},
        )


class HookNotConfigured(HookException):
    """项目配置中没有声明该阶段"""
    pass


class UnknownHookStage(HookException):
    """未知的 Hook 阶段名"""
    pass


# 合并工作流相关异常
class WorkflowException(WTException):
    """合并工作流异常"""
    pass


class MergeConflict(WorkflowException):
    """rebase 或 merge 产生冲突，工作流暂停"""

    def __init__(self, step: str, conflicts: Sequence[str], message: Optional[str] = None):
        self.step = step
        self.conflicts = list(conflicts)
        super().__init__(
            message or f"{step} 步骤出现冲突：{', '.join(self.conflicts) or '(未知文件)'}",
            details={"step": step, "conflicts": self.conflicts},
        )


class StepOutOfOrder(WorkflowException):
    """请求的单步与暂停位置不一致"""

    def __init__(self, requested: str, paused_at: str):
        self.requested = requested
        self.paused_at = paused_at
        super().__init__(
            f"无法执行 {requested} 步骤：合并流程暂停在 {paused_at} 步骤。"
            f"请运行 'wt step {paused_at}' 或 'wt continue'",
            details={"requested": requested, "paused_at": paused_at},
        )


class MergeStateMismatch(WorkflowException):
    """已有合并状态的目标分支与请求不一致"""
    pass


class WorkflowNotFound(WorkflowException):
    """没有进行中的合并流程"""
    pass


class StateConflict(WorkflowException):
    """合并状态被其他进程并发修改"""
    pass


# Worktree 相关异常
class WorktreeException(WTException):
    """Worktree 操作异常"""
    pass


class WorktreeAlreadyExists(WorktreeException):
    """Worktree 或分支已存在"""
    pass


class WorktreeNotFound(WorktreeException):
    """Worktree 不存在"""
    pass


class DirtyWorktree(WorktreeException):
    """Worktree 有未提交的改动"""
    pass


# 配置相关异常
class ConfigException(WTException):
    """配置异常"""
    pass


class ConfigParseError(ConfigException):
    """配置解析失败"""
    pass


class ConfigIOError(ConfigException):
    """配置文件读写失败"""
    pass


class ConfigValidationError(ConfigException):
    """配置验证失败"""
    pass


# Git 操作异常
class GitException(WTException):
    """Git 操作异常"""
    pass


class GitCommandError(GitException):
    """Git 命令执行失败"""
    pass


# 提交信息生成异常
class CommitGenerationError(WTException):
    """提交信息生成命令失败"""
    pass
