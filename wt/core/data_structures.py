"""wt 核心数据结构定义

定义名称解析、Hook 执行与合并工作流使用的业务对象。"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple


class ResolutionMode(Enum):
    """名称解析模式

    STRICT: 必须与已有分支/worktree 完全一致（创建类操作）
    FUZZY: 先精确匹配，未命中时尝试近似匹配（选择类操作）
    """
    STRICT = "strict"
    FUZZY = "fuzzy"


class MatchKind(Enum):
    """匹配类型"""
    EXACT = "exact"
    FUZZY = "fuzzy"


@dataclass(frozen=True)
class ResolvedWorktree:
    """名称解析结果，只由 NameResolver 产生"""
    branch: str
    path: Optional[Path]
    match_kind: MatchKind
    score: float = 1.0

    @property
    def has_worktree(self) -> bool:
        """分支是否已有 worktree"""
        return self.path is not None

    @property
    def is_fuzzy(self) -> bool:
        return self.match_kind == MatchKind.FUZZY


class HookStageName:
    """已知的生命周期阶段"""
    POST_CREATE = "post-create"
    POST_START = "post-start"
    PRE_MERGE = "pre-merge"
    POST_MERGE = "post-merge"

    ALL = (POST_CREATE, POST_START, PRE_MERGE, POST_MERGE)


@dataclass(frozen=True)
class HookCommand:
    """单条 Hook 命令"""
    name: str
    command: str


@dataclass(frozen=True)
class HookStage:
    """生命周期阶段及其按声明顺序排列的命令"""
    name: str
    commands: Tuple[HookCommand, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.commands

    def command_names(self) -> List[str]:
        return [c.name for c in self.commands]


@dataclass(frozen=True)
class HookContext:
    """Hook 执行上下文，会以环境变量形式暴露给命令"""
    branch: str
    worktree_path: Path
    repo_root: Path
    project: str
    target_branch: Optional[str] = None

    def to_env(self, stage: str) -> Dict[str, str]:
        env = {
            "WT_BRANCH": self.branch,
            "WT_WORKTREE_PATH": str(self.worktree_path),
            "WT_STAGE": stage,
            "WT_REPO_ROOT": str(self.repo_root),
            "WT_PROJECT": self.project,
        }
        if self.target_branch:
            env["WT_TARGET_BRANCH"] = self.target_branch
        return env


class FailurePolicy(Enum):
    """阶段内命令失败时的处理策略"""
    STOP_ON_FIRST_FAILURE = "stop-on-first-failure"
    CONTINUE = "continue"


class CommandStatus(Enum):
    """单条命令的执行结果"""
    NOT_RUN = "not-run"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


# NOT_RUN 的原因
REASON_APPROVAL_REQUIRED = "approval-required"
REASON_SKIPPED = "skipped"


@dataclass
class ExecutionResult:
    """命令执行器的返回值"""
    returncode: int
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.timed_out


@dataclass
class CommandResult:
    """阶段中单条命令的结果"""
    name: str
    command: str
    status: CommandStatus
    exit_code: Optional[int] = None
    stdout: str = ""
    stderr: str = ""
    reason: Optional[str] = None

    @property
    def blocked(self) -> bool:
        """是否因缺少授权而未执行"""
        return self.status == CommandStatus.NOT_RUN and self.reason == REASON_APPROVAL_REQUIRED

    @property
    def output(self) -> str:
        return "\n".join(part for part in (self.stdout.strip(), self.stderr.strip()) if part)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'command': self.command,
            'status': self.status.value,
            'exit_code': self.exit_code,
            'reason': self.reason,
        }


@dataclass
class StageResult:
    """整个阶段的执行结果"""
    stage: str
    results: List[CommandResult] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        """所有应执行的命令都成功时才算成功"""
        return all(r.status == CommandStatus.SUCCEEDED for r in self.results)

    @property
    def failures(self) -> List[CommandResult]:
        return [r for r in self.results if r.status == CommandStatus.FAILED]

    @property
    def blocked(self) -> List[CommandResult]:
        return [r for r in self.results if r.blocked]

    def get(self, name: str) -> Optional[CommandResult]:
        for result in self.results:
            if result.name == name:
                return result
        return None

    def raise_for_failure(self) -> None:
        """失败时抛出 ApprovalRequired（附带已执行命令的失败）或 HookFailed"""
        from wt.core.exceptions import ApprovalRequired, HookFailed

        if self.succeeded:
            return
        failures = [
            {'name': r.name, 'command': r.command, 'exit_code': r.exit_code, 'output': r.output}
            for r in self.failures
        ]
        if self.blocked:
            raise ApprovalRequired(
                self.stage, {r.name: r.command for r in self.blocked}, failures
            )
        raise HookFailed(self.stage, failures)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'stage': self.stage,
            'succeeded': self.succeeded,
            'results': [r.to_dict() for r in self.results],
        }


class MergeStep(Enum):
    """合并流水线步骤，按执行顺序排列"""
    COMMIT = "commit"
    SQUASH = "squash"
    REBASE = "rebase"
    MERGE = "merge"

    @classmethod
    def ordered(cls) -> List['MergeStep']:
        return [cls.COMMIT, cls.SQUASH, cls.REBASE, cls.MERGE]


class StepStatus(Enum):
    """步骤状态"""
    PENDING = "pending"
    DONE = "done"
    FAILED = "failed"


@dataclass
class StepRecord:
    """单个步骤的持久化记录"""
    step: MergeStep
    status: StepStatus = StepStatus.PENDING
    detail: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'step': self.step.value,
            'status': self.status.value,
            'detail': self.detail,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'StepRecord':
        return cls(
            step=MergeStep(data['step']),
            status=StepStatus(data.get('status', StepStatus.PENDING.value)),
            detail=dict(data.get('detail') or {}),
        )


def _now() -> str:
    return datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z')


@dataclass
class MergeWorkflowState:
    """一个 worktree 上进行中的合并流程"""
    worktree_path: str
    branch: str
    target: str
    steps: List[StepRecord] = field(
        default_factory=lambda: [StepRecord(step) for step in MergeStep.ordered()]
    )
    resume_data: Dict[str, Any] = field(default_factory=dict)
    revision: int = 0
    created_at: str = field(default_factory=_now)
    updated_at: str = field(default_factory=_now)

    def record(self, step: MergeStep) -> StepRecord:
        for record in self.steps:
            if record.step == step:
                return record
        raise KeyError(step)

    def pending_steps(self) -> List[MergeStep]:
        """尚未完成的步骤（含失败步骤），按顺序"""
        return [r.step for r in self.steps if r.status != StepStatus.DONE]

    @property
    def current_step(self) -> Optional[MergeStep]:
        """第一个未完成的步骤，全部完成时为 None"""
        pending = self.pending_steps()
        return pending[0] if pending else None

    @property
    def failed_step(self) -> Optional[MergeStep]:
        for record in self.steps:
            if record.status == StepStatus.FAILED:
                return record.step
        return None

    @property
    def is_done(self) -> bool:
        return self.current_step is None

    @property
    def phase(self) -> str:
        """可读的状态机位置，例如 rebase、failed:rebase、done"""
        failed = self.failed_step
        if failed is not None:
            return f"failed:{failed.value}"
        current = self.current_step
        return current.value if current else "done"

    def mark_done(self, step: MergeStep, **detail: Any) -> None:
        record = self.record(step)
        record.status = StepStatus.DONE
        record.detail = dict(detail)
        self.resume_data = {}
        self.touch()

    def mark_failed(self, step: MergeStep, resume_data: Optional[Dict[str, Any]] = None, **detail: Any) -> None:
        record = self.record(step)
        record.status = StepStatus.FAILED
        record.detail = dict(detail)
        self.resume_data = dict(resume_data or {})
        self.touch()

    def mark_pending(self, step: MergeStep) -> None:
        record = self.record(step)
        record.status = StepStatus.PENDING
        record.detail = {}
        self.touch()

    def touch(self) -> None:
        self.updated_at = _now()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'worktree_path': self.worktree_path,
            'branch': self.branch,
            'target': self.target,
            'steps': [r.to_dict() for r in self.steps],
            'resume_data': self.resume_data,
            'revision': self.revision,
            'created_at': self.created_at,
            'updated_at': self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MergeWorkflowState':
        steps = [StepRecord.from_dict(s) for s in data.get('steps', [])]
        known = {r.step for r in steps}
        # 补齐缺失的步骤并保持标准顺序
        for step in MergeStep.ordered():
            if step not in known:
                steps.append(StepRecord(step))
        order = {step: i for i, step in enumerate(MergeStep.ordered())}
        steps.sort(key=lambda r: order[r.step])
        return cls(
            worktree_path=data['worktree_path'],
            branch=data['branch'],
            target=data['target'],
            steps=steps,
            resume_data=dict(data.get('resume_data') or {}),
            revision=int(data.get('revision', 0)),
            created_at=data.get('created_at') or _now(),
            updated_at=data.get('updated_at') or _now(),
        )


@dataclass
class MergeOptions:
    """一次合并调用的选项"""
    squash: bool = True
    commit_message: Optional[str] = None
    policy: FailurePolicy = FailurePolicy.STOP_ON_FIRST_FAILURE
    remove_worktree: bool = False


@dataclass
class MergeResult:
    """合并流程执行结果"""
    state: MergeWorkflowState
    completed: bool = False
    merge_kind: Optional[str] = None
    executed_steps: List[MergeStep] = field(default_factory=list)
    pre_merge: Optional[StageResult] = None
    post_merge: Optional[StageResult] = None
    warnings: List[str] = field(default_factory=list)


@dataclass
class WorktreeInfo:
    """git worktree list 的一条记录"""
    path: Path
    branch: Optional[str]
    head: str = ""
    is_main: bool = False
    is_detached: bool = False
    merge_phase: Optional[str] = None

    @property
    def display_name(self) -> str:
        if self.is_detached or not self.branch:
            return f"{self.path.name} (detached)"
        return self.branch

    def to_dict(self) -> Dict[str, Any]:
        return {
            'path': str(self.path),
            'branch': self.branch,
            'head': self.head,
            'is_main': self.is_main,
            'is_detached': self.is_detached,
            'merge_phase': self.merge_phase,
        }


@dataclass
class CommitGenerationConfig:
    """提交信息生成命令配置"""
    command: Optional[str] = None
    args: List[str] = field(default_factory=list)
    template: Optional[str] = None
    template_file: Optional[str] = None

    @property
    def is_configured(self) -> bool:
        return bool(self.command and self.command.strip())


# 类型别名
CandidateMap = Dict[str, Optional[Path]]
