"""Hook 执行与授权

按声明顺序逐条执行某个生命周期阶段的命令，每条命令执行前
都必须持有与当前命令文本一致的授权。
"""

from pathlib import Path
from typing import Callable, List, Optional

from wt.core.approval_store import ApprovalStore
from wt.core.data_structures import (
    REASON_APPROVAL_REQUIRED,
    REASON_SKIPPED,
    CommandResult,
    CommandStatus,
    FailurePolicy,
    HookCommand,
    HookContext,
    HookStage,
    StageResult,
)
from wt.core.exceptions import ApprovalRequired
from wt.core.interfaces.executor import ICommandExecutor
from wt.core.logger import get_logger

logger = get_logger("hook_runner")

# 交互确认回调：(阶段名, 待授权命令) -> 是否同意
Approver = Callable[[str, List[HookCommand]], bool]


class HookRunner:
    """阶段命令执行器

    授权规则：
    - 已授权：执行
    - 未授权且 auto_approve（--force）：记录授权后执行
    - 未授权且会话可交互：询问，同意则记录授权后执行
    - 其余情况：不执行，结果为 NOT_RUN(approval-required)

    非交互会话在没有 --force 时一律拒绝执行未授权命令。
    """

    def __init__(
        self,
        approval_store: ApprovalStore,
        executor: ICommandExecutor,
        project_id: str,
        interactive: bool = False,
        approver: Optional[Approver] = None,
        auto_approve: bool = False,
        timeout: Optional[float] = None,
    ):
        self.approval_store = approval_store
        self.executor = executor
        self.project_id = project_id
        self.interactive = interactive
        self.approver = approver
        self.auto_approve = auto_approve
        self.timeout = timeout

    def unapproved(self, stage: HookStage) -> List[HookCommand]:
        """阶段中缺少有效授权的命令"""
        return [
            command for command in stage.commands
            if not self.approval_store.is_approved(self.project_id, stage.name, command.name, command.command)
        ]

    def _grant(self, stage_name: str, pending: List[HookCommand]) -> bool:
        """尝试为待授权命令取得授权，成功时写入授权记录"""
        if not pending:
            return True
        if self.auto_approve:
            logger.info("Auto-approving commands", stage=stage_name, commands=[c.name for c in pending])
        elif self.interactive and self.approver is not None:
            if not self.approver(stage_name, pending):
                logger.info("Approval declined", stage=stage_name)
                return False
        else:
            return False

        for command in pending:
            self.approval_store.record_approval(self.project_id, stage_name, command.name, command.command)
        return True

    def ensure_approved(self, stage: HookStage) -> None:
        """预检整个阶段的授权，不执行任何命令

        Raises:
            ApprovalRequired: 仍有命令未获授权
        """
        pending = self.unapproved(stage)
        if self._grant(stage.name, pending):
            return
        raise ApprovalRequired(stage.name, {c.name: c.command for c in pending})

    def run_stage(
        self,
        stage: HookStage,
        context: HookContext,
        policy: FailurePolicy = FailurePolicy.STOP_ON_FIRST_FAILURE,
    ) -> StageResult:
        """执行阶段中的全部命令

        执行前先处理整个阶段的授权。STOP_ON_FIRST_FAILURE 下只要有命令
        缺少授权，整个阶段都不执行；CONTINUE 下只跳过缺少授权的命令。
        """
        result = StageResult(stage=stage.name)
        if stage.is_empty:
            return result

        pending = self.unapproved(stage)
        blocked = set()
        if pending and not self._grant(stage.name, pending):
            blocked = {c.name for c in pending}
            logger.warning("Commands require approval", stage=stage.name, commands=sorted(blocked))

        env = context.to_env(stage.name)
        stop = bool(blocked) and policy == FailurePolicy.STOP_ON_FIRST_FAILURE

        for command in stage.commands:
            if command.name in blocked:
                result.results.append(CommandResult(
                    name=command.name,
                    command=command.command,
                    status=CommandStatus.NOT_RUN,
                    reason=REASON_APPROVAL_REQUIRED,
                ))
                continue
            if stop:
                result.results.append(CommandResult(
                    name=command.name,
                    command=command.command,
                    status=CommandStatus.NOT_RUN,
                    reason=REASON_SKIPPED,
                ))
                continue

            command_result = self._execute(stage.name, command, Path(context.worktree_path), env)
            result.results.append(command_result)
            if command_result.status == CommandStatus.FAILED and policy == FailurePolicy.STOP_ON_FIRST_FAILURE:
                stop = True

        logger.info(
            "Stage finished",
            stage=stage.name,
            succeeded=result.succeeded,
            failures=[r.name for r in result.failures],
        )
        return result

    def _execute(self, stage_name: str, command: HookCommand, cwd: Path, env) -> CommandResult:
        logger.info("Running hook command", stage=stage_name, command=command.name)
        execution = self.executor.run(
            command.command,
            cwd=cwd,
            env=env,
            timeout=self.timeout,
            shell=True,
        )
        status = CommandStatus.SUCCEEDED if execution.ok else CommandStatus.FAILED
        if not execution.ok:
            logger.warning(
                "Hook command failed",
                stage=stage_name,
                command=command.name,
                exit_code=execution.returncode,
                timed_out=execution.timed_out,
            )
        return CommandResult(
            name=command.name,
            command=command.command,
            status=status,
            exit_code=execution.returncode,
            stdout=execution.stdout,
            stderr=execution.stderr,
        )
