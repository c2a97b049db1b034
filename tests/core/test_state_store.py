"""MergeStateStore 单元测试"""

import json

import pytest

from wt.core.data_structures import MergeStep, MergeWorkflowState, StepStatus
from wt.core.exceptions import StateConflict, WorkflowException
from wt.core.state_store import MergeStateStore


@pytest.fixture
def store(tmp_path):
    return MergeStateStore(tmp_path / "merge-state")


@pytest.fixture
def worktree(tmp_path):
    path = tmp_path / "app.feature"
    path.mkdir()
    return path


def new_state(worktree, target="main"):
    return MergeWorkflowState(worktree_path=str(worktree), branch="feature", target=target)


class TestMergeStateStore:
    """测试状态读写"""

    def test_load_missing(self, store, worktree):
        assert store.load(worktree) is None

    def test_save_and_load(self, store, worktree):
        state = new_state(worktree)
        state.mark_done(MergeStep.COMMIT, commit="abc123")
        store.save(state)

        loaded = store.load(worktree)
        assert loaded.branch == "feature"
        assert loaded.target == "main"
        assert loaded.revision == 1
        assert loaded.record(MergeStep.COMMIT).status == StepStatus.DONE
        assert loaded.record(MergeStep.COMMIT).detail == {"commit": "abc123"}
        assert loaded.current_step == MergeStep.SQUASH

    def test_state_path_is_stable(self, store, worktree, tmp_path):
        """同一目录的不同写法映射到同一个状态文件"""
        alias = tmp_path / "app.feature" / ".." / "app.feature"
        assert store.state_path(worktree) == store.state_path(alias)
        assert store.state_path(worktree).parent == store.state_dir

    def test_revision_increments(self, store, worktree):
        state = new_state(worktree)
        store.save(state)
        store.save(state)
        assert state.revision == 2
        assert store.load(worktree).revision == 2

    def test_stale_writer_is_rejected(self, store, worktree):
        """两个进程读到同一版本时，后写入的一方失败"""
        store.save(new_state(worktree))
        first = store.load(worktree)
        second = store.load(worktree)

        first.mark_done(MergeStep.COMMIT)
        store.save(first)

        second.mark_failed(MergeStep.COMMIT, error="boom")
        with pytest.raises(StateConflict):
            store.save(second)
        assert store.load(worktree).record(MergeStep.COMMIT).status == StepStatus.DONE

    def test_save_after_delete_is_rejected(self, store, worktree):
        state = new_state(worktree)
        store.save(state)
        store.delete(worktree)

        with pytest.raises(StateConflict):
            store.save(state)

    def test_delete(self, store, worktree):
        store.save(new_state(worktree))

        assert store.delete(worktree) is True
        assert store.load(worktree) is None
        assert store.delete(worktree) is False

    def test_list_states(self, store, tmp_path):
        for name in ("a", "b"):
            path = tmp_path / name
            path.mkdir()
            store.save(new_state(path))

        assert sorted(s.worktree_path for s in store.list_states()) == [
            str(tmp_path / "a"),
            str(tmp_path / "b"),
        ]

    def test_list_states_without_directory(self, store):
        assert store.list_states() == []

    def test_corrupt_file(self, store, worktree):
        path = store.state_path(worktree)
        path.parent.mkdir(parents=True)
        path.write_text("{not json", encoding="utf-8")

        with pytest.raises(WorkflowException) as exc_info:
            store.load(worktree)
        assert "--discard" in exc_info.value.message

    def test_file_format(self, store, worktree):
        state = new_state(worktree)
        state.mark_failed(MergeStep.REBASE, resume_data={"conflicts": ["a.py"], "onto": "main"})
        store.save(state)

        data = json.loads(store.state_path(worktree).read_text(encoding="utf-8"))
        assert data["resume_data"] == {"conflicts": ["a.py"], "onto": "main"}
        assert [s["step"] for s in data["steps"]] == ["commit", "squash", "rebase", "merge"]
        assert data["steps"][2]["status"] == "failed"


class TestMergeWorkflowState:
    """测试状态对象本身"""

    def test_phase(self, worktree):
        state = new_state(worktree)
        assert state.phase == "commit"

        for step in (MergeStep.COMMIT, MergeStep.SQUASH):
            state.mark_done(step)
        state.mark_failed(MergeStep.REBASE, resume_data={"onto": "main"})
        assert state.phase == "failed:rebase"
        assert state.current_step == MergeStep.REBASE

        state.mark_done(MergeStep.REBASE)
        assert state.resume_data == {}
        state.mark_done(MergeStep.MERGE)
        assert state.is_done
        assert state.phase == "done"

    def test_from_dict_fills_missing_steps(self, worktree):
        state = MergeWorkflowState.from_dict({
            "worktree_path": str(worktree),
            "branch": "feature",
            "target": "main",
            "steps": [{"step": "rebase", "status": "done"}],
        })
        assert [r.step for r in state.steps] == MergeStep.ordered()
        assert state.record(MergeStep.REBASE).status == StepStatus.DONE
        assert state.revision == 0
