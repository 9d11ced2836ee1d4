"""
Approval races: several reviewers approving the same PENDING action.

The conditional PENDING -> APPROVED update admits one winner, so the
executor runs once no matter how many callers race.
"""

from concurrent.futures import ThreadPoolExecutor
from threading import Barrier, Lock
from uuid import uuid4

import pytest

from tests.conftest import CLOCK_START
from ledger_kernel.domain.actions import ActionStatus, ActionType, CreateActionInput, ExecutionResult
from ledger_kernel.domain.clock import DeterministicClock
from ledger_kernel.exceptions import ActionNotPendingError
from ledger_kernel.services.action_service import ActionService


pytestmark = pytest.mark.slow_locks


class CountingExecutor:
    """Thread-safe executor double."""

    def __init__(self):
        self._lock = Lock()
        self.executed = []

    def execute(self, action, user_id, user_role=None):
        with self._lock:
            self.executed.append(action.id)
        return ExecutionResult.ok(action.id, action.type.value, "counted")

    def compensate(self, action, user_id):
        return ExecutionResult.ok(action.id, action.type.value, "counted")


@pytest.fixture
def executor():
    return CountingExecutor()


def _service(sess, seed, executor) -> ActionService:
    return ActionService(
        sess,
        seed.tenant_id,
        seed.entity_id,
        clock=DeterministicClock(CLOCK_START),
        executor=executor,
    )


@pytest.fixture
def create_committed_actions(committed_session_factory, committed_seed, executor):
    def _create(count: int) -> list:
        sess = committed_session_factory()
        service = _service(sess, committed_seed, executor)
        ids = [
            service.create_action(
                CreateActionInput(type=ActionType.ALERT, title=f"Duplicate payment {n}", payload={})
            ).id
            for n in range(count)
        ]
        sess.commit()
        sess.close()
        return ids

    return _create


def _approve(session_factory, seed, executor, action_id, barrier):
    barrier.wait()
    sess = session_factory()
    try:
        try:
            _service(sess, seed, executor).approve_action(action_id, uuid4())
        except ActionNotPendingError:
            sess.rollback()
            return False
        sess.commit()
        return True
    finally:
        sess.close()


def _batch_approve(session_factory, seed, executor, action_ids, barrier):
    barrier.wait()
    sess = session_factory()
    try:
        result = _service(sess, seed, executor).batch_approve(action_ids, uuid4())
        sess.commit()
        return result
    finally:
        sess.close()


class TestConcurrentApproval:
    def test_one_reviewer_wins(self, committed_session_factory, committed_seed, executor, create_committed_actions):
        (action_id,) = create_committed_actions(1)
        workers = 5
        barrier = Barrier(workers, timeout=30)

        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = [
                pool.submit(_approve, committed_session_factory, committed_seed, executor, action_id, barrier)
                for _ in range(workers)
            ]
            outcomes = [f.result(timeout=60) for f in futures]

        assert outcomes.count(True) == 1
        assert outcomes.count(False) == workers - 1
        assert executor.executed == [action_id]

        sess = committed_session_factory()
        try:
            action = _service(sess, committed_seed, executor).get_action(action_id)
            assert action.status == ActionStatus.APPROVED
            assert action.reviewed_by is not None
        finally:
            sess.close()

    def test_batches_do_not_overlap(self, committed_session_factory, committed_seed, executor, create_committed_actions):
        action_ids = create_committed_actions(5)
        barrier = Barrier(2, timeout=30)

        with ThreadPoolExecutor(max_workers=2) as pool:
            futures = [
                pool.submit(
                    _batch_approve, committed_session_factory, committed_seed, executor, action_ids, barrier
                ),
                pool.submit(
                    _batch_approve,
                    committed_session_factory,
                    committed_seed,
                    executor,
                    list(reversed(action_ids)),
                    barrier,
                ),
            ]
            first, second = [f.result(timeout=60) for f in futures]

        assert set(first.succeeded).isdisjoint(second.succeeded)
        assert set(first.succeeded) | set(second.succeeded) == set(action_ids)
        assert len(first.failed) + len(second.failed) == len(action_ids)
        assert sorted(executor.executed, key=str) == sorted(action_ids, key=str)
