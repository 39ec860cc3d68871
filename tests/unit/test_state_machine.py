"""Identification state machine tests.

测试覆盖：
- issue: 发放 token、入队任务快照、覆盖旧 token、done 状态拒绝
- verify: 成功、重复验证、过期边界、不匹配、无 token
- 入队失败时回滚 token
- 同一记录上的并发 verify / issue
"""

import asyncio

import pytest

from eloquentlog.modules.user_emails.application.state_machine import (
    IdentificationStateMachine,
)
from eloquentlog.modules.user_emails.domain.entities import IdentificationState
from eloquentlog.modules.user_emails.domain.events import UserEmailIdentifiedEvent
from eloquentlog.modules.user_emails.domain.exceptions import (
    AlreadyIdentifiedError,
    IdentificationNotPendingError,
    MissingEmailAddressError,
    NoPendingTokenError,
    QueueUnavailableError,
    TokenExpiredError,
    TokenMismatchError,
    UserEmailNotFoundError,
)
from eloquentlog.modules.user_emails.domain.jobs import JobKind
from tests.fakes import InMemoryJobQueue

pytestmark = pytest.mark.anyio


@pytest.fixture
def state_machine(user_email_repo, token_generator, job_queue, clock):
    return IdentificationStateMachine(
        user_email_repository=user_email_repo,
        token_generator=token_generator,
        job_queue=job_queue,
        clock=clock,
    )


class TestIssue:
    async def test_issue_grants_token_and_enqueues_snapshot(
        self, state_machine, make_user_email, job_queue, user_email_repo, clock
    ):
        record = make_user_email(email="alice@example.com")

        issued = await state_machine.issue(record.id)

        stored = user_email_repo.row(record.id)
        assert stored.identification_state == IdentificationState.PENDING
        assert stored.identification_token == issued.identification_token
        assert len(stored.identification_token) == 128
        assert stored.identification_token_expires_at > clock()

        [job] = job_queue.pending_jobs()
        assert job.kind == JobKind.IDENTIFICATION_EMAIL
        assert job.attempt_count == 0
        assert job.payload.record_id == record.id
        assert job.payload.email == "alice@example.com"
        assert job.payload.token == stored.identification_token

    async def test_reissue_invalidates_previous_token(
        self, state_machine, make_user_email, job_queue
    ):
        record = make_user_email()
        first = (await state_machine.issue(record.id)).identification_token
        second = (await state_machine.issue(record.id)).identification_token

        assert first != second
        assert len(job_queue.pending_jobs()) == 2

        with pytest.raises(TokenMismatchError):
            await state_machine.verify(record.id, first)

        verified = await state_machine.verify(record.id, second)
        assert verified.is_identified

    async def test_issue_on_identified_record_enqueues_nothing(
        self, state_machine, make_user_email, job_queue
    ):
        record = make_user_email()
        token = (await state_machine.issue(record.id)).identification_token
        await state_machine.verify(record.id, token)
        job_queue.pending.clear()

        with pytest.raises(IdentificationNotPendingError):
            await state_machine.issue(record.id)

        assert job_queue.pending_jobs() == []

    async def test_issue_unknown_record(self, state_machine):
        with pytest.raises(UserEmailNotFoundError):
            await state_machine.issue(404)

    async def test_issue_without_address(self, state_machine, make_user_email, job_queue):
        record = make_user_email(email=None)

        with pytest.raises(MissingEmailAddressError):
            await state_machine.issue(record.id)

        assert job_queue.pending_jobs() == []

    async def test_enqueue_failure_restores_previous_token(
        self, state_machine, make_user_email, job_queue, user_email_repo
    ):
        record = make_user_email()
        first = (await state_machine.issue(record.id)).identification_token
        before = user_email_repo.row(record.id)

        job_queue.available = False
        with pytest.raises(QueueUnavailableError):
            await state_machine.issue(record.id)

        after = user_email_repo.committed_row(record.id)
        assert after.identification_token == first
        assert after.identification_token_expires_at == before.identification_token_expires_at
        assert len(job_queue.pending_jobs()) == 1

        job_queue.available = True
        verified = await state_machine.verify(record.id, first)
        assert verified.is_identified

    async def test_enqueue_failure_on_first_issue_leaves_no_token(
        self, state_machine, make_user_email, job_queue, user_email_repo
    ):
        record = make_user_email()
        job_queue.available = False

        with pytest.raises(QueueUnavailableError):
            await state_machine.issue(record.id)

        stored = user_email_repo.committed_row(record.id)
        assert stored.identification_token is None
        assert stored.identification_token_expires_at is None

    async def test_token_is_committed_before_job_is_enqueued(
        self, user_email_repo, token_generator, clock, make_user_email
    ):
        seen = []

        class RecordingQueue(InMemoryJobQueue):
            async def enqueue(self, job):
                seen.append(user_email_repo.committed_row(job.payload.record_id))
                return await super().enqueue(job)

        queue = RecordingQueue()
        machine = IdentificationStateMachine(
            user_email_repo, token_generator, queue, clock=clock
        )
        record = make_user_email()

        issued = await machine.issue(record.id)

        [committed] = seen
        assert committed.identification_token == issued.identification_token
        [job] = queue.pending_jobs()
        assert job.payload.record_version == committed.lock_version

    async def test_commit_failure_enqueues_nothing(
        self, state_machine, make_user_email, job_queue, user_email_repo
    ):
        record = make_user_email()
        user_email_repo.commit_error = ConnectionError("database went away")

        with pytest.raises(ConnectionError):
            await state_machine.issue(record.id)

        assert job_queue.pending_jobs() == []
        assert user_email_repo.committed_row(record.id).identification_token is None


class TestVerify:
    async def test_verify_marks_record_done(
        self, state_machine, make_user_email, user_email_repo, clock
    ):
        record = make_user_email()
        token = (await state_machine.issue(record.id)).identification_token
        clock.advance(minutes=5)

        verified = await state_machine.verify(record.id, token)

        stored = user_email_repo.row(record.id)
        assert verified.is_identified
        assert stored.identification_state == IdentificationState.DONE
        assert stored.identification_token is None
        assert stored.identification_token_expires_at is None
        assert stored.identification_token_granted_at == clock()

        events = [e for e in user_email_repo.published_events if isinstance(e, UserEmailIdentifiedEvent)]
        assert len(events) == 1
        assert events[0].user_email_id == record.id

    async def test_failed_commit_publishes_no_event(
        self, state_machine, make_user_email, user_email_repo
    ):
        record = make_user_email()
        token = (await state_machine.issue(record.id)).identification_token
        user_email_repo.commit_error = ConnectionError("database went away")

        with pytest.raises(ConnectionError):
            await state_machine.verify(record.id, token)

        assert not any(
            isinstance(e, UserEmailIdentifiedEvent) for e in user_email_repo.published_events
        )
        assert not user_email_repo.committed_row(record.id).is_identified

    async def test_verify_is_not_repeatable(self, state_machine, make_user_email):
        record = make_user_email()
        token = (await state_machine.issue(record.id)).identification_token

        await state_machine.verify(record.id, token)
        with pytest.raises(AlreadyIdentifiedError):
            await state_machine.verify(record.id, token)

    async def test_expiry_instant_counts_as_expired(
        self, state_machine, make_user_email, user_email_repo, clock
    ):
        record = make_user_email()
        issued = await state_machine.issue(record.id)
        clock.now = issued.identification_token_expires_at

        with pytest.raises(TokenExpiredError):
            await state_machine.verify(record.id, issued.identification_token)

        stored = user_email_repo.row(record.id)
        assert stored.identification_state == IdentificationState.PENDING
        assert stored.identification_token == issued.identification_token

    async def test_verify_just_before_expiry(self, state_machine, make_user_email, clock):
        record = make_user_email()
        issued = await state_machine.issue(record.id)
        clock.now = issued.identification_token_expires_at
        clock.advance(seconds=-1)

        verified = await state_machine.verify(record.id, issued.identification_token)

        assert verified.is_identified

    async def test_expired_token_can_be_reissued(self, state_machine, make_user_email, clock):
        record = make_user_email()
        stale = await state_machine.issue(record.id)
        clock.advance(hours=25)
        with pytest.raises(TokenExpiredError):
            await state_machine.verify(record.id, stale.identification_token)

        fresh = await state_machine.issue(record.id)

        assert (await state_machine.verify(record.id, fresh.identification_token)).is_identified

    async def test_mismatch(self, state_machine, make_user_email):
        record = make_user_email()
        token = (await state_machine.issue(record.id)).identification_token

        with pytest.raises(TokenMismatchError):
            await state_machine.verify(record.id, token[:-1] + ("a" if token[-1] != "a" else "b"))

    async def test_mismatch_on_different_length(self, state_machine, make_user_email):
        record = make_user_email()
        await state_machine.issue(record.id)

        with pytest.raises(TokenMismatchError):
            await state_machine.verify(record.id, "short")

    async def test_no_pending_token(self, state_machine, make_user_email):
        record = make_user_email()

        with pytest.raises(NoPendingTokenError):
            await state_machine.verify(record.id, "anything")

    async def test_unknown_record(self, state_machine):
        with pytest.raises(UserEmailNotFoundError):
            await state_machine.verify(404, "anything")


class TestConcurrency:
    async def test_concurrent_verifies_have_single_winner(
        self, state_machine, make_user_email, user_email_repo
    ):
        record = make_user_email()
        token = (await state_machine.issue(record.id)).identification_token
        updates_after_issue = user_email_repo.update_count

        results = await asyncio.gather(
            *(state_machine.verify(record.id, token) for _ in range(10)),
            return_exceptions=True,
        )

        successes = [r for r in results if not isinstance(r, Exception)]
        failures = [r for r in results if isinstance(r, Exception)]
        assert len(successes) == 1
        assert len(failures) == 9
        assert all(isinstance(f, AlreadyIdentifiedError) for f in failures)
        assert user_email_repo.update_count == updates_after_issue + 1

    async def test_verify_racing_reissue_has_one_winner(
        self, state_machine, make_user_email, user_email_repo
    ):
        record = make_user_email()
        token = (await state_machine.issue(record.id)).identification_token

        verify_result, issue_result = await asyncio.gather(
            state_machine.verify(record.id, token),
            state_machine.issue(record.id),
            return_exceptions=True,
        )

        stored = user_email_repo.row(record.id)
        if isinstance(verify_result, Exception):
            assert isinstance(verify_result, TokenMismatchError)
            assert not isinstance(issue_result, Exception)
            assert stored.identification_token == issue_result.identification_token
        else:
            assert isinstance(issue_result, IdentificationNotPendingError)
            assert stored.is_identified
            assert stored.identification_token is None

    async def test_concurrent_issues_leave_last_token_active(
        self, state_machine, make_user_email, user_email_repo, job_queue
    ):
        record = make_user_email()

        await asyncio.gather(*(state_machine.issue(record.id) for _ in range(3)))

        stored = user_email_repo.row(record.id)
        jobs = job_queue.pending_jobs()
        assert len(jobs) == 3
        assert stored.identification_token in {job.payload.token for job in jobs}
