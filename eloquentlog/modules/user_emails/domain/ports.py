"""User email module ports."""

from typing import Protocol

from eloquentlog.modules.user_emails.domain.jobs import Job


class IdentificationJobQueue(Protocol):
    """Durable, at-least-once work queue for identification emails.

    ``dequeue`` claims a job exclusively for the caller; a claimed job stays
    invisible to other consumers until it is acked, nacked, dead-lettered or
    its claim times out.
    """

    async def enqueue(self, job: Job) -> str:
        """Persist ``job`` and return its id. Raises ``QueueUnavailableError``."""
        ...

    async def dequeue(self, timeout: float) -> Job | None:
        """Block up to ``timeout`` seconds for a job and claim it."""
        ...

    async def ack(self, job_id: str) -> None:
        """Mark a claimed job complete and remove it."""
        ...

    async def nack(self, job_id: str, error: str | None = None) -> None:
        """Return a claimed job to the queue with its attempt count bumped."""
        ...

    async def dead_letter(self, job_id: str, error: str) -> None:
        """Stop retrying a claimed job and keep it for operator inspection."""
        ...


class EmailDispatcher(Protocol):
    """Mail transport. Raises ``TransportError`` when delivery fails."""

    async def send(self, to: str, subject: str, body: str) -> None: ...
