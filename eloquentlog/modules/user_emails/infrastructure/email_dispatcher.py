"""Mail transport adapters for identification emails."""

import asyncio

from eloquentlog.core.infrastructure.email.smtp import SMTPProvider
from eloquentlog.modules.user_emails.domain.exceptions import TransportError


class SMTPEmailDispatcher:
    """Send plain-text mail through ``SMTPProvider``.

    smtplib blocks, so each send runs in the default executor.
    """

    def __init__(self, provider: SMTPProvider | None = None, enabled: bool | None = None):
        self.provider = provider or SMTPProvider()
        self.enabled = self.provider.is_configured() if enabled is None else enabled

    async def send(self, to: str, subject: str, body: str) -> None:
        if not self.enabled:
            raise TransportError("Email delivery is disabled")

        loop = asyncio.get_running_loop()
        result = await loop.run_in_executor(None, self.provider.send, to, subject, body)
        if not result.success:
            raise TransportError(result.error or "Email delivery failed")

