"""Email templates for email identification."""

from datetime import datetime
from urllib.parse import urlencode


def build_identification_url(
    frontend_host: str, path: str, record_id: int, token: str
) -> str:
    query = urlencode({"id": record_id, "token": token})
    return f"{frontend_host.rstrip('/')}/{path.lstrip('/')}?{query}"


def render_identification_email(
    *,
    project_name: str,
    to_email: str,
    identification_url: str,
    expires_at: datetime | None = None,
) -> tuple[str, str]:
    """Render identification email content.

    Returns:
        (subject, plain_body)
    """
    subject = f"Confirm your email address - {project_name}"

    lines = [
        f"{project_name} email confirmation",
        "",
        f"Please open the following link to confirm that {to_email} is yours:",
        identification_url,
        "",
    ]
    if expires_at is not None:
        lines.append(
            f"The link expires at {expires_at.strftime('%Y-%m-%d %H:%M UTC')}."
        )
    lines.append("If you did not add this address, you can ignore this email.")

    return subject, "\n".join(lines)
