"""
Email notifications.

Admin notifications are best-effort side effects scheduled with FastAPI
``BackgroundTasks``: they run after the primary record is committed, their
failures are logged and never retried, and they never affect the response.
"""
from __future__ import annotations

import html
import logging
from typing import List, Sequence, Tuple

from fundhub.config import settings
from fundhub.services.email_sender import EmailSender, SendResult

logger = logging.getLogger(__name__)

ENTITY_TYPE_LABELS = {"individual": "개인", "corporate": "법인"}


def fund_application_email(
    *,
    fund_name: str,
    name: str,
    email: str,
    phone: str,
    entity_type: str,
    units: int,
    amount: int,
    is_new: bool,
) -> Tuple[str, str]:
    """Subject and HTML body of the admin notice for a survey submission."""
    kind = "신규 출자 신청" if is_new else "출자 신청 변경"
    subject = f"[{kind}] {fund_name} - {name}"
    rows = [
        ("펀드", fund_name),
        ("이름", name),
        ("이메일", email),
        ("연락처", phone),
        ("구분", ENTITY_TYPE_LABELS.get(entity_type, entity_type)),
        ("약정출자좌수", f"{units:,}좌"),
        ("약정출자금액", f"{amount:,}원"),
    ]
    body = "".join(
        f"<tr><th align='left'>{html.escape(label)}</th><td>{html.escape(str(value))}</td></tr>"
        for label, value in rows
    )
    return subject, (
        f"<p>새로운 {kind}이 접수되었습니다.</p>"
        f"<table>{body}</table>"
        "<p>관리자 페이지에서 자세한 내용을 확인하실 수 있습니다.</p>"
    )


async def notify_admins(sender: EmailSender, subject: str, html_body: str) -> None:
    """Send a notice to ADMIN_NOTIFICATION_EMAILS. Never raises."""
    recipients = settings.get_admin_notification_emails()
    if not recipients:
        logger.info("No admin notification recipients configured; skipped '%s'", subject)
        return
    try:
        result = await sender.send(recipients, subject, html_body)
    except Exception as exc:  # best-effort side effect
        logger.error("Admin notification '%s' failed: %s", subject, exc, exc_info=True)
        return
    if not result.success:
        logger.warning("Admin notification '%s' not delivered: %s", subject, result.error)


async def send_to_members(
    sender: EmailSender,
    recipients: Sequence[Tuple[int, str]],
    subject: str,
    html_body: str,
) -> List[Tuple[int, str, SendResult]]:
    """
    Send one email per member, sequentially.

    Returns ``(profile_id, email, result)`` for every recipient so the caller
    can report partial failures.
    """
    results = []
    for profile_id, email in recipients:
        result = await sender.send(email, subject, html_body)
        results.append((profile_id, email, result))
    failed = sum(1 for _, _, r in results if not r.success)
    logger.info("Member email '%s': %d sent, %d failed", subject, len(results) - failed, failed)
    return results
