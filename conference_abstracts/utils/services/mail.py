from flask import current_app as app
import requests

from conference_abstracts.utils.logging_utils import get_logger

mail_log = get_logger("mail")


def send_mail(email: str, subject: str, body: str) -> int:
    """
    Send an email through the REST mail gateway.

    Args:
        email: Recipient address.
        subject: Subject line.
        body: Plain-text body.

    Returns:
        HTTP status code from upstream (200 expected on success) or:
        400 for local validation failure,
        500 for request exception (including timeout),
        503 when the gateway is not configured.
    """
    if not email or not subject or not body:
        mail_log.warning("send_mail: missing email, subject or body")
        return 400

    # Feature flag: if MAIL_FLAG disabled, skip real send
    if not app.config.get("MAIL_FLAG", True):
        mail_log.info("send_mail: skipped (MAIL_FLAG disabled) email=%s subject=%r", email, subject)
        return 200

    url = app.config.get("MAIL_API_URL")
    token = app.config.get("MAIL_API_TOKEN")
    if not url or not token:
        mail_log.error("send_mail: gateway not configured (MAIL_API_URL / MAIL_API_TOKEN)")
        return 503

    payload = {
        "to": email,
        "subject": subject,
        "body": body,
    }
    headers = {
        "Content-Type": "application/json",
        "Authorization": f"Bearer {token}",
    }

    try:
        mail_log.debug("send_mail: POST %s to=%s", url, email)
        resp = requests.post(url, json=payload, headers=headers, timeout=app.config.get("MAIL_TIMEOUT_SECONDS", 5))
    except requests.RequestException as exc:
        mail_log.error("send_mail: request exception email=%s err=%s", email, exc, exc_info=True)
        return 500

    if resp.status_code >= 300:
        mail_log.warning(
            "send_mail: upstream failure status=%s body=%r email=%s",
            resp.status_code,
            (resp.text or "")[:300],
            email,
        )
    else:
        mail_log.info("send_mail: sent email=%s status=%s", email, resp.status_code)
    return resp.status_code
