import logging
import os
import smtplib
import sys
from email.message import EmailMessage

from .errors import MailError
from .settings import MailSettings

logger = logging.getLogger("giftcert.mailer")
if not logger.handlers:
    handler = logging.StreamHandler(sys.stdout)
    logger.addHandler(handler)
logger.setLevel(logging.INFO)


def _connect(mail: MailSettings) -> smtplib.SMTP:
    if mail.port == 465:
        server = smtplib.SMTP_SSL(mail.host, mail.port, timeout=30)
    else:
        server = smtplib.SMTP(mail.host, mail.port, timeout=30)
        if mail.port == 587:
            server.starttls()
    if mail.user and mail.password:
        server.login(mail.user, mail.password)
    return server


def build_message(
    mail: MailSettings,
    recipient: str,
    subject: str,
    body: str,
    html: str | None = None,
    attachment_path: str | None = None,
    attachment_name: str | None = None,
) -> EmailMessage:
    msg = EmailMessage()
    msg["Subject"] = subject
    msg["To"] = recipient
    msg["From"] = f"{mail.from_name} <{mail.from_addr}>" if mail.from_name else mail.from_addr
    msg.set_content(body)
    if html:
        msg.add_alternative(html, subtype="html")
    if attachment_path:
        with open(attachment_path, "rb") as fh:
            data = fh.read()
        msg.add_attachment(
            data,
            maintype="application",
            subtype="pdf",
            filename=attachment_name or os.path.basename(attachment_path),
        )
    return msg


def send(
    mail: MailSettings,
    recipient: str,
    subject: str,
    body: str,
    html: str | None = None,
    attachment_path: str | None = None,
    attachment_name: str | None = None,
) -> None:
    """Send one message. Raises MailError when the message did not go out."""
    if not mail.configured:
        logger.info(
            "[MAIL-OUT] mode=stub to=%s subject=\"%s\" host=%s result=stub",
            recipient,
            subject,
            mail.host,
        )
        raise MailError("SMTP is not configured")

    try:
        msg = build_message(
            mail, recipient, subject, body, html, attachment_path, attachment_name
        )
        server = _connect(mail)
        try:
            server.send_message(msg, from_addr=mail.from_addr, to_addrs=[recipient])
        finally:
            server.quit()
    except (OSError, smtplib.SMTPException) as e:
        logger.info(
            "[MAIL-OUT] mode=real to=%s subject=\"%s\" host=%s result=%s",
            recipient,
            subject,
            mail.host,
            e,
        )
        raise MailError(str(e)) from e

    logger.info(
        "[MAIL-OUT] mode=real to=%s subject=\"%s\" host=%s result=sent",
        recipient,
        subject,
        mail.host,
    )


def check_connection(mail: MailSettings) -> bool:
    if not mail.configured:
        return False
    try:
        server = _connect(mail)
        server.noop()
        server.quit()
    except (OSError, smtplib.SMTPException) as e:
        logger.warning("[MAIL-CHECK] host=%s error=%s", mail.host, e)
        return False
    return True
