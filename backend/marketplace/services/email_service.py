# Overview: Outbound email for registration, invitation and password-reset codes.

from __future__ import annotations

import smtplib
from email.message import EmailMessage

from flask import current_app


def send_email(to: str, subject: str, body: str) -> None:
    """
    Deliver a plain-text email through MAIL_SERVER.

    Without MAIL_SERVER configured (development) the message is logged
    instead of sent.
    """
    server = current_app.config.get("MAIL_SERVER")
    if not server:
        current_app.logger.info("Email to %s (%s):\n%s", to, subject, body)
        return

    message = EmailMessage()
    message["From"] = current_app.config["MAIL_SENDER"]
    message["To"] = to
    message["Subject"] = subject
    message.set_content(body)

    with smtplib.SMTP(server, current_app.config.get("MAIL_PORT", 25), timeout=10) as smtp:
        smtp.send_message(message)


def send_registration_code(email: str, code: str) -> None:
    send_email(
        email,
        "Confirm your account",
        f"Your registration code is {code}. It expires in 3 days.",
    )


def send_password_reset_code(email: str, code: str) -> None:
    send_email(
        email,
        "Password reset",
        f"Your password reset code is {code}. It expires in 15 minutes.",
    )


def send_invitation(email: str, code: str) -> None:
    send_email(
        email,
        "Invitation to join Marketplace",
        f"You have been invited to Marketplace. Your registration code is {code}. It expires in 72 hours.",
    )
