# Overview: Flask extension instances for database, migrations and outbound mail.

import smtplib
from email.message import EmailMessage

from flask import current_app
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate


class Mailer:
    """
    Minimal SMTP mail extension.

    Settings are read from the active application's config on every send.
    With MAIL_SUPPRESS_SEND enabled (the default under TESTING) messages are
    collected in ``outbox`` instead of being delivered.
    """

    def __init__(self, app=None):
        self.outbox: list[EmailMessage] = []
        if app is not None:
            self.init_app(app)

    def init_app(self, app) -> None:
        app.config.setdefault("MAIL_SERVER", None)
        app.config.setdefault("MAIL_PORT", 465)
        app.config.setdefault("MAIL_USERNAME", None)
        app.config.setdefault("MAIL_PASSWORD", None)
        app.config.setdefault("MAIL_DEFAULT_SENDER", None)
        app.config.setdefault("MAIL_TIMEOUT", 10)
        app.config["MAIL_SUPPRESS_SEND"] = bool(app.config.get("MAIL_SUPPRESS_SEND")) or app.testing
        app.extensions["mailer"] = self

    def build_message(self, to: str, subject: str, html: str) -> EmailMessage:
        config = current_app.config
        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = config.get("MAIL_DEFAULT_SENDER") or config.get("MAIL_USERNAME") or "no-reply@bilkro.local"
        message["To"] = to
        message.set_content("This message requires an HTML capable mail client.")
        message.add_alternative(html, subtype="html")
        return message

    def send(self, to: str, subject: str, html: str) -> EmailMessage:
        config = current_app.config
        message = self.build_message(to, subject, html)

        if config.get("MAIL_SUPPRESS_SEND"):
            self.outbox.append(message)
            return message

        server = config.get("MAIL_SERVER")
        if not server:
            raise RuntimeError("MAIL_SERVER is not configured")

        with smtplib.SMTP_SSL(
            server,
            int(config.get("MAIL_PORT") or 465),
            timeout=config.get("MAIL_TIMEOUT"),
        ) as smtp:
            username = config.get("MAIL_USERNAME")
            if username:
                smtp.login(username, config.get("MAIL_PASSWORD") or "")
            smtp.send_message(message)
        return message


db = SQLAlchemy()
migrate = Migrate()
mailer = Mailer()
