"""
Mailer extension tests.

Verifies:
- Settings come from the application whose context is active
- Suppressed sends land in the outbox
"""

from bilkro import create_app
from bilkro.extensions import mailer


def test_sender_follows_active_app(app):
    other = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'MAIL_DEFAULT_SENDER': 'shop@other.test',
    })

    with other.app_context():
        assert mailer.build_message("a@b.test", "Hi", "<p>hi</p>")["From"] == "shop@other.test"

    expected = (
        app.config["MAIL_DEFAULT_SENDER"] or app.config["MAIL_USERNAME"] or "no-reply@bilkro.local"
    )
    message = mailer.build_message("a@b.test", "Hi", "<p>hi</p>")
    assert message["From"] == expected != "shop@other.test"


def test_suppressed_send_goes_to_outbox(app):
    message = mailer.send("a@b.test", "Subject", "<p>body</p>")

    assert mailer.outbox == [message]
    assert message["To"] == "a@b.test"
