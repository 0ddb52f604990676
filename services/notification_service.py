"""Notification Service.
Composes the e-mails the system sends (check-in reminders, grace warnings,
verifier invitations and verification requests, final messages) and hands
them to the mail transport.
"""
from datetime import datetime
from html import escape

from flask import current_app
from flask_mail import Message

from services.errors import DeliveryFailed


class MailTransport:
    """Sends one e-mail through the Flask-Mail extension it was built with."""

    provider = 'smtp'

    def __init__(self, mail, default_sender, from_name=None, log_only=False):
        self.mail = mail
        self.default_sender = default_sender
        self.from_name = from_name
        self.log_only = log_only

    @classmethod
    def from_app(cls, app, mail):
        return cls(
            mail,
            default_sender=app.config.get('MAIL_DEFAULT_SENDER'),
            from_name=app.config.get('MAIL_FROM_NAME'),
            log_only=app.config.get('NOTIFICATION_DEBUG', False)
        )

    def send(self, to, subject, body, html=None):
        """Send and return the provider message id."""
        if self.log_only:
            current_app.logger.info(f'Notification debug mode: skipping email to {to}')
            current_app.logger.info(f'Email subject: {subject}')
            return None

        sender = (self.from_name, self.default_sender) if self.from_name else self.default_sender
        msg = Message(subject=subject, sender=sender, recipients=[to])
        msg.body = body
        if html:
            msg.html = html

        self.mail.send(msg)
        return msg.msgId


class Notifier:

    def __init__(self, transport, app_name='Final Note'):
        self.transport = transport
        self.app_name = app_name

    def _notify(self, to, subject, body, html=None):
        """Fire-and-forget send: failures are logged and reported as False."""
        try:
            self.transport.send(to, subject, body, html)
            current_app.logger.info(f'Email sent successfully to {to}')
            return True
        except Exception as e:
            current_app.logger.error(f'Failed to send email notification to {to}: {e}')
            return False

    def send_check_in_reminder(self, user, switch, check_in_url):
        subject = f'Check-in reminder for "{switch.name}" - {self.app_name}'
        body = f"""
Hi {user.name or 'there'},

This is a reminder to check in for your switch "{switch.name}".

Click here to check in: {check_in_url}

If you don't check in, your switch will enter the grace period.

- {self.app_name}
        """.strip()
        return self._notify(user.email, subject, body, self._wrap_html(body))

    def send_overdue_notice(self, user, switch, check_in_url):
        subject = f'Missed check-in for "{switch.name}" - {self.app_name}'
        body = f"""
Hi {user.name or 'there'},

Your check-in for "{switch.name}" is overdue.

Please check in now: {check_in_url}

If you don't check in, your switch will enter the grace period.

- {self.app_name}
        """.strip()
        return self._notify(user.email, subject, body, self._wrap_html(body))

    def send_grace_period_warning(self, user, switch, check_in_url):
        subject = f'URGENT: Grace period active for "{switch.name}" - {self.app_name}'
        body = f"""
URGENT: Hi {user.name or 'there'},

Your switch "{switch.name}" has entered the grace period!

Grace period ends: {self._format_time(switch.grace_period_ends_at)}

Please check in immediately: {check_in_url}

If you don't check in before the grace period ends, the release of your final messages will begin.

- {self.app_name}
        """.strip()
        return self._notify(user.email, subject, body, self._wrap_html(body))

    def send_verifier_invitation(self, verifier, owner, accept_url):
        subject = f'{owner.display_name} has asked you to be a verifier - {self.app_name}'
        body = f"""
Hi {verifier.name or 'there'},

{owner.display_name} has named you as a trusted verifier. If they ever stop checking in,
you may be asked to confirm whether they are deceased or permanently incapacitated.

Accept the invitation: {accept_url}

This link expires on {self._format_time(verifier.token_expires_at)}.

- {self.app_name}
        """.strip()
        return self._notify(verifier.email, subject, body, self._wrap_html(body))

    def send_verification_request(self, verifier, owner, verify_url, otp, expires_at, otp_expires_at):
        subject = f'Verification request from {owner.display_name} - {self.app_name}'
        body = f"""
Hi {verifier.name or 'there'},

You have been asked to verify the status of {owner.display_name}.

Please use this secure link to submit your verification: {verify_url}

Your verification code is: {otp}
The code is valid until {self._format_time(otp_expires_at)}.
The link expires on {self._format_time(expires_at)}.

Important: Only confirm if you have verified that {owner.display_name} is deceased or permanently incapacitated.

- {self.app_name}
        """.strip()
        return self._notify(verifier.email, subject, body, self._wrap_html(body))

    def send_final_message(self, recipient, subject, content):
        """Send a released message. Raises DeliveryFailed instead of swallowing errors."""
        if self.transport.log_only:
            # A logged message was not delivered, so the ledger row must stay retryable
            raise DeliveryFailed('Notification debug mode is on, final message not sent')
        try:
            return self.transport.send(
                recipient.email,
                subject or 'A Final Note for You',
                content,
                self._wrap_final_message(content, recipient.name)
            )
        except Exception as e:
            raise DeliveryFailed(str(e)) from e

    @staticmethod
    def _format_time(value):
        if not isinstance(value, datetime):
            return 'unknown'
        return value.strftime('%Y-%m-%d %H:%M UTC')

    def _wrap_html(self, text):
        paragraphs = ''.join(f'<p>{escape(p).replace(chr(10), "<br>")}</p>' for p in text.split('\n\n'))
        return f'<!DOCTYPE html><html><body>{paragraphs}</body></html>'

    def _wrap_final_message(self, content, recipient_name):
        name = escape(recipient_name) if recipient_name else 'Friend'
        return (
            '<!DOCTYPE html><html><body>'
            f'<p>Dear {name},</p>'
            f'<div style="white-space: pre-wrap">{escape(content)}</div>'
            f'<p style="color:#888">Delivered by {escape(self.app_name)}</p>'
            '</body></html>'
        )


def get_notifier():
    """The notifier created for the current application."""
    return current_app.extensions['notifier']
