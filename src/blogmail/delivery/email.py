"""Email delivery through an SMTP relay."""
import logging
import smtplib
from email.message import EmailMessage
from pathlib import Path
from typing import Optional

from jinja2 import Environment, TemplateError, select_autoescape

from blogmail.config import Settings, get_settings
from blogmail.models import Article, Subscriber

logger = logging.getLogger(__name__)

SUBJECT_PREFIX = "New Blog Post: "


class Mailer:
    """Renders the newsletter template and sends it to one subscriber at a time."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self.settings = settings or get_settings()
        self._env = Environment(autoescape=select_autoescape(default=True))

    def render(self, subscriber: Subscriber, article: Article) -> str:
        # Re-read on every call so template edits apply without a restart.
        source = Path(self.settings.email_template_path).read_text(encoding="utf-8")
        template = self._env.from_string(source)
        return template.render(
            name=subscriber.name or "",
            title=article.title,
            content=article.content,
        )

    def build_message(self, subscriber: Subscriber, article: Article, body: str) -> EmailMessage:
        msg = EmailMessage()
        msg["Subject"] = SUBJECT_PREFIX + article.title
        msg["From"] = self.settings.email_from
        msg["To"] = subscriber.email
        msg.set_content(body, subtype="html")
        return msg

    def send(self, subscriber: Subscriber, article: Article) -> bool:
        settings = self.settings

        try:
            body = self.render(subscriber, article)
        except (OSError, UnicodeDecodeError) as e:
            logger.error(f"Error reading email template {settings.email_template_path}: {e}")
            return False
        except TemplateError as e:
            logger.error(f"Error rendering email template: {e}")
            return False
        except Exception as e:
            logger.error(f"Error executing email template: {e!r}")
            return False

        try:
            msg = self.build_message(subscriber, article, body)
            with smtplib.SMTP(settings.smtp_host, settings.smtp_port) as server:
                server.starttls()
                if settings.smtp_username:
                    server.login(settings.smtp_username, settings.smtp_password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError, ValueError) as e:
            logger.error(f"Error sending email to {subscriber.email}: {e}")
            return False

        logger.info(f'Email "{msg["Subject"]}" sent to {subscriber.email}')
        return True
