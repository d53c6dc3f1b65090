import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Dict, Iterator

from blogmail.delivery.email import Mailer
from blogmail.store import ArticleNotFound, Store, StoreError

logger = logging.getLogger(__name__)


@dataclass
class DispatchReport:
    article_id: int
    found: bool = False
    sent: int = 0
    skipped: int = 0
    failed: int = 0


@dataclass
class _ArticleLock:
    lock: threading.Lock = field(default_factory=threading.Lock)
    users: int = 0


class Dispatcher:
    """Emails an article to every subscriber who has not received it yet.

    Delivery is attempted, not guaranteed: failures are logged and never
    retried. Runs for the same article are serialized within the process
    so two triggers cannot both email the same subscriber.
    """

    def __init__(self, store: Store, mailer: Mailer) -> None:
        self.store = store
        self.mailer = mailer
        self._locks: Dict[int, _ArticleLock] = {}
        self._locks_guard = threading.Lock()

    @contextmanager
    def _article_lock(self, article_id: int) -> Iterator[None]:
        # An entry lives only while a run holds or waits for it.
        with self._locks_guard:
            entry = self._locks.setdefault(article_id, _ArticleLock())
            entry.users += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._locks_guard:
                entry.users -= 1
                if entry.users == 0:
                    del self._locks[article_id]

    def dispatch(self, article_id: int) -> DispatchReport:
        with self._article_lock(article_id):
            return self._dispatch(article_id)

    def _dispatch(self, article_id: int) -> DispatchReport:
        report = DispatchReport(article_id=article_id)
        logger.info(f"Dispatching article #{article_id}")

        try:
            article = self.store.get_article(article_id)
            subscribers = self.store.list_subscribers()
        except ArticleNotFound:
            logger.error(f"Error getting article: article #{article_id} not found")
            return report
        except StoreError as e:
            logger.error(f"Error loading article #{article_id} or subscribers: {e}")
            return report
        report.found = True

        for subscriber in subscribers:
            try:
                if self.store.has_received(subscriber.id, article.id):
                    logger.debug(
                        f"Subscriber #{subscriber.id} already received article #{article.id}"
                    )
                    report.skipped += 1
                    continue
            except StoreError as e:
                logger.error(f"Error checking sent email for {subscriber.email}: {e}")
                report.failed += 1
                continue

            try:
                delivered = self.mailer.send(subscriber, article)
            except Exception:
                logger.exception(f"Error sending email to {subscriber.email}")
                delivered = False
            if not delivered:
                report.failed += 1
                continue

            try:
                if self.store.record_sent(subscriber.id, article.id):
                    report.sent += 1
                else:
                    report.skipped += 1
            except StoreError as e:
                logger.error(f"Error marking email as sent to {subscriber.email}: {e}")
                report.failed += 1

        logger.info(
            f"Article #{article_id} dispatched: {report.sent} sent, "
            f"{report.skipped} skipped, {report.failed} failed"
        )
        return report

    def run_in_background(self, article_id: int) -> None:
        """Entry point for background tasks; never raises."""
        try:
            self.dispatch(article_id)
        except Exception:
            logger.exception(f"Dispatch of article #{article_id} failed")
