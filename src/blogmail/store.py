"""Access to the subscriber, article and sent-email tables.

A `Store` wraps an engine and is passed explicitly to whoever needs
it (the web app, the dispatcher, the CLI). Every method opens its own
session and commits once, so each call is atomic on its own and nothing
spans more than one call.
"""
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from blogmail.database import Base, get_session_factory
from blogmail.models import Article, SentEmail, Subscriber

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """A database operation failed; the message is the underlying error."""


class ArticleNotFound(StoreError):
    def __init__(self, article_id: int) -> None:
        super().__init__(f"article {article_id} not found")
        self.article_id = article_id


@dataclass
class StoreStats:
    subscribers: List[Subscriber] = field(default_factory=list)
    articles: List[Article] = field(default_factory=list)
    sent_emails: List[SentEmail] = field(default_factory=list)


class Store:
    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        self._session_factory = get_session_factory(engine)

    @contextmanager
    def _session(self) -> Iterator[Session]:
        session = self._session_factory()
        try:
            yield session
        except SQLAlchemyError as e:
            session.rollback()
            raise StoreError(str(e)) from e
        finally:
            session.close()

    def create_tables(self) -> None:
        try:
            Base.metadata.create_all(self.engine)
        except SQLAlchemyError as e:
            raise StoreError(str(e)) from e
        logger.info("Tables ready")

    def drop_tables(self) -> None:
        try:
            Base.metadata.drop_all(self.engine)
        except SQLAlchemyError as e:
            raise StoreError(str(e)) from e
        logger.info("All tables dropped")

    def add_subscriber(self, email: str, name: Optional[str] = None) -> Subscriber:
        with self._session() as session:
            subscriber = Subscriber(email=email, name=name)
            session.add(subscriber)
            session.commit()
            logger.info(f"Subscriber #{subscriber.id} added: {email}")
            return subscriber

    def add_article(self, title: str, content: str) -> Article:
        with self._session() as session:
            article = Article(title=title, content=content)
            session.add(article)
            session.commit()
            logger.info(f'Article #{article.id} published: "{title}"')
            return article

    def get_article(self, article_id: int) -> Article:
        with self._session() as session:
            article = session.get(Article, article_id)
            if article is None:
                raise ArticleNotFound(article_id)
            return article

    def list_subscribers(self) -> List[Subscriber]:
        with self._session() as session:
            return list(session.scalars(select(Subscriber).order_by(Subscriber.id)))

    def list_articles(self) -> List[Article]:
        with self._session() as session:
            return list(session.scalars(select(Article).order_by(Article.id)))

    def list_sent_emails(self) -> List[SentEmail]:
        with self._session() as session:
            return list(session.scalars(select(SentEmail).order_by(SentEmail.id)))

    def has_received(self, subscriber_id: int, article_id: int) -> bool:
        with self._session() as session:
            existing = session.scalars(
                select(SentEmail.id)
                .where(SentEmail.subscriber_id == subscriber_id)
                .where(SentEmail.article_id == article_id)
                .limit(1)
            ).first()
            return existing is not None

    def record_sent(self, subscriber_id: int, article_id: int) -> bool:
        """Record that `article_id` was emailed to `subscriber_id`.

        Returns False if the pair was already recorded. Any other integrity
        failure (unknown subscriber or article) raises StoreError.
        """
        try:
            with self._session() as session:
                session.add(SentEmail(subscriber_id=subscriber_id, article_id=article_id))
                session.commit()
                return True
        except StoreError as e:
            if isinstance(e.__cause__, IntegrityError) and self.has_received(
                subscriber_id, article_id
            ):
                logger.warning(
                    f"Sent record for subscriber #{subscriber_id}, "
                    f"article #{article_id} already exists"
                )
                return False
            raise

    def stats(self) -> StoreStats:
        return StoreStats(
            subscribers=self.list_subscribers(),
            articles=self.list_articles(),
            sent_emails=self.list_sent_emails(),
        )
