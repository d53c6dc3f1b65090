from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict

from blogmail.store import StoreStats


class SubscribeRequest(BaseModel):
    email: str = ""
    name: Optional[str] = None


class PublishRequest(BaseModel):
    title: str = ""
    content: str = ""


class SendNewsletterRequest(BaseModel):
    article_id: int = 0


class SubscriberOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    name: Optional[str] = None
    subscribed_at: datetime


class ArticleOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    content: str
    published_at: datetime


class SentEmailOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    subscriber_id: int
    article_id: int
    sent_at: datetime


class StatsResponse(BaseModel):
    subscribers: List[SubscriberOut]
    subscriber_count: int
    articles: List[ArticleOut]
    article_count: int
    sent_emails: List[SentEmailOut]
    sent_email_count: int

    @classmethod
    def from_stats(cls, stats: StoreStats) -> "StatsResponse":
        return cls(
            subscribers=[SubscriberOut.model_validate(s) for s in stats.subscribers],
            subscriber_count=len(stats.subscribers),
            articles=[ArticleOut.model_validate(a) for a in stats.articles],
            article_count=len(stats.articles),
            sent_emails=[SentEmailOut.model_validate(e) for e in stats.sent_emails],
            sent_email_count=len(stats.sent_emails),
        )
