import logging
from typing import Optional

from fastapi import BackgroundTasks, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import PlainTextResponse

from blogmail.config import Settings, get_settings
from blogmail.database import get_engine
from blogmail.delivery.dispatcher import Dispatcher
from blogmail.delivery.email import Mailer
from blogmail.store import Store, StoreError
from blogmail.web.dependencies import get_dispatcher, get_store, json_body
from blogmail.web.schemas import (
    PublishRequest,
    SendNewsletterRequest,
    StatsResponse,
    SubscribeRequest,
)

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[Store] = None,
    mailer: Optional[Mailer] = None,
) -> FastAPI:
    """Build the API. Tables are created here only when no store is passed in;
    a caller that passes a store is expected to have initialised it.
    """
    settings = settings or get_settings()
    if store is None:
        store = Store(get_engine(settings.database_url))
        store.create_tables()

    app = FastAPI(title="Blog Newsletter")
    app.state.settings = settings
    app.state.store = store
    app.state.dispatcher = Dispatcher(store, mailer or Mailer(settings))

    @app.exception_handler(RequestValidationError)
    def bad_request(request: Request, exc: RequestValidationError):
        return PlainTextResponse(str(exc), status_code=400)

    @app.exception_handler(StoreError)
    def store_failure(request: Request, exc: StoreError):
        logger.error(f"{request.method} {request.url.path}: {exc}")
        return PlainTextResponse(str(exc), status_code=500)

    @app.post("/api/subscribe", response_class=PlainTextResponse)
    def subscribe(
        payload: SubscribeRequest = Depends(json_body(SubscribeRequest)),
        store: Store = Depends(get_store),
    ):
        store.add_subscriber(payload.email, payload.name)
        return "Subscribed successfully"

    @app.post("/api/publish", response_class=PlainTextResponse)
    def publish(
        background_tasks: BackgroundTasks,
        payload: PublishRequest = Depends(json_body(PublishRequest)),
        store: Store = Depends(get_store),
        dispatcher: Dispatcher = Depends(get_dispatcher),
    ):
        article = store.add_article(payload.title, payload.content)
        background_tasks.add_task(dispatcher.run_in_background, article.id)
        return "Article published successfully"

    @app.post("/api/send-newsletter", response_class=PlainTextResponse)
    def send_newsletter(
        background_tasks: BackgroundTasks,
        payload: SendNewsletterRequest = Depends(json_body(SendNewsletterRequest)),
        dispatcher: Dispatcher = Depends(get_dispatcher),
    ):
        background_tasks.add_task(dispatcher.run_in_background, payload.article_id)
        return "Newsletter sending triggered"

    @app.get("/api/stats", response_model=StatsResponse)
    def stats(store: Store = Depends(get_store)):
        return StatsResponse.from_stats(store.stats())

    return app
