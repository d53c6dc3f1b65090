from typing import Callable, Type, TypeVar

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from pydantic import BaseModel, ValidationError

from blogmail.delivery.dispatcher import Dispatcher
from blogmail.store import Store

ModelT = TypeVar("ModelT", bound=BaseModel)


def get_store(request: Request) -> Store:
    return request.app.state.store


def get_dispatcher(request: Request) -> Dispatcher:
    return request.app.state.dispatcher


def json_body(model: Type[ModelT]) -> Callable:
    """Decode the request body as JSON whatever its Content-Type says."""

    async def parse(request: Request) -> ModelT:
        body = await request.body()
        try:
            return model.model_validate_json(body)
        except ValidationError as e:
            raise RequestValidationError(e.errors(include_url=False)) from e

    return parse
