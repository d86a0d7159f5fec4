"""ASGI middleware for the gateway app."""

from starlette.datastructures import Headers
from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from encoding_gateway.gateway.exceptions import PayloadTooLargeError


class MaxBodySizeMiddleware:
    """Answer 413 for request bodies larger than ``max_body_size`` bytes.

    A declared Content-Length is checked up front. Otherwise the body is
    buffered while it is counted and replayed to the app once complete, so
    the app never sees a partial body.
    """

    def __init__(self, app: ASGIApp, max_body_size: int) -> None:
        self.app = app
        self.max_body_size = max_body_size

    def _declared_length(self, scope: Scope) -> int:
        value = Headers(scope=scope).get("content-length")
        if value is None:
            return 0
        try:
            return int(value)
        except ValueError:
            return self.max_body_size + 1

    async def _reject(self, scope: Scope, receive: Receive, send: Send) -> None:
        exc = PayloadTooLargeError(self.max_body_size)
        response = JSONResponse(status_code=exc.status_code, content=exc.to_dict())
        await response(scope, receive, send)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        if self._declared_length(scope) > self.max_body_size:
            await self._reject(scope, receive, send)
            return

        buffered: list[Message] = []
        received = 0
        while True:
            message = await receive()
            buffered.append(message)
            if message["type"] != "http.request":
                break
            received += len(message.get("body", b""))
            if received > self.max_body_size:
                await self._reject(scope, receive, send)
                return
            if not message.get("more_body", False):
                break

        async def replay() -> Message:
            if buffered:
                return buffered.pop(0)
            return await receive()

        await self.app(scope, replay, send)
