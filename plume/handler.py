"""
Handler chain - Sequential dispatch of a server request through stages.

Provides:
- RequestHandler protocol (terminal stage: ``handle(request)``)
- Interceptor protocol (wrapping stage: ``process(request, handler)``)
- RequestHandlerChain: immutable stage list + position

A chain never advances in place. ``handle`` gives the dispatched stage a new
chain view one position further on, so a chain can serve many requests
(concurrently too) without any shared cursor.
"""

from __future__ import annotations

import copy
import inspect
import logging
from typing import Any, Callable, Iterable, Optional, Protocol, Tuple, Union, runtime_checkable

from .config import HttpConfig
from .faults import ConfigurationError
from .request import ServerRequest
from .response import Response
from .transport import TransportResponse

logger = logging.getLogger("plume.handler")


@runtime_checkable
class RequestHandler(Protocol):
    """Produces a response for a request."""

    def handle(self, request: ServerRequest) -> Response:
        ...


@runtime_checkable
class Interceptor(Protocol):
    """Processes a request, optionally delegating to the rest of the chain."""

    def process(self, request: ServerRequest, handler: RequestHandler) -> Response:
        ...


StageCallable = Callable[[ServerRequest, "RequestHandlerChain"], Response]
Stage = Union[Interceptor, RequestHandler, StageCallable]


def _stage_name(stage: Any) -> str:
    return getattr(stage, "__name__", None) or type(stage).__name__


class RequestHandlerChain:
    """
    Ordered list of stages dispatched one at a time.

    Stage kinds, checked in this order:
    - Interceptor: ``stage.process(request, next_view)``
    - RequestHandler: ``stage.handle(request)`` (terminal)
    - any other callable: ``stage(request, next_view)``

    A view past the last stage returns an empty 200 response bound to the
    chain's transport.

    Example:
        ```python
        class Auth:
            def process(self, request, handler):
                if not request.has_header("Authorization"):
                    return Response(401)
                return handler.handle(request)

        def hello(request, handler):
            return Response(200, body=b"hello")

        chain = RequestHandlerChain([Auth(), hello], transport)
        response = chain.handle(request)
        ```
    """

    def __init__(
        self,
        stages: Iterable[Stage],
        transport: Optional[TransportResponse] = None,
        *,
        config: Optional[HttpConfig] = None,
    ):
        """
        Initialize RequestHandlerChain.

        Raises:
            ConfigurationError: Empty stage list or an unsupported stage
        """
        stages = tuple(stages or ())

        if not stages:
            raise ConfigurationError("Handler chain requires at least one stage")

        for index, stage in enumerate(stages):
            if inspect.isclass(stage):
                raise ConfigurationError(
                    f"Stage {index} ({_stage_name(stage)}) is a class, pass an instance",
                    index=index,
                )
            if not (
                isinstance(stage, Interceptor)
                or isinstance(stage, RequestHandler)
                or callable(stage)
            ):
                raise ConfigurationError(
                    f"Stage {index} ({_stage_name(stage)}) is not an interceptor, "
                    f"a handler or a callable",
                    index=index,
                )

        self._stages: Tuple[Stage, ...] = stages
        self._index = 0
        self._transport = transport
        self._config = config

    # ========================================================================
    # Views
    # ========================================================================

    def _view(self, index: int) -> "RequestHandlerChain":
        view = copy.copy(self)
        view._index = index
        return view

    def with_transport(self, transport: Optional[TransportResponse]) -> "RequestHandlerChain":
        """Same stages and position, bound to another transport."""
        view = copy.copy(self)
        view._transport = transport
        return view

    @property
    def stages(self) -> Tuple[Stage, ...]:
        return self._stages

    @property
    def position(self) -> int:
        return self._index

    @property
    def transport(self) -> Optional[TransportResponse]:
        return self._transport

    @property
    def config(self) -> Optional[HttpConfig]:
        return self._config

    def __len__(self) -> int:
        """Number of stages left to dispatch."""
        return max(len(self._stages) - self._index, 0)

    # ========================================================================
    # Dispatch
    # ========================================================================

    def handle(self, request: ServerRequest) -> Response:
        """Dispatch the stage at this view's position."""
        if self._index >= len(self._stages):
            logger.debug("Handler chain exhausted, returning default response")
            return Response.from_transport(self._transport, self._config)

        stage = self._stages[self._index]
        next_view = self._view(self._index + 1)

        logger.debug(f"Dispatching stage {self._index}: {_stage_name(stage)}")

        if isinstance(stage, Interceptor):
            return stage.process(request, next_view)

        if isinstance(stage, RequestHandler):
            return stage.handle(request)

        return stage(request, next_view)

    def __call__(self, request: ServerRequest) -> Response:
        return self.handle(request)

    def __repr__(self) -> str:
        return f"<RequestHandlerChain position={self._index} stages={len(self._stages)}>"
