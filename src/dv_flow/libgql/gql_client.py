"""
gql_client.py — low-level GraphQL client for dv-flow-libgql.

    client = Client("https://example.com/graphql")

    req = Request("query ($key: String!) { items(id: $key) { field1 } }")
    req.var("key", "value")

    resp = {}
    await client.run(req, resp)

A Client is safe to share between asyncio tasks once it is configured.
``debug_log``, the installed logger and the constructor options are plain
attributes; set them before concurrent use starts, they are not guarded.

Any object with an ``async send(httpx.Request) -> httpx.Response`` method
can stand in for the default ``httpx.AsyncClient`` transport:

    client = Client(url, transport=httpx.AsyncClient(timeout=30.0))
"""
import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, List, MutableMapping, Optional, Protocol, Tuple

import httpx
from httpx._multipart import MultipartStream

from dv_flow.libgql.gql_errors import (
    GQLCancelledError,
    GQLDecodeError,
    GQLEncodingError,
    GQLFileError,
    GQLFilesNotSupportedError,
    GQLResponseErrors,
    GQLServerError,
    GQLTransportError,
    GraphQLResponse,
    decode_into,
)
from dv_flow.libgql.gql_logger import Logger, NullLogger
from dv_flow.libgql.gql_request import Request

_log = logging.getLogger(__name__)

JSON_CONTENT_TYPE = "application/json; charset=utf-8"


class Transport(Protocol):
    async def send(self, request: httpx.Request) -> httpx.Response: ...


class Client:
    """A client for a single GraphQL endpoint."""

    def __init__(
        self,
        endpoint: str,
        transport: Optional[Transport] = None,
        use_multipart_form: bool = False,
        close_request_body: bool = False,
    ):
        """
        ``transport`` replaces the default ``httpx.AsyncClient``.
        ``use_multipart_form`` sends multipart/form-data and enables file
        uploads. ``close_request_body`` asks the server to close the
        connection after each request instead of keeping it alive.
        """
        self._endpoint = endpoint
        self._owns_transport = transport is None
        self.transport: Transport = transport if transport is not None else httpx.AsyncClient()
        self.use_multipart_form = use_multipart_form
        self.close_request_body = close_request_body
        self.debug_log = False
        self._logger: Logger = _log

    @property
    def endpoint(self) -> str:
        return self._endpoint

    async def run(
        self,
        req: Request,
        into: Optional[MutableMapping[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        """
        Execute the request and return the ``data`` field of the response.

        When ``into`` is given it is filled with the decoded data. Pass
        None to only check the response for errors. ``timeout`` bounds
        the send and the response read together; a non-positive value
        fails immediately.

        Raises a GQLRequestError subclass on failure. GraphQL errors in
        the response are raised as GQLResponseErrors even on HTTP 200.
        """
        deadline = None
        if timeout is not None:
            if timeout <= 0:
                raise GQLCancelledError("context deadline exceeded")
            deadline = asyncio.get_running_loop().time() + timeout

        if req.files and not self.use_multipart_form:
            raise GQLFilesNotSupportedError()

        if self.use_multipart_form:
            request = self._build_multipart(req)
        else:
            request = self._build_json(req)
        return await self._do(request, into, deadline)

    def _build_json(self, req: Request) -> httpx.Request:
        body = _encode_json({"query": req.query, "variables": req.variables})
        if self.debug_log:
            self._logger.debug("variables: %s", req.variables)
            self._logger.debug("query: %s", req.query)
        return self._new_request(req, JSON_CONTENT_TYPE, body.encode("utf-8"))

    def _build_multipart(self, req: Request) -> httpx.Request:
        fields = {"query": req.query}
        variables = ""
        if req.variables:
            variables = _encode_json(req.variables)
            fields["variables"] = variables

        files: List[Tuple[str, Tuple[str, bytes, str]]] = []
        for f in req.files:
            try:
                content = f.reader.read()
            except (OSError, ValueError) as exc:
                raise GQLFileError(f"preparing file error: {f.name}: {exc}") from exc
            files.append((f.field, (f.name, content, "application/octet-stream")))

        try:
            stream = MultipartStream(data=fields, files=files)
            body = b"".join(stream)
        except (TypeError, ValueError) as exc:
            raise GQLEncodingError(f"encoding request body error: {exc}") from exc

        if self.debug_log:
            self._logger.debug("variables: %s", variables)
            self._logger.debug("num of files: %d", len(req.files))
            self._logger.debug("query: %s", req.query)
        return self._new_request(req, stream.get_headers()["Content-Type"], body)

    def _new_request(self, req: Request, content_type: str, body: bytes) -> httpx.Request:
        headers = [
            ("Content-Type", content_type),
            ("Accept", JSON_CONTENT_TYPE),
        ]
        for key, values in req.header.items():
            for value in values:
                headers.append((key, value))
        if self.close_request_body:
            headers.append(("Connection", "close"))
        return httpx.Request("POST", self._endpoint, headers=headers, content=body)

    async def _do(
        self,
        request: httpx.Request,
        into: Optional[MutableMapping[str, Any]],
        deadline: Optional[float],
    ) -> Any:
        if self.debug_log:
            self._logger.debug("headers: %s", request.headers.multi_items())

        try:
            response = await _bounded(deadline, self.transport.send, request)
        except (httpx.HTTPError, OSError) as exc:
            raise GQLTransportError(f"graphql request failed: {exc}") from exc

        try:
            body = await _bounded(deadline, response.aread)
        except (httpx.HTTPError, OSError) as exc:
            raise GQLDecodeError(f"decoding response error: {exc}") from exc
        finally:
            await response.aclose()

        if self.debug_log:
            self._logger.debug("response body: %s", body.decode("utf-8", errors="replace"))

        try:
            envelope = GraphQLResponse.decode(body)
            decode_into(envelope.data, into)
        except (TypeError, ValueError) as exc:
            if response.status_code != httpx.codes.OK:
                raise GQLServerError(response.status_code) from exc
            raise GQLDecodeError(f"decoding response error: {exc}",
                                 status_code=response.status_code) from exc

        if envelope.errors:
            raise GQLResponseErrors(envelope.errors, data=envelope.data,
                                    status_code=response.status_code)
        return envelope.data

    def enable_debug_log(self) -> "Client":
        """Enable debug-level logging of requests and responses (off by default)."""
        self.debug_log = True
        return self

    def disable_debug_log(self) -> "Client":
        self.debug_log = False
        return self

    def get_logger(self) -> Logger:
        return self._logger

    def set_logger(self, logger: Optional[Logger]) -> "Client":
        """Install ``logger``; None installs a NullLogger."""
        self._logger = logger if logger is not None else NullLogger()
        return self

    async def aclose(self) -> None:
        """Close the default transport. Caller-supplied transports are left open."""
        if self._owns_transport:
            await self.transport.aclose()

    async def __aenter__(self) -> "Client":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()


def _encode_json(obj: Any) -> str:
    try:
        return json.dumps(obj, allow_nan=False)
    except (TypeError, ValueError) as exc:
        raise GQLEncodingError(f"encoding request body error: {exc}") from exc


async def _bounded(deadline: Optional[float], fn: Callable[..., Awaitable[Any]], *args) -> Any:
    if deadline is None:
        return await fn(*args)
    remaining = deadline - asyncio.get_running_loop().time()
    if remaining <= 0:
        raise GQLCancelledError("context deadline exceeded")
    try:
        return await asyncio.wait_for(fn(*args), remaining)
    except asyncio.TimeoutError as exc:
        raise GQLCancelledError("context deadline exceeded") from exc
