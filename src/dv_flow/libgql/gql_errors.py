"""
gql_errors.py — error types and the response envelope for dv-flow-libgql.

Every failure raised by ``Client.run`` derives from GQLRequestError, so
callers can catch the whole family or discriminate on the subclass:

  - GQLCancelledError          deadline already past / timed out
  - GQLFilesNotSupportedError  files attached without multipart encoding
  - GQLEncodingError           request body could not be built
  - GQLFileError               a file stream failed while being read
  - GQLTransportError          the transport failed to deliver the request
  - GQLServerError             non-200 status and an undecodable body
  - GQLDecodeError             200 status and an undecodable body
  - GQLResponseErrors          the server returned GraphQL errors
"""
import json
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Union


class GQLRequestError(Exception):
    """Base class for all errors raised while running a GraphQL request."""
    def __init__(self, msg: str, status_code: int = 0):
        super().__init__(msg)
        self.status_code = status_code


class GQLCancelledError(GQLRequestError):
    """Raised when the request deadline expires before or during the call."""


class GQLFilesNotSupportedError(GQLRequestError):
    """Raised when a request carries files but multipart encoding is off."""
    def __init__(self, msg: str = "cannot send files without multipart form encoding"):
        super().__init__(msg)


class GQLEncodingError(GQLRequestError):
    """Raised when the request body cannot be encoded."""


class GQLFileError(GQLEncodingError):
    """Raised when a file attachment cannot be read."""


class GQLTransportError(GQLRequestError):
    """Raised when the transport fails (connect, DNS, TLS, protocol)."""


class GQLServerError(GQLRequestError):
    """Raised for a non-200 response whose body is not a GraphQL envelope."""
    def __init__(self, status_code: int):
        super().__init__(
            f"graphql server returned a non-200 status code; statuscode: {status_code}",
            status_code=status_code,
        )


class GQLDecodeError(GQLRequestError):
    """Raised when a 200 response body cannot be decoded."""


@dataclass
class Location:
    """A line/column position in the GraphQL document."""
    line: int
    column: int


@dataclass
class GraphQLError:
    """
    A single error entry from the ``errors`` list of a GraphQL response.

    ``locations`` points into the query document when the error can be
    tied to it, ``path`` is the key path of the response field that
    failed, and ``extensions`` carries server-specific data such as an
    error code.
    """
    message: str
    locations: List[Location] = field(default_factory=list)
    path: List[Union[str, int]] = field(default_factory=list)
    extensions: Dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        return "graphql: " + self.message

    @classmethod
    def from_json(cls, obj: Any) -> "GraphQLError":
        if not isinstance(obj, dict):
            raise ValueError(f"error entry must be an object, got {type(obj).__name__}")
        message = obj.get("message") or ""
        if not isinstance(message, str):
            raise ValueError("error message must be a string")

        locations = []
        for loc in obj.get("locations") or []:
            if not isinstance(loc, dict):
                raise ValueError("error location must be an object")
            locations.append(Location(line=int(loc.get("line", 0)),
                                      column=int(loc.get("column", 0))))

        path = obj.get("path") or []
        if not isinstance(path, list):
            raise ValueError("error path must be a list")

        extensions = obj.get("extensions") or {}
        if not isinstance(extensions, dict):
            raise ValueError("error extensions must be an object")

        return cls(message=message, locations=locations,
                   path=list(path), extensions=dict(extensions))


class GQLResponseErrors(GQLRequestError):
    """
    Raised when the response envelope decoded but its ``errors`` list is
    non-empty. Iterates over the GraphQLError entries; ``data`` holds
    whatever partial data the server returned alongside them.
    """
    def __init__(self, errors: List[GraphQLError], data: Any = None, status_code: int = 200):
        if errors:
            msg = "graphql: " + "; ".join(e.message for e in errors)
        else:
            msg = "graphql: no errors"
        super().__init__(msg, status_code=status_code)
        self.errors = list(errors)
        self.data = data

    def __iter__(self) -> Iterator[GraphQLError]:
        return iter(self.errors)

    def __len__(self) -> int:
        return len(self.errors)

    def __getitem__(self, idx: int) -> GraphQLError:
        return self.errors[idx]


@dataclass
class GraphQLResponse:
    """The ``{data, errors}`` envelope every GraphQL response follows."""
    data: Any = None
    errors: List[GraphQLError] = field(default_factory=list)

    @classmethod
    def decode(cls, body: Union[bytes, str]) -> "GraphQLResponse":
        """
        Parse a response body. Raises ValueError when the body is not
        JSON or does not have the envelope shape.
        """
        obj = json.loads(body)
        if not isinstance(obj, dict):
            raise ValueError(f"response must be a JSON object, got {type(obj).__name__}")

        errors = obj.get("errors")
        if errors is None:
            errors = []
        if not isinstance(errors, list):
            raise ValueError("response errors must be a list")

        return cls(
            data=obj.get("data"),
            errors=[GraphQLError.from_json(e) for e in errors],
        )


def decode_into(data: Any, into: Optional[Any]) -> None:
    """Copy decoded ``data`` into the caller's destination mapping."""
    if into is None or data is None:
        return
    if not isinstance(data, dict):
        raise ValueError(f"cannot decode {type(data).__name__} data into a mapping")
    into.clear()
    into.update(data)
