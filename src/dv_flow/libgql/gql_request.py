"""
gql_request.py — GraphQL request builder for dv-flow-libgql.

A Request only accumulates the query, variables, headers and file
attachments. Encoding is done by the Client when the request is run.

    req = Request('''
        query ($key: String!) {
            items(id: $key) { field1 field2 }
        }
    ''')
    req.var("key", "value")
    req.set_header("Cache-Control", "no-cache")
"""
from dataclasses import dataclass
from typing import Any, BinaryIO, Dict, List, Optional


@dataclass
class File:
    """A file to upload as one part of a multipart request."""
    field: str
    name: str
    reader: BinaryIO


class Request:
    """A GraphQL query (or mutation) plus its variables, headers and files."""

    def __init__(self, query: str, variables: Optional[Dict[str, Any]] = None):
        self.query = query
        self.variables: Dict[str, Any] = dict(variables) if variables else {}
        self.header: Dict[str, List[str]] = {}
        self.files: List[File] = []

    def var(self, key: str, value: Any) -> None:
        """Set a variable."""
        self.variables[key] = value

    def set_header(self, key: str, value: str) -> None:
        """Set a header, replacing any values already set under ``key``."""
        self.header[key] = [value]

    def add_header(self, key: str, value: str) -> None:
        """Append a header value; existing values under ``key`` are kept."""
        self.header.setdefault(key, []).append(value)

    def file(self, field: str, name: str, reader: BinaryIO) -> None:
        """
        Attach a file. ``reader`` is read once, when the request is run,
        and is not rewound afterwards. The whole content is held in memory
        while the request body is built, so very large uploads cost their
        size in RAM. Requires a client created with ``use_multipart_form=True``.
        """
        self.files.append(File(field=field, name=name, reader=reader))
