"""
request.py — pytask implementation for gql.Request.
"""
import json
import logging
import os
from typing import Any, Dict, List, Optional

from dv_flow.mgr import TaskDataResult, TaskDataInput, TaskRunCtxt
from dv_flow.libgql.gql_client import Client
from dv_flow.libgql.gql_errors import GQLRequestError, GQLResponseErrors
from dv_flow.libgql.gql_request import Request

_log = logging.getLogger(__name__)


def _from_env(name: str, env: Optional[Dict[str, str]] = None) -> str:
    if env is not None and env.get(name):
        return env[name]
    return os.environ.get(name, "")


def resolve_endpoint(params: Any, env: Optional[Dict[str, str]] = None) -> str:
    """Return the endpoint from the task params or GQL_ENDPOINT."""
    endpoint = getattr(params, "endpoint", "") or ""
    if endpoint:
        return endpoint
    endpoint = _from_env("GQL_ENDPOINT", env)
    if not endpoint:
        raise GQLRequestError(
            "No GraphQL endpoint found. Set the 'endpoint' parameter or GQL_ENDPOINT env var."
        )
    return endpoint


def resolve_token(params: Any, env: Optional[Dict[str, str]] = None) -> str:
    """Return a bearer token from the task params or GQL_TOKEN, or ''."""
    return getattr(params, "token", "") or _from_env("GQL_TOKEN", env)


async def GraphQLRequest(ctxt: TaskRunCtxt, input: TaskDataInput) -> TaskDataResult:
    """Execute a GraphQL request; writes response.json and outputs gql.GraphQLMeta."""
    try:
        endpoint = resolve_endpoint(input.params, ctxt.env)
    except GQLRequestError as exc:
        ctxt.error(str(exc))
        return TaskDataResult(status=1)

    query = getattr(input.params, "query", "") or ""
    if not query:
        ctxt.error("gql.Request: 'query' parameter is required.")
        return TaskDataResult(status=1)

    variables_param = getattr(input.params, "variables", None)
    req = Request(query, dict(variables_param) if variables_param else None)

    token = resolve_token(input.params, ctxt.env)
    if token:
        req.set_header("Authorization", f"Bearer {token}")
    headers_param = getattr(input.params, "headers", None) or {}
    for key, value in dict(headers_param).items():
        req.add_header(key, str(value))

    files_param = dict(getattr(input.params, "files", None) or {})
    for path in files_param.values():
        if not os.path.isfile(path):
            ctxt.error(f"gql.Request: file not found: {path}")
            return TaskDataResult(status=1)

    timeout = getattr(input.params, "timeout", 0) or None
    client = Client(endpoint, use_multipart_form=bool(files_param))
    if getattr(input.params, "debug", False):
        client.enable_debug_log()

    handles: List[Any] = []
    try:
        for field, path in files_param.items():
            fh = open(path, "rb")
            handles.append(fh)
            req.file(field, os.path.basename(path), fh)
        data = await client.run(req, timeout=timeout)
    except GQLResponseErrors as exc:
        for err in exc:
            ctxt.error(f"gql.Request: {err}")
        return TaskDataResult(status=1)
    except GQLRequestError as exc:
        ctxt.error(f"gql.Request failed: {exc}")
        return TaskDataResult(status=1)
    finally:
        for fh in handles:
            fh.close()
        await client.aclose()

    out_path = os.path.join(ctxt.rundir, "response.json")
    with open(out_path, "w") as fh:
        json.dump(data, fh, indent=2)

    meta = ctxt.mkDataItem("gql.GraphQLMeta", endpoint=endpoint)
    _log.info("GraphQL request to %s completed", endpoint)
    return TaskDataResult(status=0, output=[meta])
