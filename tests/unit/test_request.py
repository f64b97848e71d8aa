"""
Unit tests for the Request builder and the gql.Request task.
"""
import io
import json
import os

import pytest
import httpx
from unittest.mock import MagicMock

from dv_flow.libgql.gql_errors import GQLRequestError
from dv_flow.libgql.gql_request import File, Request
from dv_flow.libgql.request import GraphQLRequest, resolve_endpoint, resolve_token


_ENDPOINT = "https://api.example.com/graphql"


# ---------------------------------------------------------------------------
# Helpers / fakes
# ---------------------------------------------------------------------------

def _make_item(type_name, **kwargs):
    item = MagicMock()
    item.type = type_name
    for k, v in kwargs.items():
        setattr(item, k, v)
    return item


def _make_params(**overrides):
    params = {
        "endpoint": _ENDPOINT,
        "query": "{ viewer { login } }",
        "variables": {},
        "headers": {},
        "files": {},
        "token": "",
        "debug": False,
        "timeout": 0,
    }
    params.update(overrides)
    return params


def _make_input(params_dict, items=None):
    inp = MagicMock()
    params = MagicMock()
    for k, v in params_dict.items():
        setattr(params, k, v)
    inp.params = params
    inp.inputs = items or []
    inp.name = "test-task"
    return inp


def _make_ctxt(rundir):
    ctxt = MagicMock()
    ctxt.env = {}
    ctxt.rundir = str(rundir)
    def _mk(type_name, **kwargs):
        return _make_item(type_name, **kwargs)
    ctxt.mkDataItem.side_effect = _mk
    return ctxt


# ---------------------------------------------------------------------------
# Request builder
# ---------------------------------------------------------------------------

def test_request_accumulates():
    req = Request("{ ok }", {"a": 1})
    req.var("b", [1, 2])
    req.add_header("X-Trace", "1")
    req.add_header("X-Trace", "2")
    req.set_header("Authorization", "Bearer x")
    req.set_header("Authorization", "Bearer y")
    fh = io.BytesIO(b"data")
    req.file("upload", "data.bin", fh)

    assert req.query == "{ ok }"
    assert req.variables == {"a": 1, "b": [1, 2]}
    assert req.header == {"X-Trace": ["1", "2"], "Authorization": ["Bearer y"]}
    assert req.files == [File(field="upload", name="data.bin", reader=fh)]


def test_request_copies_initial_variables():
    initial = {"a": 1}
    req = Request("{ ok }", initial)
    req.var("b", 2)
    assert initial == {"a": 1}


# ---------------------------------------------------------------------------
# resolve_endpoint / resolve_token
# ---------------------------------------------------------------------------

def test_resolve_endpoint_from_param():
    params = MagicMock(endpoint="https://p.example.com/graphql")
    assert resolve_endpoint(params, {"GQL_ENDPOINT": "https://e"}) == "https://p.example.com/graphql"


def test_resolve_endpoint_from_env(monkeypatch):
    monkeypatch.setenv("GQL_ENDPOINT", "https://os.example.com/graphql")
    params = MagicMock(endpoint="")
    assert resolve_endpoint(params, {}) == "https://os.example.com/graphql"
    assert resolve_endpoint(params, {"GQL_ENDPOINT": "https://t"}) == "https://t"


def test_resolve_endpoint_missing(monkeypatch):
    monkeypatch.delenv("GQL_ENDPOINT", raising=False)
    with pytest.raises(GQLRequestError, match="No GraphQL endpoint"):
        resolve_endpoint(MagicMock(endpoint=""), {})


def test_resolve_token(monkeypatch):
    monkeypatch.delenv("GQL_TOKEN", raising=False)
    assert resolve_token(MagicMock(token=""), {}) == ""
    assert resolve_token(MagicMock(token=""), {"GQL_TOKEN": "env"}) == "env"
    assert resolve_token(MagicMock(token="param"), {"GQL_TOKEN": "env"}) == "param"


# ============================================================================
# gql.Request
# ============================================================================

@pytest.mark.asyncio
async def test_graphql_request_task(respx_mock, tmp_path):
    route = respx_mock.post(_ENDPOINT).mock(
        return_value=httpx.Response(200, json={"data": {"viewer": {"login": "octo"}}})
    )
    ctxt = _make_ctxt(tmp_path)
    inp = _make_input(_make_params(
        variables={"first": 10},
        headers={"X-Request-Id": "abc"},
        token="secret",
    ))

    result = await GraphQLRequest(ctxt, inp)

    assert result.status == 0
    assert len(result.output) == 1
    assert ctxt.mkDataItem.call_args[1]["endpoint"] == _ENDPOINT

    with open(os.path.join(tmp_path, "response.json")) as fh:
        assert json.load(fh) == {"viewer": {"login": "octo"}}

    sent = route.calls.last.request
    assert sent.headers["authorization"] == "Bearer secret"
    assert sent.headers["x-request-id"] == "abc"
    assert json.loads(sent.content)["variables"] == {"first": 10}


@pytest.mark.asyncio
async def test_graphql_request_task_uploads_files(respx_mock, tmp_path):
    route = respx_mock.post(_ENDPOINT).mock(
        return_value=httpx.Response(200, json={"data": {"upload": {"id": "F_1"}}})
    )
    upload = tmp_path / "report.txt"
    upload.write_bytes(b"report body")
    ctxt = _make_ctxt(tmp_path)
    inp = _make_input(_make_params(
        query="mutation ($f: Upload!) { upload(file: $f) { id } }",
        files={"f": str(upload)},
    ))

    result = await GraphQLRequest(ctxt, inp)

    assert result.status == 0
    sent = route.calls.last.request
    assert sent.headers["content-type"].startswith("multipart/form-data")
    assert b'name="f"; filename="report.txt"' in sent.content
    assert b"report body" in sent.content


@pytest.mark.asyncio
async def test_graphql_request_task_missing_file(tmp_path):
    ctxt = _make_ctxt(tmp_path)
    inp = _make_input(_make_params(files={"f": str(tmp_path / "nope.txt")}))

    result = await GraphQLRequest(ctxt, inp)
    assert result.status == 1
    ctxt.error.assert_called()


@pytest.mark.asyncio
async def test_graphql_request_task_graphql_errors(respx_mock, tmp_path):
    respx_mock.post(_ENDPOINT).mock(
        return_value=httpx.Response(200, json={
            "data": None,
            "errors": [{"message": "first"}, {"message": "second"}],
        })
    )
    ctxt = _make_ctxt(tmp_path)
    result = await GraphQLRequest(ctxt, _make_input(_make_params()))

    assert result.status == 1
    assert ctxt.error.call_count == 2
    assert "graphql: first" in ctxt.error.call_args_list[0][0][0]
    assert not os.path.exists(os.path.join(tmp_path, "response.json"))


@pytest.mark.asyncio
async def test_graphql_request_task_server_error(respx_mock, tmp_path):
    respx_mock.post(_ENDPOINT).mock(
        return_value=httpx.Response(502, text="Bad Gateway")
    )
    ctxt = _make_ctxt(tmp_path)
    result = await GraphQLRequest(ctxt, _make_input(_make_params()))

    assert result.status == 1
    assert "statuscode: 502" in ctxt.error.call_args[0][0]


@pytest.mark.asyncio
async def test_graphql_request_task_missing_query(tmp_path):
    ctxt = _make_ctxt(tmp_path)
    result = await GraphQLRequest(ctxt, _make_input(_make_params(query="")))
    assert result.status == 1
    ctxt.error.assert_called()


@pytest.mark.asyncio
async def test_graphql_request_task_missing_endpoint(monkeypatch, tmp_path):
    monkeypatch.delenv("GQL_ENDPOINT", raising=False)
    ctxt = _make_ctxt(tmp_path)
    result = await GraphQLRequest(ctxt, _make_input(_make_params(endpoint="")))
    assert result.status == 1
    ctxt.error.assert_called()


def test_dvfm_packages():
    from dv_flow.libgql.__ext__ import dvfm_packages
    pkgs = dvfm_packages()
    assert set(pkgs) == {"gql"}
    assert os.path.isfile(pkgs["gql"])


@pytest.mark.asyncio
async def test_graphql_request_task_connection_refused(respx_mock, tmp_path):
    respx_mock.post(_ENDPOINT).mock(side_effect=ConnectionRefusedError("refused"))
    ctxt = _make_ctxt(tmp_path)
    result = await GraphQLRequest(ctxt, _make_input(_make_params()))

    assert result.status == 1
    assert "refused" in ctxt.error.call_args[0][0]
