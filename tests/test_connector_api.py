from __future__ import annotations

import pytest

from npmx_connector.core.executor import QueryKind
from npmx_connector.core.operations import ExecutionResult, OperationStatus
from tests.connector_helpers import TOKEN, add_user_op, by_user

ADD_BOB = {
    "kind": "team:add-user",
    "params": {"scopeTeam": "@acme:devs", "user": "bob"},
    "description": "Add bob to @acme:devs",
    "command": "npm team add @acme:devs bob",
}


def _create(client, auth, user: str, depends_on=None) -> dict:
    body = {
        "kind": "team:add-user",
        "params": {"scopeTeam": "@acme:devs", "user": user},
    }
    if depends_on:
        body["dependsOn"] = depends_on
    resp = client.post("/operations", json=body, headers=auth)
    assert resp.status_code == 200, resp.text
    return resp.json()["data"]


def _status(client, auth, op_id: str) -> str:
    ops = client.get("/state", headers=auth).json()["data"]["operations"]
    return {op["id"]: op for op in ops}[op_id]["status"]


PROTECTED = [
    ("get", "/state", None),
    ("post", "/operations", ADD_BOB),
    ("post", "/operations/batch", [ADD_BOB]),
    ("post", "/approve?id={pending}", None),
    ("post", "/approve-all", None),
    ("post", "/retry?id={failed}", None),
    ("post", "/execute", {"otp": "123456"}),
    ("delete", "/operations?id={pending}", None),
    ("delete", "/operations/all", None),
    ("get", "/org/acme/users", None),
    ("get", "/org/acme/teams", None),
    ("get", "/team/acme:devs/users", None),
    ("get", "/package/@acme/ui/collaborators", None),
]


@pytest.mark.parametrize("method, path, body", PROTECTED)
@pytest.mark.parametrize(
    "headers",
    [
        {},
        {"Authorization": "Bearer wrong"},
        {"Authorization": TOKEN + "x"},
        {"Authorization": TOKEN[:8] + "Bearer " + TOKEN[8:]},
    ],
    ids=["missing", "wrong", "no-bearer-prefix", "prefix-inside-token"],
)
def test_protected_endpoints_reject_bad_tokens(
    client, connector, executor, method, path, body, headers
):
    pending = connector.store.add(add_user_op("alice"))
    failed = connector.store.add(add_user_op("carol"))
    connector.store.approve(failed.id)
    connector.store.mark_running(failed.id)
    connector.store.record_result(failed.id, ExecutionResult(stderr="x", exit_code=1))
    before = connector.store.list()

    url = path.format(pending=pending.id, failed=failed.id)
    kwargs = {"headers": headers}
    if body is not None:
        kwargs["json"] = body
    resp = client.request(method.upper(), url, **kwargs)

    assert resp.status_code == 401
    payload = resp.json()
    assert payload["success"] is False
    assert payload["code"] == "unauthorized"
    assert payload["error"] == "Unauthorized"
    assert connector.store.list() == before
    assert executor.calls == []
    assert executor.query_calls == []


def test_connect_handshake(client, executor):
    resp = client.post("/connect", json={"token": TOKEN})
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["identity"] == "alice"
    assert isinstance(data["connectedAt"], int)
    assert executor.whoami_calls == 1


@pytest.mark.parametrize(
    "body", [{"token": "nope"}, {}, None, {"token": 12345}, {"token": [TOKEN]}]
)
def test_connect_rejects_bad_token(client, executor, body):
    kwargs = {} if body is None else {"json": body}
    resp = client.post("/connect", **kwargs)
    assert resp.status_code == 401
    payload = resp.json()
    assert payload == {
        "success": False,
        "error": "Invalid token",
        "code": "invalid_token",
        "request_id": resp.headers["X-Request-ID"],
    }
    assert executor.whoami_calls == 0


def test_state_after_connect(client, auth):
    client.post("/connect", json={"token": TOKEN})
    op = _create(client, auth, "bob")
    data = client.get("/state", headers=auth).json()["data"]
    assert data["identity"] == "alice"
    assert [item["id"] for item in data["operations"]] == [op["id"]]


def test_create_and_batch(client, auth):
    resp = client.post("/operations", json=ADD_BOB, headers=auth)
    assert resp.status_code == 200
    created = resp.json()["data"]
    assert created["status"] == "pending"
    assert created["command"] == "npm team add @acme:devs bob"
    assert created["result"] is None

    batch = [
        {"kind": "team:create", "params": {"scopeTeam": "@acme:ops"}},
        {
            "kind": "access:grant",
            "params": {"permission": "read-only", "scopeTeam": "@acme:ops", "pkg": "@acme/ui"},
            "dependsOn": created["id"],
        },
    ]
    resp = client.post("/operations/batch", json=batch, headers=auth)
    assert resp.status_code == 200
    items = resp.json()["data"]
    assert [item["kind"] for item in items] == ["team:create", "access:grant"]
    assert items[1]["dependsOn"] == created["id"]

    ops = client.get("/state", headers=auth).json()["data"]["operations"]
    assert [op["id"] for op in ops] == [created["id"], items[0]["id"], items[1]["id"]]


def test_batch_with_invalid_item_adds_nothing(client, auth, connector):
    batch = [ADD_BOB, {"kind": "org:add-user", "params": {"org": "acme", "user": "bob"}}]
    resp = client.post("/operations/batch", json=batch, headers=auth)
    assert resp.status_code == 400
    assert resp.json()["code"] == "invalid_params"
    assert connector.store.list() == []


@pytest.mark.parametrize(
    "body, status, code",
    [
        ({"kind": "team:add-user", "params": {"scopeTeam": "@acme:devs"}}, 400, "invalid_params"),
        ({"kind": "publish", "params": {}}, 400, "invalid_params"),
        (
            {"kind": "owner:add", "params": {"user": "bob", "pkg": "Bad Name"}},
            400,
            "invalid_params",
        ),
        (
            {"kind": "team:create", "params": {"scopeTeam": "@acme:x"}, "dependsOn": "missing"},
            404,
            "operation_not_found",
        ),
        ({"params": {}}, 422, "validation_error"),
    ],
)
def test_create_rejects_invalid_operations(client, auth, connector, body, status, code):
    resp = client.post("/operations", json=body, headers=auth)
    assert resp.status_code == status
    assert resp.json()["code"] == code
    assert connector.store.list() == []


def test_approve_transitions(client, auth):
    op = _create(client, auth, "bob")

    resp = client.post(f"/approve?id={op['id']}", headers=auth)
    assert resp.status_code == 200
    assert resp.json()["data"]["status"] == "approved"

    again = client.post(f"/approve?id={op['id']}", headers=auth)
    assert again.status_code == 400
    assert again.json()["code"] == "invalid_transition"

    missing = client.post("/approve?id=unknown", headers=auth)
    assert missing.status_code == 404
    assert missing.json()["error"] == "Operation not found"

    no_id = client.post("/approve", headers=auth)
    assert no_id.status_code == 422


def test_approve_all_returns_count(client, auth):
    for user in ("bob", "carol", "dave"):
        _create(client, auth, user)
    resp = client.post("/approve-all", headers=auth)
    assert resp.json() == {"success": True, "data": {"approved": 3}}
    assert client.post("/approve-all", headers=auth).json()["data"]["approved"] == 0


def test_retry_rejects_non_failed(client, auth):
    op = _create(client, auth, "bob")
    resp = client.post(f"/retry?id={op['id']}", headers=auth)
    assert resp.status_code == 400
    assert resp.json()["error"] == "Only failed operations can be retried"

    client.post(f"/approve?id={op['id']}", headers=auth)
    client.post("/execute", headers=auth)
    completed = client.post(f"/retry?id={op['id']}", headers=auth)
    assert completed.status_code == 400


def test_delete_operations(client, auth, connector):
    keep = _create(client, auth, "bob")
    doomed = _create(client, auth, "carol")
    running = connector.store.add(add_user_op("dave"))
    connector.store.approve(running.id)
    connector.store.mark_running(running.id)

    resp = client.delete(f"/operations?id={doomed['id']}", headers=auth)
    assert resp.status_code == 200
    assert resp.json()["data"]["id"] == doomed["id"]

    blocked = client.delete(f"/operations?id={running.id}", headers=auth)
    assert blocked.status_code == 400
    assert blocked.json()["error"] == "Cannot cancel running operation"

    gone = client.delete(f"/operations?id={doomed['id']}", headers=auth)
    assert gone.status_code == 404

    resp = client.delete("/operations/all", headers=auth)
    assert resp.json()["data"] == {"removed": 1}
    remaining = [op.id for op in connector.store.list()]
    assert remaining == [running.id]
    assert keep["id"] not in remaining


def test_scenario_dependency_chain(client, auth, executor):
    a = _create(client, auth, "alice")
    b = _create(client, auth, "bob", depends_on=a["id"])
    client.post(f"/approve?id={a['id']}", headers=auth)
    client.post(f"/approve?id={b['id']}", headers=auth)

    resp = client.post("/execute", headers=auth)
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["otpRequired"] is False
    assert data["authFailure"] is False
    assert [item["id"] for item in data["results"]] == [a["id"], b["id"]]
    assert executor.executed_users() == ["alice", "bob"]
    assert _status(client, auth, a["id"]) == "completed"
    assert _status(client, auth, b["id"]) == "completed"


def test_scenario_failure_cascade(client, auth, executor):
    executor.handler = by_user(
        {"alice": ExecutionResult(stderr="npm ERR! 404 Not Found", exit_code=1)}
    )
    a = _create(client, auth, "alice")
    b = _create(client, auth, "bob", depends_on=a["id"])
    client.post("/approve-all", headers=auth)

    client.post("/execute", headers=auth)

    ops = {
        op["id"]: op
        for op in client.get("/state", headers=auth).json()["data"]["operations"]
    }
    assert ops[a["id"]]["status"] == "failed"
    assert ops[a["id"]]["result"]["stderr"] == "npm ERR! 404 Not Found"
    assert ops[b["id"]]["status"] == "failed"
    assert ops[b["id"]]["result"]["stderr"] == "Skipped: dependency failed"
    assert executor.executed_users() == ["alice"]


def test_scenario_otp_retry(client, auth, executor):
    executor.handler = lambda kind, params, otp: ExecutionResult(
        stderr="This operation requires a one-time password (OTP).",
        exit_code=1,
        requires_otp=True,
    )
    c = _create(client, auth, "carol")
    client.post(f"/approve?id={c['id']}", headers=auth)

    first = client.post("/execute", headers=auth).json()["data"]
    assert first["otpRequired"] is True
    assert _status(client, auth, c["id"]) == "failed"

    executor.handler = lambda kind, params, otp: ExecutionResult(stdout="ok")
    retried = client.post(f"/retry?id={c['id']}", headers=auth).json()["data"]
    assert retried["status"] == "approved"
    assert retried["result"] is None

    second = client.post("/execute", json={"otp": "123456"}, headers=auth).json()["data"]
    assert second["otpRequired"] is False
    assert _status(client, auth, c["id"]) == "completed"
    assert executor.calls[-1][2] == "123456"


def test_execute_with_nothing_approved(client, auth):
    resp = client.post("/execute", json={}, headers=auth)
    assert resp.json()["data"] == {
        "results": [],
        "otpRequired": False,
        "authFailure": False,
    }


def test_listing_success(client, auth, executor):
    executor.queries[QueryKind.ORG_USERS] = ExecutionResult(
        stdout='{"alice": "owner", "bob": "developer"}'
    )
    executor.queries[QueryKind.ORG_TEAMS] = ExecutionResult(stdout='["acme:devs"]')
    executor.queries[QueryKind.TEAM_USERS] = ExecutionResult(stdout='["alice"]')
    executor.queries[QueryKind.PACKAGE_COLLABORATORS] = ExecutionResult(
        stdout='{"alice": "read-write"}'
    )

    users = client.get("/org/acme/users", headers=auth).json()
    assert users == {"success": True, "data": {"alice": "owner", "bob": "developer"}}
    teams = client.get("/org/acme/teams", headers=auth).json()
    assert teams["data"] == ["acme:devs"]
    members = client.get("/team/nuxt%3Adevelopers/users", headers=auth).json()
    assert members["data"] == ["alice"]
    collaborators = client.get("/package/@nuxt%2Fkit/collaborators", headers=auth).json()
    assert collaborators["data"] == {"alice": "read-write"}

    assert executor.query_calls == [
        (QueryKind.ORG_USERS, "acme"),
        (QueryKind.ORG_TEAMS, "acme"),
        (QueryKind.TEAM_USERS, "nuxt:developers"),
        (QueryKind.PACKAGE_COLLABORATORS, "@nuxt/kit"),
    ]


def test_listing_failures_stay_in_envelope(client, auth, executor):
    executor.queries[QueryKind.ORG_USERS] = ExecutionResult(
        stderr="npm ERR! 404 Not Found", exit_code=1
    )
    executor.queries[QueryKind.ORG_TEAMS] = ExecutionResult(stdout="not json")
    executor.queries[QueryKind.TEAM_USERS] = ExecutionResult(stdout='{"not": "a list"}')
    executor.queries[QueryKind.PACKAGE_COLLABORATORS] = ExecutionResult(exit_code=1)

    failed = client.get("/org/acme/users", headers=auth)
    assert failed.status_code == 200
    assert failed.json() == {
        "success": False,
        "error": "npm ERR! 404 Not Found",
        "code": "command_failed",
    }
    unparsed = client.get("/org/acme/teams", headers=auth).json()
    assert unparsed == {"success": False, "error": "Failed to parse teams", "code": "parse_error"}
    wrong_shape = client.get("/team/acme:devs/users", headers=auth).json()
    assert wrong_shape["code"] == "parse_error"
    silent = client.get("/package/react/collaborators", headers=auth).json()
    assert silent["error"] == "Failed to list collaborators"


def test_listing_rejects_invalid_package(client, auth, executor):
    resp = client.get("/package/_private/collaborators", headers=auth)
    assert resp.status_code == 400
    assert resp.json()["code"] == "invalid_params"
    assert executor.query_calls == []


def test_health_and_request_id(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["data"]["status"] == "ok"
    assert resp.headers["X-Request-ID"]
    assert "X-Process-Time" in resp.headers

    echoed = client.get("/health", headers={"X-Request-ID": "req-42"})
    assert echoed.headers["X-Request-ID"] == "req-42"


def test_cors_preflight(client):
    resp = client.options(
        "/operations",
        headers={
            "Origin": "https://npmx.dev",
            "Access-Control-Request-Method": "DELETE",
            "Access-Control-Request-Headers": "Authorization, Content-Type",
        },
    )
    assert resp.status_code == 200
    assert resp.headers["access-control-allow-origin"] == "*"
    allowed = resp.headers["access-control-allow-methods"]
    for method in ("GET", "POST", "DELETE", "OPTIONS"):
        assert method in allowed


def test_unknown_route_uses_envelope(client, auth):
    resp = client.get("/nope", headers=auth)
    assert resp.status_code == 404
    body = resp.json()
    assert body["success"] is False
    assert body["code"] == "http_404"


def test_running_status_visible_during_execution(client, auth, connector, executor):
    seen = []

    def _handler(kind, params, otp):
        seen.append([op.status for op in connector.store.list()])
        return ExecutionResult(stdout="ok")

    executor.handler = _handler
    _create(client, auth, "bob")
    client.post("/approve-all", headers=auth)
    client.post("/execute", headers=auth)

    assert seen == [[OperationStatus.RUNNING]]


@pytest.mark.parametrize(
    "url",
    [
        "/org/--registry=evil.example/users",
        "/org/-g/teams",
        "/team/--json/users",
        "/team/acme/users",
        "/package/--global/collaborators",
    ],
)
def test_listing_rejects_option_like_targets(client, auth, executor, url):
    resp = client.get(url, headers=auth)
    assert resp.status_code == 400
    assert resp.json()["code"] == "invalid_params"
    assert executor.query_calls == []


def test_create_rejects_option_like_params(client, auth, connector):
    body = {
        "kind": "team:add-user",
        "params": {"scopeTeam": "@acme:devs", "user": "--registry=https://evil.example"},
        "command": "npm team add @acme:devs bob",
    }
    resp = client.post("/operations", json=body, headers=auth)
    assert resp.status_code == 400
    assert resp.json()["code"] == "invalid_params"
    assert connector.store.list() == []
