import logging
from urllib.parse import parse_qs

import anyio
import httpx
import pytest
from conftest import BASE_URL, LOGIN_PAGE, expired, ok
from zentao_mcp.core.client import ZentaoClient
from zentao_mcp.core.errors import ConfigurationError, SessionError
from zentao_mcp.core.session import SessionManager, SessionState, classify_response


@pytest.mark.parametrize(
    "body, state",
    [
        (LOGIN_PAGE, SessionState.EXPIRED),
        ("<html>please go to user-login</html>", SessionState.EXPIRED),
        ("<script>top.location='x'</script>", SessionState.EXPIRED),
        ('{"status": "success", "data": "<script>alert(1)</script>"}', SessionState.ALIVE),
        ('  [{"id": 1}]', SessionState.ALIVE),
        ({"status": "success"}, SessionState.ALIVE),
        ("plain text reply", SessionState.ALIVE),
        (b"<script>self.location='/user-login.html'</script>", SessionState.EXPIRED),
        (b"\x89PNG\r\n\x1a\n", SessionState.ALIVE),
    ],
)
def test_classify_response(body, state):
    assert classify_response(body) is state


def test_manager_requires_credentials():
    client = ZentaoClient(base_url=BASE_URL)
    with pytest.raises(ConfigurationError):
        SessionManager(client, account="", password="x")
    with pytest.raises(ConfigurationError):
        SessionManager(client, account="alice", password="")


@pytest.mark.asyncio
async def test_login_posts_credentials_with_session_id(zentao_api, session):
    async with session:
        token = await session.ensure_session()

    assert token == "sid-1"
    login = zentao_api["login"].calls[0].request
    assert login.url.params["zentaosid"] == "sid-1"
    form = parse_qs(login.content.decode())
    assert form["account"] == ["alice"]
    assert form["password"] == ["s3cret"]
    assert form["keepLogin[]"] == ["on"]
    assert form["referer"] == [f"{BASE_URL}/my/"]


@pytest.mark.asyncio
async def test_request_attaches_token_and_unwraps(zentao_api, session):
    route = zentao_api.get("/my-task.json").mock(
        return_value=ok({"tasks": {"3": {"id": "3", "name": "Write docs"}}})
    )

    async with session:
        data = await session.authenticated_request("/my-task.json")

    assert data == {"tasks": {"3": {"id": "3", "name": "Write docs"}}}
    assert route.calls[0].request.url.params["zentaosid"] == "sid-1"
    assert session.renewals == 0


@pytest.mark.asyncio
async def test_expired_then_success_renews_once(zentao_api, session, caplog):
    caplog.set_level(logging.WARNING, logger="zentao_mcp.session")
    zentao_api["session_id"].mock(
        side_effect=[
            ok({"sessionID": "sid-1"}),
            ok({"sessionID": "sid-2"}),
        ]
    )
    route = zentao_api.get("/my-task.json").mock(
        side_effect=[expired(), ok({"tasks": {}})]
    )

    async with session:
        data = await session.authenticated_request("/my-task.json")

    assert data == {"tasks": {}}
    assert session.renewals == 1
    assert zentao_api["login"].call_count == 2
    assert route.calls[0].request.url.params["zentaosid"] == "sid-1"
    assert route.calls[1].request.url.params["zentaosid"] == "sid-2"
    assert any(r.getMessage() == "session_renewed" for r in caplog.records)


@pytest.mark.asyncio
async def test_redirect_to_login_page_renews_once(zentao_api, session):
    zentao_api["session_id"].mock(
        side_effect=[
            ok({"sessionID": "sid-1"}),
            ok({"sessionID": "sid-2"}),
        ]
    )
    zentao_api.get("/user-login.html").mock(return_value=expired())
    route = zentao_api.get("/my-task.json").mock(
        side_effect=[
            httpx.Response(302, headers={"Location": f"{BASE_URL}/user-login.html"}),
            ok({"tasks": {}}),
        ]
    )

    async with session:
        data = await session.authenticated_request("/my-task.json")

    assert data == {"tasks": {}}
    assert session.renewals == 1
    assert route.call_count == 2
    assert route.calls[1].request.url.params["zentaosid"] == "sid-2"


@pytest.mark.asyncio
async def test_expired_twice_raises_session_error(zentao_api, session):
    zentao_api.get("/my-task.json").mock(side_effect=[expired(), expired()])

    async with session:
        with pytest.raises(SessionError):
            await session.authenticated_request("/my-task.json")

    assert session.renewals == 1


@pytest.mark.asyncio
async def test_login_page_on_login_raises_session_error(zentao_api, session):
    zentao_api["login"].mock(return_value=expired())

    async with session:
        with pytest.raises(SessionError) as exc:
            await session.ensure_session()

    assert "alice" in str(exc.value)
    assert "s3cret" not in str(exc.value)


@pytest.mark.asyncio
async def test_session_id_http_error_raises_session_error(zentao_api, session):
    zentao_api["session_id"].mock(return_value=httpx.Response(500, text="oops"))

    async with session:
        with pytest.raises(SessionError):
            await session.ensure_session()


@pytest.mark.asyncio
async def test_concurrent_callers_share_one_login(zentao_api, session):
    zentao_api.get("/my-bug.json").mock(return_value=ok({"bugs": {}}))

    async with session:
        async with anyio.create_task_group() as tg:
            for _ in range(5):
                tg.start_soon(session.authenticated_request, "/my-bug.json")

    assert zentao_api["session_id"].call_count == 1
    assert zentao_api["login"].call_count == 1


@pytest.mark.asyncio
async def test_force_renew_reuses_newer_token(zentao_api, session):
    zentao_api["session_id"].mock(
        side_effect=[ok({"sessionID": "sid-1"}), ok({"sessionID": "sid-2"})]
    )

    async with session:
        await session.ensure_session()
        first = await session.force_renew("sid-1")
        second = await session.force_renew("sid-1")

    assert first == second == "sid-2"
    assert session.renewals == 1


@pytest.mark.asyncio
async def test_fetch_binary_resolves_zentao_prefix(zentao_api, session):
    png = b"\x89PNG\r\n\x1a\n-data"
    route = zentao_api.get("/file-read-12.png").mock(
        return_value=httpx.Response(200, content=png, headers={"Content-Type": "image/png"})
    )

    async with session:
        data = await session.fetch_binary("/zentao/file-read-12.png")

    assert data == png
    assert route.calls[0].request.url.params["zentaosid"] == "sid-1"


@pytest.mark.asyncio
async def test_fetch_binary_renews_on_login_page(zentao_api, session):
    zentao_api.get("/file-read-12.png").mock(
        side_effect=[
            expired(),
            httpx.Response(200, content=b"GIF89a", headers={"Content-Type": "image/gif"}),
        ]
    )

    async with session:
        data = await session.fetch_binary(f"{BASE_URL}/file-read-12.png")

    assert data == b"GIF89a"
    assert session.renewals == 1


@pytest.mark.asyncio
async def test_fetch_binary_follows_redirects(zentao_api, session):
    zentao_api.get("/file-read-3.png").mock(
        return_value=httpx.Response(302, headers={"Location": f"{BASE_URL}/data/upload/3.png"})
    )
    zentao_api.get("/data/upload/3.png").mock(
        return_value=httpx.Response(200, content=b"GIF89a", headers={"Content-Type": "image/gif"})
    )

    async with session:
        data = await session.fetch_binary("/zentao/file-read-3.png")

    assert data == b"GIF89a"
    assert session.renewals == 0
