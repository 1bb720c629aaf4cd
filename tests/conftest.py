import json

import httpx
import pytest
import respx
from zentao_mcp.core.client import RetryConfig
from zentao_mcp.core.config import ZentaoConfig
from zentao_mcp.core.session import SessionManager

BASE_URL = "https://zentao.example.com"

LOGIN_PAGE = (
    "<html><head><script>self.location='/user-login.html';</script></head></html>"
)


def envelope(data):
    """A legacy reply: `data` is itself a JSON string."""
    return {"status": "success", "data": json.dumps(data, ensure_ascii=False)}


def ok(data):
    return httpx.Response(200, json=envelope(data))


def expired():
    return httpx.Response(
        200, text=LOGIN_PAGE, headers={"Content-Type": "text/html; charset=utf-8"}
    )


@pytest.fixture
def zentao_api():
    """respx router for BASE_URL with session id + login already answered."""
    with respx.mock(base_url=BASE_URL, assert_all_called=False) as mock:
        mock.get("/api-getSessionID.json", name="session_id").mock(
            return_value=ok({"sessionName": "zentaosid", "sessionID": "sid-1"})
        )
        mock.post("/user-login.json", name="login").mock(
            return_value=httpx.Response(200, json={"status": "success"})
        )
        yield mock


@pytest.fixture
def config():
    return ZentaoConfig(url=BASE_URL, username="alice", password="s3cret")


@pytest.fixture
def session(config):
    return SessionManager.from_config(
        config, retry=RetryConfig(max_retries=0, backoff_base_seconds=0)
    )
