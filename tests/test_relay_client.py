"""
Relay client tests against a small aiohttp stand-in server.
"""
import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from chat_client.relay_client import RelayClient, RelayError


def _make_app():
    app = web.Application()
    state = {"conversations": [], "uploads": []}
    app["state"] = state

    async def login(request):
        body = await request.json()
        if body["password"] != "right":
            return web.json_response({"detail": "Invalid username or password"}, status=401)
        response = web.json_response({"id": 1, "username": body["username"]})
        response.set_cookie("session", "tok123")
        return response

    async def current_user(request):
        if request.cookies.get("session") != "tok123":
            return web.json_response({"detail": "Not authenticated"}, status=401)
        return web.json_response({"id": 1, "username": "ada"})

    async def create_conversation(request):
        body = await request.json()
        if body["title"] == "crash":
            return web.Response(status=500, text="Internal Server Error")
        if body["title"] == "proxy":
            return web.Response(status=502, text="<html><body>Bad Gateway</body></html>", content_type="text/html")
        conversation = {"id": len(state["conversations"]) + 1, "title": body["title"]}
        state["conversations"].append(conversation)
        return web.json_response(conversation, status=201)

    async def list_conversations(request):
        return web.Response(status=200, text="maintenance")

    async def delete_conversation(request):
        return web.Response(status=204)

    async def send_message(request):
        body = await request.json()
        conversation_id = int(request.match_info["conversation_id"])
        return web.json_response({
            "user_message": {"conversation_id": conversation_id, "role": body["role"], "content": body["content"]},
            "ai_message": {"conversation_id": conversation_id, "role": "assistant", "content": "pong"},
        })

    async def upload(request):
        reader = await request.multipart()
        part = await reader.next()
        data = await part.read()
        state["uploads"].append((part.filename, data))
        return web.json_response({"file_id": "file_1", "filename": part.filename, "size": len(data)})

    app.router.add_post("/api/login", login)
    app.router.add_get("/api/user", current_user)
    app.router.add_post("/api/conversations", create_conversation)
    app.router.add_get("/api/conversations", list_conversations)
    app.router.add_delete("/api/conversations/{conversation_id}", delete_conversation)
    app.router.add_post("/api/conversations/{conversation_id}/messages", send_message)
    app.router.add_post("/api/files/upload", upload)
    return app


@pytest_asyncio.fixture
async def relay_server():
    server = TestServer(_make_app())
    await server.start_server()
    yield server
    await server.close()


@pytest_asyncio.fixture
async def relay(relay_server):
    client = RelayClient(str(relay_server.make_url("/")))
    yield client
    await client.aclose()


@pytest.mark.asyncio
async def test_login_keeps_session_cookie(relay):
    user = await relay.login("ada", "right")

    assert user == {"id": 1, "username": "ada"}
    assert (await relay.current_user())["username"] == "ada"


@pytest.mark.asyncio
async def test_rejected_login_raises_relay_error(relay):
    with pytest.raises(RelayError) as exc_info:
        await relay.login("ada", "wrong")

    assert exc_info.value.status == 401
    assert exc_info.value.detail == "Invalid username or password"


@pytest.mark.asyncio
async def test_conversation_and_message_round(relay):
    conversation = await relay.create_conversation("Hello")
    result = await relay.send_message(conversation["id"], "ping")

    assert conversation == {"id": 1, "title": "Hello"}
    assert result["user_message"]["content"] == "ping"
    assert result["user_message"]["role"] == "user"
    assert result["ai_message"]["content"] == "pong"


@pytest.mark.asyncio
async def test_delete_returns_none(relay):
    assert await relay.delete_conversation(1) is None


@pytest.mark.asyncio
async def test_upload_file(relay, relay_server, tmp_path):
    path = tmp_path / "notes.txt"
    path.write_bytes(b"some notes")

    result = await relay.upload_file(path, "text/plain")

    assert result["file_id"] == "file_1"
    assert relay_server.app["state"]["uploads"] == [("notes.txt", b"some notes")]


@pytest.mark.asyncio
async def test_unreachable_relay():
    client = RelayClient("http://127.0.0.1:1", timeout_seconds=2)
    try:
        with pytest.raises(RelayError) as exc_info:
            await client.list_conversations()
    finally:
        await client.aclose()

    assert exc_info.value.status == 0
    assert exc_info.value.detail == "relay_unreachable"


@pytest.mark.asyncio
async def test_plain_text_error_body_raises_relay_error(relay):
    with pytest.raises(RelayError) as exc_info:
        await relay.create_conversation("crash")

    assert exc_info.value.status == 500
    assert exc_info.value.detail == "Internal Server Error"


@pytest.mark.asyncio
async def test_html_error_body_raises_relay_error(relay):
    with pytest.raises(RelayError) as exc_info:
        await relay.create_conversation("proxy")

    assert exc_info.value.status == 502
    assert exc_info.value.detail == "Bad Gateway"


@pytest.mark.asyncio
async def test_non_json_success_body_raises_relay_error(relay):
    with pytest.raises(RelayError) as exc_info:
        await relay.list_conversations()

    assert exc_info.value.status == 200
    assert exc_info.value.detail == "invalid_response"
