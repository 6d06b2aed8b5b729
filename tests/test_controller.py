"""
Chat session controller tests.

Verifies:
- Conversation creation on first send, title truncation
- Voice mode lifecycle and support checks
- Final transcripts become messages; replies are auto-read
- Relay failures become notices
"""
import asyncio

import pytest

from chat_client.config import ClientConfig
from chat_client.controller import ChatSessionController, conversation_title
from chat_client.parser import SegmentKind
from chat_client.relay_client import RelayError
from chat_client.voice_errors import VoiceErrorCategory
from chat_client.voice_session import VoiceState

from conftest import FakeCapture, FakePlayback


class FakeRelay:
    """In-process stand-in for RelayClient."""

    def __init__(self, reply="Sure thing."):
        self.reply = reply
        self.created_titles = []
        self.sent = []
        self.deleted = []
        self.fail_with = None
        self.gate = None
        self._next_message_id = 1

    def _message(self, conversation_id, role, content):
        message = {
            "id": self._next_message_id,
            "conversation_id": conversation_id,
            "role": role,
            "content": content,
        }
        self._next_message_id += 1
        return message

    async def create_conversation(self, title):
        self.created_titles.append(title)
        return {"id": 7, "title": title}

    async def send_message(self, conversation_id, content):
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_with:
            raise self.fail_with
        self.sent.append((conversation_id, content))
        return {
            "user_message": self._message(conversation_id, "user", content),
            "ai_message": self._message(conversation_id, "assistant", self.reply),
        }

    async def list_messages(self, conversation_id):
        return [self._message(conversation_id, "user", "earlier")]

    async def delete_conversation(self, conversation_id):
        self.deleted.append(conversation_id)


@pytest.fixture
def relay():
    return FakeRelay()


@pytest.fixture
def controller(relay, capture, playback):
    return ChatSessionController(relay, ClientConfig(), capture=capture, playback=playback)


def test_conversation_title():
    assert conversation_title("short") == "short"
    assert conversation_title("x" * 50) == "x" * 50
    assert conversation_title("y" * 51) == "y" * 50 + "..."


@pytest.mark.asyncio
async def test_first_send_creates_conversation(controller, relay):
    reply = await controller.send_message("  Explain decorators please  ")

    assert relay.created_titles == ["Explain decorators please"]
    assert relay.sent == [(7, "Explain decorators please")]
    assert controller.conversation_id == 7
    assert reply["content"] == "Sure thing."
    assert [m["role"] for m in controller.messages] == ["user", "assistant"]


@pytest.mark.asyncio
async def test_second_send_reuses_conversation(controller, relay):
    await controller.send_message("one")
    await controller.send_message("two")

    assert len(relay.created_titles) == 1
    assert [content for _, content in relay.sent] == ["one", "two"]


@pytest.mark.asyncio
async def test_blank_message_is_not_sent(controller, relay):
    assert await controller.send_message("   ") is None
    assert relay.sent == []


@pytest.mark.asyncio
async def test_relay_failure_becomes_notice(controller, relay):
    relay.fail_with = RelayError(502, "upstream.rate_limited")
    seen = []
    controller.on_notice = seen.append

    assert await controller.send_message("hello") is None

    assert seen[0].title == "Error sending message"
    assert seen[0].description == "upstream.rate_limited"
    assert controller.messages == []


def test_enable_voice_mode(controller):
    assert controller.enable_voice_mode() is True
    assert controller.voice_mode
    assert controller.voice.state == VoiceState.IDLE
    assert controller.voice.settings.volume == 0.8


@pytest.mark.parametrize("capture_ok, playback_ok", [(False, True), (True, False), (False, False)])
def test_voice_mode_needs_both_backends(relay, capture_ok, playback_ok):
    controller = ChatSessionController(
        relay,
        capture=FakeCapture(supported=capture_ok),
        playback=FakePlayback(supported=playback_ok),
    )

    assert controller.enable_voice_mode() is False
    assert controller.voice is None
    assert controller.notices[-1].category == VoiceErrorCategory.UNSUPPORTED


def test_disable_voice_mode_closes_session(controller, capture):
    controller.enable_voice_mode()
    session = controller.voice
    controller.toggle_listening()

    controller.disable_voice_mode()

    assert controller.voice is None
    assert session.closed
    assert session.state == VoiceState.IDLE
    assert ("abort",) in capture.calls


def test_toggle_listening(controller, capture):
    assert controller.toggle_listening() is False

    controller.enable_voice_mode()
    assert controller.toggle_listening() is True
    assert controller.voice.is_listening

    assert controller.toggle_listening() is True
    assert capture.calls[-1] == ("stop",)


@pytest.mark.asyncio
async def test_final_transcript_is_sent_and_reply_read(controller, relay, capture, playback):
    controller.enable_voice_mode()
    controller.toggle_listening()
    capture.result("what is a closure")
    capture.ended("what is a closure ")

    await controller.drain()

    assert relay.sent == [(7, "what is a closure")]
    assert controller.voice.transcript == ""
    assert [u.text for u in playback.spoken] == ["Sure thing."]
    assert controller.voice.state == VoiceState.SPEAKING


@pytest.mark.asyncio
async def test_blank_final_transcript_is_not_sent(controller, relay, capture):
    controller.enable_voice_mode()
    controller.toggle_listening()
    capture.ended("   ")

    await controller.drain()

    assert relay.sent == []


@pytest.mark.asyncio
async def test_auto_read_off(controller, playback):
    controller.enable_voice_mode()
    controller.auto_read = False

    await controller.send_message("hello")

    assert playback.spoken == []


@pytest.mark.asyncio
async def test_no_read_without_voice_mode(controller, playback):
    await controller.send_message("hello")

    assert playback.spoken == []


@pytest.mark.asyncio
async def test_open_and_delete_conversation(controller, relay):
    messages = await controller.open_conversation(3)

    assert controller.conversation_id == 3
    assert messages[0]["content"] == "earlier"

    assert await controller.delete_conversation() is True
    assert relay.deleted == [3]
    assert controller.conversation_id is None
    assert controller.messages == []
    assert await controller.delete_conversation() is False


def test_render_parses_content():
    segments = ChatSessionController.render({"content": "Try:\n```py\nprint(1)\n```"})

    assert [s.kind for s in segments] == [SegmentKind.TEXT, SegmentKind.CODE]
    assert segments[1].language == "py"


def test_read_aloud(controller, playback):
    assert controller.read_aloud("hi") is False

    controller.enable_voice_mode()
    assert controller.read_aloud("hi") is True
    assert controller.read_aloud("  ") is False


@pytest.mark.asyncio
async def test_typed_send_while_sending_is_refused(controller, relay):
    relay.gate = asyncio.Event()
    first = asyncio.create_task(controller.send_message("first"))
    await asyncio.sleep(0)

    assert await controller.send_message("second") is None

    relay.gate.set()
    await first
    assert [content for _, content in relay.sent] == ["first"]


@pytest.mark.asyncio
async def test_transcript_during_send_is_queued(controller, relay, capture):
    relay.gate = asyncio.Event()
    typed = asyncio.create_task(controller.send_message("typed question"))
    await asyncio.sleep(0)

    controller.enable_voice_mode()
    controller.toggle_listening()
    capture.ended("spoken follow-up")
    await asyncio.sleep(0)
    assert relay.sent == []

    relay.gate.set()
    await typed
    await controller.drain()

    assert [content for _, content in relay.sent] == ["typed question", "spoken follow-up"]
    assert controller.notices == []


@pytest.mark.asyncio
async def test_transcript_from_backend_thread(relay, capture, playback):
    controller = ChatSessionController(
        relay,
        capture=capture,
        playback=playback,
        loop=asyncio.get_running_loop(),
    )
    controller.enable_voice_mode()
    controller.toggle_listening()

    await asyncio.to_thread(capture.ended, "from another thread")
    await asyncio.sleep(0)
    await controller.drain()

    assert relay.sent == [(7, "from another thread")]


def test_transcript_without_loop_raises_notice(relay, capture, playback):
    controller = ChatSessionController(relay, capture=capture, playback=playback)
    controller.enable_voice_mode()
    controller.toggle_listening()

    capture.ended("nobody is listening")

    assert relay.sent == []
    assert controller.notices[-1].title == "Error sending message"
