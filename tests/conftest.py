"""
Shared fakes: capture/playback backends standing in for the host's speech facilities.
"""
import pytest

from chat_client.backends import VoiceEvent, VoiceEventType, VoiceInfo
from observability.event_store import event_store


class FakeCapture:
    """Records requests; test code drives the events."""

    def __init__(self, supported: bool = True):
        self.supported = supported
        self.supported_checks = 0
        self.emit = None
        self.calls = []
        self.fail_on_start = False

    def is_supported(self) -> bool:
        self.supported_checks += 1
        return self.supported

    def bind(self, emit):
        self.emit = emit

    def start(self, language, continuous):
        if self.fail_on_start:
            raise RuntimeError("recognition already started")
        self.calls.append(("start", language, continuous))

    def stop(self):
        self.calls.append(("stop",))

    def abort(self):
        self.calls.append(("abort",))

    # backend-side signals
    def started(self):
        self.emit(VoiceEvent(VoiceEventType.CAPTURE_STARTED))

    def result(self, transcript, is_final=False):
        self.emit(VoiceEvent(VoiceEventType.CAPTURE_RESULT, transcript=transcript, is_final=is_final))

    def ended(self, transcript=None):
        self.emit(VoiceEvent(VoiceEventType.CAPTURE_ENDED, transcript=transcript))

    def error(self, code, message=None):
        self.emit(VoiceEvent(VoiceEventType.CAPTURE_ERROR, error=code, message=message))


class FakePlayback:
    def __init__(self, supported: bool = True, voices=None):
        self.supported = supported
        self.emit = None
        self.spoken = []
        self.calls = []
        self._voices = list(voices or [])

    def is_supported(self) -> bool:
        return self.supported

    def bind(self, emit):
        self.emit = emit

    def voices(self):
        return list(self._voices)

    def speak(self, utterance):
        self.spoken.append(utterance)
        self.calls.append(("speak", utterance.utterance_id))

    def cancel(self):
        self.calls.append(("cancel",))

    def pause(self):
        self.calls.append(("pause",))

    def resume(self):
        self.calls.append(("resume",))

    # backend-side signals
    def started(self, utterance_id):
        self.emit(VoiceEvent(VoiceEventType.PLAYBACK_STARTED, utterance_id=utterance_id))

    def ended(self, utterance_id):
        self.emit(VoiceEvent(VoiceEventType.PLAYBACK_ENDED, utterance_id=utterance_id))

    def error(self, utterance_id, code="synthesis-failed"):
        self.emit(VoiceEvent(VoiceEventType.PLAYBACK_ERROR, utterance_id=utterance_id, error=code))


@pytest.fixture
def capture():
    return FakeCapture()


@pytest.fixture
def playback():
    return FakePlayback(voices=[
        VoiceInfo(name="Amelie", lang="fr-FR", default=True),
        VoiceInfo(name="Daniel", lang="en-GB"),
        VoiceInfo(name="Samantha", lang="en-US", default=True),
    ])


@pytest.fixture(autouse=True)
def clear_event_store():
    yield
    event_store.clear()
