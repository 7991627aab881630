from __future__ import annotations

import types

import pytest
import requests

from mpcremote.player.commands import WM_COMMANDS, MpcCommandChannel, resolve_command_id

URL = "http://127.0.0.1:13579/command.html"


class RecordingSession:
    def __init__(self, *, raises=None, status_code=200):
        self.calls = []
        self.raises = raises
        self.status_code = status_code
        self.closed = False

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        if self.raises is not None:
            raise self.raises
        return types.SimpleNamespace(ok=self.status_code < 400, status_code=self.status_code)

    def close(self):
        self.closed = True


def _channel(session, **kwargs):
    return MpcCommandChannel(command_url=URL, timeout_ms=2500, session=session, **kwargs)


def test_discrete_command_is_form_post():
    session = RecordingSession()
    result = _channel(session).send_command(WM_COMMANDS["next"])

    assert result.ok
    method, url, kwargs = session.calls[0]
    assert (method, url) == ("POST", URL)
    assert kwargs["data"] == {"wm_command": 920, "null": 0}
    assert kwargs["timeout"] == 2.5


def test_percent_seek_is_query_get_and_clamped():
    session = RecordingSession()
    channel = _channel(session)

    channel.send_seek_percent(33.5)
    channel.send_seek_percent(250)
    channel.send_seek_percent(-4)

    params = [c[2]["params"] for c in session.calls]
    assert [c[0] for c in session.calls] == ["GET", "GET", "GET"]
    assert params[0] == {"wm_command": -1, "percent": 33.5}
    assert params[1]["percent"] == 100.0
    assert params[2]["percent"] == 0.0


def test_time_seek_posts_position():
    session = RecordingSession()
    _channel(session).seek_to_ms(3_723_000)
    method, _, kwargs = session.calls[0]
    assert method == "POST"
    assert kwargs["data"] == {"wm_command": -1, "position": "01:02:03"}


@pytest.mark.parametrize(
    "session, expected",
    [
        (RecordingSession(raises=requests.Timeout("slow")), "timed out"),
        (RecordingSession(raises=requests.ConnectionError("refused")), "request failed"),
        (RecordingSession(status_code=404), "HTTP 404"),
    ],
)
def test_failures_become_results(session, expected):
    sent = []
    result = _channel(session, on_sent=lambda: sent.append(1)).send_command(889)
    assert result.ok is False
    assert expected in result.message
    assert sent == []


def test_on_sent_fires_after_success():
    sent = []
    channel = _channel(RecordingSession(), on_sent=lambda: sent.append(1))
    channel.send_command(889)
    channel.send_seek_percent(10)
    assert sent == [1, 1]


def test_close_closes_session():
    session = RecordingSession()
    _channel(session).close()
    assert session.closed


def test_resolve_command_id():
    assert resolve_command_id("next") == 920
    assert resolve_command_id("Play-Pause") == 889
    assert resolve_command_id("816") == 816
    with pytest.raises(ValueError):
        resolve_command_id("launch")
