"""Session tests: authentication, inbound dispatch and outbound commands
against an in-memory connection."""

import asyncio
import json

import pytest

from rabbithole.models.session import AuthState
from rabbithole.models.transcript import Origin, PayloadKind

LOGON_FRAME = {"type": "logon", "data": {"imei": "D1", "accountKey": "K1"}}


def feed(session, message):
    session.handle_message(json.dumps(message))


def authenticate(session):
    feed(session, {"type": "logon", "data": "success"})


class TestAuthentication:
    def test_open_sends_exactly_one_logon(self, make_session):
        session, conn = make_session()

        assert conn.sent() == [LOGON_FRAME]
        assert session.auth_state is AuthState.AUTHENTICATING
        assert session.log.lines == [
            "Connected to Rabbithole",
            'Authenticating with payload: {"type":"logon","data":{"imei":"*********","accountKey":"*******************"}}',
        ]
        assert [e.content for e in session.transcript] == ["Authenticating", "Connected to Rabbithole"]

        session.auth.auto_logon()
        assert len(conn.frames) == 1

    def test_credentials_never_logged(self, make_session):
        session, _ = make_session(account_key="super-secret-key", imei="861234567890123")
        authenticate(session)
        assert not any("super-secret-key" in line or "861234567890123" in line for line in session.log)

    def test_success_ack(self, make_session):
        session, _ = make_session()
        authenticate(session)

        assert session.state.authenticated is True
        assert session.state.eligible is False
        assert session.auth_state is AuthState.AUTHENTICATED
        assert session.log.lines[-1] == "Authenticated successfully"
        assert session.transcript.entries[0].content == "Authenticated successfully"
        assert session.transcript.entries[0].origin == Origin.SYSTEM

    @pytest.mark.parametrize("ack", ["failure", "", None, True, {"status": "success"}])
    def test_other_ack_is_failure(self, make_session, ack):
        session, conn = make_session()
        feed(session, {"type": "logon", "data": ack})

        assert session.state.authenticated is False
        assert session.state.eligible is True
        assert session.auth_state is AuthState.CONNECTED
        assert session.log.lines[-1] == "Authentication failed"
        # no automatic retry
        assert len(conn.frames) == 1

    @pytest.mark.parametrize("account_key,imei", [("", "D1"), ("K1", ""), ("", "")])
    def test_empty_credentials_skip_logon(self, make_session, account_key, imei):
        session, conn = make_session(account_key=account_key, imei=imei)

        assert conn.frames == []
        assert session.log.lines[-1] == "Account key or IMEI not provided"
        assert session.auth_state is AuthState.CONNECTED

    def test_absent_credentials_wait_for_registration(self, make_session):
        session, conn = make_session(account_key=None, imei=None)
        assert conn.frames == []
        assert session.log.lines[-1] == "No credentials configured, waiting for registration"

    def test_rearm_after_credentials_arrive(self, make_session):
        session, conn = make_session(account_key="", imei="D1")
        session.account_key = "K1"
        assert session.auth.rearm() is True
        assert conn.sent() == [LOGON_FRAME]

    def test_close_resets_everything(self, make_session):
        session, conn = make_session()
        authenticate(session)
        conn.connected = False
        session.handle_close()

        assert session.state.authenticated is False
        assert session.state.eligible is False
        assert session.auth_state is AuthState.DISCONNECTED
        assert session.log.lines[-1] == "Disconnected from Rabbithole"

    def test_error_does_not_change_state(self, make_session):
        session, _ = make_session()
        authenticate(session)
        session.handle_error(OSError("reset by peer"))

        assert session.state.authenticated is True
        assert session.log.lines[-1] == "Error: OSError: reset by peer"
        assert session.transcript.entries[0].content == "Error: OSError: reset by peer"


class TestDispatcher:
    def test_message(self, make_session):
        session, _ = make_session()
        feed(session, {"type": "message", "data": "hello there"})

        entry = session.transcript.entries[0]
        assert (entry.origin, entry.kind, entry.content) == (Origin.RABBIT, PayloadKind.TEXT, "hello there")
        assert session.log.lines[-1] == "hello there"

    def test_ptt_echo(self, make_session):
        session, _ = make_session()
        feed(session, {"type": "ptt", "data": "listening"})

        entry = session.transcript.entries[0]
        assert (entry.origin, entry.kind, entry.content) == (Origin.USER, PayloadKind.AUDIO, "listening")

    def test_audio_goes_to_sink_only(self, make_session):
        played = []
        session, _ = make_session(audio_sink=played.append)
        before = len(session.transcript)
        feed(session, {"type": "audio", "data": {"audio": "UklGRg=="}})

        assert played == ["UklGRg=="]
        assert len(session.transcript) == before

    def test_register_reply(self, make_session):
        calls = []
        session, _ = make_session(
            account_key=None, imei=None,
            on_register=lambda imei, key, raw: calls.append((imei, key, raw)),
        )
        feed(session, {"type": "register", "data": {"imei": "D2", "accountKey": "K2"}})

        assert calls == [("D2", "K2", '{"imei":"D2","accountKey":"K2"}')]
        assert session.log.lines[-1] == (
            'Registered with data: {"imei":"*********","accountKey":"*******************"}'
        )
        assert not any("K2" in line for line in session.log)

    def test_register_callback_failure_is_contained(self, make_session):
        def boom(*_args):
            raise RuntimeError("storage full")

        session, _ = make_session(on_register=boom)
        feed(session, {"type": "register", "data": {"imei": "D2", "accountKey": "K2"}})

        assert session.log.lines[-2:] == [
            "Registration callback failed",
            'Registered with data: {"imei":"*********","accountKey":"*******************"}',
        ]

    def test_long_does_not_fall_into_meeting(self, make_session):
        session, _ = make_session()
        feed(session, {"type": "long", "data": {"images": ["https://a/1.png", "https://a/2.png"]}, "active": True})

        entry = session.transcript.entries[0]
        assert (entry.origin, entry.kind) == (Origin.RABBIT, PayloadKind.IMAGE)
        assert entry.content == "https://a/1.png\nhttps://a/2.png"
        assert "Meeting started" not in [e.content for e in session.transcript]

    @pytest.mark.parametrize("message", [
        {"type": "meeting", "data": {"active": True}},
        {"type": "meeting", "data": True},
        {"type": "meeting", "data": None, "active": True},
    ])
    def test_meeting_started(self, make_session, message):
        session, _ = make_session()
        feed(session, message)
        entry = session.transcript.entries[0]
        assert (entry.origin, entry.content) == (Origin.SYSTEM, "Meeting started")

    @pytest.mark.parametrize("message", [
        {"type": "meeting", "data": {"active": False}},
        {"type": "meeting", "data": False},
        {"type": "meeting", "data": {}},
    ])
    def test_meeting_inactive_adds_nothing(self, make_session, message):
        session, _ = make_session()
        before = len(session.transcript)
        feed(session, message)
        assert len(session.transcript) == before

    def test_unknown_type(self, make_session):
        session, _ = make_session()
        authenticate(session)
        transcript_before, log_before = len(session.transcript), len(session.log)
        feed(session, {"type": "unknownx", "data": "z"})

        assert len(session.transcript) == transcript_before
        assert len(session.log) == log_before + 1
        assert session.log.lines[-1] == 'Unknown message type unknownx: "z"'
        assert session.auth_state is AuthState.AUTHENTICATED

    def test_undecodable_frame(self, make_session):
        session, _ = make_session()
        session.handle_message("{not json")
        assert session.log.lines[-1] == "Malformed message: {not json"

    @pytest.mark.parametrize("message", [
        {"type": "long", "data": "x"},
        {"type": "long", "data": {"images": "x"}},
        {"type": "audio", "data": {}},
        {"type": "register", "data": "D2"},
        {"type": "meeting", "data": "soon"},
    ])
    def test_malformed_payloads_are_logged(self, make_session, message):
        session, _ = make_session()
        transcript_before = len(session.transcript)
        feed(session, message)

        assert session.log.lines[-1].startswith(f"Malformed {message['type']} message:")
        assert len(session.transcript) == transcript_before

    def test_failing_audio_sink_is_contained(self, make_session):
        def sink(_audio):
            raise RuntimeError("device busy")

        session, _ = make_session(audio_sink=sink)
        feed(session, {"type": "audio", "data": {"audio": "AA=="}})
        assert session.log.lines[-1] == "Failed to handle audio message"

    def test_transcript_order_follows_arrival(self, make_session):
        session, _ = make_session()
        for i in range(5):
            feed(session, {"type": "message", "data": f"m{i}"})

        contents = [e.content for e in session.transcript if e.origin == Origin.RABBIT]
        assert contents == ["m4", "m3", "m2", "m1", "m0"]
        ids = [e.id for e in session.transcript]
        assert len(ids) == len(set(ids))

    def test_entries_are_immutable(self, make_session):
        session, _ = make_session()
        entry = session.transcript.entries[0]
        with pytest.raises(Exception):
            entry.content = "changed"


class TestCommands:
    def test_commands_are_noops_before_authentication(self, make_session):
        session, conn = make_session()
        log_before = len(session.log)

        assert session.commands.send_message("hi") is False
        assert session.commands.send_ptt(True, "img") is False
        assert session.commands.stop_meeting() is False
        assert conn.sent() == [LOGON_FRAME]
        assert len(session.log) == log_before

    def test_send_message_scenario(self, make_session):
        session, conn = make_session()
        authenticate(session)

        assert session.commands.send_message("hi") is True
        assert conn.sent()[1:] == [{"type": "message", "data": "hi"}]
        entry = session.transcript.entries[0]
        assert (entry.origin, entry.kind, entry.content) == (Origin.USER, PayloadKind.TEXT, "hi")
        assert session.log.lines[-1] == 'Sending message: {"type":"message","data":"hi"}'

    def test_ptt_with_image(self, make_session):
        session, conn = make_session()
        authenticate(session)

        session.commands.send_ptt(True, "data:image/jpeg;base64,AA==")
        assert conn.sent()[-1] == {"type": "ptt", "data": {"active": True, "image": "data:image/jpeg;base64,AA=="}}
        entry = session.transcript.entries[0]
        assert (entry.origin, entry.kind) == (Origin.USER, PayloadKind.IMAGE)
        assert session.log.lines[-1] == "Sending PTT with status true with an image"

    def test_ptt_without_image(self, make_session):
        session, conn = make_session()
        authenticate(session)
        before = len(session.transcript)

        session.commands.send_ptt(False)
        assert conn.sent()[-1] == {"type": "ptt", "data": {"active": False}}
        assert len(session.transcript) == before
        assert session.log.lines[-1] == "Sending PTT with status false without image"

    def test_stop_meeting(self, make_session):
        session, conn = make_session()
        authenticate(session)
        assert session.commands.stop_meeting() is True
        assert conn.sent()[-1] == {"type": "meeting", "data": False}

    def test_register_only_before_authentication(self, make_session):
        session, conn = make_session(account_key=None, imei=None)
        assert session.commands.register("qr-payload") is True
        assert conn.sent() == [{"type": "register", "data": "qr-payload"}]
        assert session.transcript.entries[0].content == "Registering"

        authenticate(session)
        assert session.commands.register("again") is False

    def test_register_requires_open_socket(self, make_session):
        session, conn = make_session(account_key=None, imei=None)
        conn.connected = False
        assert session.commands.register("qr") is False

    def test_manual_logon_after_failure(self, make_session):
        session, conn = make_session()
        feed(session, {"type": "logon", "data": "nope"})
        assert session.commands.logon() is True
        assert conn.sent() == [LOGON_FRAME, LOGON_FRAME]

    def test_raw_needs_only_a_socket(self, make_session):
        session, conn = make_session(account_key="", imei="")
        assert session.commands.send_raw("ping") is True
        assert conn.sent() == [{"type": "raw", "data": "ping"}]

    def test_raw_on_closed_socket_is_logged(self, make_session):
        session, conn = make_session()
        conn.connected = False
        assert session.commands.send_raw("ping") is False
        assert session.log.lines[-1] == "Raw frame not sent: WebSocket not connected"

    def test_raw_without_socket(self, make_session):
        session, _ = make_session(opened=False)
        session.detach()
        assert session.commands.send_raw("ping") is False


class TestAudio:
    @pytest.mark.asyncio
    async def test_wav_is_sent_as_data_uri(self, make_session):
        session, conn = make_session()
        authenticate(session)

        assert await session.commands.send_audio(b"RIFF", "audio/wav") is True
        assert conn.sent()[-1] == {"type": "audio", "data": "data:audio/wav;base64,UklGRg=="}
        assert session.transcript.entries[0].content == "Sending audio"

    @pytest.mark.asyncio
    async def test_non_wav_is_dropped_silently(self, make_session):
        session, conn = make_session()
        authenticate(session)
        log_before = len(session.log)

        assert await session.commands.send_audio(b"ID3", "audio/mpeg") is False
        assert await session.commands.send_audio(b"ID3", None) is False
        assert len(conn.frames) == 1
        assert len(session.log) == log_before

    @pytest.mark.asyncio
    async def test_requires_authentication(self, make_session):
        session, conn = make_session()
        assert await session.commands.send_audio(b"RIFF") is False
        assert len(conn.frames) == 1

    @pytest.mark.asyncio
    async def test_late_encoding_after_close_is_a_noop(self, make_session):
        session, conn = make_session()
        authenticate(session)

        task = asyncio.ensure_future(session.commands.send_audio(b"RIFF" * 1000))
        await asyncio.sleep(0)  # task is now suspended in the encoder
        conn.connected = False
        session.handle_close()

        assert await task is False
        assert all(frame["type"] != "audio" for frame in conn.sent())
