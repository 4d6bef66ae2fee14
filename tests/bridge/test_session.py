"""Tests for Session call multiplexing.

These tests drive the session with a fake process: requests written to stdin
are captured and responses are fed straight into the output handler.
"""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from pydantic import BaseModel, field_validator

from pybridge.bridge.errors import (
    AbandonedCallError,
    BridgeError,
    RemoteExecutionError,
    SessionClosedError,
    SpawnError,
    ValidationError,
)
from pybridge.bridge.launch import LaunchConfig
from pybridge.bridge.session import Session, SessionState


class Labelled(BaseModel):
    label: str

    @field_validator("label")
    @classmethod
    def known_label(cls, value: str) -> str:
        return {"a": "A"}[value]


def make_session(target="fake_module"):
    """Create a running session backed by a mock process."""
    session = Session(target, LaunchConfig(use_venv=False))
    process = MagicMock()
    process.pid = 4242
    process.returncode = None
    process.stdin = MagicMock()
    process.stdin.drain = AsyncMock()
    process.wait = AsyncMock(return_value=0)
    session._process = process
    session._state = SessionState.RUNNING
    return session, process


def written_requests(process):
    """Decode every request line written to the fake stdin."""
    return [json.loads(c.args[0]) for c in process.stdin.write.call_args_list]


class TestSessionCall:
    """Tests for issuing calls."""

    def test_call_writes_one_line(self):
        """Each call is written as a single terminated JSON line."""
        session, process = make_session()

        session.call("tokenize", ["some text"])

        process.stdin.write.assert_called_once()
        line = process.stdin.write.call_args.args[0]
        assert line.endswith(b"\n")
        assert json.loads(line) == {"id": 0, "method": "tokenize", "args": ["some text"]}

    def test_ids_increase(self):
        """Correlation ids are unique and increasing per session."""
        session, process = make_session()

        streams = [session.call("f", [i]) for i in range(3)]

        assert [s.call_id for s in streams] == [0, 1, 2]
        assert [r["id"] for r in written_requests(process)] == [0, 1, 2]
        assert session.pending_count == 3

    def test_call_on_closed_session(self):
        """Calls fail fast once the session is closed."""
        session, _ = make_session()
        session._state = SessionState.CLOSED

        with pytest.raises(SessionClosedError):
            session.call("f")

    def test_call_before_start(self):
        """Calls are rejected until the subprocess is running."""
        session = Session("fake_module")
        with pytest.raises(SessionClosedError):
            session.call("f")

    def test_write_failure_unregisters_call(self):
        """A broken pipe fails the call without leaving it pending."""
        session, process = make_session()
        process.stdin.write.side_effect = BrokenPipeError("pipe closed")

        with pytest.raises(SessionClosedError):
            session.call("f")
        assert session.pending_count == 0

    def test_unserializable_args(self):
        """Arguments that cannot be encoded raise before anything is sent."""
        session, process = make_session()
        with pytest.raises(TypeError):
            session.call("f", [object()])
        process.stdin.write.assert_not_called()
        assert session.pending_count == 0

    @pytest.mark.asyncio
    async def test_send_drains(self):
        """send() flushes the pipe after writing."""
        session, process = make_session()
        stream = await session.send("f", [1])
        process.stdin.drain.assert_awaited_once()
        assert stream.call_id == 0


class TestSessionDispatch:
    """Tests for routing output to calls."""

    @pytest.mark.asyncio
    async def test_single_call_round_trip(self):
        """A yield and completion resolve the call."""
        session, _ = make_session()
        stream = session.call("add", [1, 2], int)

        session._handle_chunk(b'{"id":0,"yield":3}\n{"id":0}\n')

        assert await stream.result() == 3
        assert session.pending_count == 0

    @pytest.mark.asyncio
    async def test_interleaved_calls(self):
        """Interleaved events are routed by id."""
        session, _ = make_session()
        session._next_id = 7
        first = session.call("letters", [], str)
        second = session.call("letters", [], str)

        session._handle_chunk(
            b'{"id":7,"yield":"a"}\n'
            b'{"id":8,"yield":"x"}\n'
            b'{"id":7,"yield":"b"}\n'
            b'{"id":8}\n'
            b'{"id":7}\n'
        )

        assert await first.collect() == ["a", "b"]
        assert await second.collect() == ["x"]

    @pytest.mark.asyncio
    async def test_message_split_across_chunks(self):
        """Framing is independent of how the pipe splits output."""
        session, _ = make_session()
        stream = session.call("f")
        data = b'{"id":0,"yield":"hello"}\n{"id":0}\n'

        for i in range(0, len(data), 5):
            session._handle_chunk(data[i:i + 5])

        assert await stream.collect() == ["hello"]

    @pytest.mark.asyncio
    async def test_noise_is_dropped(self):
        """Non-protocol lines are skipped and later messages still arrive."""
        session, _ = make_session()
        stream = session.call("f")

        session._handle_chunk(b'not-json-at-all\n{"id":0,"yield":1}\n{"id":0}\n')

        assert await stream.collect() == [1]
        assert session.parse_errors == 0

    @pytest.mark.asyncio
    async def test_malformed_record_counted(self):
        """Undecodable object lines are logged and counted."""
        session, _ = make_session()
        stream = session.call("f")

        session._handle_chunk(b'{"id":0,"yield":\n{"id":0,"yield":2}\n{"id":0}\n')

        assert session.parse_errors == 1
        assert await stream.collect() == [2]

    @pytest.mark.asyncio
    async def test_ready_is_not_dispatched_to_call_zero(self):
        """The ready message shares id 0 with the first call but is not a value."""
        session, _ = make_session()
        stream = session.call("f")

        session._handle_chunk(b'{"id":0,"ready":true}\n')

        assert session.ready
        assert stream.received == 0
        assert not stream.done

    @pytest.mark.asyncio
    async def test_error_affects_only_its_call(self):
        """A remote error fails one call; others continue."""
        session, _ = make_session()
        failing = session.call("fail", ["boom"])
        healthy = session.call("echo", ["fine"])

        session._handle_chunk(
            json.dumps({"id": 0, "error": "Traceback\nValueError: boom\n"}).encode() + b"\n"
            + b'{"id":1,"yield":"fine"}\n{"id":1}\n'
        )

        with pytest.raises(RemoteExecutionError, match="ValueError: boom"):
            await failing.result()
        assert await healthy.result() == "fine"

    @pytest.mark.asyncio
    async def test_validation_failure_affects_only_its_call(self):
        """A wrongly shaped value fails its call, not the session."""
        session, _ = make_session()
        typed = session.call("f", [], int)
        other = session.call("g", [], int)

        session._handle_chunk(b'{"id":0,"yield":"oops"}\n{"id":0}\n{"id":1,"yield":5}\n{"id":1}\n')

        with pytest.raises(ValidationError):
            await typed.result()
        assert await other.result() == 5
        assert session.is_running

    @pytest.mark.asyncio
    async def test_validator_exception_affects_only_its_call(self):
        """A validator raising KeyError fails its call and dispatch goes on."""
        session, _ = make_session()
        bad = session.call("echo", [{"label": "zzz"}], Labelled)
        good = session.call("add", [1, 2], int)

        session._handle_chunk(b'{"id":0,"yield":{"label":"zzz"}}\n{"id":0}\n{"id":1,"yield":3}\n{"id":1}\n')

        with pytest.raises(ValidationError, match="KeyError"):
            await bad.result(timeout=1)
        assert await good.result(timeout=1) == 3
        assert session.is_running
        assert session.pending_count == 0

    @pytest.mark.asyncio
    async def test_deeply_nested_line_is_skipped(self):
        """A line too deep to decode is counted and later lines still dispatch."""
        session, _ = make_session()
        stream = session.call("f")

        session._handle_chunk(b'{"id": 0, "yield": ' + b"[" * 100000 + b'\n{"id":0,"yield":1}\n{"id":0}\n')

        assert session.parse_errors == 1
        assert await stream.result(timeout=1) == 1
        assert session.is_running

    @pytest.mark.asyncio
    async def test_broken_sink_affects_only_its_call(self):
        """A sink that raises is failed and removed; other calls are unaffected."""
        session, _ = make_session()
        broken = session.call("f")
        broken.deliver = MagicMock(side_effect=RuntimeError("sink broke"))
        healthy = session.call("g")

        session._handle_chunk(b'{"id":0,"yield":1}\n{"id":1,"yield":2}\n{"id":1}\n')

        with pytest.raises(BridgeError, match="sink broke"):
            await broken.result(timeout=1)
        assert await healthy.result(timeout=1) == 2
        assert session.pending_count == 0

    @pytest.mark.asyncio
    async def test_sink_raising_on_completion_is_failed(self):
        """A sink that raises on its terminal event does not hang the call."""
        session, _ = make_session()
        broken = session.call("f")
        real_deliver = broken.deliver

        def deliver(event):
            if event.is_terminal:
                raise RuntimeError("completion broke")
            real_deliver(event)

        broken.deliver = deliver
        healthy = session.call("g")

        session._handle_chunk(b'{"id":0,"yield":1}\n{"id":0}\n{"id":1}\n')

        with pytest.raises(BridgeError, match="completion broke"):
            await broken.collect(timeout=1)
        assert await healthy.result(timeout=1) is None
        assert session.pending_count == 0

    @pytest.mark.asyncio
    async def test_reader_failure_closes_session(self):
        """If reading stdout fails the session closes and pending calls are abandoned."""
        session, process = make_session()
        stream = session.call("f")
        process.stdout.read = AsyncMock(side_effect=[b'{"id":0,"yield":1}\n', OSError("pipe broke")])

        await session._read_loop()

        process.kill.assert_called_once()
        assert session.state == SessionState.CLOSED
        with pytest.raises(AbandonedCallError):
            await stream.collect(timeout=1)

    @pytest.mark.asyncio
    async def test_unknown_id_ignored(self):
        """Events for unknown ids do not disturb pending calls."""
        session, _ = make_session()
        stream = session.call("f")

        session._handle_chunk(b'{"id":99,"yield":1}\n{"id":0,"yield":2}\n{"id":0}\n')

        assert await stream.collect() == [2]


class TestSessionShutdown:
    """Tests for closing and process exit."""

    @pytest.mark.asyncio
    async def test_close_abandons_pending_calls(self):
        """Pending calls fail when the session closes."""
        session, process = make_session()
        stream = session.call("slow")

        await session.close()

        assert session.state == SessionState.CLOSED
        process.terminate.assert_called_once()
        with pytest.raises(AbandonedCallError):
            await stream.result()

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self):
        """Closing twice is harmless."""
        session, process = make_session()
        await session.close()
        await session.close()
        process.terminate.assert_called_once()

    @pytest.mark.asyncio
    async def test_call_after_close(self):
        """Calls after close raise SessionClosedError."""
        session, _ = make_session()
        await session.close()
        with pytest.raises(SessionClosedError):
            session.call("f")

    @pytest.mark.asyncio
    async def test_exit_abandons_pending_calls(self):
        """An unexpected exit fails pending calls and closes the session."""
        session, _ = make_session()
        finished = session.call("f")
        pending = session.call("g")
        session._handle_chunk(b'{"id":0,"yield":1}\n{"id":0}\n')

        session.returncode = 1
        session._on_exit()

        assert session.state == SessionState.CLOSED
        assert await finished.result() == 1
        with pytest.raises(AbandonedCallError, match="exited with code 1"):
            await pending.result()

    @pytest.mark.asyncio
    async def test_wait_ready_after_exit(self):
        """wait_ready() fails once the process is gone."""
        session, _ = make_session()
        session.returncode = 1
        session._on_exit()

        with pytest.raises(SessionClosedError):
            await session.wait_ready(timeout=1)

    def test_kill(self):
        """kill() stops the process without waiting."""
        session, process = make_session()
        stream = session.call("f")

        session.kill()

        process.kill.assert_called_once()
        assert stream.done
        assert session.state == SessionState.CLOSED

    @pytest.mark.asyncio
    async def test_kill_wakes_ready_waiter(self):
        """Coroutines waiting for ready fail once the session is killed."""
        session, _ = make_session()
        waiter = asyncio.ensure_future(session.wait_ready())
        await asyncio.sleep(0)

        session.kill()

        with pytest.raises(SessionClosedError):
            await asyncio.wait_for(waiter, timeout=1)

    @pytest.mark.asyncio
    async def test_kill_stops_reader(self):
        """kill() cancels the reader task."""
        session, process = make_session()

        async def never_returns(_size):
            await asyncio.Event().wait()

        process.stdout.read = never_returns
        session._reader_task = asyncio.create_task(session._read_loop())
        await asyncio.sleep(0)

        session.kill()

        await asyncio.wait_for(session._reader_task, timeout=1)
        assert session._reader_task.done()


class TestSessionStart:
    """Tests for starting sessions."""

    @pytest.mark.asyncio
    async def test_missing_interpreter(self, tmp_path):
        """A missing interpreter raises SpawnError."""
        config = LaunchConfig(python=str(tmp_path / "no-such-python"), use_venv=False)
        with pytest.raises(SpawnError):
            await Session.open("json", config)

    @pytest.mark.asyncio
    async def test_start_twice(self):
        """A session can only be started once."""
        session, _ = make_session()
        with pytest.raises(SpawnError):
            await session.start()
