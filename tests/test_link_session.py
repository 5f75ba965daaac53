"""
Tests for the link session state machine, driven through a scripted
transport and a manual clock.
"""

import pytest

from pocketlink.arq.frame import Frame, FrameType
from pocketlink.config import HELLO_INTERVAL, KEEPALIVE_INTERVAL, MAX_RETRIES, RETRY_INTERVAL
from pocketlink.errors import ConnectTimeoutError, SessionStateError, TransportNotPresentError
from pocketlink.layers.link_layer import (
    DeadReason, LinkConfig, LinkSession, SendResult, SessionRole, SessionState
)
from pocketlink.utils.buffer import MessageKind

from conftest import RecordingTransport, quiet_logger

EPSILON = 1e-9


def connect_initiator(session, transport):
    session.initiate()
    transport.inject(Frame.create_hello_ack())
    session.poll()
    assert session.is_connected
    transport.clear_sent()


def connect_responder(session, transport):
    session.listen(True)
    transport.inject(Frame.create_hello())
    assert session.accept() is session
    transport.clear_sent()


def run_until(session, clock, predicate, limit=5.0, step=0.01):
    while not predicate():
        assert clock() < limit, "condition not reached"
        clock.advance(step)
        session.poll()


def gaps(times):
    return [later - earlier for earlier, later in zip(times, times[1:])]


class TestSessionSetup:
    """Tests for construction and state guards."""

    def test_starts_down(self, session, transport):
        assert session.state == SessionState.DOWN
        assert session.role == SessionRole.RESPONDER
        assert not session.transport_dead
        assert transport.enabled

    def test_initial_configure_flushes(self, session, transport):
        first, second = transport.configure_log[:2]

        assert first['flush_rx'] and first['flush_tx'] and first['clear_errors']
        assert not second['flush_rx'] and not second['flush_tx']

    def test_probe_failure(self, clock):
        with pytest.raises(TransportNotPresentError):
            LinkSession(RecordingTransport(clock, hw_id=0), clock=clock, logger=quiet_logger())

    def test_initiate_twice(self, session):
        session.initiate()

        with pytest.raises(SessionStateError):
            session.initiate()

    def test_send_when_not_connected(self, session):
        assert session.send(b"x") == SendResult.DEAD
        assert session.send_unreliable(b"x") == SendResult.DEAD
        assert not session.can_send()

    def test_oversize_payload_raises(self, session, transport):
        connect_initiator(session, transport)

        with pytest.raises(ValueError):
            session.send(b"\x00" * 8001)
        with pytest.raises(ValueError):
            session.send_unreliable(b"\x00" * 8001)

    def test_shutdown(self, session, transport):
        session.shutdown()

        assert not transport.enabled
        with pytest.raises(SessionStateError):
            session.initiate()


class TestHandshake:
    """Tests for HELLO / HELLO_ACK."""

    def test_initiator_connects_on_hello_ack(self, session, transport):
        session.initiate()

        assert session.state == SessionState.HANDSHAKE
        assert session.role == SessionRole.INITIATOR
        assert len(transport.frames_of_type(FrameType.HELLO)) == 1

        transport.inject(Frame.create_hello_ack())
        session.poll()

        assert session.state == SessionState.CONNECTED
        assert session.stats.handshakes_completed == 1

    def test_hello_retransmitted(self, session, transport, clock):
        session.initiate()

        while clock() < 0.45:
            clock.advance(0.01)
            session.poll()

        times = [t for t, _ in transport.frames_of_type(FrameType.HELLO)]
        assert len(times) >= 4
        for gap in gaps(times):
            assert HELLO_INTERVAL - EPSILON <= gap <= HELLO_INTERVAL + 0.01 + EPSILON

    def test_handshake_timeout(self, session, clock):
        session.initiate()

        run_until(session, clock, lambda: session.transport_dead)

        assert session.dead_reason == DeadReason.HANDSHAKE_TIMEOUT
        assert session.state == SessionState.DOWN
        assert 2.0 <= clock() <= 2.01 + EPSILON

    def test_connect_helper(self, session, transport, clock):
        def idle():
            clock.advance(0.01)
            if not transport.rx:
                transport.inject(Frame.create_hello_ack())

        assert session.connect(idle=idle) is session
        assert session.is_connected

    def test_connect_timeout(self, session, clock):
        with pytest.raises(ConnectTimeoutError):
            session.connect(idle=lambda: clock.advance(0.05))

        assert session.state == SessionState.DOWN
        assert not session.transport_dead

    def test_responder_accepts(self, session, transport):
        session.listen(True)
        transport.inject(Frame.create_hello())

        assert session.accept() is session
        assert session.accept() is None
        assert session.state == SessionState.CONNECTED
        assert session.role == SessionRole.RESPONDER
        assert len(transport.frames_of_type(FrameType.HELLO_ACK)) == 1

    def test_hello_ignored_when_not_listening(self, session, transport):
        transport.inject(Frame.create_hello())
        session.poll()

        assert session.state == SessionState.DOWN
        assert transport.sent == []

    def test_repeated_hello_reacked(self, session, transport):
        connect_responder(session, transport)
        transport.inject(Frame.create_reliable(0, b"keep"))
        session.poll()

        transport.inject(Frame.create_hello())
        session.poll()

        assert len(transport.frames_of_type(FrameType.HELLO_ACK)) == 1
        assert session.rx_seq == 1
        assert session.state == SessionState.CONNECTED

    def test_hello_during_handshake_makes_responder(self, session, transport):
        session.listen(True)
        session.initiate()

        transport.inject(Frame.create_hello())
        session.poll()

        assert session.state == SessionState.CONNECTED
        assert session.role == SessionRole.RESPONDER

    def test_hello_ack_ignored_by_responder(self, session, transport):
        connect_responder(session, transport)

        transport.inject(Frame.create_hello_ack())
        session.poll()

        assert session.state == SessionState.CONNECTED
        assert session.role == SessionRole.RESPONDER


class TestReliableDelivery:
    """Tests for stop-and-wait delivery through a session."""

    def test_send_and_ack(self, session, transport):
        connect_initiator(session, transport)

        assert session.send(b"first") == SendResult.ACCEPTED
        assert session.send(b"second") == SendResult.BUSY

        _, frame = transport.frames_of_type(FrameType.RELIABLE)[0]
        assert (frame.seq, frame.payload) == (0, b"first")

        transport.inject(Frame.create_ack(0))
        assert session.can_send()
        assert session.tx_seq == 1
        assert session.send(b"second") == SendResult.ACCEPTED

    def test_stale_ack_keeps_pending(self, session, transport):
        connect_initiator(session, transport)
        session.send(b"first")

        transport.inject(Frame.create_ack(255))
        session.poll()

        assert not session.can_send()
        assert session.tx_seq == 0

    def test_delivery_is_idempotent(self, session, transport):
        connect_responder(session, transport)

        transport.inject(Frame.create_reliable(0, b"a"))
        assert session.receive() == b"a"
        transport.inject(Frame.create_reliable(0, b"a"))
        assert session.receive() is None

        acks = [f.seq for _, f in transport.frames_of_type(FrameType.RELIABLE_ACK)]
        assert acks == [0, 0]

    def test_out_of_sequence_resync(self, session, transport):
        connect_responder(session, transport)

        transport.inject(Frame.create_reliable(7, b"stray"))
        session.poll()
        transport.inject(Frame.create_reliable(0, b"real"))

        assert session.receive() == b"real"
        acks = [f.seq for _, f in transport.frames_of_type(FrameType.RELIABLE_ACK)]
        assert acks == [255, 0]

    def test_retry_bound(self, session, transport, clock):
        connect_initiator(session, transport)
        assert session.send(b"lost") == SendResult.ACCEPTED

        run_until(session, clock, lambda: session.transport_dead)

        assert session.dead_reason == DeadReason.MAX_RETRIES
        sent = transport.frames_of_type(FrameType.RELIABLE)
        assert len(sent) == 1 + MAX_RETRIES
        assert all(f == Frame.create_reliable(0, b"lost") for _, f in sent)
        for gap in gaps([t for t, _ in sent]):
            assert gap >= RETRY_INTERVAL - EPSILON
        assert session.send(b"again") == SendResult.DEAD

    def test_retransmission_stops_on_ack(self, session, transport, clock):
        connect_initiator(session, transport)
        session.send(b"data")

        clock.advance(0.12)
        session.poll()
        transport.inject(Frame.create_ack(0))
        session.poll()
        count = len(transport.frames_of_type(FrameType.RELIABLE))

        for _ in range(20):
            clock.advance(0.01)
            session.poll()

        assert len(transport.frames_of_type(FrameType.RELIABLE)) == count
        assert session.is_connected

    def test_sequence_wraps(self, session, transport):
        connect_initiator(session, transport)

        for index in range(300):
            assert session.send(bytes([index & 0xFF])) == SendResult.ACCEPTED
            transport.inject(Frame.create_ack(index & 0xFF))
            session.poll()

        seqs = [f.seq for _, f in transport.frames_of_type(FrameType.RELIABLE)]
        assert seqs == [i & 0xFF for i in range(300)]
        assert session.tx_seq == 300 % 256

    def test_transmit_failure_is_busy(self, session, transport):
        connect_initiator(session, transport)
        transport.tx_used = transport.tx_capacity

        assert session.send(b"blocked") == SendResult.BUSY
        assert session.sender.can_send()
        assert session.guard.space_timeouts == 1

    def test_queue_overflow_kills_session(self, clock):
        transport = RecordingTransport(clock)
        session = LinkSession(
            transport, LinkConfig(receive_queue_capacity=16),
            clock=clock, logger=quiet_logger()
        )
        connect_responder(session, transport)

        transport.inject(Frame.create_reliable(0, b"12345678"))
        transport.inject(Frame.create_reliable(1, b"12345678"))
        session.poll()

        assert session.transport_dead
        assert session.dead_reason == DeadReason.RX_QUEUE_OVERFLOW
        acks = [f.seq for _, f in transport.frames_of_type(FrameType.RELIABLE_ACK)]
        assert acks == [0]


class TestUnreliableDelivery:
    """Tests for best-effort messages."""

    def test_send_unreliable(self, session, transport):
        connect_initiator(session, transport)

        assert session.can_send_unreliable()
        assert session.send_unreliable(b"fire") == SendResult.ACCEPTED
        assert transport.frames_of_type(FrameType.UNRELIABLE)[0][1].payload == b"fire"

    def test_receive_unreliable(self, session, transport):
        connect_responder(session, transport)

        transport.inject(Frame.create_unreliable(b"u"))
        message = session.receive_message()

        assert message.kind == MessageKind.UNRELIABLE
        assert message.payload == b"u"
        assert transport.frames_of_type(FrameType.RELIABLE_ACK) == []

    def test_unreliable_dropped_when_full(self, clock):
        transport = RecordingTransport(clock)
        session = LinkSession(
            transport, LinkConfig(receive_queue_capacity=8),
            clock=clock, logger=quiet_logger()
        )
        connect_responder(session, transport)

        transport.inject(Frame.create_unreliable(b"1234"))
        transport.inject(Frame.create_unreliable(b"5678"))
        session.poll()

        assert session.stats.unreliable_dropped == 1
        assert not session.transport_dead
        assert session.receive() == b"1234"


class TestLiveness:
    """Tests for keepalive and peer timeout."""

    def test_keepalive_when_idle(self, session, transport, clock):
        connect_initiator(session, transport)

        while clock() < 1.2:
            clock.advance(0.01)
            session.poll()

        times = [t for t, _ in transport.frames_of_type(FrameType.KEEPALIVE)]
        assert len(times) == 2
        assert times[0] >= KEEPALIVE_INTERVAL - EPSILON
        for gap in gaps(times):
            assert gap >= KEEPALIVE_INTERVAL - EPSILON

    def test_peer_timeout(self, session, transport, clock):
        connect_initiator(session, transport)

        run_until(session, clock, lambda: session.transport_dead)

        assert session.dead_reason == DeadReason.PEER_TIMEOUT
        assert 2.0 <= clock() <= 2.01 + EPSILON

    def test_traffic_keeps_session_alive(self, session, transport, clock):
        connect_initiator(session, transport)

        while clock() < 5.0:
            clock.advance(0.01)
            if session.stats.polls % 50 == 0:
                transport.inject(Frame.create_keepalive())
            session.poll()

        assert session.is_connected

    def test_reset_packet(self, session, transport):
        connect_responder(session, transport)

        transport.inject(Frame.create_reliable(0, b"queued"))
        transport.inject(Frame.create_reset())
        session.poll()

        assert session.dead_reason == DeadReason.RESET_PKT
        assert session.receive() is None

    def test_listener_revives_after_death(self, session, transport):
        connect_responder(session, transport)
        transport.inject(Frame.create_reset())
        session.poll()

        transport.inject(Frame.create_hello())

        assert session.accept() is session
        assert not session.transport_dead
        assert session.rx_seq == 0


class TestTeardown:
    """Tests for close and error recovery."""

    def test_close_sends_reset(self, session, transport):
        connect_initiator(session, transport)

        session.close()

        assert len(transport.frames_of_type(FrameType.RESET)) == 1
        assert session.state == SessionState.DOWN
        assert session.role == SessionRole.RESPONDER
        assert not session.transport_dead

    def test_close_when_down_is_silent(self, session, transport):
        session.close()

        assert transport.sent == []

    def test_reconnect_after_close(self, session, transport):
        connect_initiator(session, transport)
        session.send(b"x")
        session.close()

        connect_initiator(session, transport)

        assert session.tx_seq == 0
        assert session.can_send()

    def test_crc_failure_clears_errors(self, session, transport):
        connect_responder(session, transport)
        words = Frame.create_reliable(0, b"damaged").encode()
        words[3] ^= 0x10
        transport.rx.extend(words)
        configures = len(transport.configure_log)

        session.poll()

        assert session.parser.crc_failures == 1
        assert session.stats.error_clears == 1
        assert transport.configure_log[-1]['clear_errors']
        assert len(transport.configure_log) == configures + 1
        assert session.rx_seq == 0

    def test_poll_word_budget(self, session, transport):
        connect_responder(session, transport)
        for _ in range(50):
            transport.inject(Frame.create_keepalive())

        session.poll()

        assert len(transport.rx) == 150 - 128
