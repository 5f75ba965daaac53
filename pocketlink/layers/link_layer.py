"""
Link Layer Implementation

This module implements the link session: the HELLO/HELLO-ACK handshake,
stop-and-wait reliable delivery, unreliable delivery, keepalives, liveness
detection and teardown, all driven by a bounded non-blocking poll().
"""

import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from pocketlink.config import (
    CONNECT_TIMEOUT,
    DEFAULT_LOG_LEVEL,
    HELLO_INTERVAL,
    KEEPALIVE_INTERVAL,
    LINK_HW_ID,
    MAX_PAYLOAD,
    MAX_RETRIES,
    PEER_TIMEOUT,
    POLL_WORD_BUDGET,
    RECEIVE_QUEUE_CAPACITY,
    RETRY_INTERVAL,
    TX_WAIT_BUDGET
)
from pocketlink.arq.frame import Frame, FrameType
from pocketlink.arq.parser import ReceiveParser
from pocketlink.arq.receiver import ReliableReceiver
from pocketlink.arq.sender import ReliableSender, RetryAction
from pocketlink.arq.timer import RetryTimer
from pocketlink.errors import ConnectTimeoutError, SessionStateError, TransportNotPresentError
from pocketlink.utils.buffer import MessageKind, MessageQueue, ReceivedMessage
from pocketlink.utils.logger import LinkLogger
from pocketlink.utils.metrics import LinkStatistics
from .physical_layer import Transport
from .transmission import TransmissionGuard


class SessionState(Enum):
    """Connection state of a session."""
    DOWN = 0
    HANDSHAKE = 1
    CONNECTED = 2


class SessionRole(Enum):
    """Which side opened the connection."""
    INITIATOR = 0
    RESPONDER = 1


class DeadReason(Enum):
    """Why a session was torn down."""
    MAX_RETRIES = "max_retries"
    PEER_TIMEOUT = "peer_timeout"
    HANDSHAKE_TIMEOUT = "handshake_timeout"
    RX_QUEUE_OVERFLOW = "rx_queue_overflow"
    RESET_PKT = "reset_pkt"


class SendResult(Enum):
    """Outcome of a send call."""
    ACCEPTED = 0
    BUSY = 1        # try again later
    DEAD = 2        # session is not usable
    DROPPED = 3     # unreliable frame not transmitted


@dataclass
class LinkConfig:
    """Configuration for a link session."""
    hello_interval: float = HELLO_INTERVAL
    retry_interval: float = RETRY_INTERVAL
    keepalive_interval: float = KEEPALIVE_INTERVAL
    peer_timeout: float = PEER_TIMEOUT
    connect_timeout: float = CONNECT_TIMEOUT
    max_retries: int = MAX_RETRIES
    max_payload: int = MAX_PAYLOAD
    receive_queue_capacity: int = RECEIVE_QUEUE_CAPACITY
    poll_word_budget: int = POLL_WORD_BUDGET
    tx_wait_budget: int = TX_WAIT_BUDGET
    log_level: int = DEFAULT_LOG_LEVEL
    name: str = "Link"


class LinkSession:
    """
    One end of a PocketLink connection.

    poll() drains at most poll_word_budget inbound words, dispatches the
    frames they complete, then runs the timers. Every public operation
    polls first; transmission never re-enters the receive path.

    Attributes:
        transport: Word transport
        config: Session configuration
        state: Current SessionState
        role: Current SessionRole
        transport_dead: True once the session failed, until the next reset
        dead_reason: Why the session failed
        listening: Whether incoming handshakes are accepted
    """

    def __init__(
        self,
        transport: Transport,
        config: Optional[LinkConfig] = None,
        clock: Optional[Callable[[], float]] = None,
        logger: Optional[LinkLogger] = None,
        probe: bool = True
    ):
        """
        Initialize a session and bring the transport to a clean state.

        Args:
            transport: Word transport to drive
            config: Session configuration (defaults from config.py)
            clock: Monotonic clock in seconds (time.monotonic if None)
            logger: Logger (a new LinkLogger if None)
            probe: Check the transport identification register

        Raises:
            TransportNotPresentError: If the probe does not read LINK_HW_ID
        """
        self.transport = transport
        self.config = config or LinkConfig()
        self.clock = clock or time.monotonic
        self.logger = logger or LinkLogger(name=self.config.name, level=self.config.log_level)

        if probe:
            hw_id = transport.read_id()
            if hw_id != LINK_HW_ID:
                raise TransportNotPresentError(f"Transport not detected (id=0x{hw_id:08X})")

        self.parser = ReceiveParser(max_payload=self.config.max_payload)
        self.sender = ReliableSender(
            retry_interval=self.config.retry_interval,
            max_retries=self.config.max_retries
        )
        self.rx_queue = MessageQueue(capacity=self.config.receive_queue_capacity)
        self.receiver = ReliableReceiver(on_data_delivered=self._deliver_reliable)
        self.guard = TransmissionGuard(transport, wait_budget=self.config.tx_wait_budget)
        self.hello_timer = RetryTimer(interval=self.config.hello_interval)
        self.stats = LinkStatistics()

        self.listening = False
        self.master = False
        self.shut_down = False
        self._reset_session()

        self._set_role(master=False)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def initiate(self):
        """
        Start a handshake as the initiator.

        Raises:
            SessionStateError: If the session is not DOWN or was shut down
        """
        if self.shut_down:
            raise SessionStateError("Session has been shut down")
        if self.state != SessionState.DOWN:
            raise SessionStateError(f"Cannot initiate while {self.state.name}")

        self._reset_session()
        self.rx_queue.clear()
        self.role = SessionRole.INITIATOR
        self._set_role(master=True)

        now = self._now()
        self._set_state(SessionState.HANDSHAKE)
        self.handshake_start = now
        self.last_rx_time = now
        self.last_tx_time = now

        self.logger.handshake("Sending HELLO")
        self._send_hello()
        self.hello_timer.start(self._now())

    def connect(
        self,
        timeout: float = CONNECT_TIMEOUT,
        idle: Optional[Callable[[], None]] = None
    ) -> 'LinkSession':
        """
        Initiate and poll until connected.

        Args:
            timeout: Seconds to wait for the handshake
            idle: Called between polls (e.g. to sleep or service a peer)

        Returns:
            This session, connected

        Raises:
            ConnectTimeoutError: If the handshake did not complete; the
                session is closed back to DOWN
        """
        self.initiate()
        deadline = self.clock() + timeout

        while self.clock() < deadline:
            self.poll()
            if self.state == SessionState.CONNECTED and not self.transport_dead:
                self.logger.handshake("Connected")
                return self
            if self.transport_dead:
                break
            if idle:
                idle()

        reason = self.dead_reason.value if self.dead_reason else "timeout"
        self.close()
        raise ConnectTimeoutError(f"Handshake did not complete ({reason})")

    def listen(self, enabled: bool = True):
        """
        Arm or disarm passive mode.

        Args:
            enabled: Accept incoming handshakes when True
        """
        self.listening = enabled
        if enabled and self.state == SessionState.DOWN and not self.shut_down:
            self._set_role(master=False)
        if not enabled and self.role == SessionRole.RESPONDER:
            self.incoming_pending = False

    def accept(self) -> Optional['LinkSession']:
        """
        Return this session once after an incoming handshake completed.

        Returns:
            The session, or None when no new connection is waiting
        """
        self.poll()

        if not self.listening or self.transport_dead:
            return None
        if self.state != SessionState.CONNECTED or not self.incoming_pending:
            return None

        self.incoming_pending = False
        return self

    def close(self):
        """Tear the session down, telling a connected peer with RESET."""
        if self.shut_down:
            return

        if self.state == SessionState.CONNECTED:
            if self._transmit(Frame.create_reset()):
                self.stats.resets_sent += 1

        self.logger.info("Session closed", "STATE")
        self._reset_session()
        self.rx_queue.clear()
        self.role = SessionRole.RESPONDER
        self._set_role(master=False)

    def shutdown(self):
        """Close, stop listening and disable the transport."""
        self.close()
        self.listening = False
        self.shut_down = True
        self.transport.configure(enable=False)
        self.logger.info("Transport disabled", "STATE")

    def poll(self):
        """Drain inbound words, then evaluate timers."""
        if self.shut_down:
            return

        self.stats.polls += 1
        self._pump_rx()
        self._poll_timers()

    def send(self, payload: bytes) -> SendResult:
        """
        Send a reliable message.

        Args:
            payload: Message bytes (at most max_payload)

        Returns:
            ACCEPTED when transmitted and now pending, BUSY when a message
            is already pending or the transmit did not go through, DEAD when
            the session is not connected

        Raises:
            ValueError: If the payload is too large
        """
        self._check_payload(payload)
        self.poll()

        if self.transport_dead or self.state != SessionState.CONNECTED:
            return SendResult.DEAD
        if not self.sender.can_send():
            return SendResult.BUSY

        frame = self.sender.create_frame(payload)
        if not self._transmit(frame):
            return SendResult.BUSY

        self.sender.start_pending(payload, self._now())
        return SendResult.ACCEPTED

    def send_unreliable(self, payload: bytes) -> SendResult:
        """
        Send a best-effort message.

        Returns:
            ACCEPTED, DROPPED when the frame could not be written, or DEAD

        Raises:
            ValueError: If the payload is too large
        """
        self._check_payload(payload)
        self.poll()

        if self.transport_dead or self.state != SessionState.CONNECTED:
            return SendResult.DEAD
        if not self._transmit(Frame.create_unreliable(payload)):
            return SendResult.DROPPED

        self.stats.unreliable_sent += 1
        return SendResult.ACCEPTED

    def receive_message(self) -> Optional[ReceivedMessage]:
        """
        Take the oldest queued message.

        Returns:
            ReceivedMessage, or None when empty or the session is dead
        """
        self.poll()
        if self.transport_dead:
            return None
        return self.rx_queue.get()

    def receive(self) -> Optional[bytes]:
        """Take the oldest queued message's payload."""
        message = self.receive_message()
        return message.payload if message else None

    def can_send(self) -> bool:
        """True when a reliable send would be accepted."""
        self.poll()
        return (not self.transport_dead
                and self.state == SessionState.CONNECTED
                and self.sender.can_send())

    def can_send_unreliable(self) -> bool:
        """True when connected and the transmit FIFO is not full."""
        self.poll()
        if self.transport_dead or self.state != SessionState.CONNECTED:
            return False
        return not self.transport.read_status().tx_full

    def mark_dead(self, reason: DeadReason):
        """
        Fail the session.

        Args:
            reason: Why the session is being torn down
        """
        self.transport_dead = True
        self.dead_reason = reason
        self._set_state(SessionState.DOWN)
        self.sender.drop_pending()
        self.hello_timer.stop()
        self.logger.link_dead(reason.value)

    @property
    def is_connected(self) -> bool:
        return self.state == SessionState.CONNECTED and not self.transport_dead

    @property
    def tx_seq(self) -> int:
        return self.sender.tx_seq

    @property
    def rx_seq(self) -> int:
        return self.receiver.rx_seq

    def get_statistics(self) -> dict:
        """Get session statistics."""
        return {
            'state': self.state.name,
            'role': self.role.name,
            'dead_reason': self.dead_reason.value if self.dead_reason else None,
            **self.stats.get_statistics(),
            'parser': self.parser.get_statistics(),
            'sender': self.sender.get_statistics(),
            'receiver': self.receiver.get_statistics(),
            'rx_queue': self.rx_queue.get_statistics(),
            'guard': self.guard.get_statistics()
        }

    def __repr__(self) -> str:
        return (f"LinkSession(name={self.config.name!r}, state={self.state.name}, "
                f"role={self.role.name}, dead={self.transport_dead})")

    # ------------------------------------------------------------------
    # Receive path
    # ------------------------------------------------------------------

    def _pump_rx(self):
        for _ in range(self.config.poll_word_budget):
            word = self.transport.pop_word()
            if word is None:
                return

            failures = self.parser.crc_failures
            frame = self.parser.consume_word(word)
            if frame is not None:
                self._handle_frame(frame)
            elif self.parser.crc_failures != failures:
                self._handle_crc_failure()

            if self.shut_down:
                return

    def _handle_crc_failure(self):
        failure = self.parser.last_crc_failure
        self.logger.crc_failure(failure['type'], failure['length'], failure['got'], failure['want'])
        if self.transport.read_status().link_up:
            self._clear_errors()

    def _handle_frame(self, frame: Frame):
        self.last_rx_time = self._now()
        self.stats.frames_received += 1
        self.logger.frame_received(frame.type_name, frame.seq, len(frame.payload))

        frame_type = frame.frame_type
        if frame_type == FrameType.HELLO:
            self._on_hello()
        elif frame_type == FrameType.HELLO_ACK:
            self._on_hello_ack()
        elif frame_type == FrameType.RELIABLE:
            self._on_reliable(frame)
        elif frame_type == FrameType.RELIABLE_ACK:
            accepted = self.sender.process_ack(frame.seq)
            self.logger.ack_received(frame.seq, accepted)
        elif frame_type == FrameType.UNRELIABLE:
            self._on_unreliable(frame)
        elif frame_type == FrameType.KEEPALIVE:
            pass
        elif frame_type == FrameType.RESET:
            self.mark_dead(DeadReason.RESET_PKT)
        else:
            self.stats.unknown_frames += 1

    def _on_hello(self):
        if not self.listening:
            self.logger.debug("HELLO ignored (not listening)", "HANDSHAKE")
            return

        if self.state == SessionState.CONNECTED:
            # Peer retransmitted before seeing our HELLO_ACK
            self._send_hello_ack()
            return

        now = self._now()
        self.sender.reset()
        self.receiver.reset()
        self.rx_queue.clear()
        self.hello_timer.stop()
        self.role = SessionRole.RESPONDER
        self._set_role(master=False)

        self.transport_dead = False
        self.dead_reason = None
        self._set_state(SessionState.CONNECTED)
        self.incoming_pending = True
        self.last_rx_time = now
        self.last_tx_time = now
        self.stats.handshakes_completed += 1

        self.logger.handshake("Incoming connection")
        self._send_hello_ack()

    def _on_hello_ack(self):
        if self.role != SessionRole.INITIATOR or self.state != SessionState.HANDSHAKE:
            return

        now = self._now()
        self.transport_dead = False
        self._set_state(SessionState.CONNECTED)
        self.hello_timer.stop()
        self.sender.drop_pending()
        self.last_rx_time = now
        self.last_tx_time = now
        self.stats.handshakes_completed += 1

    def _on_reliable(self, frame: Frame):
        if self.state != SessionState.CONNECTED:
            return

        ack = self.receiver.receive_frame(frame)
        if ack is None:
            self.logger.warning("Reliable receive queue overflow", "RX")
            self.mark_dead(DeadReason.RX_QUEUE_OVERFLOW)
            return

        if self._transmit(ack):
            self.stats.acks_sent += 1

    def _on_unreliable(self, frame: Frame):
        if self.state != SessionState.CONNECTED:
            return

        if self.rx_queue.add(frame.payload, MessageKind.UNRELIABLE):
            self.stats.unreliable_received += 1
        else:
            self.stats.unreliable_dropped += 1

    def _deliver_reliable(self, payload: bytes, seq: int) -> bool:
        return self.rx_queue.add(payload, MessageKind.RELIABLE)

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------

    def _poll_timers(self):
        now = self._now()

        if self.state == SessionState.HANDSHAKE:
            if self.hello_timer.check_expired(now):
                if self._send_hello():
                    self.hello_timer.restart(now)

            if now - self.handshake_start >= self.config.connect_timeout:
                self.mark_dead(DeadReason.HANDSHAKE_TIMEOUT)
                return

            self._check_peer_timeout(now)
            return

        if self.state != SessionState.CONNECTED:
            return

        action = self.sender.check_retry(now)
        if action == RetryAction.EXHAUSTED:
            pending = self.sender.pending
            self.logger.warning(
                f"Max retries seq={pending.seq} len={len(pending.payload)}", "RETX"
            )
            self.mark_dead(DeadReason.MAX_RETRIES)
            return
        if action == RetryAction.RETRANSMIT:
            frame = self.sender.retransmit(now)
            self.logger.retransmit(frame.seq, self.sender.pending.retry_count)
            self._transmit(frame)

        if now - self.last_tx_time >= self.config.keepalive_interval:
            if self._transmit(Frame.create_keepalive()):
                self.stats.keepalives_sent += 1

        self._check_peer_timeout(now)

    def _check_peer_timeout(self, now: float):
        if now - self.last_rx_time >= self.config.peer_timeout:
            self.logger.warning(
                f"Peer silent for {now - self.last_rx_time:.2f}s "
                f"words={self.parser.words_consumed} frames={self.parser.frames_parsed} "
                f"crcfail={self.parser.crc_failures}",
                "DEAD"
            )
            self.mark_dead(DeadReason.PEER_TIMEOUT)

    # ------------------------------------------------------------------
    # Transmit path
    # ------------------------------------------------------------------

    def _transmit(self, frame: Frame) -> bool:
        if not self.guard.try_send(frame):
            self.stats.transmit_failures += 1
            return False

        self.last_tx_time = self._now()
        self.stats.record_transmit(frame.word_count)
        self.logger.frame_sent(frame.type_name, frame.seq, len(frame.payload))
        return True

    def _send_hello(self) -> bool:
        sent = self._transmit(Frame.create_hello())
        if sent:
            self.stats.hellos_sent += 1
        return sent

    def _send_hello_ack(self) -> bool:
        sent = self._transmit(Frame.create_hello_ack())
        if sent:
            self.stats.hello_acks_sent += 1
        return sent

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _now(self) -> float:
        now = self.clock()
        self.logger.set_time(now)
        return now

    def _check_payload(self, payload: bytes):
        if len(payload) > self.config.max_payload:
            raise ValueError(
                f"Payload too large ({len(payload)} > {self.config.max_payload} bytes)"
            )

    def _set_state(self, new_state: SessionState):
        old_state = getattr(self, 'state', None)
        self.state = new_state
        if old_state is not None and old_state != new_state:
            self.logger.state_change(old_state.name, new_state.name)

    def _set_role(self, master: bool):
        """Reconfigure the transport, flushing both FIFOs."""
        self.master = master
        self.transport.configure(
            enable=True, master=master, clear_errors=True,
            flush_rx=True, flush_tx=True, poll_enable=master
        )
        self.transport.configure(
            enable=True, master=master, clear_errors=True, poll_enable=master
        )

    def _clear_errors(self):
        self.stats.error_clears += 1
        self.transport.configure(
            enable=True, master=self.master, clear_errors=True, poll_enable=self.master
        )

    def _reset_session(self):
        """Return every protocol field to its initial value."""
        self.role = SessionRole.RESPONDER
        self.incoming_pending = False
        self._set_state(SessionState.DOWN)
        self.transport_dead = False
        self.dead_reason: Optional[DeadReason] = None
        self.sender.reset()
        self.receiver.reset()
        self.parser.reset()
        self.hello_timer.stop()
        self.last_rx_time = 0.0
        self.last_tx_time = 0.0
        self.handshake_start = 0.0
