"""
Link Simulator - Two Sessions on Simulated Time

This module runs a complete PocketLink exchange: a responder listens, an
initiator connects over a lossy link cable, then sends a sequence of
reliable messages one at a time while both sides are polled on a shared
simulated clock.
"""

import time
from dataclasses import dataclass
from typing import Dict, List, Optional

import numpy as np

from pocketlink.config import MAX_SIMULATION_TIME, MESSAGES_PER_RUN, SIM_TICK
from pocketlink.channel.gilbert_elliot import GilbertElliottChannel
from pocketlink.layers.link_layer import LinkConfig, LinkSession, SendResult, SessionState
from pocketlink.layers.physical_layer import LinkCable
from pocketlink.utils.logger import LinkLogger, LogLevel
from pocketlink.utils.metrics import TransferMetrics


class SimClock:
    """Manually advanced clock, callable like time.monotonic."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def advance(self, seconds: float):
        self.now += seconds

    def __call__(self) -> float:
        return self.now


@dataclass
class SimulatorConfig:
    """Configuration for the simulator."""
    payload_size: int = 256
    message_count: int = MESSAGES_PER_RUN

    # Cable faults
    drop_rate: float = 0.0
    burst_errors: bool = False

    # Simulation parameters
    tick: float = SIM_TICK
    seed: int = 42
    max_time: float = MAX_SIMULATION_TIME
    log_level: int = LogLevel.WARNING


class Simulator:
    """
    Drives an initiator and a responder over one LinkCable.

    Attributes:
        config: Simulation configuration
        clock: Shared simulated clock
        cable: Link cable joining the sessions
        initiator: Session that connects and sends
        responder: Session that listens and receives
    """

    def __init__(self, config: SimulatorConfig):
        """Initialize simulator."""
        self.config = config
        self.logger = LinkLogger(name="Sim", level=config.log_level)
        self._build()

    def _build(self):
        config = self.config
        self.clock = SimClock()

        channel = GilbertElliottChannel(seed=config.seed + 1000) if config.burst_errors else None
        self.cable = LinkCable(drop_rate=config.drop_rate, channel=channel, seed=config.seed)

        self.initiator = LinkSession(
            self.cable.a,
            LinkConfig(name="Initiator", log_level=config.log_level),
            clock=self.clock
        )
        self.responder = LinkSession(
            self.cable.b,
            LinkConfig(name="Responder", log_level=config.log_level),
            clock=self.clock
        )

        self.metrics = TransferMetrics()
        self.messages: List[bytes] = []
        self.received: List[bytes] = []
        self.send_times: List[float] = []
        self.accepted = False

    def _generate_messages(self) -> List[bytes]:
        """Deterministic random payloads."""
        rng = np.random.default_rng(self.config.seed)
        return [
            rng.integers(0, 256, size=self.config.payload_size, dtype=np.uint8).tobytes()
            for _ in range(self.config.message_count)
        ]

    def _service_responder(self):
        if not self.accepted:
            self.accepted = self.responder.accept() is not None

        while True:
            payload = self.responder.receive()
            if payload is None:
                break

            index = len(self.received)
            latency = None
            if index < len(self.send_times):
                latency = self.clock() - self.send_times[index]
            self.received.append(payload)
            self.metrics.record_message_delivered(len(payload), latency)
            self.logger.debug(f"Delivered message {index} ({len(payload)} bytes)", "RX")

    def _service_initiator(self):
        session = self.initiator
        next_index = len(self.send_times)

        if session.state != SessionState.CONNECTED or next_index >= len(self.messages):
            session.poll()
            return

        result = session.send(self.messages[next_index])
        if result == SendResult.ACCEPTED:
            self.send_times.append(self.clock())
            self.metrics.record_message_sent(len(self.messages[next_index]))

    def _is_complete(self) -> bool:
        return (len(self.received) >= len(self.messages)
                and len(self.send_times) >= len(self.messages)
                and self.initiator.sender.can_send())

    def _is_dead(self) -> bool:
        return self.initiator.transport_dead or self.responder.transport_dead

    def run(self, messages: Optional[List[bytes]] = None) -> Dict:
        """
        Run the simulation.

        Args:
            messages: Payloads to send (random ones of payload_size if None)

        Returns:
            Dictionary with completion, validity, goodput and statistics
        """
        self.messages = list(messages) if messages is not None else self._generate_messages()
        sim_start_real = time.time()

        self.logger.set_time(self.clock())
        self.logger.info(
            f"Simulation started: payload={self.config.payload_size} "
            f"messages={len(self.messages)} drop_rate={self.config.drop_rate}",
            "SIM"
        )

        self.responder.listen(True)
        self.initiator.initiate()
        self.metrics.start(self.clock())

        while self.clock() < self.config.max_time:
            self.clock.advance(self.config.tick)

            self._service_responder()
            self._service_initiator()

            if self._is_complete() or self._is_dead():
                break

        self.metrics.finish(self.clock())
        self.metrics.words_transmitted = (self.initiator.stats.words_transmitted
                                          + self.responder.stats.words_transmitted)

        data_valid = self.received == self.messages[:len(self.received)]
        complete = self._is_complete()
        dead_reason = self.initiator.dead_reason or self.responder.dead_reason

        self.logger.set_time(self.clock())
        self.logger.info(
            f"Simulation ended: complete={complete} "
            f"goodput={self.metrics.calculate_goodput():.1f} B/s",
            "SIM"
        )

        return {
            'config': {
                'payload_size': self.config.payload_size,
                'message_count': len(self.messages),
                'drop_rate': self.config.drop_rate,
                'burst_errors': self.config.burst_errors,
                'seed': self.config.seed
            },
            'complete': complete,
            'data_valid': data_valid and complete,
            'messages_delivered': len(self.received),
            'dead_reason': dead_reason.value if dead_reason else None,
            'simulation_time': self.clock(),
            'real_time': time.time() - sim_start_real,
            'metrics': self.metrics.get_summary(),
            'initiator': self.initiator.get_statistics(),
            'responder': self.responder.get_statistics(),
            'cable': self.cable.get_statistics()
        }

    def reset(self, seed: Optional[int] = None):
        """Rebuild cable and sessions, optionally with a new seed."""
        if seed is not None:
            self.config.seed = seed
        self._build()


if __name__ == "__main__":
    print("=" * 60)
    print("SIMULATOR TEST")
    print("=" * 60)

    config = SimulatorConfig(payload_size=256, message_count=20, drop_rate=0.001, seed=42)
    sim = Simulator(config)
    results = sim.run()

    print(f"\nComplete: {results['complete']}")
    print(f"Data valid: {results['data_valid']}")
    print(f"Simulation time: {results['simulation_time']:.3f} s")
    print(f"Goodput: {results['metrics']['goodput']:.1f} B/s")
    print(f"Retransmissions: {results['initiator']['sender']['retransmissions']}")
