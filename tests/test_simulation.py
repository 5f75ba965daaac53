"""
Tests for the simulator, the batch runner and the heatmap output.
"""

import os

import pandas as pd
import pytest

from pocketlink.layers.physical_layer import LinkCable
from pocketlink.layers.link_layer import LinkConfig, LinkSession, SendResult
from pocketlink.simulation.runner import BatchRunner, RunConfig, run_single_simulation
from pocketlink.simulation.simulator import SimClock, Simulator, SimulatorConfig
from pocketlink.utils.logger import LogLevel
from pocketlink.visualization.heatmap import GoodputHeatmap

from conftest import quiet_logger


def make_pair(cable, clock):
    initiator = LinkSession(cable.a, LinkConfig(name="A"), clock=clock, logger=quiet_logger("A"))
    responder = LinkSession(cable.b, LinkConfig(name="B"), clock=clock, logger=quiet_logger("B"))
    return initiator, responder


class TestSessionsOverCable:
    """Two sessions talking over a LinkCable."""

    def test_connect_and_exchange(self):
        clock = SimClock()
        cable = LinkCable(seed=1)
        initiator, responder = make_pair(cable, clock)

        responder.listen(True)
        initiator.connect(idle=lambda: (clock.advance(0.005), responder.poll()))

        assert responder.accept() is responder
        assert responder.is_connected

        received = []
        for index in range(300):
            payload = index.to_bytes(2, 'little')
            while initiator.send(payload) != SendResult.ACCEPTED:
                clock.advance(0.005)
                received.extend(iter(responder.receive, None))
            clock.advance(0.005)
            received.extend(iter(responder.receive, None))

        while not initiator.can_send():
            clock.advance(0.005)
            received.extend(iter(responder.receive, None))

        assert received == [i.to_bytes(2, 'little') for i in range(300)]
        assert initiator.tx_seq == 300 % 256
        assert responder.rx_seq == 300 % 256

    def test_three_byte_scenario(self):
        clock = SimClock()
        cable = LinkCable(seed=1)
        initiator, responder = make_pair(cable, clock)

        responder.listen(True)
        initiator.initiate()
        assert initiator.state.name == "HANDSHAKE"

        assert responder.accept() is responder
        initiator.poll()
        assert initiator.is_connected

        assert initiator.send(bytes([0x01, 0x02, 0x03])) == SendResult.ACCEPTED
        assert not initiator.can_send()
        assert responder.receive() == bytes([0x01, 0x02, 0x03])
        assert initiator.can_send()

    def test_close_notifies_peer(self):
        clock = SimClock()
        cable = LinkCable(seed=1)
        initiator, responder = make_pair(cable, clock)

        responder.listen(True)
        initiator.connect(idle=lambda: (clock.advance(0.005), responder.poll()))
        initiator.close()
        responder.poll()

        assert responder.transport_dead
        assert responder.dead_reason.value == "reset_pkt"

    def test_unplugged_cable_times_out(self):
        clock = SimClock()
        cable = LinkCable(seed=1)
        initiator, responder = make_pair(cable, clock)

        responder.listen(True)
        initiator.connect(idle=lambda: (clock.advance(0.005), responder.poll()))
        cable.unplug()

        while not (initiator.transport_dead and responder.transport_dead):
            assert clock() < 10.0
            clock.advance(0.01)
            initiator.poll()
            responder.poll()

        assert initiator.dead_reason.value == "peer_timeout"
        assert responder.dead_reason.value == "peer_timeout"


class TestSimulator:
    """Tests for the simulated-time runner."""

    def test_clean_cable_completes(self):
        config = SimulatorConfig(payload_size=64, message_count=10, seed=3, log_level=LogLevel.CRITICAL)

        results = Simulator(config).run()

        assert results['complete']
        assert results['data_valid']
        assert results['messages_delivered'] == 10
        assert results['dead_reason'] is None
        assert results['metrics']['goodput'] > 0
        assert results['initiator']['sender']['retransmissions'] == 0

    def test_edge_payload_sizes(self):
        config = SimulatorConfig(log_level=LogLevel.CRITICAL)
        messages = [b"", b"\xAB" * 8000, b"abc"]

        results = Simulator(config).run(messages=messages)

        assert results['complete']
        assert results['data_valid']

    def test_lossy_cable_never_corrupts_data(self):
        config = SimulatorConfig(
            payload_size=32, message_count=20, drop_rate=0.01,
            seed=11, log_level=LogLevel.CRITICAL
        )
        sim = Simulator(config)

        results = sim.run()

        assert sim.received == sim.messages[:len(sim.received)]
        assert results['complete'] or results['dead_reason'] is not None

    def test_reproducible(self):
        def run():
            config = SimulatorConfig(
                payload_size=16, message_count=10, drop_rate=0.02,
                seed=5, log_level=LogLevel.CRITICAL
            )
            results = Simulator(config).run()
            return results['simulation_time'], results['cable']['words_dropped']

        assert run() == run()

    def test_burst_channel(self):
        config = SimulatorConfig(
            payload_size=64, message_count=5, burst_errors=True,
            seed=2, log_level=LogLevel.CRITICAL
        )
        sim = Simulator(config)

        results = sim.run()

        assert 'channel' in results['cable']
        assert sim.received == sim.messages[:len(sim.received)]

    def test_reset(self):
        config = SimulatorConfig(payload_size=16, message_count=3, log_level=LogLevel.CRITICAL)
        sim = Simulator(config)
        sim.run()

        sim.reset(seed=9)

        assert sim.config.seed == 9
        assert sim.received == []
        assert sim.run()['complete']


class TestBatchRunner:
    """Tests for sweeps."""

    def test_single_run_row(self):
        row = run_single_simulation(RunConfig(
            drop_rate=0.0, payload_size=16, run_id=0, seed=1, message_count=3
        ))

        assert row['complete']
        assert row['error'] is None
        assert row['goodput'] > 0

    def test_sequential_sweep(self, tmp_path):
        output = str(tmp_path / "results.csv")
        runner = BatchRunner(
            drop_rates=[0.0],
            payload_sizes=[16, 64],
            runs_per_config=2,
            message_count=3,
            output_file=output
        )

        df = runner.run_sequential(show_progress=False)

        assert len(df) == runner.total_runs == 4
        assert runner.save_results() == output
        assert len(pd.read_csv(output)) == 4

        aggregated = runner.get_aggregated_results()
        assert (aggregated['completion_rate'] == 1.0).all()
        assert set(runner.get_optimal_configuration()) == {0.0}

    def test_progress_callback(self):
        calls = []
        runner = BatchRunner(
            drop_rates=[0.0], payload_sizes=[16], runs_per_config=2, message_count=2,
            on_progress=lambda done, total, row: calls.append((done, total))
        )

        runner.run_sequential(show_progress=False)

        assert calls == [(1, 2), (2, 2)]

    def test_save_without_results(self, tmp_path):
        runner = BatchRunner(output_file=str(tmp_path / "none.csv"))

        assert runner.save_results() is None


class TestHeatmap:
    """Tests for heatmap generation."""

    def rows(self):
        return [
            {'drop_rate': p, 'payload_size': size, 'run_id': run,
             'goodput': size * (1.0 - p * 10) * 100 + run, 'complete': p < 0.05}
            for p in (0.0, 0.01, 0.05)
            for size in (16, 64, 256)
            for run in range(2)
        ]

    def test_optimal_point(self):
        drop_rate, payload_size, _ = GoodputHeatmap(results=self.rows()).get_optimal_point()

        assert drop_rate == 0.0
        assert payload_size == 256

    def test_plots_written(self, tmp_path):
        heatmap = GoodputHeatmap(results=self.rows())

        goodput = heatmap.plot(output_file=str(tmp_path / "goodput.png"))
        completion = heatmap.plot_completion(output_file=str(tmp_path / "completion.png"))

        assert os.path.exists(goodput)
        assert os.path.exists(completion)

    def test_from_csv(self, tmp_path):
        path = tmp_path / "results.csv"
        pd.DataFrame(self.rows()).to_csv(path, index=False)

        heatmap = GoodputHeatmap(csv_file=str(path))

        assert len(heatmap.df) == 18

    def test_empty_results(self):
        with pytest.raises(ValueError):
            GoodputHeatmap().plot()
