#!/usr/bin/env python3
"""
PocketLink Simulator - Main Entry Point

This is the main CLI interface for the PocketLink link simulator.
It provides options for:
- Single simulation runs
- Drop rate / payload size parameter sweeps
- Visualization generation

Usage:
    python main.py --single --payload 256 --drop-rate 0.005
    python main.py --sweep --runs 5
    python main.py --visualize --csv results.csv
"""

import argparse
import os
import time

from pocketlink.config import (
    DROP_RATES, MESSAGES_PER_RUN, PAYLOAD_SIZES,
    PLOTS_DIR, RESULTS_CSV, RUNS_PER_CONFIGURATION
)


def run_single_simulation(args):
    """Run a single simulation with specified parameters."""
    from pocketlink.simulation.simulator import Simulator, SimulatorConfig
    from pocketlink.utils.logger import LogLevel

    config = SimulatorConfig(
        payload_size=args.payload,
        message_count=args.messages,
        drop_rate=args.drop_rate,
        burst_errors=args.burst,
        seed=args.seed,
        log_level=LogLevel.INFO if args.verbose else LogLevel.WARNING
    )

    print("=" * 60)
    print("POCKETLINK SIMULATOR")
    print("=" * 60)
    print("\nConfiguration:")
    print(f"  Payload size: {config.payload_size} bytes")
    print(f"  Messages: {config.message_count}")
    print(f"  Drop rate: {config.drop_rate}")
    print(f"  Burst errors: {config.burst_errors}")
    print(f"  Seed: {config.seed}")

    print("\nRunning simulation...")

    sim = Simulator(config)
    start_time = time.time()
    results = sim.run()
    elapsed = time.time() - start_time

    print("\n" + "=" * 60)
    print("RESULTS")
    print("=" * 60)

    print("\nTransfer Status:")
    print(f"  Complete: {results['complete']}")
    print(f"  Data Valid: {results['data_valid']}")
    print(f"  Messages Delivered: {results['messages_delivered']}")
    if results['dead_reason']:
        print(f"  Link Dead: {results['dead_reason']}")
    print(f"  Simulation Time: {results['simulation_time']:.3f} s")
    print(f"  Real Time: {elapsed:.2f} s")

    metrics = results['metrics']
    print("\nPerformance Metrics:")
    print(f"  Goodput: {metrics['goodput']:.1f} B/s")
    print(f"  Efficiency: {metrics['efficiency'] * 100:.2f}%")
    print(f"  Words on wire: {metrics['words_transmitted']}")

    sender = results['initiator']['sender']
    print("\nReliable Delivery:")
    print(f"  Messages Sent: {sender['frames_sent']}")
    print(f"  Messages Acked: {sender['frames_acked']}")
    print(f"  Retransmissions: {sender['retransmissions']}")
    print(f"  CRC Failures (responder): {results['responder']['parser']['crc_failures']}")

    if metrics['latency']['samples'] > 0:
        print("\nLatency:")
        print(f"  Mean: {metrics['latency']['mean'] * 1000:.2f} ms")
        print(f"  Min: {metrics['latency']['min'] * 1000:.2f} ms")
        print(f"  Max: {metrics['latency']['max'] * 1000:.2f} ms")

    return results


def run_parameter_sweep(args):
    """Run a drop rate / payload size sweep."""
    from pocketlink.simulation.runner import BatchRunner

    print("=" * 60)
    print("PARAMETER SWEEP")
    print("=" * 60)

    if args.quick:
        drop_rates = [0.0, 0.005, 0.01]
        payload_sizes = [16, 256, 1024]
        runs = 2
        message_count = 10
    else:
        drop_rates = DROP_RATES
        payload_sizes = PAYLOAD_SIZES
        runs = args.runs
        message_count = args.messages

    output_file = args.output or RESULTS_CSV
    runner = BatchRunner(
        drop_rates=drop_rates,
        payload_sizes=payload_sizes,
        runs_per_config=runs,
        message_count=message_count,
        burst_errors=args.burst,
        output_file=output_file
    )

    print("\nConfiguration:")
    print(f"  Drop rates: {drop_rates}")
    print(f"  Payload sizes: {payload_sizes}")
    print(f"  Runs per config: {runs}")
    print(f"  Messages per run: {message_count}")
    print(f"  Total simulations: {runner.total_runs}")
    print(f"  Output: {output_file}")

    print("\nStarting parameter sweep...")

    if args.parallel:
        results = runner.run_parallel(max_workers=args.workers)
    else:
        results = runner.run_sequential()

    runner.save_results()

    print("\n" + "=" * 60)
    print("BEST PAYLOAD PER DROP RATE")
    print("=" * 60)
    for drop_rate, best in runner.get_optimal_configuration().items():
        print(f"  p={drop_rate}: L={best['payload_size']} bytes, "
              f"{best['goodput_mean']:.1f} B/s, "
              f"completed {best['completion_rate'] * 100:.0f}%")

    return results


def generate_visualizations(args):
    """Generate visualization plots."""
    from pocketlink.visualization.heatmap import GoodputHeatmap

    print("=" * 60)
    print("GENERATING VISUALIZATIONS")
    print("=" * 60)

    csv_file = args.csv or RESULTS_CSV

    if not os.path.exists(csv_file):
        print(f"Error: Results file not found: {csv_file}")
        print("Run a parameter sweep first: python main.py --sweep")
        return

    os.makedirs(PLOTS_DIR, exist_ok=True)

    heatmap = GoodputHeatmap(csv_file=csv_file)
    print(f"Loaded {len(heatmap.df)} results from {csv_file}")

    print("\nGenerating heatmaps...")
    heatmap_file = heatmap.plot(output_file=os.path.join(PLOTS_DIR, 'goodput_heatmap.png'))
    completion_file = heatmap.plot_completion(
        output_file=os.path.join(PLOTS_DIR, 'completion_heatmap.png')
    )

    print("\n" + "=" * 60)
    print("VISUALIZATIONS GENERATED")
    print("=" * 60)
    print(f"  Goodput: {heatmap_file}")
    print(f"  Completion: {completion_file}")


def show_config(args):
    """Display current configuration."""
    from pocketlink import config as cfg

    print("=" * 60)
    print("POCKETLINK CONFIGURATION")
    print("=" * 60)

    print("\nFraming:")
    print(f"  Magic: 0x{cfg.FRAME_MAGIC:08X}")
    print(f"  Header words: {cfg.FRAME_HEADER_WORDS}")
    print(f"  Max payload: {cfg.MAX_PAYLOAD} bytes")
    print(f"  Receive queue: {cfg.RECEIVE_QUEUE_CAPACITY} bytes")

    print("\nTiming:")
    print(f"  HELLO interval: {cfg.HELLO_INTERVAL * 1000:.0f} ms")
    print(f"  Retry interval: {cfg.RETRY_INTERVAL * 1000:.0f} ms")
    print(f"  Max retries: {cfg.MAX_RETRIES}")
    print(f"  Keepalive interval: {cfg.KEEPALIVE_INTERVAL * 1000:.0f} ms")
    print(f"  Peer timeout: {cfg.PEER_TIMEOUT:.1f} s")
    print(f"  Connect timeout: {cfg.CONNECT_TIMEOUT:.1f} s")

    print("\nGilbert-Elliott Channel:")
    print(f"  Good State BER: {cfg.GOOD_STATE_BER:.2e}")
    print(f"  Bad State BER: {cfg.BAD_STATE_BER:.2e}")
    print(f"  P(Good->Bad): {cfg.P_GOOD_TO_BAD}")
    print(f"  P(Bad->Good): {cfg.P_BAD_TO_GOOD}")
    print(f"  Average BER: {cfg.calculate_average_ber():.2e}")

    print("\nParameter Sweep:")
    print(f"  Drop Rates: {cfg.DROP_RATES}")
    print(f"  Payload Sizes: {cfg.PAYLOAD_SIZES}")
    print(f"  Runs per config: {cfg.RUNS_PER_CONFIGURATION}")
    print(f"  Total simulations: "
          f"{len(cfg.DROP_RATES) * len(cfg.PAYLOAD_SIZES) * cfg.RUNS_PER_CONFIGURATION}")

    print("\nFrame size on the wire:")
    for payload in cfg.PAYLOAD_SIZES:
        print(f"  {payload} bytes: {cfg.frame_words(payload)} words")


def main():
    parser = argparse.ArgumentParser(
        description="PocketLink Reliable Link Simulator",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  Single simulation:
    python main.py --single --payload 256 --drop-rate 0.005

  Quick parameter sweep (for testing):
    python main.py --sweep --quick

  Parallel parameter sweep:
    python main.py --sweep --parallel --workers 4

  Generate visualizations:
    python main.py --visualize

  Show configuration:
    python main.py --config
        """
    )

    mode = parser.add_mutually_exclusive_group(required=True)
    mode.add_argument('--single', action='store_true',
                      help='Run single simulation')
    mode.add_argument('--sweep', action='store_true',
                      help='Run parameter sweep')
    mode.add_argument('--visualize', action='store_true',
                      help='Generate visualizations')
    mode.add_argument('--config', action='store_true',
                      help='Show configuration')

    # Single simulation options
    parser.add_argument('--payload', '-p', type=int, default=256,
                        help='Payload size in bytes (default: 256)')
    parser.add_argument('--drop-rate', '-d', type=float, default=0.0,
                        help='Probability that a word is lost on the cable (default: 0)')
    parser.add_argument('--messages', '-m', type=int, default=MESSAGES_PER_RUN,
                        help=f'Messages per run (default: {MESSAGES_PER_RUN})')
    parser.add_argument('--burst', action='store_true',
                        help='Corrupt words with a Gilbert-Elliott burst channel')
    parser.add_argument('--seed', '-s', type=int, default=42,
                        help='Random seed (default: 42)')

    # Parameter sweep options
    parser.add_argument('--runs', '-r', type=int,
                        default=RUNS_PER_CONFIGURATION,
                        help=f'Runs per configuration (default: {RUNS_PER_CONFIGURATION})')
    parser.add_argument('--parallel', action='store_true',
                        help='Run simulations in parallel')
    parser.add_argument('--workers', type=int, default=None,
                        help='Number of parallel workers')
    parser.add_argument('--quick', action='store_true',
                        help='Quick test with reduced parameters')

    # Output options
    parser.add_argument('--output', '-o', type=str,
                        help='Output file path')
    parser.add_argument('--csv', type=str,
                        help='CSV file for visualization')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Verbose output')

    args = parser.parse_args()

    if args.single:
        run_single_simulation(args)
    elif args.sweep:
        run_parameter_sweep(args)
    elif args.visualize:
        generate_visualizations(args)
    elif args.config:
        show_config(args)


if __name__ == "__main__":
    main()
