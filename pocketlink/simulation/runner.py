"""
Batch Runner for Parameter Sweep Simulations

This module runs the simulator over every (drop rate, payload size) pair,
several seeded runs each, and collects the results in a pandas DataFrame.
"""

import multiprocessing
import os
import time
from concurrent.futures import ProcessPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

import pandas as pd
from tqdm import tqdm

from pocketlink.config import (
    DROP_RATES, MESSAGES_PER_RUN, PAYLOAD_SIZES,
    RESULTS_CSV, RNG_SEED_BASE, RUNS_PER_CONFIGURATION
)
from pocketlink.utils.logger import LogLevel
from .simulator import Simulator, SimulatorConfig


@dataclass
class RunConfig:
    """Configuration for a single simulation run."""
    drop_rate: float
    payload_size: int
    run_id: int
    seed: int
    message_count: int
    burst_errors: bool = False


def run_single_simulation(run_config: RunConfig) -> Dict:
    """
    Run a single simulation with given configuration.

    This function is designed to be called in a separate process.

    Args:
        run_config: Configuration for this run

    Returns:
        Flat dictionary with the run's key metrics
    """
    row = {
        'drop_rate': run_config.drop_rate,
        'payload_size': run_config.payload_size,
        'run_id': run_config.run_id,
        'seed': run_config.seed,
    }

    try:
        config = SimulatorConfig(
            payload_size=run_config.payload_size,
            message_count=run_config.message_count,
            drop_rate=run_config.drop_rate,
            burst_errors=run_config.burst_errors,
            seed=run_config.seed,
            log_level=LogLevel.CRITICAL
        )
        results = Simulator(config).run()
    except Exception as e:
        row.update({'goodput': 0.0, 'complete': False, 'error': str(e)})
        return row

    metrics = results['metrics']
    sender = results['initiator']['sender']

    row.update({
        'goodput': metrics['goodput'],
        'efficiency': metrics['efficiency'],
        'messages_delivered': results['messages_delivered'],
        'retransmissions': sender['retransmissions'],
        'crc_failures': (results['initiator']['parser']['crc_failures']
                         + results['responder']['parser']['crc_failures']),
        'latency_mean': metrics['latency']['mean'],
        'total_time': results['simulation_time'],
        'complete': results['complete'],
        'data_valid': results['data_valid'],
        'dead_reason': results['dead_reason'],
        'error': None
    })
    return row


class BatchRunner:
    """
    Batch Runner for parameter sweep simulations.

    Attributes:
        drop_rates: Word drop probabilities to test
        payload_sizes: Message sizes to test
        runs_per_config: Number of seeded runs per pair
        message_count: Messages sent per run
    """

    def __init__(
        self,
        drop_rates: Optional[List[float]] = None,
        payload_sizes: Optional[List[int]] = None,
        runs_per_config: int = RUNS_PER_CONFIGURATION,
        message_count: int = MESSAGES_PER_RUN,
        burst_errors: bool = False,
        output_file: str = RESULTS_CSV,
        on_progress: Optional[Callable[[int, int, dict], None]] = None
    ):
        """
        Initialize batch runner.

        Args:
            drop_rates: Drop rates (default from config)
            payload_sizes: Payload sizes (default from config)
            runs_per_config: Number of runs per pair
            message_count: Messages per run
            burst_errors: Enable the Gilbert-Elliott channel on the cable
            output_file: Path to output CSV file
            on_progress: Callback for progress updates
        """
        self.drop_rates = drop_rates if drop_rates is not None else DROP_RATES
        self.payload_sizes = payload_sizes if payload_sizes is not None else PAYLOAD_SIZES
        self.runs_per_config = runs_per_config
        self.message_count = message_count
        self.burst_errors = burst_errors
        self.output_file = output_file
        self.on_progress = on_progress

        self.results: List[Dict] = []

        self.total_runs = (len(self.drop_rates) *
                           len(self.payload_sizes) *
                           self.runs_per_config)
        self.completed_runs = 0
        self.start_time = 0.0

    def _generate_run_configs(self) -> List[RunConfig]:
        configs = []

        for rate_index, drop_rate in enumerate(self.drop_rates):
            for payload_size in self.payload_sizes:
                for run_id in range(self.runs_per_config):
                    seed = (RNG_SEED_BASE +
                            rate_index * 1000 +
                            payload_size +
                            run_id * 100000)

                    configs.append(RunConfig(
                        drop_rate=drop_rate,
                        payload_size=payload_size,
                        run_id=run_id,
                        seed=seed,
                        message_count=self.message_count,
                        burst_errors=self.burst_errors
                    ))

        return configs

    def _record(self, result: Dict):
        self.results.append(result)
        self.completed_runs += 1
        if self.on_progress:
            self.on_progress(self.completed_runs, self.total_runs, result)

    def run_sequential(self, show_progress: bool = True) -> pd.DataFrame:
        """
        Run all simulations sequentially.

        Returns:
            DataFrame with one row per run
        """
        configs = self._generate_run_configs()
        self.results = []
        self.completed_runs = 0
        self.start_time = time.time()

        for config in tqdm(configs, desc="Simulations", disable=not show_progress):
            self._record(run_single_simulation(config))

        return self.to_dataframe()

    def run_parallel(self, max_workers: Optional[int] = None, show_progress: bool = True) -> pd.DataFrame:
        """
        Run simulations in parallel using multiprocessing.

        Args:
            max_workers: Number of parallel workers (default: CPU count)

        Returns:
            DataFrame with one row per run
        """
        if max_workers is None:
            max_workers = multiprocessing.cpu_count()

        configs = self._generate_run_configs()
        self.results = []
        self.completed_runs = 0
        self.start_time = time.time()

        with ProcessPoolExecutor(max_workers=max_workers) as executor:
            futures = [executor.submit(run_single_simulation, config) for config in configs]
            for future in tqdm(as_completed(futures), total=len(futures),
                               desc="Simulations", disable=not show_progress):
                self._record(future.result())

        return self.to_dataframe()

    def to_dataframe(self) -> pd.DataFrame:
        df = pd.DataFrame(self.results)
        if not df.empty:
            df = df.sort_values(['drop_rate', 'payload_size', 'run_id']).reset_index(drop=True)
        return df

    def save_results(self, filepath: Optional[str] = None) -> Optional[str]:
        """
        Save results to CSV file.

        Args:
            filepath: Output file path (default: self.output_file)

        Returns:
            Path written, or None when there is nothing to save
        """
        filepath = filepath or self.output_file

        if not self.results:
            print("No results to save!")
            return None

        directory = os.path.dirname(filepath)
        if directory:
            os.makedirs(directory, exist_ok=True)

        self.to_dataframe().to_csv(filepath, index=False)
        print(f"Results saved to: {filepath}")
        return filepath

    def get_aggregated_results(self) -> pd.DataFrame:
        """
        Aggregate runs by (drop rate, payload size).

        Returns:
            DataFrame indexed by (drop_rate, payload_size) with goodput
            statistics and completion rate
        """
        df = self.to_dataframe()
        if df.empty:
            return df

        if 'error' in df.columns:
            df = df[df['error'].isna()]

        return df.groupby(['drop_rate', 'payload_size']).agg(
            goodput_mean=('goodput', 'mean'),
            goodput_std=('goodput', 'std'),
            goodput_min=('goodput', 'min'),
            goodput_max=('goodput', 'max'),
            retx_mean=('retransmissions', 'mean'),
            completion_rate=('complete', 'mean'),
            runs=('run_id', 'count')
        )

    def get_optimal_configuration(self) -> Dict:
        """Find the payload size with the best goodput for each drop rate."""
        aggregated = self.get_aggregated_results()
        if aggregated.empty:
            return {'error': 'No results available'}

        best = {}
        for drop_rate, group in aggregated.groupby(level='drop_rate'):
            row = group['goodput_mean'].idxmax()
            best[drop_rate] = {
                'payload_size': row[1],
                'goodput_mean': group.loc[row, 'goodput_mean'],
                'completion_rate': group.loc[row, 'completion_rate']
            }
        return best


if __name__ == "__main__":
    print("=" * 60)
    print("BATCH RUNNER TEST")
    print("=" * 60)

    runner = BatchRunner(
        drop_rates=[0.0, 0.005],
        payload_sizes=[64, 256],
        runs_per_config=2,
        message_count=10
    )
    print(f"\nTotal runs: {runner.total_runs}")

    df = runner.run_sequential()
    print(runner.get_aggregated_results())
    print(f"\nBest payload per drop rate: {runner.get_optimal_configuration()}")
