"""
Simulation package - Simulated-time link runs and parameter sweeps.

Contains:
- Simulator driving an initiator and a responder over a link cable
- Batch runner for drop rate / payload size sweeps
"""

from .simulator import SimClock, Simulator, SimulatorConfig
from .runner import BatchRunner, RunConfig, run_single_simulation

__all__ = [
    'SimClock',
    'Simulator',
    'SimulatorConfig',
    'BatchRunner',
    'RunConfig',
    'run_single_simulation'
]
