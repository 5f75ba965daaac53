"""
Configuration for the PocketLink transport.

Contains the wire constants, protocol limits and timing parameters shared by
both peers, plus the defaults used by the link cable simulator.
"""

import os

# =============================================================================
# WIRE CONSTANTS
# =============================================================================

# First word of every frame ("QFME")
FRAME_MAGIC = 0x51464D45

# Value of the transport identification register ("LNK1")
LINK_HW_ID = 0x4C4E4B31

# Frame header occupies magic + header + checksum words
FRAME_HEADER_WORDS = 3

# Bytes carried by one transport word
WORD_BYTES = 4

# =============================================================================
# PROTOCOL LIMITS
# =============================================================================

# Largest payload a single frame may carry (bytes)
MAX_PAYLOAD = 8000

# Receive queue capacity in bytes; each message costs align4(len + 4)
RECEIVE_QUEUE_CAPACITY = 8192

# Transport words consumed per poll() call
POLL_WORD_BUDGET = 128

# Status polls a sender may spend waiting for TX FIFO space
TX_WAIT_BUDGET = 512

# =============================================================================
# TIMING PARAMETERS (seconds)
# =============================================================================

HELLO_INTERVAL = 0.10       # HELLO retransmit period during handshake
RETRY_INTERVAL = 0.05       # Reliable retransmit period
KEEPALIVE_INTERVAL = 0.50   # Idle time before a KEEPALIVE is sent
PEER_TIMEOUT = 2.00         # Silence before the peer is declared dead
CONNECT_TIMEOUT = 2.00      # Handshake deadline

# Retransmissions of one reliable message before giving up
MAX_RETRIES = 20

# =============================================================================
# LINK CABLE (SIMULATED TRANSPORT)
# =============================================================================

TX_FIFO_WORDS = 1024
RX_FIFO_WORDS = 4096

# =============================================================================
# GILBERT-ELLIOTT BURST ERROR MODEL PARAMETERS
# =============================================================================

GOOD_STATE_BER = 1e-6
BAD_STATE_BER = 5e-3
P_GOOD_TO_BAD = 0.002
P_BAD_TO_GOOD = 0.05

# =============================================================================
# SIMULATION SETTINGS
# =============================================================================

# Simulated time advanced per tick (seconds)
SIM_TICK = 0.005

# Failsafe limit on simulated time (seconds)
MAX_SIMULATION_TIME = 120.0

# Sweep parameter space
DROP_RATES = [0.0, 0.001, 0.005, 0.01, 0.02]
PAYLOAD_SIZES = [16, 64, 256, 1024, 4096]
RUNS_PER_CONFIGURATION = 5
MESSAGES_PER_RUN = 50

RNG_SEED_BASE = 42

# =============================================================================
# LOGGING
# =============================================================================

LOG_LEVEL_DEBUG = 0
LOG_LEVEL_INFO = 1
LOG_LEVEL_WARNING = 2
LOG_LEVEL_ERROR = 3

DEFAULT_LOG_LEVEL = LOG_LEVEL_WARNING

# =============================================================================
# OUTPUT PATHS
# =============================================================================

BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
DATA_DIR = os.path.join(BASE_DIR, "data")
OUTPUT_DIR = os.path.join(DATA_DIR, "output")
PLOTS_DIR = os.path.join(OUTPUT_DIR, "plots")

RESULTS_CSV = os.path.join(OUTPUT_DIR, "results.csv")

# =============================================================================
# DERIVED PARAMETERS
# =============================================================================

def payload_words(payload_len):
    """Number of transport words needed for a payload of payload_len bytes."""
    return (payload_len + WORD_BYTES - 1) // WORD_BYTES


def frame_words(payload_len):
    """Total words of a frame carrying payload_len bytes."""
    return FRAME_HEADER_WORDS + payload_words(payload_len)


def calculate_steady_state_probabilities():
    """
    Calculate steady-state probabilities for Good and Bad channel states.
    π_G = P(B→G) / (P(G→B) + P(B→G))
    π_B = P(G→B) / (P(G→B) + P(B→G))
    """
    sum_transitions = P_GOOD_TO_BAD + P_BAD_TO_GOOD
    pi_good = P_BAD_TO_GOOD / sum_transitions
    pi_bad = P_GOOD_TO_BAD / sum_transitions
    return pi_good, pi_bad


def calculate_average_ber():
    """BER_avg = π_G * pg + π_B * pb"""
    pi_good, pi_bad = calculate_steady_state_probabilities()
    return pi_good * GOOD_STATE_BER + pi_bad * BAD_STATE_BER


if __name__ == "__main__":
    print("=" * 60)
    print("POCKETLINK - CONFIGURATION")
    print("=" * 60)
    print(f"\nWire:")
    print(f"  Frame magic: 0x{FRAME_MAGIC:08X}")
    print(f"  Max payload: {MAX_PAYLOAD} bytes ({frame_words(MAX_PAYLOAD)} words framed)")
    print(f"  Receive queue: {RECEIVE_QUEUE_CAPACITY} bytes")

    print(f"\nTiming:")
    print(f"  Hello interval: {HELLO_INTERVAL * 1000:.0f} ms")
    print(f"  Retry interval: {RETRY_INTERVAL * 1000:.0f} ms (max {MAX_RETRIES} retries)")
    print(f"  Keepalive interval: {KEEPALIVE_INTERVAL * 1000:.0f} ms")
    print(f"  Peer timeout: {PEER_TIMEOUT * 1000:.0f} ms")
    print(f"  Connect timeout: {CONNECT_TIMEOUT * 1000:.0f} ms")

    print(f"\nGilbert-Elliott Model:")
    print(f"  Average BER: {calculate_average_ber():.2e}")
