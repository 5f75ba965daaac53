"""
Gilbert-Elliott Burst Error Channel Model

This module implements the two-state Markov chain used to corrupt words on
the simulated link cable. The channel alternates between a "Good" state
(low BER) and a "Bad" state (high BER), stepping once per bit.
"""

from enum import Enum
from typing import Optional, Tuple

import numpy as np

from pocketlink.config import (
    GOOD_STATE_BER, BAD_STATE_BER,
    P_GOOD_TO_BAD, P_BAD_TO_GOOD
)

WORD_BITS = 32


class ChannelState(Enum):
    """Channel state enumeration."""
    GOOD = 0
    BAD = 1


class GilbertElliottChannel:
    """
    Gilbert-Elliott two-state Markov channel model.

    Attributes:
        pg: Bit error rate in Good state
        pb: Bit error rate in Bad state
        p_gb: Transition probability from Good to Bad
        p_bg: Transition probability from Bad to Good
        state: Current channel state
        rng: Random number generator
    """

    def __init__(
        self,
        pg: float = GOOD_STATE_BER,
        pb: float = BAD_STATE_BER,
        p_gb: float = P_GOOD_TO_BAD,
        p_bg: float = P_BAD_TO_GOOD,
        seed: Optional[int] = None
    ):
        """
        Initialize the Gilbert-Elliott channel.

        Args:
            pg: Bit error rate in Good state (default from config)
            pb: Bit error rate in Bad state (default from config)
            p_gb: Probability of transitioning from Good to Bad
            p_bg: Probability of transitioning from Bad to Good
            seed: Random seed for reproducibility
        """
        self.pg = pg
        self.pb = pb
        self.p_gb = p_gb
        self.p_bg = p_bg

        self.rng = np.random.default_rng(seed)
        self._initialize_state()

        # Statistics tracking
        self.total_bits_transmitted = 0
        self.total_bit_errors = 0
        self.words_transmitted = 0
        self.words_corrupted = 0
        self.state_transitions = 0
        self.time_in_good = 0
        self.time_in_bad = 0

    def _initialize_state(self):
        """Draw the starting state from the steady-state distribution."""
        pi_good, _ = self.get_steady_state_probabilities()
        if self.rng.random() < pi_good:
            self.state = ChannelState.GOOD
        else:
            self.state = ChannelState.BAD

    def get_steady_state_probabilities(self) -> Tuple[float, float]:
        """
        Calculate steady-state probabilities for Good and Bad states.

        Returns:
            Tuple of (π_Good, π_Bad)
        """
        sum_transitions = self.p_gb + self.p_bg
        if sum_transitions <= 0:
            return 1.0, 0.0
        return self.p_bg / sum_transitions, self.p_gb / sum_transitions

    def get_average_ber(self) -> float:
        """Average BER implied by the steady-state probabilities."""
        pi_good, pi_bad = self.get_steady_state_probabilities()
        return pi_good * self.pg + pi_bad * self.pb

    def get_current_ber(self) -> float:
        """Get the BER for the current channel state."""
        return self.pg if self.state == ChannelState.GOOD else self.pb

    def _step(self, transition_draw: float):
        """Advance the Markov chain by one bit."""
        if self.state == ChannelState.GOOD:
            self.time_in_good += 1
            if transition_draw < self.p_gb:
                self.state = ChannelState.BAD
                self.state_transitions += 1
        else:
            self.time_in_bad += 1
            if transition_draw < self.p_bg:
                self.state = ChannelState.GOOD
                self.state_transitions += 1

    def transmit_bit(self) -> bool:
        """
        Simulate transmission of a single bit through the channel.

        Returns:
            True if the bit was flipped
        """
        error = bool(self.rng.random() < self.get_current_ber())

        self.total_bits_transmitted += 1
        if error:
            self.total_bit_errors += 1

        self._step(self.rng.random())
        return error

    def transmit_word(self, word: int) -> Tuple[int, int]:
        """
        Send one 32-bit word through the channel, flipping erroneous bits.

        Random draws for the 32 bits are taken in one batch; the state
        machine still steps bit by bit so bursts span word boundaries.

        Args:
            word: Transport word

        Returns:
            Tuple of (received_word, number_of_bit_errors)
        """
        error_draws = self.rng.random(WORD_BITS)
        transition_draws = self.rng.random(WORD_BITS)

        error_mask = 0
        bit_errors = 0
        for bit in range(WORD_BITS):
            ber = self.pg if self.state == ChannelState.GOOD else self.pb
            if error_draws[bit] < ber:
                error_mask |= 1 << bit
                bit_errors += 1
            self._step(transition_draws[bit])

        self.total_bits_transmitted += WORD_BITS
        self.total_bit_errors += bit_errors
        self.words_transmitted += 1
        if bit_errors:
            self.words_corrupted += 1

        return (word ^ error_mask) & 0xFFFFFFFF, bit_errors

    def get_statistics(self) -> dict:
        """
        Get channel statistics.

        Returns:
            Dictionary with transmission statistics
        """
        total_time = self.time_in_good + self.time_in_bad

        return {
            'total_bits': self.total_bits_transmitted,
            'bit_errors': self.total_bit_errors,
            'observed_ber': (self.total_bit_errors / self.total_bits_transmitted
                             if self.total_bits_transmitted > 0 else 0),
            'words_transmitted': self.words_transmitted,
            'words_corrupted': self.words_corrupted,
            'state_transitions': self.state_transitions,
            'time_in_good': self.time_in_good,
            'time_in_bad': self.time_in_bad,
            'fraction_in_good': (self.time_in_good / total_time
                                 if total_time > 0 else 0),
            'theoretical_avg_ber': self.get_average_ber()
        }

    def reset_statistics(self):
        """Reset all statistics counters."""
        self.total_bits_transmitted = 0
        self.total_bit_errors = 0
        self.words_transmitted = 0
        self.words_corrupted = 0
        self.state_transitions = 0
        self.time_in_good = 0
        self.time_in_bad = 0

    def reset(self, seed: Optional[int] = None):
        """
        Reset the channel to initial state.

        Args:
            seed: New random seed (optional)
        """
        if seed is not None:
            self.rng = np.random.default_rng(seed)
        self._initialize_state()
        self.reset_statistics()


if __name__ == "__main__":
    print("=" * 60)
    print("GILBERT-ELLIOTT CHANNEL MODEL TEST")
    print("=" * 60)

    channel = GilbertElliottChannel(seed=42)

    pi_good, pi_bad = channel.get_steady_state_probabilities()
    print(f"\nSteady-State Probabilities:")
    print(f"  π(Good): {pi_good:.4f}")
    print(f"  π(Bad): {pi_bad:.4f}")
    print(f"  Theoretical Avg BER: {channel.get_average_ber():.2e}")

    num_words = 20000
    print(f"\nSimulating {num_words} words...")
    for i in range(num_words):
        channel.transmit_word(i)

    stats = channel.get_statistics()
    print(f"  Observed BER: {stats['observed_ber']:.2e}")
    print(f"  Word error rate: {stats['words_corrupted'] / stats['words_transmitted']:.4f}")
