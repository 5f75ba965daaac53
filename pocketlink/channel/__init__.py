"""
Channel package - Physical channel models.

Contains implementations for:
- Gilbert-Elliott burst error channel model (word corruption)
"""

from .gilbert_elliot import GilbertElliottChannel, ChannelState

__all__ = [
    'GilbertElliottChannel',
    'ChannelState'
]
