"""
Chronoscribe - Unified Local-Dev Log Aggregator

This package relays log lines piped from many local processes to live
browser viewers, with a bounded replay buffer so late viewers can catch up.
"""

__version__ = "0.1.0"
__author__ = "Chronoscribe Team"
