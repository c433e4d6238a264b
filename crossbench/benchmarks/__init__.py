"""
Throughput matrix harness for crossbench.

This package drives every server implementation against every client
implementation across a fixed set of payload sizes, records one throughput
measurement per combination, and renders a sorted summary table plus optional
CSV and chart artefacts.
"""

from .main import main

__all__ = ["main"]
