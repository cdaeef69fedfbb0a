"""dbnexus: one query and schema contract over embedded, simulated and bridged databases."""

__version__ = "0.1.0"
