"""Match validation and reward engine for play-to-earn match submissions."""

__version__ = "0.1.0"
