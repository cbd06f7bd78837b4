"""solpulse — Solana narrative detection from multi-source ecosystem signals."""

__version__ = "0.4.0"
