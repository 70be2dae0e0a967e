"""Differential fuzzing of Solidity compiler backends."""

__version__ = "0.1.0"
