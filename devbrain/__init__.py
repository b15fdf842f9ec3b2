"""devbrain: brain-chain orchestration for a developer-assistant backend."""

__version__ = "0.1.0"
