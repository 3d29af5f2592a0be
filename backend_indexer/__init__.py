"""
Backend Indexer: checkpointed mint/burn indexer for a single token contract.

Scans the contract's Transfer event log in bounded batches, classifies mints
and burns, attributes them to an off-chain actor and persists them exactly
once. Modular architecture with clear separation between chain reader,
event classifier, attribution, database and agent worker.
"""

__version__ = "0.1.0"
