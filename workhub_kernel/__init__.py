"""
WorkHub Ledger Kernel

The wallet/ledger consistency layer of a micro-task marketplace:
- Guarded money-movement operations over a document store
- Per-document optimistic concurrency with bounded retry
- Compensating rollbacks for multi-document operations
- Read-through cache with request coalescing
"""

__version__ = "0.1.0"
