"""
momo-pipeline: offline-first capture, sync and relay of mobile-money SMS alerts.

Inbound SMS text is classified against per-country provider patterns, stored
durably as a TransactionRecord, pushed to the remote ledger with bounded
retries, and relayed to signed third-party webhooks.
"""

__version__ = "0.1.0"
