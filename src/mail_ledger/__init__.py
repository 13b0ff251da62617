"""mail-ledger: build a ledger of bank movements from Gmail notifications."""

__version__ = "0.1.0"
