"""DocLedger: blockchain-backed document certification and verification."""

__version__ = "0.1.0"
