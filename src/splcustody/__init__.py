"""splcustody - custodial SPL token wallets, token accounts and swaps on Solana."""

__version__ = "0.1.0"
