"""Custodial wallet engine."""

from splcustody.custody.wallet import CustodialWallet, WalletCustody

__all__ = ["CustodialWallet", "WalletCustody"]
