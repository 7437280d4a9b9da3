"""Token account engine."""

from splcustody.tokens.accounts import TokenAccounts, TokenMetadata

__all__ = ["TokenAccounts", "TokenMetadata"]
