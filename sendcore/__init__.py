"""Multi-tenant SMS send core: credit ledger, sender identities, provider gateway and send orchestration."""

__version__ = "0.1.0"
