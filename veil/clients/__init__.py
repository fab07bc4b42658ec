"""
Veil External Collaborators

Ledger (decoy candidates) and compliance attestation clients.
"""

from veil.clients.ledger import (
    HttpLedgerClient,
    LedgerClient,
    decode_account_key,
    encode_account_key,
    extract_account_keys,
)
from veil.clients.compliance import (
    ComplianceCheckResult,
    ComplianceClient,
    ComplianceProof,
    HttpComplianceClient,
)

__all__ = [
    # Ledger
    "LedgerClient",
    "HttpLedgerClient",
    "encode_account_key",
    "decode_account_key",
    "extract_account_keys",
    # Compliance
    "ComplianceClient",
    "HttpComplianceClient",
    "ComplianceCheckResult",
    "ComplianceProof",
]
