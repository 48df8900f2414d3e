"""
Saxon Bank Core

Ledger and approval workflow for the Saxon Bank demo: deposits, two-phase
transfers with admin approval, bill payments, loans, cards, KYC review and
referral rewards. All money is handled as Decimal and every state change
lands in a hash-chained audit trail.
"""

__version__ = "1.0.0"
