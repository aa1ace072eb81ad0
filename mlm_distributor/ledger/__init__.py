"""
mlm_distributor.ledger — Stellar ledger access.

Modules:
  assets       — MTLAP / LABR / EURMTL constants, 7-decimal amount helpers.
  horizon      — httpx Horizon client: account enumeration, balances,
                 trustlines, strict-send path quotes, submission.
  transactions — stellar-sdk envelope building and signing.
"""
