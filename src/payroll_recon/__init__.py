"""Payroll computation and reconciliation engine.

Turns completed jobs and clock events into compensable pay entries,
resolves effective-dated pay rates, runs the approval workflow and
locks finalized periods into an auditable record.
"""

__version__ = "1.0.0"
