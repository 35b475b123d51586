"""HTTP API for the payroll reconciliation engine."""
