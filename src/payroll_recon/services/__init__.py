"""Payroll reconciliation services."""

from payroll_recon.services.approval_service import ApprovalService
from payroll_recon.services.audit_service import AuditTrail
from payroll_recon.services.authorization import Actor, Role
from payroll_recon.services.deduction_service import MissedWorkDeductionSync
from payroll_recon.services.entry_service import EntryService
from payroll_recon.services.finalize_service import Finalizer
from payroll_recon.services.period_service import PeriodService
from payroll_recon.services.reconciliation import reconcile_period
from payroll_recon.services.state_machine import PeriodStateMachine, PeriodStatus
from payroll_recon.services.sync_service import EntrySynchronizer

__all__ = [
    "Actor",
    "ApprovalService",
    "AuditTrail",
    "EntryService",
    "EntrySynchronizer",
    "Finalizer",
    "MissedWorkDeductionSync",
    "PeriodService",
    "PeriodStateMachine",
    "PeriodStatus",
    "Role",
    "reconcile_period",
]
