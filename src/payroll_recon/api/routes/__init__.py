"""API routes."""

from payroll_recon.api.routes.entries import router as entries_router
from payroll_recon.api.routes.health import router as health_router
from payroll_recon.api.routes.periods import router as periods_router
from payroll_recon.api.routes.sync import router as sync_router

__all__ = ["entries_router", "health_router", "periods_router", "sync_router"]
