"""Entry point for running the application with uvicorn."""

import uvicorn

from payroll_recon.config import configure_logging, get_settings


def main() -> None:
    """Run the application."""
    settings = get_settings()
    configure_logging()
    uvicorn.run(
        "payroll_recon.api.app:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
    )


if __name__ == "__main__":
    main()
