"""Entrypoint for the soundboard service (Discord bot + dashboard API)."""

from __future__ import annotations

from services.common.structured_logging import configure_logging

from .config import SERVICE_NAME, load_config


def main() -> None:
    """Main entrypoint for the soundboard service."""
    config = load_config()

    # Configure logging BEFORE importing the app so every module logs through structlog
    configure_logging(
        config.logging.level,
        json_logs=config.logging.json_logs,
        service_name=config.logging.service_name or SERVICE_NAME,
    )

    import uvicorn

    from .app import create_app

    uvicorn.run(
        create_app(config),
        host=config.http.host,
        port=config.http.port,
        log_config=None,  # keep the structlog configuration
    )


if __name__ == "__main__":
    main()
