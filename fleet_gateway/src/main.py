"""Main entry point for the Fleet Gateway server."""

import sys

import uvicorn

from fleet_gateway.src.logger import configure_logging
from fleet_gateway.src.settings import settings, validate_config


def main() -> None:
    """Start the gateway.

    Validates the configuration, builds the app and starts the uvicorn server.
    Exits with status 1 when required configuration is missing.
    """
    log = configure_logging()
    try:
        validate_config(settings)
    except ValueError as e:
        log.error("Invalid configuration: %s", e)
        sys.exit(1)

    try:
        log.info("Starting Fleet Gateway")
        log.info(
            "Configuration: HOST=%s, PORT=%s, API=%s",
            settings.HOST,
            settings.PORT,
            settings.FLEET_API_URL,
        )

        # Imported after validation so the app is never built from bad settings
        from fleet_gateway.src.api import app  # pylint: disable=import-outside-toplevel

        # Access lines come from RequestLogMiddleware, which omits query strings
        uvicorn.run(app, host=settings.HOST, port=settings.PORT, access_log=False)

    except KeyboardInterrupt:
        log.info("Received keyboard interrupt, shutting down")
    except Exception as e:
        log.error("Server failed to start: %s", e, exc_info=True)
        raise
    finally:
        log.info("Fleet Gateway shutting down")


if __name__ == "__main__":
    main()
