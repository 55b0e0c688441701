"""Entry point for running the hookrelay API as a module.

Usage:
    python -m hookrelay.api

Bind address and port come from HOOKRELAY_API_HOST / HOOKRELAY_API_PORT.
"""

import uvicorn

from hookrelay.config import settings


def main() -> None:
    """Serve the API with uvicorn; logging is configured by the app lifespan."""
    uvicorn.run("hookrelay.api:app", host=settings.api_host, port=settings.api_port, log_config=None)


if __name__ == "__main__":
    main()
