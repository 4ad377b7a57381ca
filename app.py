"""Production entry point for the Consult API using uvicorn"""

import sys

import uvicorn
from dotenv import load_dotenv

from consult.utils.config import load_settings
from consult.utils.exceptions import ConfigError, StartupError
from consult.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)


def main() -> None:
    load_dotenv()

    try:
        settings = load_settings()
    except ConfigError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(
        level=settings.logging.level,
        format=settings.logging.format,
        file_path=settings.logging.file_path,
        max_bytes=settings.logging.max_bytes,
        backup_count=settings.logging.backup_count,
    )

    # No partial startup without a document store
    if not settings.database.url:
        logger.error("DATABASE_URL environment variable is not defined")
        sys.exit(1)

    from web.main import create_app

    try:
        app = create_app(settings)
    except StartupError as e:
        logger.error("Error during server startup", kind=e.kind.value, error=str(e))
        sys.exit(1)

    logger.info(
        "Server starting",
        host=settings.server.host,
        port=settings.server.port,
        environment=settings.app.environment,
    )
    uvicorn.run(
        app,
        host=settings.server.host,
        port=settings.server.port,
        log_level=settings.logging.level.lower(),
        access_log=True,
    )


if __name__ == "__main__":
    main()
