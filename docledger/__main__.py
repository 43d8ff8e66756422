import logging

import uvicorn

from .api import create_app
from .config import Settings

logger = logging.getLogger("docledger")


def main() -> None:
    settings = Settings.from_env()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    logger.info("═" * 60)
    logger.info("   DOCUMENT VERIFICATION SERVICE")
    logger.info("═" * 60)
    logger.info(f"Ledger backend     : {settings.ledger_backend}")
    logger.info(f"Upload directory   : {settings.uploads_dir}")
    logger.info(f"Certified directory: {settings.certified_dir}")
    logger.info(f"QR directory       : {settings.qr_dir}")
    logger.info(f"Listening on http://{settings.host}:{settings.port}")

    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
