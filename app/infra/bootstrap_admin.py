from __future__ import annotations

import argparse
import logging
import sys

from app.domain.errors import PortalError
from app.domain.models import RegisterRequest
from app.services.user_service import UserService

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Create the first portal administrator.")
    parser.add_argument("--name", required=True)
    parser.add_argument("--email", required=True)
    parser.add_argument("--password", required=True)
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO)
    try:
        user = UserService().bootstrap_admin(
            RegisterRequest(name=args.name, email=args.email, password=args.password)
        )
    except PortalError as exc:
        logger.error("bootstrap failed: %s", exc.message)
        return 1
    logger.info("admin %s created (%s)", user.email, user.id)
    return 0


if __name__ == "__main__":
    sys.exit(main())
