from __future__ import annotations

import argparse
import logging
import sys

from alembic import command
from alembic.config import Config

logger = logging.getLogger(__name__)


def run_upgrade(revision: str = "head", config_path: str = "alembic.ini") -> None:
    config = Config(config_path)
    logger.info("upgrading portal schema to %s", revision)
    command.upgrade(config, revision)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Apply portal database migrations.")
    parser.add_argument("--revision", default="head")
    parser.add_argument("--config", default="alembic.ini")
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO)
    run_upgrade(args.revision, args.config)
    return 0


if __name__ == "__main__":
    sys.exit(main())
