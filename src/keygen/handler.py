from __future__ import annotations

import argparse
import logging
import os
import re
import sys
from pathlib import Path
from typing import Optional, Sequence

from common.config import ENV_ASSET_KEY
from common.envelope import generate_key


DEFAULT_ENV_FILE = ".env"

logger = logging.getLogger(__name__)


def save_key_to_env(
    path: os.PathLike[str] | str, key_name: str, key_value: str, *, force: bool = False
) -> bool:
    """
    Store `key_name="key_value"` in a dotenv file.

    - Missing file: created with the single entry.
    - Entry absent: appended.
    - Entry present: replaced only when `force`; otherwise the file is left
      untouched and False is returned.
    """
    p = Path(path)
    line = f'{key_name}="{key_value}"'

    if not p.exists():
        p.write_text(line + "\n", encoding="utf-8")
        logger.info("%s created and %s set.", p, key_name)
        return True

    content = p.read_text(encoding="utf-8")
    pattern = re.compile(rf"^{re.escape(key_name)}=.*$", re.MULTILINE)

    if pattern.search(content):
        if not force:
            logger.warning("%s already exists in %s. Use --force to overwrite.", key_name, p)
            return False
        p.write_text(pattern.sub(lambda _m: line, content, count=1), encoding="utf-8")
        logger.info("%s updated in %s.", key_name, p)
        return True

    sep = "" if not content or content.endswith("\n") else "\n"
    p.write_text(f"{content}{sep}{line}\n", encoding="utf-8")
    logger.info("%s appended to %s.", key_name, p)
    return True


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="generate-secure-key",
        description="Generate a 256-bit AES key for the site data artifacts and save it to a .env file.",
    )
    parser.add_argument("-e", "--env", default=DEFAULT_ENV_FILE, help="path to .env file")
    parser.add_argument("-f", "--force", action="store_true", help="overwrite an existing key")
    parser.add_argument("-k", "--key-name", default=ENV_ASSET_KEY, help="variable name in .env")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")

    logger.info("Generating secure AES key for %s", args.env)
    try:
        saved = save_key_to_env(args.env, args.key_name, generate_key(), force=args.force)
    except OSError as ex:
        logger.error("Failed to write key to %s: %s", args.env, ex)
        return 1
    if not saved:
        logger.error("Failed to save key.")
        return 1
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
