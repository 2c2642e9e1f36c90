"""
Run Alembic without an alembic.ini.

The script location is this package's migrations directory and the database URL
comes from src.db.config.

Usage examples:
    python -m src.db.run_migrations upgrade head
    python -m src.db.run_migrations downgrade -1
    python -m src.db.run_migrations current
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Callable, Dict, List, Optional

from alembic import command
from alembic.config import Config

from src.db.config import get_settings

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parent / "migrations"

# command name -> (alembic function, default arguments)
_COMMANDS: Dict[str, tuple[Callable[..., None], List[str]]] = {
    "upgrade": (command.upgrade, ["head"]),
    "downgrade": (command.downgrade, ["-1"]),
    "current": (command.current, []),
    "history": (command.history, []),
    "heads": (command.heads, []),
}


# PUBLIC_INTERFACE
def build_config() -> Config:
    """Alembic Config pointing at the bundled migrations."""
    cfg = Config()
    cfg.set_main_option("script_location", str(MIGRATIONS_DIR))
    cfg.set_main_option("sqlalchemy.url", get_settings().sync_database_url)
    return cfg


# PUBLIC_INTERFACE
def main(argv: Optional[List[str]] = None) -> None:
    """Dispatch an Alembic command, e.g. main(["upgrade", "head"])."""
    args = list(sys.argv[1:] if argv is None else argv)
    if not args:
        logger.error("No Alembic command given. Example: upgrade head")
        raise SystemExit(1)

    name, rest = args[0], args[1:]
    if name not in _COMMANDS:
        logger.error("Unsupported Alembic command: %s (choose from %s)", name, ", ".join(_COMMANDS))
        raise SystemExit(2)

    func, defaults = _COMMANDS[name]
    logger.info("alembic %s %s", name, " ".join(rest or defaults))
    func(build_config(), *(rest or defaults))


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    main()
