"""
Socket path preparation helpers.
"""

import logging
import os
import shutil
from pathlib import Path
from typing import Union

logger = logging.getLogger(__name__)


def remove_stale_socket(socket_path: Union[str, Path]) -> None:
    """Remove whatever currently occupies the socket path, if anything."""
    path = Path(socket_path)
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    elif path.exists() or path.is_symlink():
        os.unlink(path)
    else:
        return
    logger.debug(f"Removed stale socket at {path}")


def ensure_socket_dir(socket_path: Union[str, Path]) -> Path:
    """Create the socket's parent directory and return it."""
    parent = Path(socket_path).parent
    parent.mkdir(parents=True, exist_ok=True)
    return parent


def prepare_socket_path(socket_path: Union[str, Path]) -> Path:
    """Clear a stale socket file and make sure its directory exists."""
    remove_stale_socket(socket_path)
    ensure_socket_dir(socket_path)
    return Path(socket_path)
