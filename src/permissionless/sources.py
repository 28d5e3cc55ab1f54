"""Configuration sources and the file change notifier.

These are collaborators of the engine, not part of it: they produce a raw
configuration document (or notice that one changed) and hand it to
:meth:`Permissionless.replace_configuration`. Nothing here touches engine
state directly.
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional

import httpx

from .exceptions import ConfigSourceError, PermissionlessError

if TYPE_CHECKING:
    from .engine import Permissionless

logger = logging.getLogger(__name__)

DEFAULT_FETCH_TIMEOUT = 10.0
DEFAULT_WATCH_INTERVAL = 1.0


def load_config_file(path: str | Path) -> dict[str, Any]:
    """Read a JSON configuration document from disk.

    Raises:
        ConfigSourceError: the file is missing, unreadable or not valid JSON.
    """
    file_path = Path(path)
    if not file_path.exists():
        raise ConfigSourceError(f"Configuration file not found at {file_path}", path=str(file_path))
    try:
        with open(file_path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, ValueError) as e:
        raise ConfigSourceError(f"Failed to parse configuration file: {e}", path=str(file_path)) from e


async def fetch_config(
    url: str,
    *,
    timeout: float = DEFAULT_FETCH_TIMEOUT,
    client: Optional[httpx.AsyncClient] = None,
) -> dict[str, Any]:
    """Fetch a JSON configuration document over HTTP.

    Args:
        url: Endpoint returning the configuration document.
        timeout: Request timeout in seconds (ignored when ``client`` is given).
        client: Optional shared ``httpx.AsyncClient``; a short-lived one is
            created otherwise.

    Raises:
        ConfigSourceError: transport failure, non-200 status or non-JSON body.
    """
    owns_client = client is None
    http = client or httpx.AsyncClient(timeout=timeout)
    try:
        response = await http.get(url)
    except httpx.HTTPError as e:
        logger.error("Failed to fetch configuration from %s: %s", url, e)
        raise ConfigSourceError(f"Failed to load configuration from {url}: {e}", url=url) from e
    finally:
        if owns_client:
            await http.aclose()

    if response.status_code != 200:
        raise ConfigSourceError(
            f"Failed to load configuration from {url}",
            url=url,
            status_code=response.status_code,
        )
    try:
        return response.json()
    except ValueError as e:
        raise ConfigSourceError(f"Configuration from {url} is not valid JSON", url=url) from e


def _mtime(path: Path) -> Optional[int]:
    try:
        return path.stat().st_mtime_ns
    except FileNotFoundError:
        return None


async def watch_config_file(
    engine: "Permissionless",
    path: str | Path,
    *,
    interval: float = DEFAULT_WATCH_INTERVAL,
) -> None:
    """Reload ``engine`` whenever the file at ``path`` changes.

    Polls the file's modification time every ``interval`` seconds. A
    reload that fails is logged and the engine keeps its previous
    configuration. Run it as a task and cancel the task to stop watching::

        task = asyncio.create_task(watch_config_file(engine, ".permissionless.json"))
        ...
        task.cancel()
    """
    file_path = Path(path)
    last_seen = _mtime(file_path)
    logger.info("Watching %s for configuration changes (every %.2fs)", file_path, interval)

    try:
        while True:
            await asyncio.sleep(interval)
            current = _mtime(file_path)
            if current is None or current == last_seen:
                continue
            last_seen = current
            logger.info("Configuration file changed. Reloading...")
            try:
                engine.reload_from_file(file_path)
            except PermissionlessError as e:
                logger.warning("Configuration reload from %s rejected: %s", file_path, e)
    except asyncio.CancelledError:
        logger.info("Stopped watching %s", file_path)
        raise


__all__ = [
    "DEFAULT_FETCH_TIMEOUT",
    "DEFAULT_WATCH_INTERVAL",
    "fetch_config",
    "load_config_file",
    "watch_config_file",
]
