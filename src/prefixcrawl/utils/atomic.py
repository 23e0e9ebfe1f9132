"""
Atomic JSON persistence.

Snapshots are full overwrites, so every write goes to a temporary file in the
target directory and is then moved into place with ``os.replace``. A reader
only ever observes the previous complete file or the new complete file.
"""

import asyncio
import json
import os
import tempfile
import time
from concurrent.futures import Executor
from pathlib import Path
from typing import Any, Optional

import structlog

logger = structlog.get_logger(__name__)

STALE_TEMP_SECONDS = 3600


def atomic_write_json(target_path: Path, data: Any) -> None:
    """
    Atomically write JSON data to a file.

    Args:
        target_path: Target file path to write to
        data: JSON-serializable data

    Raises:
        OSError: If the temporary file cannot be written or moved into place
        ValueError: If data cannot be serialized to JSON
    """
    target_path = Path(target_path)
    target_path.parent.mkdir(parents=True, exist_ok=True)

    # Serialize data first to catch JSON errors early
    try:
        json_content = json.dumps(data, indent=2, ensure_ascii=False)
    except (TypeError, ValueError) as e:
        logger.error("Failed to serialize data to JSON", error=str(e))
        raise ValueError(f"Cannot serialize data to JSON: {e}") from e

    temp_file_path = None
    try:
        with tempfile.NamedTemporaryFile(
            mode="w",
            dir=target_path.parent,
            prefix=f".atomic_{target_path.name}.",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        ) as temp_file:
            temp_file_path = Path(temp_file.name)
            temp_file.write(json_content)
            temp_file.flush()
            os.fsync(temp_file.fileno())

        os.replace(str(temp_file_path), str(target_path))
        logger.debug("Atomic write completed", target=str(target_path))

    finally:
        if temp_file_path is not None and temp_file_path.exists():
            try:
                temp_file_path.unlink()
            except OSError as cleanup_error:
                logger.warning(
                    "Failed to clean up temporary file", temp_file=str(temp_file_path), error=str(cleanup_error)
                )


async def atomic_json_dump(
    data: Any,
    path: Path,
    timeout: float = 5.0,
    executor: Optional[Executor] = None,
) -> bool:
    """
    Asynchronously write JSON data to a file atomically with timeout.

    The blocking write runs in ``executor`` (the loop default if None) so the
    event loop keeps dispatching queries while a large snapshot is flushed.
    A timeout only stops waiting; the write itself still completes in the
    background. Callers that overwrite the same file must pass a
    single-worker executor so that a late write cannot land after a newer one.

    Returns:
        bool: True if write succeeded, False otherwise (failures are logged)
    """
    path = Path(path)
    loop = asyncio.get_running_loop()

    try:
        await asyncio.wait_for(loop.run_in_executor(executor, atomic_write_json, path, data), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning("Atomic write timed out", path=str(path), timeout=timeout)
        return False
    except (OSError, ValueError) as e:
        logger.warning("Atomic write failed", path=str(path), error=str(e))
        return False
    finally:
        _remove_stale_atomic_files(path.parent)

    return True


def _remove_stale_atomic_files(dir_: Path, pattern: str = ".atomic_*") -> None:
    """Remove temporary files older than an hour left behind by interrupted writes."""
    current_time = time.time()
    try:
        candidates = list(dir_.glob(pattern))
    except OSError as e:
        logger.debug("Error during stale file cleanup", error=str(e))
        return

    for temp_file in candidates:
        try:
            if temp_file.is_file() and current_time - temp_file.stat().st_mtime > STALE_TEMP_SECONDS:
                temp_file.unlink()
                logger.debug("Removed stale atomic file", path=str(temp_file))
        except OSError:
            continue
