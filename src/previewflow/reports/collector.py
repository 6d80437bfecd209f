"""Load report artifacts written by the quality checks."""

import asyncio
import json
import logging
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

import aiofiles

from previewflow.reports.models import (
    DEFAULT_FILENAMES,
    AvailableReport,
    Report,
    ReportKind,
    ReportSet,
    UnavailableReport,
)

logger = logging.getLogger(__name__)


def default_report_paths(
    temp_dir: Path, overrides: Mapping[str, str] | None = None
) -> dict[ReportKind, Path]:
    """Artifact path per kind: the temp-dir default unless overridden.

    Raises:
        ValueError: If an override names an unknown report kind.
    """
    paths = {kind: temp_dir / name for kind, name in DEFAULT_FILENAMES.items()}
    for key, value in (overrides or {}).items():
        paths[ReportKind(key)] = Path(value)
    return paths


async def load_report(kind: ReportKind, path: Path) -> Report:
    """Load one artifact. Returns UnavailableReport if missing or unparsable."""
    if not path.exists():
        return UnavailableReport(kind, reason="not found")

    try:
        async with aiofiles.open(path) as f:
            content = await f.read()
        payload = json.loads(content)
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.warning("Failed to load %s report from %s: %s", kind, path, e)
        return UnavailableReport(kind, reason=f"unreadable: {e}")

    if not isinstance(payload, dict):
        logger.warning("Ignoring %s report in %s: not a JSON object", kind, path)
        return UnavailableReport(kind, reason="unexpected format")

    return AvailableReport(kind, payload=payload, source=path)


async def collect(paths: Mapping[ReportKind, Path]) -> ReportSet:
    """Load every known report kind independently.

    One broken artifact only makes its own kind unavailable.
    """
    kinds = list(ReportKind)
    loaded = await asyncio.gather(
        *(
            load_report(kind, paths[kind])
            if kind in paths
            else _unconfigured(kind)
            for kind in kinds
        )
    )
    reports = ReportSet(reports=dict(zip(kinds, loaded, strict=True)))
    logger.debug(
        "Collected %d of %d report(s)", len(reports.available), len(kinds)
    )
    return reports


async def _unconfigured(kind: ReportKind) -> Report:
    return UnavailableReport(kind, reason="no path configured")


async def save_report(path: Path, payload: dict[str, Any]) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    async with aiofiles.open(path, "w") as f:
        await f.write(json.dumps(payload, indent=2, default=str))
    return path


def remove_reports(paths: Iterable[Path]) -> list[Path]:
    """Delete report artifacts that exist. Returns the removed paths."""
    removed = []
    for path in paths:
        try:
            path.unlink()
        except FileNotFoundError:
            continue
        except OSError as e:
            logger.warning("Could not remove %s: %s", path, e)
            continue
        removed.append(path)
    if removed:
        logger.debug("Removed %d report artifact(s)", len(removed))
    return removed
