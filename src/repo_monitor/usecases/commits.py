"""Recent commit listing with relative ``since`` support."""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from typing import Final

from repo_monitor.domain.models import Commit, CommitFilter, split_full_name
from repo_monitor.github.protocol import RepoHostClient

_DURATION_RE: Final = re.compile(r"^(?:\d+(?:\.\d+)?[dhms])+$")
_DURATION_PART_RE: Final = re.compile(r"(\d+(?:\.\d+)?)([dhms])")
_UNIT_SECONDS: Final[dict[str, int]] = {"d": 86_400, "h": 3_600, "m": 60, "s": 1}


def parse_duration(raw: str) -> timedelta | None:
    """Parse ``"24h"``, ``"30m"``, ``"7d"`` or compounds like ``"1h30m"``."""
    raw = raw.strip().lower()
    if not raw or not _DURATION_RE.match(raw):
        return None
    seconds = sum(float(value) * _UNIT_SECONDS[unit] for value, unit in _DURATION_PART_RE.findall(raw))
    return timedelta(seconds=seconds)


def parse_since(raw: str | None, *, now: datetime | None = None) -> datetime | None:
    """Turn an RFC 3339 timestamp or a relative duration into a UTC datetime.

    Returns None for empty or unparsable input.
    """
    if not raw:
        return None

    try:
        parsed = datetime.fromisoformat(raw.strip().replace("Z", "+00:00"))
    except ValueError:
        parsed = None
    if parsed is not None:
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed

    delta = parse_duration(raw)
    if delta is None:
        return None
    return (now or datetime.now(timezone.utc)) - delta


async def recent_commits(
    client: RepoHostClient,
    repository: str = "",
    branch: str = "",
    since: str | None = None,
    limit: int = 30,
) -> list[Commit]:
    if repository:
        split_full_name(repository)
    return await client.list_commits(
        CommitFilter(
            repository=repository,
            branch=branch,
            since=parse_since(since),
            limit=limit if limit > 0 else 30,
        )
    )
