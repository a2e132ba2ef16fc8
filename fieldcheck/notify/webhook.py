from __future__ import annotations

import hashlib
import logging
from collections.abc import Iterable, Sequence
from typing import Any

import httpx

from ..models.row_data import RowData
from ..models.violation import ViolationRecord
from ..services.aggregator import ProblemSummary
from ..services.retry import RetryExhausted, retry_async

"""Webhook notification for the standalone (remote-API) variant.

Builds a "post" message (title plus rows of text / link / mention segments)
from grouped problem summaries and delivers it to a bot webhook, addressed
to the user who last modified one of the failing rows.
"""

__all__ = [
    "NotificationError",
    "find_last_modifier",
    "format_summary_line",
    "build_post_message",
    "send_webhook",
    "dedup_key",
]

logger = logging.getLogger(__name__)


class NotificationError(Exception):
    """Webhook delivery failed for good."""


def find_last_modifier(rows: Iterable[RowData], violations: Iterable[ViolationRecord]) -> str | None:
    """User id of the most recent editor among rows that have violations."""
    failing = {v.record_id for v in violations}
    best: RowData | None = None
    for row in rows:
        if row.record_id not in failing or not row.last_modified_by:
            continue
        if best is None or (row.last_modified_time or 0) > (best.last_modified_time or 0):
            best = row
    return best.last_modified_by if best else None


def format_summary_line(summary: ProblemSummary) -> str:
    rows = ",".join(str(r) for r in summary.row_numbers)
    return f'{summary.problem_type}: "{summary.field_name}" [{rows} rows]'


def build_post_message(
    summaries: Sequence[ProblemSummary],
    user_id: str | None,
    *,
    title: str = "Data validation issues",
    locale: str = "en_us",
    table_url: str | None = None,
    link_text: str = "Open table",
    closing_text: str = "\nPlease fix these, thank you! ",
) -> dict[str, Any]:
    content: list[list[dict[str, Any]]] = []
    if table_url:
        content.append([{"tag": "a", "text": link_text, "href": table_url}])
    for summary in summaries:
        content.append([{"tag": "text", "text": format_summary_line(summary)}])

    closing: list[dict[str, Any]] = [{"tag": "text", "text": closing_text}]
    if user_id:
        closing.append({"tag": "at", "user_id": user_id})
    content.append(closing)

    return {
        "msg_type": "post",
        "content": {"post": {locale: {"title": title, "content": content}}},
    }


async def send_webhook(
    client: httpx.AsyncClient,
    url: str,
    payload: dict[str, Any],
    *,
    attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 5.0,
    sleep: Any = None,
) -> None:
    """POST ``payload`` to ``url`` with capped exponential backoff.

    Raises:
        NotificationError: every attempt failed (HTTP error status or transport)
    """
    async def post() -> None:
        resp = await client.post(url, json=payload)
        resp.raise_for_status()

    kwargs: dict[str, Any] = {"attempts": attempts, "base_delay": base_delay, "max_delay": max_delay}
    if sleep is not None:
        kwargs["sleep"] = sleep
    try:
        await retry_async(post, retry_on=(httpx.HTTPError,), label="webhook", **kwargs)
    except RetryExhausted as e:
        raise NotificationError(f"webhook delivery failed: {e.last_error}") from e
    logger.info(f"notification sent to {url.split('?')[0]}")


def dedup_key(
    table_token: str,
    column_set_token: str,
    record_id: str,
    last_modified: int | str | None,
    row_number: int | None,
) -> str:
    """Stable key for notification bookkeeping: ``<table>.<row>.<hash8>``."""
    raw = f"{table_token}_{column_set_token}_{record_id}_{last_modified if last_modified is not None else ''}"
    digest = hashlib.md5(raw.encode("utf-8")).hexdigest()[:8]
    row_part = str(row_number) if row_number else record_id[:8]
    return f"{column_set_token[:8]}.{row_part}.{digest}"
