from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

import httpx
from dotenv import load_dotenv

from fieldcheck.config.loader import DEFAULT_CONFIG_PATH, AppConfig, ConfigError, load_config
from fieldcheck.logging.init import log_summary, set_debug, setup_logging
from fieldcheck.models.row_data import RowData
from fieldcheck.models.validation_result import ValidationReport
from fieldcheck.notify.webhook import NotificationError, build_post_message, find_last_modifier, send_webhook
from fieldcheck.services.aggregator import format_for_notification
from fieldcheck.services.engine import validate
from fieldcheck.services.progress import ColumnProgress
from fieldcheck.services.summary import render_summary_line
from fieldcheck.sources.base import DataSourceError
from fieldcheck.sources.remote import RemoteSource
from fieldcheck.table.reader import read_rows

"""CLI entrypoint.

One validation pass over a table through the remote API:
- Load .env and config
- Fetch fields and records, validate every column carrying a rule
- Print violations (plain log lines or JSON lines) and the SUMMARY line
- Optionally send the webhook notification
"""

EXIT_CLEAN = 0
EXIT_FATAL = 1
EXIT_VIOLATIONS = 2


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load .env with python-dotenv; values in the file win over the process env."""
    try:
        if path.exists():
            load_dotenv(dotenv_path=path, override=override)
    except OSError as e:  # pragma: no cover
        print(f"WARNING: failed to load .env via python-dotenv: {e}")


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="fieldcheck", description="Validate table columns against rules embedded in field descriptions")
    p.add_argument("--config", default=str(DEFAULT_CONFIG_PATH), help="Path to the YAML config")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    p.add_argument("--json", action="store_true", help="Print violations as JSON lines")
    p.add_argument("--notify", action="store_true", help="Send the webhook notification when problems are found")
    return p.parse_args(argv)


def _print_report(report: ValidationReport, as_json: bool, logger: logging.Logger) -> None:
    for issue in report.issues:
        logger.warning(f"column '{issue.column_name}': {issue.message}")
    for v in report.violations:
        if as_json:
            print(v.to_json_line())
            continue
        conflict = f" conflicts={list(v.conflict_rows)}" if v.conflict_rows else ""
        logger.info(f"row={v.row_number} column='{v.column_name}' value={v.cell_value!r} problem={v.problem_type}{conflict}")


async def _notify(cfg: AppConfig, report: ValidationReport, rows: list[RowData], logger: logging.Logger) -> None:
    note = cfg.notification
    if not note.webhook_url:
        logger.warning("--notify given but no webhook url configured")
        return
    summaries = format_for_notification(report.violations)
    user_id = find_last_modifier(rows, report.violations)
    if user_id is None:
        logger.warning("no last modifier found; message is sent without a mention")
    payload = build_post_message(
        summaries,
        user_id,
        title=note.title,
        locale=note.locale,
        table_url=note.table_url,
        link_text=note.link_text,
        closing_text=note.closing_text,
    )
    async with httpx.AsyncClient(timeout=cfg.remote.timeout_seconds) as client:
        await send_webhook(
            client,
            note.webhook_url,
            payload,
            attempts=cfg.retry.attempts,
            base_delay=cfg.retry.base_delay,
            max_delay=cfg.retry.max_delay,
        )


async def _run(cfg: AppConfig, args: argparse.Namespace, logger: logging.Logger) -> int:
    remote = cfg.remote
    headers = {"Authorization": f"Bearer {remote.access_token}"}
    async with httpx.AsyncClient(headers=headers, timeout=remote.timeout_seconds) as client:
        source = RemoteSource(client, remote.app_token or "", remote.table_id or "", remote.view_id, base_url=remote.base_url)
        try:
            selection = await source.get_selection()
            table = await source.get_table(selection.table_id or "")
            columns = await table.get_field_meta_list()
            rows = await read_rows(table, columns, selection.view_id, cfg.engine.page_size)
        except DataSourceError as e:
            logger.error(f"data source: {e}")
            return EXIT_FATAL

    logger.info(f"table={remote.table_id} columns={len(columns)} rows={len(rows)}")
    with ColumnProgress(len(columns)) as progress:
        report = await validate(
            rows,
            columns,
            chunk_size=cfg.engine.chunk_size,
            messages=cfg.messages,
            on_column_done=progress.column_done,
        )

    _print_report(report, args.json, logger)
    log_summary(render_summary_line(report)[len("SUMMARY "):])

    if args.notify and report.violations:
        try:
            await _notify(cfg, report, rows, logger)
        except NotificationError as e:
            logger.error(f"notify: {e}")
            return EXIT_FATAL

    return EXIT_CLEAN if report.state == "clean" else EXIT_VIOLATIONS


def main(argv: list[str] | None = None) -> int:
    logger = setup_logging()

    # Only read sys.argv when no list was given (main([]) must not see pytest's args)
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    _load_env_file(Path(".env"), override=True)

    try:
        cfg = load_config(Path(args.config))
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    if args.debug:
        set_debug(True)
        logger.debug("debug mode enabled")

    missing = [
        name
        for name, value in (
            ("FIELDCHECK_ACCESS_TOKEN", cfg.remote.access_token),
            ("FIELDCHECK_APP_TOKEN", cfg.remote.app_token),
            ("FIELDCHECK_TABLE_ID", cfg.remote.table_id),
        )
        if not value
    ]
    if missing:
        logger.error(f"config: missing {', '.join(missing)}")
        return EXIT_FATAL

    return asyncio.run(_run(cfg, args, logger))


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
