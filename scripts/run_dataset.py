#!/usr/bin/env python3
"""Run a dataset execution headlessly and poll it to completion."""

from __future__ import annotations

import argparse
import asyncio
import functools
import logging
import sys
from datetime import timedelta

from shopdata.connectors import postgres_pool
from shopdata.connectors.preview_client import PreviewApiClient
from shopdata.core.errors import PollingError, ShopdataError
from shopdata.core.orchestrator import orchestrator
from shopdata.core.preview.polling import PreviewPoller
from shopdata.core.preview.retrieval import preview_retriever


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Execute a saved dataset and poll its preview until it finishes."
    )
    parser.add_argument("--dataset-id", required=True, help="Dataset to execute.")
    parser.add_argument("--user-id", required=True, help="Owner of the dataset.")
    parser.add_argument(
        "--api-url",
        default=None,
        help="Drive a running service over HTTP instead of executing in-process.",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=2.0,
        help="Seconds between preview polls.",
    )
    parser.add_argument(
        "--max-attempts",
        type=int,
        default=120,
        help="Give up polling after this many reads.",
    )
    parser.add_argument(
        "--stuck-minutes",
        type=float,
        default=15.0,
        help="Report the execution as possibly stuck after this long.",
    )
    parser.add_argument(
        "--reset-stuck",
        action="store_true",
        help="Reset this dataset's stuck executions instead of running it.",
    )
    return parser


async def _poll(poller: PreviewPoller, execution_id: str) -> int:
    warned = False
    try:
        async for update in poller.poll(execution_id):
            data = update.data
            print(
                f"[dataset] poll={update.attempt} status={data.status} "
                f"rows={data.total_count} source={data.data_source.value}"
            )
            if update.should_show_stuck_ui and not warned:
                warned = True
                print(
                    f"[dataset] execution {execution_id} looks stuck; "
                    "rerun with --reset-stuck to fail it",
                    file=sys.stderr,
                )
            if update.is_terminal:
                if data.error:
                    print(f"[dataset] error: {data.error}", file=sys.stderr)
                return 0 if data.status == "completed" else 1
    except PollingError as e:
        print(f"[dataset] {e}", file=sys.stderr)
        return 2
    return 1


async def _run_over_http(args: argparse.Namespace) -> int:
    async with PreviewApiClient(args.api_url, args.user_id) as client:
        if args.reset_stuck:
            result = await client.reset_stuck(dataset_id=args.dataset_id)
            print(f"[dataset] reset {result.reset_count} execution(s): {result.reset_ids}")
            return 0

        execution_id = await client.execute(args.dataset_id)
        print(f"[dataset] started execution_id={execution_id}")
        poller = PreviewPoller(
            client.fetch_preview,
            interval_seconds=args.interval,
            max_attempts=args.max_attempts,
            stuck_threshold=timedelta(minutes=args.stuck_minutes),
        )
        return await _poll(poller, execution_id)


async def _run_in_process(args: argparse.Namespace) -> int:
    await postgres_pool.get_default_pool().initialize()
    try:
        if args.reset_stuck:
            result = await orchestrator.reset_stuck(
                user_id=args.user_id, dataset_id=args.dataset_id
            )
            print(f"[dataset] reset {result.reset_count} execution(s): {result.reset_ids}")
            return 0

        execution_id = await orchestrator.execute(args.dataset_id, args.user_id)
        print(f"[dataset] started execution_id={execution_id}")
        poller = PreviewPoller(
            functools.partial(
                preview_retriever.fetch, user_id=args.user_id, check_status=True
            ),
            interval_seconds=args.interval,
            max_attempts=args.max_attempts,
            stuck_threshold=timedelta(minutes=args.stuck_minutes),
        )
        return await _poll(poller, execution_id)
    finally:
        await orchestrator.shutdown()
        await postgres_pool.close_default_pool()


def main() -> int:
    parser = _build_parser()
    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO)
    runner = _run_over_http if args.api_url else _run_in_process
    try:
        return asyncio.run(runner(args))
    except ShopdataError as e:
        print(f"[dataset] {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("[dataset] interrupted", file=sys.stderr)
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
