"""
CLI entrypoint for collection runs, index search and the maintenance loop.

Keyword, article and ledger state lives in the running process only, so
commands that manage it run inside `collect` (one run, then exit) or
`serve` (scheduler until interrupted). `search` reads the index snapshot
those commands persist and never rewrites it.
"""

from __future__ import annotations

import argparse
import json
import logging
import time
from typing import List

from orchestrator.progress import QueueProgressListener
from orchestrator.runtime import NewsRadarRuntime, get_runtime
from utils.logger import configure_root_logging


def _print(payload) -> None:
    print(json.dumps(payload, ensure_ascii=False, default=str))


def _register(runtime: NewsRadarRuntime, names: List[str]) -> None:
    for name in names or []:
        runtime.keyword_service.add_keyword(name)


def _follow(runtime: NewsRadarRuntime, listener: QueueProgressListener) -> None:
    for event in listener.events():
        print(event.to_json(), flush=True)
    runtime.orchestrator.wait()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="News Radar ingestion CLI")
    parser.add_argument("--verbose", action="store_true")
    sub = parser.add_subparsers(dest="command", required=True)

    collect = sub.add_parser("collect", help="register keywords, run one collection and persist the index")
    collect.add_argument("--keyword", action="append", required=True, help="keyword to collect (repeatable)")
    collect.add_argument("--follow", action="store_true", help="stream progress events as JSON lines")

    search = sub.add_parser("search", help="search the persisted index snapshot")
    search.add_argument("query")
    search.add_argument("--top-k", type=int, default=5)
    search.add_argument("--threshold", type=float, default=0.0)
    search.add_argument("--keyword", default="")

    serve = sub.add_parser("serve", help="run the scheduler until interrupted")
    serve.add_argument("--keyword", action="append", default=[])
    return parser


def main() -> None:
    args = build_parser().parse_args()
    configure_root_logging(logging.DEBUG if args.verbose else logging.INFO)
    runtime = get_runtime()

    if args.command == "collect":
        _register(runtime, args.keyword)
        runtime.index.initialize()
        try:
            if args.follow:
                listener = QueueProgressListener(runtime.settings.ingestion.subscription_timeout_seconds)
                runtime.orchestrator.subscribe(listener)
                trigger = runtime.orchestrator.start_run()
                _print(trigger.model_dump())
                if trigger.accepted:
                    _follow(runtime, listener)
            else:
                _print(runtime.orchestrator.collect_now().model_dump())
            _print(runtime.orchestrator.status().model_dump(mode="json", by_alias=True))
        finally:
            runtime.shutdown()
        return

    if args.command == "search":
        runtime.index.load_snapshot()
        try:
            filter_ = {"keyword": args.keyword.strip().lower()} if args.keyword.strip() else None
            hits = runtime.index.search(args.query, top_k=args.top_k, threshold=args.threshold, filter=filter_)
            _print([hit.to_dict() for hit in hits])
        finally:
            runtime.shutdown()
        return

    if args.command == "serve":
        _register(runtime, args.keyword)
        runtime.start()
        try:
            while True:
                time.sleep(1)
        except KeyboardInterrupt:
            pass
        finally:
            runtime.shutdown()


if __name__ == "__main__":
    main()
