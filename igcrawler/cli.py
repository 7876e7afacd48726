"""ig-crawler CLI. Invoked as `ig-crawler` when installed with pip install -e ."""

import argparse
import json
import logging
import os
import sys
from pathlib import Path

try:
    from tqdm import tqdm
except ImportError:
    tqdm = None

from igcrawler import __version__
from igcrawler._deps import check_required, optional_hint

TYPES = ("profile", "posts")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ig-crawler",
        description="List (and optionally download) a profile's photos and videos.",
    )
    parser.add_argument("-t", "--type", choices=TYPES, default="profile", help="profile | posts (default: profile)")
    parser.add_argument("-u", "--username", default=None, help="Target username.")
    parser.add_argument(
        "-c",
        "--concurrency",
        type=int,
        default=2,
        metavar="N",
        help="Parallel crawl workers (default: 2)",
    )
    parser.add_argument(
        "--after",
        type=int,
        default=0,
        metavar="TIMESTAMP",
        help="Only media taken strictly after this unix timestamp (default: 0, no cutoff)",
    )
    parser.add_argument("--user-agent", default=None, metavar="UA", help="User-Agent header (default: random browser)")
    parser.add_argument(
        "--max-retries",
        type=int,
        default=None,
        metavar="N",
        help="Retries per request on connection issues/429; negative retries forever (default: 20)",
    )
    parser.add_argument("--out-dir", default=None, metavar="DIR", help="Download resources into DIR (posts only)")
    parser.add_argument("--json", action="store_true", help="Print posts as JSON instead of one URL per line")
    parser.add_argument("--no-progress", action="store_true", help="Disable progress bar (e.g. for scripting)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log every request as a curl command")
    parser.add_argument("-V", "--version", action="store_true", help="Displays version information.")
    return parser


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _run_posts(config, args: argparse.Namespace) -> None:
    from igcrawler.crawler import fetch_resources
    from igcrawler.fetcher import Fetcher
    from igcrawler.storage import path_for_resource

    use_progress = not args.no_progress and tqdm is not None
    pbar = tqdm(desc="Crawl", unit=" resource", file=sys.stderr) if use_progress else None
    try:
        resources = fetch_resources(config, progress_callback=(lambda _r: pbar.update(1)) if pbar else None)
    finally:
        if pbar is not None:
            pbar.close()
    print(f"Found {len(resources)} resources.", file=sys.stderr)

    if args.json:
        print(json.dumps([r.to_dict() for r in resources], indent=2))
    else:
        for r in resources:
            print(r.url)

    if not args.out_dir:
        return
    out_dir = Path(args.out_dir)
    with Fetcher(user_agent=config.user_agent, max_retries=config.max_retries) as fetcher:
        for i, r in enumerate(resources, 1):
            dest = path_for_resource(out_dir, config.username, r)
            fetcher.fetch_binary(r.url, dest)
            print(f"  [{i}/{len(resources)}] {'Video' if r.is_video else 'Image'}: {dest}", file=sys.stderr)


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.version:
        print(__version__)
        return
    if not args.username:
        parser.error("the following arguments are required: -u/--username")
    if args.concurrency < 1:
        parser.error("--concurrency must be at least 1")

    check_required()
    hint = optional_hint()
    if hint and args.type == "posts" and not args.no_progress:
        print(hint, file=sys.stderr)
    _configure_logging(args.verbose)

    from igcrawler.config import Config
    from igcrawler.crawler import fetch_profile_image
    from igcrawler.errors import CrawlerError

    overrides = {
        "username": args.username,
        "concurrency": args.concurrency,
        "after": args.after,
        "user_agent": args.user_agent,
    }
    config = Config.from_env(**overrides)
    if args.max_retries is not None:
        config.max_retries = None if args.max_retries < 0 else args.max_retries

    try:
        if args.type == "profile":
            print(fetch_profile_image(config))
        else:
            _run_posts(config, args)
    except KeyboardInterrupt:
        print("Operation has been aborted.", file=sys.stderr)
        sys.stderr.flush()
        # Worker threads cannot be interrupted; do not wait for them
        os._exit(2)
    except CrawlerError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
