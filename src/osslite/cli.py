"""
Command line bulk uploader.

    osslite [-c oss.json] [-n] [--nomd5] [--noext html ...] DIRECTORY
    osslite --recursive-delete [--except keep/ ...] PREFIX
    osslite -C [-c oss.json]
"""

import argparse
import asyncio
import itertools
import logging
import os
import sys
from pathlib import Path
from typing import Iterator, List, Optional, Sequence, TextIO

import httpx

from .client import OssClient, md5_digest
from .config import SAMPLE_CONFIG, read_config, write_config
from .error import OssException, RecursiveDeleteError
from .mime import content_type_for_extension
from .models import RecursiveDeleteResult


logger = logging.getLogger("osslite")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="osslite", description="Upload a directory tree to an OSS bucket.")
    parser.add_argument("path", nargs="?", help="directory to upload, or prefix with --recursive-delete")
    parser.add_argument("-C", dest="create_config", action="store_true", help="create config file and exit")
    parser.add_argument("-c", dest="config", default="oss.json", help="config file location (default: %(default)s)")
    parser.add_argument("-n", dest="dry_run", action="store_true", help="show only URLs, don't upload")
    parser.add_argument("--nomd5", action="store_true", help="do not compute md5")
    parser.add_argument("--noext", action="append", default=[], metavar="EXT", help="file extension to ignore (repeatable, e.g. --noext html)")
    parser.add_argument("--recursive-delete", action="store_true", help="delete all files with prefix and exit")
    parser.add_argument("--except", dest="excepts", action="append", default=[], metavar="PREFIX", help="keep files with this prefix when deleting (repeatable)")
    parser.add_argument("-j", dest="concurrency", type=int, default=os.cpu_count() or 1, help="number of concurrent uploads (default: %(default)s)")
    parser.add_argument("-v", dest="verbose", action="store_true", help="debug logging")
    return parser


def walk_files(root: Path, ignored_exts: Sequence[str] = ()) -> Iterator[str]:
    """Yield POSIX paths, relative to ``root``, of regular files to upload."""
    ignored = {ext.lstrip(".") for ext in ignored_exts}
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames.sort()
        for filename in sorted(filenames):
            path = Path(dirpath, filename)
            if path.is_symlink() or not path.is_file():
                continue
            if path.suffix.lstrip(".") in ignored:
                continue
            yield path.relative_to(root).as_posix()


async def upload_file(
    client: OssClient,
    root: Path,
    name: str,
    dry_run: bool = False,
    compute_md5: bool = True,
    out: Optional[TextIO] = None,
) -> None:
    content_type = content_type_for_extension(Path(name).suffix)
    if dry_run:
        print(f"{client.url(name)} ({content_type})", file=out)
        return
    data = await asyncio.to_thread((root / name).read_bytes)
    md5 = md5_digest(data) if compute_md5 else None
    request = await client.upload(name, data, md5, content_type)
    logger.info("uploaded to %s (%d bytes)", request.url, len(data))


async def upload_tree(
    client: OssClient,
    root: Path,
    dry_run: bool = False,
    compute_md5: bool = True,
    ignored_exts: Sequence[str] = (),
    concurrency: int = 1,
    out: Optional[TextIO] = None,
) -> int:
    """
    Upload every regular file under ``root`` with ``concurrency`` workers.

    Paths go through a queue bounded by the worker count, so the walk
    never runs far ahead of the uploads. The first failure cancels the
    remaining work and propagates. Returns the number of files handled.
    """
    concurrency = max(1, concurrency)
    queue: asyncio.Queue = asyncio.Queue(maxsize=concurrency)
    handled = 0

    async def feed() -> None:
        # the walk stats every file, so it runs in a thread a batch at a time
        names = walk_files(root, ignored_exts)
        while True:
            batch = await asyncio.to_thread(list, itertools.islice(names, concurrency))
            if not batch:
                break
            for name in batch:
                await queue.put(name)
        for _ in range(concurrency):
            await queue.put(None)

    async def work() -> None:
        nonlocal handled
        while True:
            name = await queue.get()
            if name is None:
                return
            await upload_file(client, root, name, dry_run=dry_run, compute_md5=compute_md5, out=out)
            handled += 1

    tasks = [asyncio.create_task(feed())]
    tasks.extend(asyncio.create_task(work()) for _ in range(concurrency))
    try:
        await asyncio.gather(*tasks)
    finally:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
    return handled


def except_prefixes(prefixes: Sequence[str]):
    """Exception predicate keeping keys that start with any of ``prefixes``."""
    stripped = [p.lstrip("/") for p in prefixes]

    def keep(key: str) -> bool:
        return any(key.startswith(p) for p in stripped)

    return keep


async def recursive_delete(client: OssClient, prefix: str, excepts: Sequence[str] = ()) -> RecursiveDeleteResult:
    result = await client.delete_recursive(prefix, except_prefixes(excepts))
    for key in result.undeleted:
        logger.info("Not deleted: %s", key)
    return result


async def _run(args: argparse.Namespace, client: OssClient) -> int:
    async with client:
        try:
            if args.recursive_delete:
                await recursive_delete(client, args.path, args.excepts)
            else:
                await upload_tree(
                    client,
                    Path(args.path),
                    dry_run=args.dry_run,
                    compute_md5=not args.nomd5,
                    ignored_exts=args.noext,
                    concurrency=args.concurrency,
                )
        except RecursiveDeleteError as ex:
            for key in ex.result.undeleted:
                logger.info("Not deleted: %s", key)
            logger.error("%s", ex)
            return 1
        except (OssException, httpx.HTTPError, OSError) as ex:
            logger.error("%s", ex)
            return 1
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.create_config:
        try:
            write_config(args.config, SAMPLE_CONFIG)
        except OSError as ex:
            logger.error("%s", ex)
            return 1
        logger.info("created config file: %s", args.config)
        return 0

    if not args.path:
        parser.error("must provide one directory")

    try:
        config = read_config(args.config).with_env_overrides()
    except OssException as ex:
        logger.error("%s", ex)
        return 1

    return asyncio.run(_run(args, OssClient.from_config(config)))


if __name__ == "__main__":
    sys.exit(main())
