"""
DocStore CLI — Publish, read and inspect documents from the shell.

Commands:
- docstore put        — Publish a revision from a file or stdin
- docstore get        — Write the latest (or a given) revision body to stdout
- docstore list       — One page of document ids
- docstore revisions  — All revisions of a document, oldest id first
- docstore verify     — Walk a document's back-link chain
- docstore repair     — Roll back a dangling latest pointer
- docstore validate   — Check a document id against the character policy
- docstore check      — Load config and ping the configured backend
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Optional

from docstore.engine.errors import DocStoreError

logger = logging.getLogger("docstore.cli")


def main(argv: Optional[list] = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="docstore",
        description="DocStore — Versioned document store",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config", default=None, help="Path to docstore.yaml (default: auto-discover)"
    )

    # docstore put
    put_parser = subparsers.add_parser("put", parents=[common], help="Publish a revision")
    put_parser.add_argument("doc_id", help="Document id")
    put_parser.add_argument("file", nargs="?", help="Body file (default: stdin)")
    put_parser.add_argument("--timeout", type=float, help="Deadline in seconds")

    # docstore get
    get_parser = subparsers.add_parser("get", parents=[common], help="Print a revision body")
    get_parser.add_argument("doc_id", help="Document id")
    get_parser.add_argument("--revision", help="Revision id (default: latest)")

    # docstore list
    list_parser = subparsers.add_parser("list", parents=[common], help="List documents")
    list_parser.add_argument("--token", default="", help="Continuation token from a previous page")
    list_parser.add_argument("--limit", type=int, help="Page size")

    # docstore revisions
    rev_parser = subparsers.add_parser("revisions", parents=[common], help="List revisions")
    rev_parser.add_argument("doc_id", help="Document id")
    rev_parser.add_argument("--token", default="", help="Continuation token")
    rev_parser.add_argument("--limit", type=int, help="Page size")

    # docstore verify / repair
    verify_parser = subparsers.add_parser("verify", parents=[common], help="Verify a chain")
    verify_parser.add_argument("doc_id", help="Document id")
    repair_parser = subparsers.add_parser("repair", parents=[common], help="Repair a chain")
    repair_parser.add_argument("doc_id", help="Document id")

    # docstore validate
    validate_parser = subparsers.add_parser("validate", help="Validate a document id")
    validate_parser.add_argument("doc_id", help="Document id")

    # docstore check
    subparsers.add_parser("check", parents=[common], help="Ping the configured backend")

    args = parser.parse_args(argv)

    commands = {
        "put": cmd_put,
        "get": cmd_get,
        "list": cmd_list,
        "revisions": cmd_revisions,
        "verify": cmd_verify,
        "repair": cmd_repair,
        "validate": cmd_validate,
        "check": cmd_check,
    }
    handler = commands.get(args.command)
    if handler is None:
        parser.print_help()
        return 0

    from docstore.engine.logging import shutdown_logging

    try:
        return handler(args)
    except DocStoreError as e:
        print(f"[ERROR] {e.message}")
        return 1
    except ValueError as e:
        print(f"[ERROR] {e}")
        return 1
    finally:
        shutdown_logging()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _warn_if_ephemeral(config) -> None:
    """The memory backend lives only as long as this process."""
    if config.backend.type == "memory":
        print(
            "[WARN] Backend 'memory' keeps nothing after this command exits; "
            "set backend.type to 'sql' or 'redis' in docstore.yaml",
            file=sys.stderr,
        )


def _open_store(args: argparse.Namespace):
    """Load config, set up logging and build a DocumentStore on the configured backend."""
    from docstore.backends import create_backend
    from docstore.engine.config import load_config
    from docstore.engine.logging import init_logging
    from docstore.store import DocumentStore

    config = load_config(getattr(args, "config", None))
    _warn_if_ephemeral(config)
    logging.basicConfig(level=config.logging.level.upper())
    if config.logging.structured:
        queue_cfg = config.logging.async_queue
        init_logging(
            log_dir=config.logging.directory,
            flush_interval_ms=queue_cfg.flush_interval_ms,
            flush_batch_size=queue_cfg.flush_batch_size,
            max_queue_size=queue_cfg.max_queue_size,
        )
    return DocumentStore(create_backend(config.backend), config.store)


def _write_body(data: bytes) -> None:
    sys.stdout.flush()
    buffer = getattr(sys.stdout, "buffer", None)
    if buffer is None:
        sys.stdout.write(data.decode("utf-8", errors="replace"))
        return
    buffer.write(data)
    buffer.flush()


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def cmd_put(args: argparse.Namespace) -> int:
    """Publish the file (or stdin) as the next revision of a document."""
    store = _open_store(args)
    try:
        if args.file:
            with open(args.file, "rb") as f:
                revision = store.put_revision(args.doc_id, f, timeout=args.timeout)
        else:
            source = getattr(sys.stdin, "buffer", sys.stdin)
            revision = store.put_revision(args.doc_id, source, timeout=args.timeout)
    except FileNotFoundError:
        print(f"[ERROR] File not found: {args.file}")
        return 1
    finally:
        store.backend.close()

    print(f"[OK] {revision.doc_id}@{revision.id} (previous: {revision.previous_revision or '-'})")
    return 0


def cmd_get(args: argparse.Namespace) -> int:
    """Write a revision body to stdout."""
    store = _open_store(args)
    try:
        if args.revision:
            revision = store.get_revision(args.doc_id, args.revision)
        else:
            revision = store.get_doc(args.doc_id)
    finally:
        store.backend.close()

    _write_body(revision.read())
    return 0


def cmd_list(args: argparse.Namespace) -> int:
    store = _open_store(args)
    try:
        page = store.list_docs(args.token, args.limit)
    finally:
        store.backend.close()

    for doc in page.docs:
        print(f"{doc.id}\t{doc.latest_revision or '-'}")
    if page.more:
        print(f"\nnext token: {page.next_token}")
    return 0


def cmd_revisions(args: argparse.Namespace) -> int:
    store = _open_store(args)
    try:
        page = store.list_revisions(args.doc_id, args.token, args.limit)
    finally:
        store.backend.close()

    for meta in page.revisions:
        print(f"{meta.id}\t{meta.previous_revision or '-'}\t{meta.timestamp.isoformat()}")
    if page.more:
        print(f"\nnext token: {page.next_token}")
    return 0


def cmd_verify(args: argparse.Namespace) -> int:
    """Walk the chain; exit 1 unless it is intact."""
    store = _open_store(args)
    try:
        report = store.verify(args.doc_id)
    finally:
        store.backend.close()

    if report.ok:
        print(f"[OK] {args.doc_id}: {report.length} revision(s), chain intact")
        return 0
    print(
        f"[ERROR] {args.doc_id}: {report.status.value} at '{report.broken_revision}' "
        f"after {report.length} revision(s)"
    )
    return 1


def cmd_repair(args: argparse.Namespace) -> int:
    store = _open_store(args)
    try:
        report = store.repair(args.doc_id)
    finally:
        store.backend.close()

    if report.repaired:
        print(f"[OK] {args.doc_id}: pointer rolled back to '{report.latest_revision or '-'}'")
    if report.ok:
        if not report.repaired:
            print(f"[OK] {args.doc_id}: chain intact, nothing to repair")
        return 0
    print(f"[ERROR] {args.doc_id}: still {report.status.value} at '{report.broken_revision}'")
    return 1


def cmd_validate(args: argparse.Namespace) -> int:
    """Check a document id without touching any backend."""
    from docstore.store.validation import validate_doc_id

    validate_doc_id(args.doc_id)
    print(f"[OK] '{args.doc_id}' is a valid document id")
    return 0


def cmd_check(args: argparse.Namespace) -> int:
    """Load config and ping the backend it names."""
    from docstore.backends import create_backend
    from docstore.engine.config import load_config

    config = load_config(args.config)
    print(f"[OK] Config loaded (backend: {config.backend.type}, id policy: {config.store.id_policy})")
    _warn_if_ephemeral(config)

    backend = create_backend(config.backend)
    try:
        healthy = backend.ping()
    finally:
        backend.close()

    if not healthy:
        print(f"[ERROR] Backend '{backend.name}' did not answer")
        return 1
    print(f"[OK] Backend '{backend.name}' reachable")
    return 0


if __name__ == "__main__":
    sys.exit(main())
