"""
GDTI CLI — version-chain operations from the command line.

Commands:
- gdti create       — Record a new document (version 1)
- gdti update       — Record a new version, presenting the last transaction reference
- gdti delete       — Mark a document deleted (terminal)
- gdti get          — Show the current view of a document
- gdti fingerprint  — Print the SHA-256 fingerprint of a file
- gdti verify       — Check a file against an expected fingerprint

Results are printed as JSON. Exit codes: 0 ok, 1 error, 2 conflict.

With `ledger.backend: memory` every invocation starts from an empty ledger,
so records do not carry over between commands. Use `ledger.backend: jsonrpc`
with a gateway to keep them.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, Dict, Optional

from gdtiledger.engine.errors import GDTIError

logger = logging.getLogger("gdtiledger.cli")

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_CONFLICT = 2


def main(argv: Optional[list] = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="gdti",
        description="GDTI Ledger — versioned documents on an append-only ledger",
        epilog="The memory backend keeps records only for the life of one command.",
    )
    parser.add_argument("--config", default=None, help="Path to gdti.yaml (default: auto-discover)")
    parser.add_argument("--account", default=None, help="Ledger account to act as")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # gdti create
    create_parser = subparsers.add_parser("create", help="Record a new document")
    create_parser.add_argument("--gdti", required=True, help="GDTI number")
    create_parser.add_argument("--type", dest="document_type", required=True, help="Document type")
    create_parser.add_argument("--member", dest="member_id", required=True, help="Member ID")
    create_parser.add_argument("file", help="Document file")

    # gdti update
    update_parser = subparsers.add_parser("update", help="Record a new document version")
    update_parser.add_argument("--gdti", required=True, help="GDTI number")
    update_parser.add_argument("--type", dest="document_type", required=True, help="Document type")
    update_parser.add_argument("--member", dest="member_id", required=True, help="Member ID")
    update_parser.add_argument("--updated-by", required=True, help="Who is updating")
    update_parser.add_argument(
        "--previous", required=True, help="Transaction reference of the last accepted transition"
    )
    update_parser.add_argument("file", help="New document file")

    # gdti delete
    delete_parser = subparsers.add_parser("delete", help="Mark a document deleted")
    delete_parser.add_argument("--gdti", required=True, help="GDTI number")
    delete_parser.add_argument("--deleted-by", required=True, help="Who is deleting")
    delete_parser.add_argument("--reason", required=True, help="Deletion reason")
    delete_parser.add_argument(
        "--previous", required=True, help="Transaction reference of the last accepted transition"
    )

    # gdti get
    get_parser = subparsers.add_parser("get", help="Show the current document view")
    get_parser.add_argument("gdti", help="GDTI number")

    # gdti fingerprint
    fp_parser = subparsers.add_parser("fingerprint", help="SHA-256 fingerprint of a file")
    fp_parser.add_argument("file", help="File to fingerprint")

    # gdti verify
    verify_parser = subparsers.add_parser("verify", help="Check a file against a fingerprint")
    verify_parser.add_argument("file", help="File to check")
    verify_parser.add_argument("digest", help="Expected SHA-256 hex digest")

    args = parser.parse_args(argv)

    if args.command == "fingerprint":
        return cmd_fingerprint(args)
    elif args.command == "verify":
        return cmd_verify(args)
    elif args.command in ("create", "update", "delete", "get"):
        return asyncio.run(_run_ledger_command(args))
    else:
        parser.print_help()
        return EXIT_OK


def _print(data: Dict[str, Any]) -> None:
    print(json.dumps(data, indent=2, default=str))


def _print_error(err: GDTIError) -> None:
    print(err.to_json(), file=sys.stderr)


def cmd_fingerprint(args: argparse.Namespace) -> int:
    from gdtiledger.documents.fingerprint import fingerprint_file

    try:
        digest = fingerprint_file(args.file)
    except GDTIError as e:
        _print_error(e)
        return EXIT_ERROR
    _print({"file": args.file, "contentHash": digest})
    return EXIT_OK


def cmd_verify(args: argparse.Namespace) -> int:
    from gdtiledger.documents.fingerprint import verify_fingerprint
    from gdtiledger.documents.models import ContentSource

    try:
        with ContentSource.from_path(args.file) as content:
            matches = verify_fingerprint(content.stream, args.digest)
    except GDTIError as e:
        _print_error(e)
        return EXIT_ERROR
    _print({"file": args.file, "contentHash": args.digest, "matches": matches})
    return EXIT_OK if matches else EXIT_ERROR


async def _run_ledger_command(args: argparse.Namespace) -> int:
    from gdtiledger.documents.service import DocumentService
    from gdtiledger.engine.config import load_platform_config
    from gdtiledger.engine.context import ActingIdentity, set_acting_identity
    from gdtiledger.engine.logging import init_logging, log, log_system_event, shutdown_logging

    try:
        config = load_platform_config(args.config)
    except (GDTIError, ValueError) as e:
        print(f"[ERROR] Failed to load config: {e}", file=sys.stderr)
        return EXIT_ERROR

    logging.basicConfig(level=config.logging.level, stream=sys.stderr)
    log_queue = init_logging(
        log_dir=config.logging.directory,
        flush_interval_ms=config.logging.flush_interval_ms,
        flush_batch_size=config.logging.flush_batch_size,
        max_queue_size=config.logging.max_queue_size,
    )
    log(log_system_event("cli_startup", details={
        "command": args.command,
        "environment": config.environment,
        "backend": config.ledger.backend,
    }))
    if config.ledger.backend == "memory":
        logger.warning("ledger.backend is 'memory': nothing recorded by this command outlives it")

    try:
        if args.account:
            set_acting_identity(ActingIdentity(account=args.account))
        async with DocumentService.from_config(config, log_queue=log_queue) as service:
            if args.command == "create":
                return await cmd_create(service, args)
            elif args.command == "update":
                return await cmd_update(service, args)
            elif args.command == "delete":
                return await cmd_delete(service, args)
            return await cmd_get(service, args)
    except GDTIError as e:
        _print_error(e)
        return EXIT_ERROR
    finally:
        log(log_system_event("cli_shutdown", details={"command": args.command}))
        shutdown_logging()


def _result_exit(result) -> int:
    _print(result.to_dict())
    return EXIT_CONFLICT if result.is_conflict else EXIT_OK


async def cmd_create(service, args: argparse.Namespace) -> int:
    from gdtiledger.documents.models import ContentSource

    with ContentSource.from_path(args.file) as content:
        result = await service.create(args.gdti, args.document_type, args.member_id, content)
    return _result_exit(result)


async def cmd_update(service, args: argparse.Namespace) -> int:
    from gdtiledger.documents.models import ContentSource

    with ContentSource.from_path(args.file) as content:
        result = await service.update(
            args.gdti,
            args.document_type,
            args.member_id,
            args.updated_by,
            content,
            args.previous,
        )
    return _result_exit(result)


async def cmd_delete(service, args: argparse.Namespace) -> int:
    result = await service.delete(args.gdti, args.deleted_by, args.reason, args.previous)
    return _result_exit(result)


async def cmd_get(service, args: argparse.Namespace) -> int:
    view = await service.get(args.gdti)
    _print(view.to_dict())
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
