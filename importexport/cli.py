"""
Import CLI
==========

Replays an exported snapshot into a target repository.

COMMANDS:
- import:  Walk, sequence and replay a snapshot directory

USAGE:
    python -m importexport import --config import.json
    python -m importexport import --resource http://localhost:8080/rest/col \\
        --dir ./export --versions --binaries
"""
import argparse
import sys
from pathlib import Path
from typing import List, Optional

import structlog

from .audit import setup_logging
from .config import DEFAULT_RDF_EXTENSION, DEFAULT_RDF_LANGUAGE, ImportConfig
from .errors import ConfigurationError, ImportExportError
from .service import ImportService


logger = structlog.get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="importexport", description="Snapshot import/replay")
    parser.add_argument("--log-level", default="info", help="Log level (debug, info, warning, error)")
    parser.add_argument("--json-logs", action="store_true", help="Emit JSON log lines")

    subparsers = parser.add_subparsers(dest="command")

    import_parser = subparsers.add_parser("import", help="Replay a snapshot into a repository")
    import_parser.add_argument("--config", type=Path, help="JSON configuration file")
    import_parser.add_argument("--resource", help="Destination URI of the imported tree")
    import_parser.add_argument("--dir", type=Path, help="Snapshot base directory")
    import_parser.add_argument("--source", help="URI base the snapshot was exported from")
    import_parser.add_argument("--binaries", action="store_true", help="Import binary content")
    import_parser.add_argument("--versions", action="store_true", help="Replay version history")
    import_parser.add_argument("--legacy", action="store_true",
                               help="Do not write created/lastModified provenance")
    import_parser.add_argument("--overwrite-tombstones", action="store_true",
                               help="Delete tombstones blocking imported URIs")
    import_parser.add_argument("--bag", action="store_true",
                               help="Take binary digests from the bag's manifest-sha1.txt")
    import_parser.add_argument("--rdf-extension", default=DEFAULT_RDF_EXTENSION)
    import_parser.add_argument("--rdf-language", default=DEFAULT_RDF_LANGUAGE)
    import_parser.add_argument("--user", help="Credentials as USER:PASS")
    import_parser.add_argument("--audit-log", type=Path, help="Append audit records to this file")

    return parser


def config_from_args(args: argparse.Namespace) -> ImportConfig:
    if args.config is not None:
        return ImportConfig.load(args.config)

    if not args.resource or args.dir is None:
        raise ConfigurationError("--resource and --dir are required without --config")

    username = password = None
    if args.user:
        username, separator, password = args.user.partition(":")
        if not separator:
            raise ConfigurationError("--user must be given as USER:PASS")

    return ImportConfig(
        resource=args.resource,
        base_directory=args.dir,
        source=args.source,
        include_binaries=args.binaries,
        include_versions=args.versions,
        rdf_extension=args.rdf_extension,
        rdf_language=args.rdf_language,
        legacy=args.legacy,
        overwrite_tombstones=args.overwrite_tombstones,
        bag_manifest=args.bag,
        username=username,
        password=password,
        audit_log=args.audit_log
    )


def cmd_import(args: argparse.Namespace) -> int:
    try:
        config = config_from_args(args)
        report = ImportService(config).run()
    except ImportExportError as e:
        logger.error("import_aborted", code=e.code.name, error=e.message)
        print(f"[FAIL] {e}", file=sys.stderr)
        return 1

    print(f"[PASS] {report.success_count} resources imported, {report.events_applied} events applied")
    for uri in report.failed_binaries:
        print(f"[WARN] Binary not imported: {uri}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(level=args.log_level, json_output=args.json_logs)

    if args.command == "import":
        return cmd_import(args)

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
