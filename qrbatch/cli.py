"""qrbatch CLI: batch-generate logo QR codes into a zip."""

import argparse
import asyncio
import sys
from pathlib import Path

from qrbatch.logging import audit, get_logger, setup_logging

log = get_logger("cli")


def _parse_logo_option(value: str) -> tuple[int, Path]:
    """Parse ``N=PATH`` where N is the 1-based link position."""
    position, sep, path = value.partition("=")
    if not sep or not position.isdigit() or int(position) < 1 or not path:
        raise argparse.ArgumentTypeError(f"expected N=PATH with N >= 1, got {value!r}")
    return int(position), Path(path)


def read_links(args) -> list[tuple[str, Path | None]]:
    """Collect (text, logo path) pairs from positional links, --input and --logo."""
    links: list[tuple[str, Path | None]] = [(text, None) for text in args.links]

    if args.input:
        for line in Path(args.input).read_text(encoding="utf-8").splitlines():
            if not line.strip():
                continue
            text, _, logo = line.partition("\t")
            links.append((text, Path(logo.strip()) if logo.strip() else None))

    for position, path in args.logo:
        if position > len(links):
            raise SystemExit(f"--logo {position}={path}: there are only {len(links)} links")
        links[position - 1] = (links[position - 1][0], path)
    return links


def cmd_generate(args, settings):
    """Generate the archive (and optionally a print sheet)."""
    from qrbatch.batch import LinkEntry, generate_archive
    from qrbatch.errors import NoValidEntriesError, QRBatchError
    from qrbatch.printview import render_print_sheet

    links = read_links(args)
    if settings.max_entries and len(links) > settings.max_entries:
        print(f"Too many links: {len(links)} (max {settings.max_entries})", file=sys.stderr)
        return 2

    entries = []
    for n, (text, path) in enumerate(links, start=1):
        try:
            logo = path.read_bytes() if path else None
        except OSError as e:
            print(f"Cannot read logo for link {n}: {e}", file=sys.stderr)
            return 2
        entries.append(LinkEntry(text, logo))

    try:
        manifest, blob = asyncio.run(generate_archive(entries, settings))
    except NoValidEntriesError as e:
        print(f"Nothing to generate: {e}", file=sys.stderr)
        return 1
    except QRBatchError as e:
        where = f" (link {e.index}: {e.source_text})" if e.index else ""
        print(f"Generation failed{where}: {e}", file=sys.stderr)
        return 1

    output = Path(args.output or settings.archive_name)
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_bytes(blob)
    print(f"Generated {len(manifest)} QR codes -> {output}")
    for artifact in manifest:
        print(f"  {artifact.archive_name:40s} {artifact.source_text}")

    if args.print_sheet:
        sheet = Path(args.print_sheet)
        sheet.parent.mkdir(parents=True, exist_ok=True)
        sheet.write_text(render_print_sheet(manifest), encoding="utf-8")
        print(f"Print sheet: {sheet}")

    for failure in manifest.failures:
        print(f"  FAILED link {failure.index} ({failure.source_text}): {failure.reason}", file=sys.stderr)
    return 0 if manifest.ok else 1


def cmd_verify(args, settings):
    """Verify a QR code image."""
    from PIL import Image

    from qrbatch.verify import verify

    with Image.open(args.image) as img:
        results = verify(img, expected_data=args.expected)

    all_pass = True
    for r in results:
        status = "PASS" if r.success else "FAIL"
        if not r.success:
            all_pass = False
        print(f"  [{r.decoder:12s}] {status} | {r.decode_time_ms:6.1f}ms | {r.decoded_data or r.error}")
    return 0 if all_pass else 1


def cmd_serve(args, settings):
    """Start the HTTP service."""
    from qrbatch.service import create_app

    app = create_app(settings)
    print(f"Starting qrbatch service on http://{args.host}:{args.port}")
    app.run(host=args.host, port=args.port, debug=args.debug)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="qrbatch", description="Batch QR code generator with centre logos")

    # Global logging flags
    parser.add_argument("-V", "--verbose", action="store_true", help="Enable DEBUG-level logging")
    parser.add_argument("--log-file", default=None, help="Write JSON logs to file")
    parser.add_argument("--json-logs", action="store_true", help="JSON logs on the console too")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # --- generate ---
    p_gen = subparsers.add_parser("generate", help="Generate QR codes into a zip archive")
    p_gen.add_argument("links", nargs="*", help="URLs or text to encode")
    p_gen.add_argument("-i", "--input", default=None, help="File with one link per line (text<TAB>logo path)")
    p_gen.add_argument("--logo", type=_parse_logo_option, action="append", default=[],
                       metavar="N=PATH", help="Centre logo for the N-th link (1-based)")
    p_gen.add_argument("-o", "--output", default=None, help="Archive path (default qr-codes.zip)")
    p_gen.add_argument("--print-sheet", default=None, help="Also write a printable HTML sheet")
    p_gen.add_argument("--partial", action="store_true", default=None,
                       help="Keep successful codes when some links fail")
    p_gen.add_argument("--verify", action="store_true", default=None,
                       help="Decode every code after compositing and fail if it doesn't scan")
    p_gen.add_argument("--timeout", type=float, default=None, help="Per-link timeout in seconds (0 = none)")
    p_gen.add_argument("-e", "--ecc", default=None, choices=["L", "M", "Q", "H"], help="Error correction level")
    p_gen.add_argument("--size", type=int, default=None, help="Canvas size in pixels")

    # --- verify ---
    p_ver = subparsers.add_parser("verify", help="Verify a QR code image")
    p_ver.add_argument("image", help="Path to QR code image")
    p_ver.add_argument("--expected", default=None, help="Expected decoded data (fails if mismatch)")

    # --- serve ---
    p_serve = subparsers.add_parser("serve", help="Start the HTTP service")
    p_serve.add_argument("--host", default="127.0.0.1", help="Interface to bind")
    p_serve.add_argument("--port", type=int, default=8080, help="Port to listen on")
    p_serve.add_argument("--debug", action="store_true", help="Enable debug mode")

    return parser


def main(argv: list[str] | None = None) -> int:
    from qrbatch.config import Settings
    from qrbatch.errors import ConfigError

    parser = build_parser()
    args = parser.parse_args(argv)

    # Setup logging before any command runs
    level = "DEBUG" if args.verbose else "INFO"
    setup_logging(level=level, log_file=args.log_file, json_format=args.json_logs)
    audit("cli.start", logger=log, command=args.command, verbose=args.verbose)

    if args.command is None:
        parser.print_help()
        return 2

    try:
        settings = Settings.from_env()
        if args.command == "generate":
            settings = settings.replace(
                allow_partial=args.partial,
                verify_scan=args.verify,
                entry_timeout=args.timeout,
                ecc=args.ecc,
                canvas_size=args.size,
            )
    except ConfigError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2

    commands = {
        "generate": cmd_generate,
        "verify": cmd_verify,
        "serve": cmd_serve,
    }
    code = commands[args.command](args, settings)
    audit("cli.done", logger=log, command=args.command, exit_code=code)
    return code


if __name__ == "__main__":
    sys.exit(main())
