import argparse
import dataclasses
import json
import logging
import sys

from fontspider import CrawlOptions, ResolutionError, crawl, match_font_usage


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    defaults = CrawlOptions.default()
    parser = argparse.ArgumentParser(
        description="List the fonts declared and used by a stylesheet"
    )
    parser.add_argument(
        "input", metavar="INPUT", type=str, help="Stylesheet file path or URL"
    )
    parser.add_argument(
        "--ignore",
        metavar="PATTERN",
        action="append",
        default=[],
        help="Regular expression of URLs to ignore. May be repeated.",
    )
    parser.add_argument(
        "--map",
        metavar=("PATTERN", "REPLACEMENT"),
        nargs=2,
        action="append",
        default=[],
        help="Rewrite URLs matching PATTERN. May be repeated; first match wins.",
    )
    parser.add_argument(
        "--max-imports",
        metavar="N",
        type=int,
        default=defaults.max_imports,
        help=f"Maximum number of imported stylesheets. Default: {defaults.max_imports}",
    )
    parser.add_argument(
        "--timeout",
        metavar="SECONDS",
        type=float,
        default=defaults.timeout,
        help=f"Fetch timeout in seconds, 0 to disable. Default: {defaults.timeout:g}",
    )
    parser.add_argument(
        "--no-cache",
        dest="cache",
        action="store_false",
        default=defaults.cache,
        help="Disable the stylesheet cache.",
    )
    parser.add_argument(
        "--strict",
        dest="strict",
        action="store_true",
        help="Fail on any CSS syntax error.",
    )
    parser.add_argument(
        "--summary",
        dest="summary",
        action="store_true",
        help="Print each declared font with the selectors and characters using it.",
    )
    parser.add_argument(
        "--loglevel",
        metavar="LEVEL",
        default="WARNING",
        help="Logging level, default WARNING",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """Main function to print the font records of a stylesheet."""
    args = parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.loglevel.upper(), "WARNING"))
    options = CrawlOptions(
        cache=args.cache,
        ignore=args.ignore,
        map=[tuple(rule) for rule in args.map],
        max_imports=args.max_imports,
        timeout=args.timeout,
        strict=args.strict,
    )
    try:
        records = crawl(args.input, options)
    except ResolutionError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    except ValueError as e:
        print(f"invalid option: {e}", file=sys.stderr)
        return 2

    if args.summary:
        output = [
            {
                "family": match.face.family,
                "id": match.face.id,
                "files": match.face.files,
                "selectors": match.selectors,
                "chars": "".join(match.chars),
            }
            for match in match_font_usage(records)
        ]
    else:
        output = [
            {"type": type(record).__name__, **dataclasses.asdict(record)}
            for record in records
        ]
    json.dump(output, sys.stdout, ensure_ascii=False, indent=2)
    sys.stdout.write("\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
