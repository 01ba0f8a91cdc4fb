"""CLI entry point for the SpreadLine layout engine."""

import argparse
import logging
import sys
from pathlib import Path

from spreadline.config import load_config
from spreadline.loader import read_groups, read_rows
from spreadline.models import SpreadLineError
from spreadline.pipeline import SpreadLine

logger = logging.getLogger(__name__)

TOPOLOGY_COLUMNS = {"source": "source", "target": "target", "time": "time", "weight": "weight"}
LINE_COLUMNS = {"entity": "entity", "color": "color"}
NODE_COLUMNS = {"time": "time", "entity": "entity", "context": "context"}
CONTENT_COLUMNS = {"id": "id", "timestamp": "timestamp", "posX": "posX", "posY": "posY"}


def _add_network_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    parser.add_argument("topology", help="Interaction rows (.json or .csv) with source,target,time,weight")
    parser.add_argument("--ego", required=True, help="Entity to center the layout on")
    parser.add_argument("--delta", default=None, help="Time bucket size: year, month, week, day or hour")
    parser.add_argument("--format", dest="time_format", default=None, help="strftime format of the time column")
    parser.add_argument("--extents", nargs=2, metavar=("START", "END"), default=None, help="Time range to lay out")
    parser.add_argument("--groups", default=None, help="JSON file with explicit tiers per time label")
    parser.add_argument("--lines", default=None, help="Line colour / category rows with entity,color")
    parser.add_argument(
        "--tiering", choices=["auto", "category", "direction"], default="auto",
        help="How neighbours are assigned to tiers when no explicit groups are given",
    )
    parser.add_argument("--config", default=None, help="YAML config file (default: config.yaml in the project root)")


def build_liner(args: argparse.Namespace) -> SpreadLine:
    """Load the input files named on the command line and center on the ego."""
    config = load_config(Path(args.config) if args.config else None)
    liner = SpreadLine(config)
    liner.load(read_rows(Path(args.topology)), TOPOLOGY_COLUMNS, "topology")
    if args.lines:
        liner.load(read_rows(Path(args.lines)), LINE_COLUMNS, "line")
    if getattr(args, "node_context", None):
        liner.load(read_rows(Path(args.node_context)), NODE_COLUMNS, "node")
    if getattr(args, "content", None):
        columns = dict(CONTENT_COLUMNS)
        if args.static_content:
            columns["timestamp"] = None
        liner.load(read_rows(Path(args.content)), columns, "content")

    liner.center(
        args.ego,
        time_extents=tuple(args.extents) if args.extents else None,
        time_delta=args.delta,
        time_format=args.time_format,
        groups=read_groups(Path(args.groups)) if args.groups else None,
        tiering=args.tiering,
    )
    return liner


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="SpreadLine egocentric storyline layout")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command")

    # layout command
    layout_parser = sub.add_parser("layout", help="Compute the storyline layout and write it as JSON")
    _add_network_arguments(layout_parser)
    layout_parser.add_argument("--node-context", default=None, help="Intensity rows with time,entity,context")
    layout_parser.add_argument("--content", default=None, help="2D positions with id,timestamp,posX,posY")
    layout_parser.add_argument(
        "--static-content", action="store_true",
        help="Content has one position per entity (no timestamp column)",
    )
    layout_parser.add_argument("--width", type=float, default=None, help="Canvas width in pixels")
    layout_parser.add_argument("--height", type=float, default=None, help="Canvas height in pixels")
    layout_parser.add_argument("--minimize", choices=["space", "line", "wiggles"], default=None)
    layout_parser.add_argument("--indent", type=int, default=2, help="JSON indentation")
    layout_parser.add_argument("-o", "--output", default=None, help="Output file (default: stdout)")

    # network command
    network_parser = sub.add_parser("network", help="Show the egocentric network summary")
    _add_network_arguments(network_parser)

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        if args.command == "layout":
            liner = build_liner(args)
            if args.minimize:
                liner.configure(minimize=args.minimize)
            result = liner.fit(args.width, args.height)
            text = result.to_json(indent=args.indent)
            if args.output:
                Path(args.output).write_text(text + "\n")
                print(result)
            else:
                print(text)

        elif args.command == "network":
            liner = build_liner(args)
            network = liner.network
            print(network)
            if network is not None:
                for session in network.sessions:
                    label = network.time_labels[session.timestamp]
                    tiers = " | ".join(", ".join(tier) for tier in session.hops)
                    print(f"  {label}: session {session.id}, weight {session.weight:g}: {tiers}")

        else:
            parser.print_help()
            return 1
    except SpreadLineError as exc:
        logger.error("%s", exc)
        return 2
    return 0


if __name__ == "__main__":
    sys.exit(main())
