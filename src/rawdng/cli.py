from __future__ import annotations

import argparse
from dataclasses import replace
import json
import logging
from pathlib import Path
import sys

from rawdng import __version__
from rawdng.capture import build_document, build_metadata, capture_metadata_from_config, frame_to_dng
from rawdng.config import AppConfig, load_config
from rawdng.decode import RawFrame, read_raw_dump
from rawdng.utils.formatting import format_bytes
from rawdng.utils.logging_utils import configure_logging
from rawdng.write import plan_dng


logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="rawdng")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="command", required=True)

    def add_input_args(p: argparse.ArgumentParser) -> None:
        p.add_argument("input", help="Packed raw dump (header prepended or in a sidecar)")
        p.add_argument("--header", default=None, help="Sidecar header path (default: <input>.txt)")
        p.add_argument("--config", default=None, help="Path to YAML config")
        p.add_argument("--format", default=None, help="Override the pixel format tag, e.g. RG10")
        p.add_argument("--bit-depth", type=int, choices=(10, 12), default=None, help="Override packed bit depth")
        p.add_argument("--json", action="store_true", help="Emit machine-readable JSON")
        p.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    convert = sub.add_parser("convert", help="Convert a packed raw dump into a DNG")
    add_input_args(convert)
    convert.add_argument("--out", default=None, help="Output DNG path (default: <output_dir or input dir>/<stem>.dng)")

    layout = sub.add_parser("layout", help="Show the planned DNG directory for a raw dump without writing it")
    add_input_args(layout)

    return parser


def _load(args: argparse.Namespace) -> tuple[AppConfig, RawFrame]:
    config = load_config(args.config) if args.config else AppConfig()
    configure_logging(config.log_level, config.log_file, verbose=args.verbose)

    input_path = Path(args.input).expanduser().resolve()
    header_path = Path(args.header).expanduser().resolve() if args.header else None
    frame = read_raw_dump(input_path, header_path=header_path)

    pixel_format = args.format or config.capture.pixel_format
    if pixel_format:
        frame = replace(frame, pixel_format=pixel_format)
    return config, frame


def _bit_depth(args: argparse.Namespace, config: AppConfig) -> int | None:
    return args.bit_depth or config.capture.bit_depth


def _cmd_convert(args: argparse.Namespace) -> int:
    config, frame = _load(args)

    input_path = Path(args.input).expanduser().resolve()
    if args.out:
        out_path = Path(args.out).expanduser().resolve()
    else:
        out_dir = config.output_dir or input_path.parent
        out_path = out_dir / f"{input_path.stem}.dng"

    capture = capture_metadata_from_config(config.capture)
    written = frame_to_dng(frame, capture, out_path, camera=config.camera, bit_depth=_bit_depth(args, config))

    if args.json:
        payload = {
            "input": str(input_path),
            "output": str(written),
            "width": frame.width,
            "height": frame.height,
            "pixel_format": frame.pixel_format,
            "size_bytes": written.stat().st_size,
        }
        print(json.dumps(payload, indent=2))
        return 0

    print(str(written))
    return 0


def _cmd_layout(args: argparse.Namespace) -> int:
    config, frame = _load(args)

    document = build_document(frame, bit_depth=_bit_depth(args, config))
    metadata = build_metadata(capture_metadata_from_config(config.capture), config.camera)
    layout = plan_dng(document, metadata)

    payload = {
        "width": document.width,
        "height": document.height,
        "bit_depth": document.bit_depth,
        "bayer_order": document.bayer_order.name,
        "external_start": layout.external_start,
        "strip_offset": layout.strip_offset,
        "strip_byte_count": layout.strip_byte_count,
        "total_size": layout.total_size,
        "entries": [
            {
                "tag": p.entry.tag,
                "type": p.entry.type.name,
                "count": p.entry.count,
                "offset": p.offset,
            }
            for p in layout.entries
        ],
    }

    if args.json:
        print(json.dumps(payload, indent=2))
        return 0

    print(
        f"{document.width}x{document.height} {document.bit_depth}-bit {document.bayer_order.name}, "
        f"{format_bytes(layout.total_size)} total"
    )
    print(f"External data at {layout.external_start}, strip at {layout.strip_offset}")
    print("Entries:")
    for e in payload["entries"]:
        where = f"@{e['offset']}" if e["offset"] is not None else "inline"
        print(f"  {e['tag']:>5} {e['type']:<9} count={e['count']:<4} {where}")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    try:
        if args.command == "convert":
            return _cmd_convert(args)
        if args.command == "layout":
            return _cmd_layout(args)

        parser.error(f"unknown command: {args.command}")
        return 2
    except Exception as exc:
        logger.exception("fatal error")
        print(f"error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
