#!/usr/bin/env python3

import argparse
import logging
import os
import sys

from .ascii_displayer import AsciiDisplayer
from .ascii_file_encoding import AsciiDecoder, AsciiEncoder
from .config import GenerationSettings
from .errors import DigitizerError
from .exporter import save_frames, save_gif, save_image, save_text
from .frame_generator import FrameGenerator, grid_dimensions
from .gif_decoder import load_document
from .grid import CharacterGrid
from .utils import format_file_size

EXPORT_EXTENSIONS = {'.txt', '.png', '.gif'}


def add_common_args(parser):
    """Add arguments common to play, encode and export"""
    parser.add_argument(
        "input",
        type=str,
        help="Path to input GIF or image file"
    )

    parser.add_argument(
        "-r", "--resolution",
        type=int,
        default=100,
        help="Character density in percent, 50-200 (default: 100)"
    )

    parser.add_argument(
        "-s", "--font-size",
        type=int,
        default=8,
        help="Font size in pixels, 4-16 (default: 8)"
    )

    parser.add_argument(
        "--contrast",
        type=float,
        default=1.0,
        help="Contrast multiplier, 0.5-2.0 (default: 1.0)"
    )

    parser.add_argument(
        "--color",
        action="store_true",
        help="Keep a color per character"
    )

    parser.add_argument(
        "--invert",
        action="store_true",
        help="Map bright pixels to dense characters"
    )

    parser.add_argument(
        "--edges",
        action="store_true",
        help="Multi-sample each cell and pick characters by edge strength"
    )

    parser.add_argument(
        "--palette",
        action="store_true",
        help="Quantize colors to the 21-color terminal palette (implies --color)"
    )

    parser.add_argument(
        "--sub-samples",
        type=int,
        default=2,
        help="Samples per cell side with --edges, 1-8 (default: 2)"
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging"
    )


def settings_from_args(args) -> GenerationSettings:
    return GenerationSettings(
        resolution=args.resolution,
        font_size=args.font_size,
        contrast=args.contrast,
        colored=args.color or args.palette,
        inverted=args.invert,
        edge_enhanced=args.edges,
        palette=args.palette,
        sub_samples=args.sub_samples,
    )


def convert_file(path: str, settings: GenerationSettings) -> list[CharacterGrid]:
    """Decode an image file and generate one grid per frame"""
    with open(path, 'rb') as f:
        data = f.read()

    document = load_document(data)
    if document.is_large:
        print(f"Warning: large file ({format_file_size(document.size)}), conversion may take a while",
              file=sys.stderr)
    for error in document.decode_errors:
        print(f"Warning: skipped image block {error.frame_index}: {error}", file=sys.stderr)

    columns, rows = grid_dimensions(document.width, document.height, settings.font_size, settings.resolution)
    print(f"Converting {path}: {document.frame_count} frame(s) at {columns}x{rows} characters",
          file=sys.stderr)
    return FrameGenerator().generate_document(document, columns, rows, settings)


def validate_input(path: str):
    if not os.path.exists(path):
        print(f"Error: File '{path}' not found", file=sys.stderr)
        sys.exit(1)


def cmd_play(args):
    """Play command - show a GIF, image or .asc file in the terminal"""
    validate_input(args.input)
    displayer = AsciiDisplayer()

    if os.path.splitext(args.input)[-1].lower() == '.asc':
        print(f"Playing .asc file: {args.input}", file=sys.stderr)
        grids = AsciiDecoder().read(args.input)
    else:
        grids = convert_file(args.input, settings_from_args(args))

    if len(grids) == 1:
        displayer.display_grid(grids[0])
    else:
        displayer.play(grids, loops=args.loops)


def cmd_encode(args):
    """Encode command - save converted frames to an .asc file"""
    validate_input(args.input)
    print(f"Encoding {args.input} to {args.output}")

    encoder = AsciiEncoder()
    encoder.add_frames(convert_file(args.input, settings_from_args(args)))
    encoder.write(args.output)

    print(f"File size: {format_file_size(os.path.getsize(args.output))}")


def cmd_export(args):
    """Export command - write text, a rendered image, a GIF or a directory of frames"""
    validate_input(args.input)
    settings = settings_from_args(args)

    if args.frames_dir:
        grids = convert_file(args.input, settings)
        paths = save_frames(grids, args.frames_dir, args.format, settings.font_size, args.font)
        print(f"Wrote {len(paths)} frame(s) to {args.frames_dir}")
        return

    ext = os.path.splitext(args.output)[-1].lower()
    if ext not in EXPORT_EXTENSIONS:
        print(f"Error: Unsupported output extension '{ext}'", file=sys.stderr)
        print(f"Supported: {', '.join(sorted(EXPORT_EXTENSIONS))}", file=sys.stderr)
        sys.exit(1)

    grids = convert_file(args.input, settings)
    if ext == '.gif':
        save_gif(grids, args.output, settings.font_size, args.font)
    elif ext == '.png':
        save_image(grids[0], args.output, settings.font_size, args.font)
    else:
        save_text(grids[0], args.output)
    print(f"Exported {args.input} to {args.output}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ascii-digitizer",
        description="Convert GIFs and images to ASCII art",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    # Play subcommand
    play_parser = subparsers.add_parser(
        'play',
        help='Display a GIF, image or .asc file as ASCII art',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s animation.gif --color
  %(prog)s image.png -r 150 --edges
  %(prog)s output.asc
        """
    )
    add_common_args(play_parser)
    play_parser.add_argument(
        "-l", "--loops",
        type=int,
        default=0,
        help="Times to play an animation, 0 loops until Ctrl+C (default: 0)"
    )
    play_parser.set_defaults(func=cmd_play)

    # Encode subcommand
    encode_parser = subparsers.add_parser(
        'encode',
        help='Encode a GIF or image to an .asc file',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s animation.gif -o output.asc --color
  %(prog)s image.png -o output.asc --invert
        """
    )
    add_common_args(encode_parser)
    encode_parser.add_argument(
        "-o", "--output",
        type=str,
        default="ascii_out.asc",
        help="Output file path (default: ascii_out.asc)"
    )
    encode_parser.set_defaults(func=cmd_encode)

    # Export subcommand
    export_parser = subparsers.add_parser(
        'export',
        help='Export ASCII art as text, PNG, GIF or per-frame files',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s image.png -o art.txt
  %(prog)s animation.gif -o art.gif --color
  %(prog)s animation.gif --frames-dir frames --format png
        """
    )
    add_common_args(export_parser)
    export_parser.add_argument(
        "-o", "--output",
        type=str,
        default="ascii_out.txt",
        help="Output file, .txt, .png or .gif (default: ascii_out.txt)"
    )
    export_parser.add_argument(
        "--frames-dir",
        type=str,
        default=None,
        help="Write one file per frame into this directory instead of --output"
    )
    export_parser.add_argument(
        "--format",
        choices=["txt", "png"],
        default="txt",
        help="Per-frame file format for --frames-dir (default: txt)"
    )
    export_parser.add_argument(
        "-f", "--font",
        type=str,
        default=None,
        help="TrueType font for rendered images (default: Pillow's built-in font)"
    )
    export_parser.set_defaults(func=cmd_export)

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    # If no command specified, show help
    if not args.command:
        parser.print_help()
        sys.exit(1)

    if args.debug:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")

    try:
        args.func(args)
    except KeyboardInterrupt:
        print("\nInterrupted by user", file=sys.stderr)
        sys.exit(0)
    except (DigitizerError, OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
