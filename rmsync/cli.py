"""Command-line interface for moving notes between Markdown and the device."""

import argparse
import logging
import re
import sys
from pathlib import Path

from rmsync import __version__
from rmsync.converter import DocumentConverter, is_supported_source, write_atomically
from rmsync.device import DeviceCatalog, connect
from rmsync.errors import ConversionError
from rmsync.options import PageSize, ReconstructionOptions, RenderingOptions

DEVICE_DOCUMENT_SUFFIXES = (".pdf", ".epub")

logger = logging.getLogger(__name__)


def parse_args(args: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Args:
        args: Command-line arguments. Uses sys.argv if None.

    Returns:
        Parsed arguments namespace.
    """
    parser = argparse.ArgumentParser(
        prog="rmsync",
        description="Render Markdown notes as PDF pages for an e-ink device, and turn PDFs back into Markdown.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  rmsync to-pdf notes.md -o notes.pdf          Render one file
  rmsync to-pdf ./vault --device /mnt/docs     Render a folder onto the device
  rmsync to-pdf book.epub --device /mnt/docs   Upload a PDF or EPUB unchanged
  rmsync to-md notes.pdf                       Reconstruct Markdown to stdout
  rmsync pull --device /mnt/docs -o ./vault    Pull every device document
  rmsync cleanup --device /mnt/docs --except 'Keep'
        """,
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Print progress information to stderr",
    )
    parser.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help="Only print errors",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    rendering = argparse.ArgumentParser(add_help=False)
    group = rendering.add_argument_group("rendering options")
    group.add_argument("--margins", type=float, default=20.0, help="Page margins in millimetres (default: 20)")
    group.add_argument("--font-size", type=float, default=11.0, help="Base font size in points (default: 11)")
    group.add_argument("--font", default="Arial", help="Main font name or .ttf/.otf path (default: Arial)")
    group.add_argument("--mono-font", default="Courier", help="Monospace font name or path (default: Courier)")
    group.add_argument(
        "--page-size",
        choices=[size.name for size in PageSize],
        type=str.upper,
        default=PageSize.A4.name,
        help="Page size (default: A4)",
    )
    group.add_argument("--no-color-links", action="store_true", help="Draw links in the text colour")
    group.add_argument("--no-toc", action="store_true", help="Do not add a table of contents")
    group.add_argument("--no-highlight", action="store_true", help="Do not shade code blocks")

    reconstruction = argparse.ArgumentParser(add_help=False)
    group = reconstruction.add_argument_group("markdown options")
    group.add_argument(
        "--header-adjust",
        type=int,
        default=1,
        help="Shift heading levels by this amount (default: 1, '#' becomes '##')",
    )
    group.add_argument("--no-frontmatter", action="store_true", help="Do not add YAML frontmatter")
    group.add_argument("--no-cleanup", action="store_true", help="Keep the extracted text as it is")

    device = argparse.ArgumentParser(add_help=False)
    device.add_argument(
        "--device",
        action="append",
        type=Path,
        metavar="DIR",
        help="Device documents folder; repeat to give fallbacks, tried in order",
    )

    commands = parser.add_subparsers(dest="command", required=True)

    to_pdf = commands.add_parser(
        "to-pdf",
        parents=[rendering, device],
        help="Render Markdown, YAML and config files as PDF; with --device, PDF and EPUB files are uploaded as they are",
    )
    to_pdf.add_argument("input", nargs="+", type=Path, help="Input files or directories")
    to_pdf.add_argument("-o", "--output", type=Path, help="Output file or directory")

    to_md = commands.add_parser("to-md", parents=[reconstruction], help="Reconstruct Markdown from PDFs")
    to_md.add_argument("input", nargs="+", type=Path, help="Input PDF file(s)")
    to_md.add_argument("-o", "--output", type=Path, help="Output file or directory; stdout if omitted")

    pull = commands.add_parser(
        "pull",
        parents=[reconstruction, device],
        help="Reconstruct every device document into a folder",
    )
    pull.add_argument("-o", "--output", type=Path, required=True, help="Folder for the Markdown files")

    cleanup = commands.add_parser("cleanup", parents=[device], help="Remove device documents")
    cleanup.add_argument(
        "--except",
        dest="keep",
        required=True,
        metavar="PATTERN",
        help="Keep documents whose metadata matches this regular expression",
    )

    return parser.parse_args(args)


def create_rendering_options(args: argparse.Namespace) -> RenderingOptions:
    """Create RenderingOptions from parsed arguments."""
    return RenderingOptions(
        margins=args.margins,
        base_font_size=args.font_size,
        main_font=args.font,
        mono_font=args.mono_font,
        page_size=PageSize[args.page_size],
        color_links=not args.no_color_links,
        toc=not args.no_toc,
        highlight=not args.no_highlight,
    )


def create_reconstruction_options(args: argparse.Namespace) -> ReconstructionOptions:
    """Create ReconstructionOptions from parsed arguments."""
    return ReconstructionOptions(
        header_level_adjust=args.header_adjust,
        add_frontmatter=not args.no_frontmatter,
        cleanup_enabled=not args.no_cleanup,
    )


def configure_logging(args: argparse.Namespace) -> None:
    level = logging.WARNING
    if args.verbose:
        level = logging.INFO
    elif args.quiet:
        level = logging.ERROR
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s", stream=sys.stderr)


def is_device_document(path: Path) -> bool:
    """Check whether a file can go to the device without conversion."""
    return path.suffix.lower() in DEVICE_DOCUMENT_SUFFIXES


def device_filename(visible_name: str, suffix: str) -> str:
    """Turn a device display name into a file name that stays in its folder."""
    name = re.sub(r"[/\\\x00]", "_", visible_name).strip()
    if name in ("", ".", ".."):
        name = "untitled"
    return name + suffix


def collect_sources(inputs: list[Path], include_documents: bool = False) -> list[Path]:
    """Expand directories into the supported files below them.

    With include_documents, PDF and EPUB files are picked up as well.
    """
    sources = []
    for path in inputs:
        if path.is_dir():
            sources.extend(
                sorted(
                    p
                    for p in path.rglob("*")
                    if p.is_file() and (is_supported_source(p) or (include_documents and is_device_document(p)))
                )
            )
        else:
            sources.append(path)
    return sources


def output_for(input_path: Path, output: Path | None, many: bool, suffix: str) -> Path | None:
    """Work out where the result for one input goes."""
    if output is None:
        return None
    if many or output.is_dir():
        return output / (input_path.stem + suffix)
    return output


def process_single_file(
    input_path: Path,
    output_path: Path | None,
    converter: DocumentConverter,
    command: str,
    catalog: DeviceCatalog | None = None,
) -> bool:
    """Convert one file in either direction.

    Args:
        input_path: Path to the input file.
        output_path: Path to write output, or None for stdout (or the device).
        converter: Configured DocumentConverter instance.
        command: "to-pdf" or "to-md".
        catalog: Device catalog to upload rendered PDFs, and PDF or EPUB inputs, to.

    Returns:
        True if conversion succeeded, False otherwise.
    """
    if not input_path.exists():
        print(f"Error: File not found: {input_path}", file=sys.stderr)
        return False

    logger.info("Converting: %s", input_path)

    try:
        if command == "to-pdf" and is_device_document(input_path):
            if catalog is None:
                print(f"Error: {input_path} is already a document; upload it with --device", file=sys.stderr)
                return False
            file_type = input_path.suffix.lower().removeprefix(".")
            catalog.upload(input_path.read_bytes(), visible_name=input_path.stem, file_type=file_type)
        elif command == "to-pdf":
            if not is_supported_source(input_path):
                logger.warning("%s is not a known text format, treating it as Markdown", input_path)
            pdf_data = converter.markdown_to_pdf(input_path, output_path)
            if catalog is not None:
                catalog.upload(pdf_data, visible_name=input_path.stem)
            elif output_path is None:
                sys.stdout.buffer.write(pdf_data)
                sys.stdout.flush()
        else:
            if input_path.suffix.lower() != ".pdf":
                logger.warning("%s may not be a PDF file", input_path)
            markdown = converter.pdf_to_markdown(input_path, output_path)
            if output_path is None:
                print(markdown)

        if output_path:
            logger.info("  -> %s", output_path)
        return True

    except (ConversionError, OSError, ValueError) as e:
        print(f"Error converting {input_path}: {e}", file=sys.stderr)
        return False


def run_convert(args: argparse.Namespace, converter: DocumentConverter) -> int:
    catalog = None
    if args.command == "to-pdf":
        sources = collect_sources(args.input, include_documents=bool(args.device))
        suffix = ".pdf"
        if args.device:
            catalog = DeviceCatalog(connect(args.device))
    else:
        sources = args.input
        suffix = ".md"

    many = len(sources) > 1 or any(path.is_dir() for path in args.input)
    if args.output and many:
        args.output.mkdir(parents=True, exist_ok=True)

    success_count = 0
    error_count = 0
    for input_path in sources:
        output_path = output_for(input_path, args.output, many, suffix)
        if process_single_file(input_path, output_path, converter, args.command, catalog):
            success_count += 1
        else:
            error_count += 1

    if len(sources) > 1:
        logger.info("Processed %d files, %d errors", success_count, error_count)
    return 0 if error_count == 0 else 1


def run_pull(args: argparse.Namespace, converter: DocumentConverter) -> int:
    catalog = DeviceCatalog(connect(args.device))
    args.output.mkdir(parents=True, exist_ok=True)

    error_count = 0
    for entry in catalog.list_documents():
        target = args.output / device_filename(entry.visible_name, ".md")
        if target.exists():
            logger.info("Skipping %s, %s already exists", entry.visible_name, target)
            continue
        try:
            markdown = converter.reconstruct_bytes(catalog.download(entry), title=entry.visible_name)
            write_atomically(target, markdown.encode("utf-8"))
            logger.info("Pulled %s -> %s", entry.visible_name, target)
        except (ConversionError, OSError) as e:
            print(f"Error pulling {entry.visible_name}: {e}", file=sys.stderr)
            error_count += 1
    return 0 if error_count == 0 else 1


def run_cleanup(args: argparse.Namespace) -> int:
    catalog = DeviceCatalog(connect(args.device))
    removed = catalog.cleanup_except(args.keep)
    logger.info("Removed %d documents", len(removed))
    return 0


def main(args: list[str] | None = None) -> int:
    """Main entry point for the CLI.

    Args:
        args: Command-line arguments. Uses sys.argv if None.

    Returns:
        Exit code (0 for success, 1 for errors).
    """
    parsed_args = parse_args(args)
    configure_logging(parsed_args)

    if parsed_args.command in ("pull", "cleanup") and not parsed_args.device:
        print(f"Error: {parsed_args.command} needs at least one --device folder", file=sys.stderr)
        return 1

    try:
        if parsed_args.command == "to-pdf":
            converter = DocumentConverter(rendering=create_rendering_options(parsed_args))
            return run_convert(parsed_args, converter)
        if parsed_args.command == "to-md":
            converter = DocumentConverter(reconstruction=create_reconstruction_options(parsed_args))
            return run_convert(parsed_args, converter)
        if parsed_args.command == "pull":
            converter = DocumentConverter(reconstruction=create_reconstruction_options(parsed_args))
            return run_pull(parsed_args, converter)
        return run_cleanup(parsed_args)
    except (ConversionError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
