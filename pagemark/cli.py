"""Command-line conversion to Markdown.

Usage:
    pagemark report.pdf                         # Markdown to stdout
    pagemark report.pdf -o report.md            # Markdown and images next to report.md
    pagemark scan.pdf --describe --force-ocr    # Transcribe every page with Claude Vision
    pagemark bundle.zip --merge-tables -o out.md
    pagemark --formats                          # List supported extensions
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from pagemark.config import settings
from pagemark.exceptions import ConversionError
from pagemark.models import ConversionOptions
from pagemark.services.anthropic import close_client
from pagemark.services.conversion import ConversionService
from pagemark.services.vision import AnthropicVisionDescriber

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pagemark", description="Convert documents and archives to Markdown"
    )
    parser.add_argument("input", nargs="?", help="File to convert")
    parser.add_argument("-o", "--output", type=str, help="Write Markdown here instead of stdout")
    parser.add_argument(
        "--extension", type=str, help="Treat the input as this extension (e.g. csv, .tar.gz)"
    )
    parser.add_argument(
        "--images-dir",
        type=str,
        default="images",
        help="Directory for extracted images, relative to the output file (default: images)",
    )
    parser.add_argument(
        "--describe", action="store_true", help="Describe images and scanned pages with Claude"
    )
    parser.add_argument(
        "--force-ocr",
        action="store_true",
        help="Render and describe every PDF page (implies --describe)",
    )
    parser.add_argument(
        "--merge-tables", action="store_true", help="Merge tables split across pages"
    )
    parser.add_argument("--no-images", action="store_true", help="Skip embedded images")
    parser.add_argument("--formats", action="store_true", help="List supported extensions")
    return parser


def build_options(args: argparse.Namespace) -> ConversionOptions:
    describer = AnthropicVisionDescriber() if args.describe or args.force_ocr else None
    return ConversionOptions(
        file_extension=args.extension,
        describer=describer,
        force_llm_ocr=args.force_ocr,
        extract_images=not args.no_images,
        merge_multipage_tables=args.merge_tables,
    )


async def run(args: argparse.Namespace) -> int:
    service = ConversionService()

    if args.formats:
        print("\n".join(service.supported_extensions()))
        return 0

    options = build_options(args)
    try:
        document = await service.convert(args.input, options)
    except ConversionError as e:
        print(f"ERROR: {type(e).__name__}: {e}", file=sys.stderr)
        return 1
    finally:
        await close_client()

    image_dir = args.images_dir if document.images() else None
    markdown = document.to_markdown(image_dir=image_dir)

    if args.output:
        output = Path(args.output)
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(markdown, encoding="utf-8")
        base = output.parent
        logger.info(f"Wrote {output} ({len(document.pages)} pages)")
    else:
        sys.stdout.write(markdown)
        base = Path.cwd()

    if image_dir:
        saved = document.save_images(base / image_dir)
        logger.info(f"Saved {len(saved)} images to {base / image_dir}")

    return 0


def main() -> None:
    parser = build_parser()
    args = parser.parse_args()

    if not args.input and not args.formats:
        parser.error("the following arguments are required: input")

    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
