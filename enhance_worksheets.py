"""CLI wrapper for the worksheet enhancer."""

import sys

from worksheet_enhancer import main


def run() -> None:
    if len(sys.argv) < 2:
        print("Usage: python3 enhance_worksheets.py <image_path> [<image_path> ...] -o <output_dir> [options]")
        print()
        print("Options:")
        print("  --photocopy        Apply the photocopy contrast filter")
        print("  --auto-rotate      Rotate landscape photos of portrait pages")
        print("  --quality Q        JPEG quality of the output")
        print("  --max-width W      Scale wider photos down to W pixels first (0 keeps full size)")
        print("  --workers N        Number of images processed in parallel")
        sys.exit(1)
    sys.exit(main(sys.argv[1:]))


if __name__ == "__main__":
    run()
