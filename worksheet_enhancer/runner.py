"""CLI runner for batch worksheet enhancement."""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Dict, List, Optional

from tqdm import tqdm

from .buffers import encode_image, load_image, resize_for_upload
from .config import JPEG_QUALITY, ORIENTATION_MIN_CONFIDENCE, RECTIFY_METHOD, UPLOAD_MAX_WIDTH
from .errors import EnhancementError
from .orientation import detect_text_orientation, rotate_buffer
from .pipeline import enhance
from .processing import photocopy_filter
from .settings import configure_logger

logger = logging.getLogger(__name__)


def _output_paths(image_path: str, output_dir: str, stem: Optional[str] = None) -> Dict[str, str]:
    if stem is None:
        stem = os.path.splitext(os.path.basename(image_path))[0]
    return {
        "image": os.path.join(output_dir, f"{stem}_enhanced.jpg"),
        "report": os.path.join(output_dir, f"{stem}_report.json"),
    }


def unique_stems(image_paths: List[str]) -> List[str]:
    """
    Output stems for a batch, one per input, with no two alike.

    The first input with a given file stem keeps it; later inputs sharing it
    get ``_2``, ``_3`` ... appended, skipping any name already taken.
    """
    taken = set()
    stems = []
    for path in image_paths:
        base = os.path.splitext(os.path.basename(path))[0]
        stem = base
        suffix = 2
        while stem in taken:
            stem = f"{base}_{suffix}"
            suffix += 1
        taken.add(stem)
        stems.append(stem)
    return stems


def process_file(
    image_path: str,
    output_dir: str,
    photocopy: bool = False,
    auto_rotate: bool = False,
    quality: int = JPEG_QUALITY,
    method: str = RECTIFY_METHOD,
    max_width: int = UPLOAD_MAX_WIDTH,
    stem: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Enhance one image file and write the result and its JSON report.

    Args:
        image_path: Source photo.
        output_dir: Directory receiving ``<stem>_enhanced.jpg`` and
            ``<stem>_report.json``.
        photocopy: Apply the photocopy filter after enhancement.
        auto_rotate: Apply the suggested quarter turn before enhancement when
            its confidence exceeds ORIENTATION_MIN_CONFIDENCE.
        quality: JPEG quality of the written image.
        method: Rectification mapping.
        max_width: Photos wider than this are scaled down first; 0 keeps
            the original size.
        stem: Output file stem; defaults to the stem of ``image_path``.

    Returns:
        The report written to disk.

    Raises:
        EnhancementError: If the image cannot be decoded or encoded.
    """
    buffer = load_image(image_path)
    if max_width > 0 and buffer.shape[1] > max_width:
        logger.debug(f"{image_path}: scaling width {buffer.shape[1]} down to {max_width}")
        buffer = resize_for_upload(buffer, max_width)

    rotation = 0
    if auto_rotate:
        orientation = detect_text_orientation(buffer)
        if orientation.suggested_rotation and orientation.confidence > ORIENTATION_MIN_CONFIDENCE:
            rotation = orientation.suggested_rotation
            logger.debug(f"{image_path}: rotating {rotation} degrees ({orientation.confidence:.2f} confidence)")
            buffer = rotate_buffer(buffer, rotation)
        elif orientation.suggested_rotation:
            logger.debug(
                f"{image_path}: ignoring suggested {orientation.suggested_rotation} degree rotation "
                f"({orientation.confidence:.2f} confidence)"
            )

    result = enhance(buffer, method=method)
    image = photocopy_filter(result.image) if photocopy else result.image

    paths = _output_paths(image_path, output_dir, stem)
    with open(paths["image"], "wb") as handle:
        handle.write(encode_image(image, "JPEG", quality))

    report = result.report.to_dict()
    report.update(
        {
            "source": os.path.abspath(image_path),
            "output": os.path.abspath(paths["image"]),
            "rotation": rotation,
            "photocopy": photocopy,
            "width": int(image.shape[1]),
            "height": int(image.shape[0]),
        }
    )
    with open(paths["report"], "w", encoding="utf-8") as handle:
        json.dump(report, handle, indent=2)
    return report


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Straighten, crop and optionally photocopy-filter photographed worksheets"
    )
    parser.add_argument("images", nargs="+", help="Image files to enhance")
    parser.add_argument("-o", "--output-dir", required=True, help="Directory for enhanced images and reports")
    parser.add_argument("--photocopy", action="store_true", help="Apply the photocopy contrast filter")
    parser.add_argument("--auto-rotate", action="store_true", help="Rotate landscape photos of portrait pages")
    parser.add_argument("--quality", type=int, default=JPEG_QUALITY, help="JPEG quality of the output (1-95)")
    parser.add_argument(
        "--max-width",
        type=int,
        default=UPLOAD_MAX_WIDTH,
        help="Scale wider photos down to this width before enhancing (0 keeps full size)",
    )
    parser.add_argument(
        "--rectify-method",
        choices=("bilinear", "homography"),
        default=RECTIFY_METHOD,
        help="Mapping used for perspective correction",
    )
    parser.add_argument("--workers", type=int, default=1, help="Number of images processed in parallel")
    parser.add_argument("--log-level", default="INFO", help="Logging level (DEBUG, INFO, WARNING, ...)")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for batch enhancement.

    Every input is processed independently; a file that fails to decode or
    encode is logged and skipped so the rest of the batch still runs.

    Returns:
        0 if every image was enhanced, 1 otherwise.
    """
    args = build_parser().parse_args(argv)
    configure_logger(getattr(logging, args.log_level.upper(), logging.INFO))

    os.makedirs(args.output_dir, exist_ok=True)
    logger.info(f"Enhancing {len(args.images)} image(s) into {args.output_dir}")

    stems = unique_stems(args.images)
    for path, stem in zip(args.images, stems):
        if stem != os.path.splitext(os.path.basename(path))[0]:
            logger.warning(f"Output name for {path} clashes with another input; writing it as {stem}")

    failures = 0
    enhanced = 0
    with ThreadPoolExecutor(max_workers=max(1, args.workers)) as executor:
        future_to_path = {
            executor.submit(
                process_file,
                path,
                args.output_dir,
                args.photocopy,
                args.auto_rotate,
                args.quality,
                args.rectify_method,
                args.max_width,
                stem,
            ): path
            for path, stem in zip(args.images, stems)
        }
        for future in tqdm(as_completed(future_to_path), total=len(future_to_path), desc="Enhancing images"):
            path = future_to_path[future]
            try:
                report = future.result()
            except EnhancementError as exc:
                failures += 1
                logger.error(f"Failed to enhance {path}: {exc}")
                continue
            except OSError as exc:
                failures += 1
                logger.error(f"Could not write output for {path}: {exc}")
                continue
            if report["wasEnhanced"]:
                enhanced += 1
            logger.debug(f"{path}: {report['enhancements'] or 'unchanged'}")

    logger.info(
        f"Done: {len(args.images) - failures} processed, {enhanced} enhanced, {failures} failed"
    )
    return 1 if failures else 0


if __name__ == "__main__":
    sys.exit(main())
