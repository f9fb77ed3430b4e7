"""Command line segmentation of an image or video with point and box prompts.

Usage examples:
    # Foreground point
    samlayer -i photo.jpg -p 320,240 -o composite.png

    # Foreground and background points, raw mask as well
    samlayer -i photo.jpg -p 320,240 -y 1 -p 40,40 -y 0 -o composite.png -k mask.png

    # Box prompt
    samlayer -i photo.jpg -b 100,80,420,360 -o composite.png

    # Video: same prompts on every 10th frame
    samlayer --video clip.mp4 -t "dog" -p 320,240 -o frames/dog.png --frame-stride 10
"""

from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Iterator, Sequence
from pathlib import Path

from PIL import Image, UnidentifiedImageError

from samlayer.config import settings
from samlayer.enums import Category
from samlayer.exceptions import InvalidArgumentError, SamLayerError
from samlayer.models import Box, Point
from samlayer.services.export import composite_mask_on_image, save_png
from samlayer.services.inference import InferenceOrchestrator
from samlayer.services.prompts import build_prompt
from samlayer.services.sam2_engine import Sam2Engine

logger = logging.getLogger(__name__)

EXIT_FAILURE = 1
EXIT_USAGE = 2


def parse_point(value: str) -> tuple[float, float]:
    """Parse ``x,y`` into a coordinate pair."""
    parts = value.split(",")
    if len(parts) != 2:
        raise InvalidArgumentError(f"Point must be 'x,y', got {value!r}")
    try:
        return float(parts[0]), float(parts[1])
    except ValueError as e:
        raise InvalidArgumentError(f"Point must be numeric 'x,y', got {value!r}") from e


def parse_box(value: str) -> tuple[tuple[float, float], tuple[float, float]]:
    """Parse ``x0,y0,x1,y1`` into start and end corners."""
    parts = value.split(",")
    if len(parts) != 4:
        raise InvalidArgumentError(f"Box must be 'x0,y0,x1,y1', got {value!r}")
    try:
        x0, y0, x1, y1 = (float(p) for p in parts)
    except ValueError as e:
        raise InvalidArgumentError(f"Box must be numeric 'x0,y0,x1,y1', got {value!r}") from e
    return (x0, y0), (x1, y1)


def parse_prompts(
    points: Sequence[str] | None,
    types: Sequence[int] | None,
    boxes: Sequence[str] | None,
) -> tuple[list[Point], list[Box]]:
    """Validate and convert command line prompts.

    Types default to foreground for every point when omitted.

    Raises:
        InvalidArgumentError: On malformed values, a points/types count mismatch or no prompts.
    """
    points = points or []
    boxes = boxes or []
    if types is None or len(types) == 0:
        types = [int(Category.FOREGROUND)] * len(points)
    if len(types) != len(points):
        raise InvalidArgumentError(f"Got {len(points)} points but {len(types)} types")

    categories = []
    for value in types:
        if value not in (Category.BACKGROUND, Category.FOREGROUND):
            raise InvalidArgumentError(f"Point type must be 0 (background) or 1 (foreground), got {value}")
        categories.append(Category(value))

    parsed_points = [Point(parse_point(p), c) for p, c in zip(points, categories, strict=True)]
    parsed_boxes = [Box(*parse_box(b)) for b in boxes]

    if not parsed_points and not parsed_boxes:
        raise InvalidArgumentError("At least one point or box is required")
    return parsed_points, parsed_boxes


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="samlayer",
        description="Perform segmentation using the SAM v2 model.",
    )
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("-i", "--input", type=Path, help="The input image file.")
    source.add_argument("--video", type=Path, help="The input video file.")
    parser.add_argument("-t", "--text", help="Text prompt for video mode, used as the layer title.")
    parser.add_argument(
        "-p",
        "--point",
        action="append",
        help="Point 'x,y' in original image pixels. Repeat for several points.",
    )
    parser.add_argument(
        "-y",
        "--type",
        action="append",
        type=int,
        help="Type for each point: 0=background, 1=foreground. Defaults to foreground.",
    )
    parser.add_argument("-b", "--box", action="append", help="Box 'x0,y0,x1,y1' in original image pixels.")
    parser.add_argument(
        "-o",
        "--output",
        type=Path,
        required=True,
        help="The output PNG image file, showing the segmentation map overlaid on top of the original image.",
    )
    parser.add_argument("-k", "--mask", type=Path, help="The output file name for the segmentation mask.")
    parser.add_argument("--opacity", type=float, default=None, help="Overlay opacity between 0 and 1.")
    parser.add_argument("--frame-stride", type=int, default=None, help="Process every n-th video frame.")
    parser.add_argument("--model", default=None, help="SAM2 model id on the Hugging Face hub.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")
    return parser


def segment_image(
    orchestrator: InferenceOrchestrator,
    image: Image.Image,
    points: Sequence[Point],
    boxes: Sequence[Box],
) -> Image.Image:
    """Encode an image and segment it with the given prompts.

    Returns:
        Alpha mask at the image's resolution.
    """
    orchestrator.encode_image(image)
    prompt = build_prompt(points, boxes, image.size, orchestrator.model_size)
    if prompt is None:
        raise InvalidArgumentError("At least one point or box is required")
    return orchestrator.segment(prompt, image.size)


def write_outputs(
    image: Image.Image,
    mask: Image.Image,
    output: Path,
    mask_path: Path | None,
    opacity: float | None,
) -> None:
    if mask_path is not None:
        save_png(mask, mask_path)
    save_png(composite_mask_on_image(image, mask, opacity), output)


def iter_video_frames(path: Path, stride: int) -> Iterator[tuple[int, Image.Image]]:
    """Yield (frame index, RGB frame) for every ``stride``-th frame."""
    import cv2

    cap = cv2.VideoCapture(str(path))
    if not cap.isOpened():
        cap.release()
        raise OSError(f"Failed to open video {path}")
    try:
        index = 0
        while True:
            ret, frame = cap.read()
            if not ret:
                break
            if index % stride == 0:
                yield index, Image.fromarray(cv2.cvtColor(frame, cv2.COLOR_BGR2RGB))
            index += 1
    finally:
        cap.release()


def _frame_path(path: Path, index: int) -> Path:
    return path.with_name(f"{path.stem}_{index:05d}{path.suffix or '.png'}")


def run(args: argparse.Namespace) -> None:
    """Execute a parsed command line. Raises on any failure."""
    points, boxes = parse_prompts(args.point, args.type, args.box)
    if args.opacity is not None and not 0.0 <= args.opacity <= 1.0:
        raise InvalidArgumentError(f"Opacity must be between 0 and 1, got {args.opacity}")
    stride = args.frame_stride or settings.video_frame_stride
    if stride < 1:
        raise InvalidArgumentError(f"Frame stride must be at least 1, got {stride}")

    orchestrator = InferenceOrchestrator(Sam2Engine(model_id=args.model))
    orchestrator.load_model()
    logger.info(f"Models loaded in: {orchestrator.initialization_time}")

    if args.input is not None:
        try:
            image = Image.open(args.input).convert("RGB")
        except (OSError, UnidentifiedImageError) as e:
            raise OSError(f"Failed to load image {args.input}: {e}") from e
        logger.info(f"Original image size {image.size}")
        mask = segment_image(orchestrator, image, points, boxes)
        write_outputs(image, mask, args.output, args.mask, args.opacity)
        return

    if args.text:
        logger.info(f"Segmenting video frames for {args.text!r}")
    count = 0
    for index, frame in iter_video_frames(args.video, stride):
        mask = segment_image(orchestrator, frame, points, boxes)
        mask_path = _frame_path(args.mask, index) if args.mask is not None else None
        write_outputs(frame, mask, _frame_path(args.output, index), mask_path, args.opacity)
        count += 1
    if count == 0:
        raise OSError(f"Video {args.video} has no frames")
    logger.info(f"Segmented {count} frames")


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        run(args)
    except InvalidArgumentError as e:
        logger.error(str(e))
        return EXIT_USAGE
    except (SamLayerError, OSError) as e:
        logger.error(f"Segmentation failed: {e}")
        return EXIT_FAILURE
    return 0


if __name__ == "__main__":
    sys.exit(main())
