from __future__ import annotations

import argparse
import logging
import time
from pathlib import Path

from dotenv import load_dotenv
from tqdm import tqdm

from bodypix_mask.catalog import MODEL_CATALOG
from bodypix_mask.config import DEFAULT_MODEL
from bodypix_mask.interpolate import Interpolation
from bodypix_mask.pipeline import load_model_default, process_image


def _iter_images(input_dir: Path):
    exts = {".jpg", ".jpeg", ".png", ".gif", ".bmp", ".tif", ".tiff"}
    for p in sorted(input_dir.rglob("*")):
        if p.is_file() and p.suffix.lower() in exts:
            yield p


def main() -> int:
    load_dotenv()

    parser = argparse.ArgumentParser(description="BodyPix person mask, silhouette and cutout (batch=1, float32).")
    parser.add_argument("--input", type=str, help="Input directory containing images.")
    parser.add_argument("--output", type=str, help="Output directory for mask / silhouette / cutout PNGs.")
    parser.add_argument("--model", default=DEFAULT_MODEL, choices=sorted(MODEL_CATALOG), help="Catalog model label.")
    parser.add_argument("--weights", default=None, type=str, help="Override weights path (.pb or TorchScript).")
    parser.add_argument(
        "--interpolation",
        default=Interpolation.LINEAR_MEAN.value,
        choices=[p.value for p in Interpolation],
        help="Grid upsampling policy.",
    )
    parser.add_argument("--workers", default=1, type=int, help="Threads used for per-pixel interpolation.")
    parser.add_argument("--list-models", action="store_true", help="Print the model catalog and exit.")
    parser.add_argument("-v", "--verbose", action="store_true")
    parser.add_argument("-q", "--quiet", action="store_true")
    args = parser.parse_args()

    if args.quiet:
        level = logging.ERROR
    elif args.verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")

    if args.list_models:
        for label, d in MODEL_CATALOG.items():
            print(f"{label:24s} {d.display_name:28s} stride={d.stride:<3d} {d.weights_file}")
        return 0

    if not args.input or not args.output:
        parser.error("--input and --output are required")

    input_dir = Path(args.input)
    output_dir = Path(args.output)
    if not input_dir.exists():
        raise FileNotFoundError(f"Input dir not found: {input_dir}")

    engine, descriptor = load_model_default(args.model, args.weights)
    policy = Interpolation(args.interpolation)

    images = list(_iter_images(input_dir))
    if not images:
        print(f"No images found under {input_dir}")
        return 0

    total0 = time.perf_counter()
    for img_path in tqdm(images, desc="Segmenting", unit="img"):
        rel = img_path.relative_to(input_dir)
        out_dir = output_dir / rel.parent
        _, timings = process_image(
            str(img_path),
            str(out_dir),
            engine,
            descriptor,
            model_label=args.model,
            policy=policy,
            workers=args.workers,
        )

        if not args.quiet:
            print(
                f"{img_path.name}: total={timings.total_s:.3f}s "
                f"(pre={timings.preprocess_s:.3f}s inf={timings.inference_s:.3f}s "
                f"interp={timings.interpolate_s:.3f}s save={timings.save_s:.3f}s)"
            )

    total1 = time.perf_counter()
    print(f"Done. {len(images)} images in {total1-total0:.2f}s")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
