from __future__ import annotations

import argparse
import json
import logging
import shutil
from pathlib import Path
from typing import Dict, Iterable, List

import requests
from dotenv import load_dotenv
from tqdm import tqdm

from bodypix_mask.catalog import MODEL_CATALOG, ModelDescriptor
from bodypix_mask.config import get_base_url, get_models_dir, get_timeout_s

logger = logging.getLogger(__name__)


def _download(url: str, out_path: Path) -> bytes:
    resp = requests.get(url, timeout=get_timeout_s())
    resp.raise_for_status()
    data = resp.content
    out_path.write_bytes(data)
    return data


def shard_paths(manifest: Dict) -> List[str]:
    """
    Weight shard file names listed by a TF.js model.json.
    """
    weights_manifest = manifest.get("weightsManifest") or []
    if not weights_manifest:
        raise ValueError("model.json has no weightsManifest")
    paths = weights_manifest[0].get("paths") or []
    if not paths:
        raise ValueError("model.json weightsManifest lists no shard paths")
    return [str(p) for p in paths]


def fetch_model(descriptor: ModelDescriptor, tmp_dir: Path) -> Path:
    """
    Download the TF.js manifest and its weight shards into tmp_dir.

    Shards already on disk are kept; the manifest is always refreshed.
    Returns the local manifest path.
    """
    base_url = f"{get_base_url()}/{descriptor.remote_path}/"
    tmp_dir.mkdir(parents=True, exist_ok=True)

    manifest_path = tmp_dir / descriptor.manifest_name
    raw = _download(base_url + descriptor.manifest_name, manifest_path)
    try:
        manifest = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid model manifest: {base_url + descriptor.manifest_name}") from e

    for shard in shard_paths(manifest):
        shard_path = tmp_dir / shard
        if shard_path.exists():
            continue
        _download(base_url + shard, shard_path)
    return manifest_path


def convert_to_frozen_graph(manifest_path: Path, out_path: Path) -> None:
    """
    TF.js graph model -> TensorFlow frozen graph via tfjs-graph-converter.
    """
    try:
        from tfjs_graph_converter.converter import convert
    except Exception as e:  # noqa: BLE001
        raise RuntimeError(
            "tfjs-graph-converter is not installed. Run: pip install 'bodypix-mask[convert]'"
        ) from e

    if out_path.exists():
        out_path.unlink()
    out_path.parent.mkdir(parents=True, exist_ok=True)
    convert([str(manifest_path), str(out_path), "-s"])


def build_models(labels: Iterable[str], models_dir: Path, tmp_root: Path, *, keep_tmp: bool = False) -> List[Path]:
    written: List[Path] = []
    try:
        for label in tqdm(list(labels), desc="Models", unit="model"):
            descriptor = MODEL_CATALOG[label]
            tmp_dir = tmp_root / descriptor.remote_path.replace("/", "_")
            manifest_path = fetch_model(descriptor, tmp_dir)
            out_path = models_dir / descriptor.weights_file
            convert_to_frozen_graph(manifest_path, out_path)
            logger.info("%s -> %s", label, out_path)
            written.append(out_path)
    finally:
        if not keep_tmp and tmp_root.exists():
            shutil.rmtree(tmp_root)
    return written


def main() -> int:
    load_dotenv()

    parser = argparse.ArgumentParser(description="Download BodyPix TF.js models and convert them to frozen graphs.")
    parser.add_argument(
        "--models",
        nargs="*",
        default=sorted(MODEL_CATALOG),
        choices=sorted(MODEL_CATALOG),
        help="Catalog labels to fetch (default: all).",
    )
    parser.add_argument("--out", default=None, help="Destination directory (default: BODYPIX_MODELS_DIR or assets/models).")
    parser.add_argument("--tmp", default="./target/tmp", help="Scratch directory for TF.js downloads.")
    parser.add_argument("--keep-tmp", action="store_true", help="Keep downloaded TF.js files.")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")

    models_dir = Path(args.out or get_models_dir())
    written = build_models(args.models, models_dir, Path(args.tmp), keep_tmp=args.keep_tmp)
    print(f"OK. Wrote {len(written)} frozen graph(s) to: {models_dir}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
