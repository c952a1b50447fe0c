#!/usr/bin/env python3
"""Check whether a product fits measured door or space dimensions."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from willitfit.catalog import get_product, load_products
from willitfit.config import load_config
from willitfit.contracts import (
    DoorMeasurement,
    HitQuality,
    MeasurementResult,
    Product,
    SpaceMeasurement,
)
from willitfit.verdict_engine import evaluate, suggest_rotation

_QUALITY_BY_KEY = {quality.key: quality for quality in HitQuality}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Evaluate measured door/space dimensions against a product"
    )
    parser.add_argument("--mode", choices=["door", "space"], default="door")
    parser.add_argument("--width-cm", type=float, required=True, help="Measured width")
    parser.add_argument("--height-cm", type=float, required=True, help="Measured height")
    parser.add_argument(
        "--depth-cm", type=float, default=None, help="Measured depth (space mode)"
    )
    parser.add_argument(
        "--uncertainty-cm",
        type=float,
        default=0.5,
        help="Uncertainty applied to every measured dimension",
    )
    parser.add_argument(
        "--confidence",
        type=float,
        default=1.0,
        help="Confidence score (0-1) applied to every measured dimension",
    )
    parser.add_argument(
        "--hit-quality",
        choices=sorted(_QUALITY_BY_KEY),
        default=HitQuality.EXISTING_PLANE.key,
        help="Hit quality of the measured dimensions",
    )
    parser.add_argument(
        "--product", default=None, help="Product id from the catalog"
    )
    parser.add_argument(
        "--product-dims",
        type=float,
        nargs=3,
        metavar=("W", "H", "D"),
        default=None,
        help="Explicit product width/height/depth in cm",
    )
    parser.add_argument(
        "--allow-rotate",
        action="store_true",
        help="Allow the explicit product to rotate through a door",
    )
    parser.add_argument("--catalog", default=None, help="Product catalog JSON")
    parser.add_argument("--config", default=None, help="Config overrides JSON")
    parser.add_argument("--json", action="store_true", help="Print JSON output")
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable debug logs"
    )
    return parser


def _resolve_product(args: argparse.Namespace, parser: argparse.ArgumentParser) -> Product:
    if args.product_dims is not None:
        w, h, d = args.product_dims
        return Product(
            id="custom",
            name="Custom product",
            category="Custom",
            width_cm=w,
            height_cm=h,
            depth_cm=d,
            allow_rotate=args.allow_rotate,
        )
    if args.product is None:
        parser.error("either --product or --product-dims is required")
    try:
        return get_product(args.product, load_products(args.catalog))
    except KeyError as exc:
        parser.error(str(exc.args[0]))


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    config = load_config(args.config)
    product = _resolve_product(args, parser)
    quality = _QUALITY_BY_KEY[args.hit_quality]

    def result(dimension: str, value_cm: float) -> MeasurementResult:
        return MeasurementResult(
            dimension=dimension,
            value_cm=value_cm,
            uncertainty_cm=args.uncertainty_cm,
            confidence_score=max(0.0, min(1.0, args.confidence)),
            hit_quality=quality,
        )

    rotate_hint = False
    if args.mode == "door":
        measurement = DoorMeasurement(
            width=result("width", args.width_cm),
            height=result("height", args.height_cm),
        )
        rotate_hint = suggest_rotation(measurement, product, config.verdict)
    else:
        if args.depth_cm is None:
            parser.error("--depth-cm is required in space mode")
        measurement = SpaceMeasurement(
            width=result("width", args.width_cm),
            depth=result("depth", args.depth_cm),
            height=result("height", args.height_cm),
        )

    verdict = evaluate(measurement, product, config.verdict)

    if args.json:
        payload = verdict.to_dict()
        payload["product"] = product.id
        payload["mode"] = args.mode
        payload["rotation_may_help"] = rotate_hint
        print(json.dumps(payload, indent=2))
    else:
        print(f"Product: {product.name} ({product.dimensions_text})")
        print(f"Verdict: {verdict.title}")
        print(f"Reason: {verdict.reason}")
        if rotate_hint:
            print("Hint: rotating the product may help it fit through the door")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
