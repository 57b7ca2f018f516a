#!/usr/bin/env python3
"""Print the layer table of a darknet cfg file.

Usage:
    python scripts/inspect_cfg.py configs/yolov3-tiny.cfg
    python scripts/inspect_cfg.py configs/yolov3-tiny.cfg --options configs/parse_options.yaml
    python scripts/inspect_cfg.py configs/yolov3-tiny.cfg --slices
    python scripts/inspect_cfg.py configs/yolov3-tiny.cfg --serialize
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from darknet_cfg import ConfigError, ParseOptions, parse_file, plan_weights, resolve, serialize


def format_refs(refs: tuple[int, ...]) -> str:
    return ",".join(str(r) for r in refs) or "-"


def main() -> None:
    parser = argparse.ArgumentParser(description="Inspect a darknet cfg file")
    parser.add_argument("cfg", type=Path, help="Path to .cfg file")
    parser.add_argument("--options", type=Path, default=None, help="ParseOptions YAML file")
    parser.add_argument("--slices", action="store_true", help="Print weight stream offsets")
    parser.add_argument("--serialize", action="store_true", help="Print the canonical cfg text")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s | %(message)s",
        datefmt="%H:%M:%S",
    )

    options = ParseOptions.from_yaml(args.options) if args.options else ParseOptions()
    try:
        config = parse_file(args.cfg, options)
        network = resolve(config)
        plan = plan_weights(network)
    except ConfigError as err:
        print(f"{args.cfg}: {err}", file=sys.stderr)
        sys.exit(1)

    if args.serialize:
        print(serialize(config), end="")
        return

    print(f"Input: {network.input_shape}")
    print(f"{'idx':>4} {'kind':<14} {'refs':<10} {'output':<16} {'weights':>10}")
    print("-" * 58)
    for layer, weights in zip(network.layers, plan.layers):
        size = weights.size if weights.load else f"({weights.size})"
        print(
            f"{layer.index:>4} {layer.kind.value:<14} {format_refs(layer.references):<10} "
            f"{str(layer.output_shape):<16} {size:>10}"
        )
    print("-" * 58)
    print(f"Total weights: {plan.total:,}")

    if args.slices:
        print()
        for index, name, start, stop in plan.slices():
            print(f"{index:>4} {name:<12} [{start}, {stop})")


if __name__ == "__main__":
    main()
