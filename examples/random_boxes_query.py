"""Build an R-tree from random boxes and cross-check every search mode.

Run from the repository root:
    python examples/random_boxes_query.py --num-boxes 500 --num-queries 20
"""

from __future__ import annotations

import argparse
import logging
import time

import jax

from rtreex import Box, BoxEntry, RTree

SEARCH_MODES = ("contained_within", "contains", "overlaps", "exact_match")


def _make_boxes(n: int, dim: int, seed: int, max_extent: float) -> list[Box]:
    key = jax.random.PRNGKey(seed)
    k1, k2 = jax.random.split(key)
    lower = jax.random.uniform(k1, (n, dim), minval=0.0, maxval=1.0)
    extent = jax.random.uniform(k2, (n, dim), minval=0.0, maxval=max_extent)
    upper = lower + extent
    return [Box(lower[i], upper[i]) for i in range(n)]


def _brute_force(entries: list[BoxEntry], query: Box, mode: str) -> set[int]:
    tests = {
        "contained_within": lambda box: query.contains_box(box),
        "contains": lambda box: box.contains_box(query),
        "overlaps": lambda box: box.overlaps(query),
        "exact_match": lambda box: box == query,
    }
    test = tests[mode]
    return {entry.payload for entry in entries if test(entry.box)}


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--num-boxes", type=int, default=300)
    parser.add_argument("--num-queries", type=int, default=10)
    parser.add_argument("--dim", type=int, default=3)
    parser.add_argument("--min-children", type=int, default=4)
    parser.add_argument("--seed", type=int, default=0)
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)

    boxes = _make_boxes(args.num_boxes, args.dim, args.seed, max_extent=0.1)
    entries = [BoxEntry(box, payload=i) for i, box in enumerate(boxes)]
    tree = RTree(min_children=args.min_children)

    start = time.perf_counter()
    for entry in entries:
        tree.insert(entry)
    elapsed = time.perf_counter() - start
    print(f"inserted {len(tree)} boxes in {elapsed:.2f}s:", tree.stats())

    queries = _make_boxes(args.num_queries, args.dim, args.seed + 1, max_extent=0.4)
    queries += [entries[0].box]
    mismatches = 0
    for query in queries:
        for mode in SEARCH_MODES:
            found = {entry.payload for entry in tree.search(query, mode)}
            expected = _brute_force(entries, query, mode)
            if found != expected:
                mismatches += 1
                print(f"[{mode}] mismatch for {query}: {sorted(found ^ expected)}")
    print(f"checked {len(queries)} queries x {len(SEARCH_MODES)} modes, mismatches={mismatches}")

    for entry in entries:
        tree.remove(entry)
    print("after removing everything:", tree, "valid:", tree.is_valid())


if __name__ == "__main__":
    main()
