#!/usr/bin/env python3
"""
Rebuild the Markov map and harvested-id index from the corpus log.
Use after a crash left the map and log out of step, or to change chain length.
"""

import argparse
import sys
from pathlib import Path

from tubebrain.config import settings
from tubebrain.services.harvester import rebuild_from_corpus
from tubebrain.services.storage import ModelStore, StorageError, StoragePaths
from tubebrain.utils.logger import log_error, log_info


def parse_args():
    parser = argparse.ArgumentParser(description="Rebuild the Markov map from the corpus log")

    parser.add_argument("--corpus", type=str, default=settings.CORPUS_LOG_PATH,
                       help="Corpus log (JSON Lines)")
    parser.add_argument("--map", type=str, default=settings.MAP_PATH,
                       help="Output map file")
    parser.add_argument("--ids", type=str, default=settings.HARVESTED_IDS_PATH,
                       help="Output harvested-id index")
    parser.add_argument("--chain_length", type=int, default=settings.CHAIN_LENGTH,
                       help="Tokens per chain key")
    parser.add_argument("--dry_run", action="store_true",
                       help="Report what would be written without writing")

    return parser.parse_args()


def main():
    args = parse_args()

    store = ModelStore(StoragePaths(
        map_path=Path(args.map),
        ids_path=Path(args.ids),
        corpus_log_path=Path(args.corpus),
    ))
    if not store.has_corpus():
        log_error("[Rebuild] Corpus log not found", path=args.corpus)
        return 1

    tmap, ids = rebuild_from_corpus(store, args.chain_length)
    print(f"Keys: {len(tmap)}")
    print(f"Branching factor: {tmap.branching_factor():.3f}")
    print(f"Completed sequences: {tmap.completed_sequences()}")
    print(f"Harvested videos: {len(ids)}")

    if args.dry_run:
        return 0
    try:
        store.save(tmap, ids)
    except StorageError as e:
        log_error("[Rebuild] Failed to save", error=e)
        return 2
    log_info("[Rebuild] Saved map", path=args.map, bytes=store.map_size())
    return 0


if __name__ == "__main__":
    sys.exit(main())
