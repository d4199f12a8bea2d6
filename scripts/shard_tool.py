#!/usr/bin/env python3
"""
Operator tool for the shard store.

Usage:
  # 1) one-time generator: prints an export line for the server env
  python scripts/shard_tool.py --gen-key

  # 2) print one decrypted shard (uses the configured backend + key; never writes)
  python scripts/shard_tool.py --dump indexes.json

  # 3) report ids that break referential integrity
  python scripts/shard_tool.py --check
"""
import sys, json, argparse

from ekko_server.core.indexes import dangling_ids
from ekko_server.errors import CorruptionError
from ekko_server.infra.providers import get_shard_store
from ekko_server.models.documents import INDEXES, METRICS, POSTS, RANKING, RELATIONS, SHARDS
from ekko_server.security.codec import generate_key


def gen_key():
    print("# Add this to your env (KEEP PRIVATE):")
    print(f"export DATA_ENCRYPTION_KEY={generate_key().hex()}")


def dump(name, store=None):
    if name not in SHARDS:
        print(f"unknown shard {name!r}; expected one of {', '.join(sorted(SHARDS))}", file=sys.stderr)
        return 2
    store = store or get_shard_store()
    try:
        document, version = store.peek(name)
    except CorruptionError as e:
        print(f"{name} is unreadable: {e.details['reason']}", file=sys.stderr)
        return 1
    print(f"# {name} @ {version}")
    print(json.dumps(document.to_wire(), indent=2, sort_keys=True))
    return 0


def check(store=None):
    # read-only: a wrong key must not trigger the store's self-healing writes
    store = store or get_shard_store()
    docs, unreadable = {}, []
    for name in (POSTS, METRICS, RANKING, RELATIONS, INDEXES):
        try:
            docs[name] = store.peek(name)[0]
        except CorruptionError as e:
            unreadable.append((name, e.details["reason"]))
    if unreadable:
        print("unreadable shards:")
        for name, reason in unreadable:
            print(f"  {name}: {reason}")
        return 1

    bad = dangling_ids(docs[INDEXES], docs[POSTS], docs[METRICS], docs[RANKING], docs[RELATIONS])
    if not bad:
        print(f"ok: {len(docs[POSTS].posts)} posts, no dangling ids")
        return 0
    print("dangling ids:")
    for cid in sorted(bad):
        print(f"  {cid}")
    return 1


def main():
    ap = argparse.ArgumentParser()
    ap.add_argument("--gen-key", action="store_true")
    ap.add_argument("--dump", metavar="SHARD")
    ap.add_argument("--check", action="store_true")
    args = ap.parse_args()

    if args.gen_key:
        gen_key()
        return 0
    if args.dump:
        return dump(args.dump)
    if args.check:
        return check()
    ap.print_help()
    return 2

if __name__ == "__main__":
    raise SystemExit(main())
