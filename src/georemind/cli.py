"""
GeoRemind CLI entrypoint.

Intended for quick local inspection of a store without running the API:
distances, recording observations, suggestions and nearest-reminder lookups.
"""

from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Any

from georemind.config.settings import get_settings
from georemind.core.env import resolve_project_path
from georemind.core.errors import GeoRemindError
from georemind.core.geo import GeoPoint, distance_m
from georemind.core.logging import configure_logging
from georemind.history.aggregator import record_observation
from georemind.storage.json_store import JsonFileStore
from georemind.suggestions.ranker import build_suggestions, nearest_reminder, time_based_suggestions


def _open_store(args: argparse.Namespace) -> JsonFileStore:
    path = Path(args.store) if args.store else resolve_project_path(get_settings().storage.path)
    return JsonFileStore(path)


def _cmd_distance(args: argparse.Namespace) -> int:
    a = GeoPoint(lon=args.lon1, lat=args.lat1)
    b = GeoPoint(lon=args.lon2, lat=args.lat2)
    print(f"{distance_m(a, b):.2f}")
    return 0


def _cmd_record(args: argparse.Namespace) -> int:
    cfg = get_settings().proximity
    record = record_observation(
        _open_store(args),
        args.user,
        GeoPoint(lon=args.lon, lat=args.lat),
        kind=args.kind,
        increment_by=args.frequency,
        match_radius_m=args.match_radius if args.match_radius is not None else cfg.match_radius_m,
        policy=cfg.match_policy,
    )
    print(json.dumps(record.model_dump(mode="json"), ensure_ascii=False, indent=2))
    return 0


def _cmd_suggest(args: argparse.Namespace) -> int:
    settings = get_settings()
    cfg = settings.suggestions
    store = _open_store(args)
    if args.time_based:
        suggestions = time_based_suggestions(
            store,
            args.user,
            kind=args.kind,
            timezone=settings.app.timezone,
            default_radius_m=cfg.default_radius_m,
            limit=cfg.time_based_limit,
        )
    else:
        suggestions = build_suggestions(
            store,
            args.user,
            kind=args.kind,
            min_cluster_frequency=cfg.min_cluster_frequency,
            cluster_radius_m=cfg.cluster_radius_m,
            limit=cfg.general_limit,
        )

    items = list(suggestions)
    if args.json:
        print(json.dumps([s.model_dump(mode="json") for s in items], ensure_ascii=False, indent=2))
        return 0
    if not items:
        print("No suggestions.")
        return 0
    for i, s in enumerate(items, start=1):
        print(f"{i:>2}. [{s.type}] {s.message} (frequency={s.frequency})")
    return 0


def _cmd_nearest(args: argparse.Namespace) -> int:
    match = nearest_reminder(_open_store(args), args.user, GeoPoint(lon=args.lon, lat=args.lat))
    if match is None:
        print("No reminders.")
        return 0
    print(f"{match.entity.message}  ~{int(match.distance_m)}m  (id={match.entity.id})")
    return 0


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the GeoRemind CLI."""
    parser = argparse.ArgumentParser(prog="georemind")
    sub = parser.add_subparsers(dest="command", required=True)

    dist = sub.add_parser("distance", help="Great-circle distance in meters between two points.")
    dist.add_argument("lon1", type=float)
    dist.add_argument("lat1", type=float)
    dist.add_argument("lon2", type=float)
    dist.add_argument("lat2", type=float)
    dist.set_defaults(func=_cmd_distance)

    def add_store_args(p: argparse.ArgumentParser) -> None:
        p.add_argument("--user", required=True, help="Opaque user id")
        p.add_argument("--store", default=None, help="JSON store path (default: storage.path setting)")

    rec = sub.add_parser("record", help="Fold a parking/driving observation into history.")
    add_store_args(rec)
    rec.add_argument("--lon", required=True, type=float)
    rec.add_argument("--lat", required=True, type=float)
    rec.add_argument("--kind", choices=["parked", "driving"], default="parked")
    rec.add_argument("--frequency", type=int, default=1, help="Increment (>= 1)")
    rec.add_argument("--match-radius", type=float, default=None, help="Meters; default from settings")
    rec.set_defaults(func=_cmd_record)

    sug = sub.add_parser("suggest", help="Show smart suggestions for a user.")
    add_store_args(sug)
    sug.add_argument("--kind", choices=["parked", "driving"], default="parked")
    sug.add_argument("--time-based", action="store_true", help="Weekday/time-of-day prompts instead")
    sug.add_argument("--json", action="store_true", help="Output machine-readable JSON")
    sug.set_defaults(func=_cmd_suggest)

    near = sub.add_parser("nearest", help="Closest open reminder to a position.")
    add_store_args(near)
    near.add_argument("--lon", required=True, type=float)
    near.add_argument("--lat", required=True, type=float)
    near.set_defaults(func=_cmd_nearest)
    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint callable used by `python -m georemind.cli`."""
    configure_logging()
    parser = build_parser()
    args = parser.parse_args(argv)
    func: Any = getattr(args, "func")
    try:
        return int(func(args))
    except GeoRemindError as e:
        parser.exit(2, f"error: {e}\n")


if __name__ == "__main__":
    raise SystemExit(main())
