"""
ARTMATCH Artist Registry
========================
Maintain the artists (and their aliases) that ingestion scrapes.

Usage:
    python -m artmatch_etl.jobs.manage_artists init-db
    python -m artmatch_etl.jobs.manage_artists add-artist "some_artist"
    python -m artmatch_etl.jobs.manage_artists add-alias "some_artist" "other_tag"
    python -m artmatch_etl.jobs.manage_artists delete-alias "other_tag"
    python -m artmatch_etl.jobs.manage_artists list
    python -m artmatch_etl.jobs.manage_artists status
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import List

from ..checkpoint import CheckpointStore
from ..corpus import CorpusStore
from ..db import dispose_engine, get_engine
from ..models import Artist
from ..schema import create_schema

logger = logging.getLogger(__name__)


def format_artist_list(artists: List[Artist]) -> List[str]:
    """One numbered line per artist, aliases in parentheses."""
    lines = []
    for idx, artist in enumerate(artists, start=1):
        if artist.aliases:
            lines.append(f"{idx}. {artist.name} ({', '.join(artist.aliases)})")
        else:
            lines.append(f"{idx}. {artist.name}")
    return lines


async def add_artist(store: CorpusStore, name: str) -> str:
    artist_id = await store.add_artist(name)
    return f'artist "{name}" registered with id {artist_id}.'


async def add_alias(store: CorpusStore, artist: str, alias: str) -> str:
    try:
        added = await store.add_alias(artist, alias)
    except LookupError:
        return f'artist "{artist}" does not exist.'
    if not added:
        return f'alias "{alias}" already exists.'
    return f'added alias "{alias}" for artist "{artist}".'


async def delete_alias(store: CorpusStore, alias: str) -> str:
    if await store.delete_alias(alias):
        return f'deleted alias "{alias}".'
    return f'alias "{alias}" does not exist.'


async def list_artists(store: CorpusStore) -> str:
    artists = await store.list_artists()
    if not artists:
        return "no artists found in database!"
    return "\n".join(format_artist_list(artists))


async def status(store: CorpusStore, checkpoints: CheckpointStore) -> str:
    """Corpus size per source and every scrape watermark."""
    counts = await store.count_by_source()
    names = {artist.id: artist.name for artist in await store.list_artists()}

    lines = [f"artworks: {sum(counts.values()):,}"]
    for source, total in counts.items():
        lines.append(f"  {source:10} {total:,}")
    lines.append("checkpoints:")
    for checkpoint in await checkpoints.list_all():
        last_run = checkpoint.last_run.isoformat() if checkpoint.last_run else "never"
        lines.append(
            f"  {names.get(checkpoint.artist_id, checkpoint.artist_id)} "
            f"[{checkpoint.source.value}] watermark={checkpoint.watermark} last_run={last_run}"
        )
    return "\n".join(lines)


async def _run(args: argparse.Namespace) -> str:
    store = CorpusStore()
    try:
        if args.command == "init-db":
            await create_schema(get_engine())
            return "schema created."
        if args.command == "add-artist":
            return await add_artist(store, args.name)
        if args.command == "add-alias":
            return await add_alias(store, args.artist, args.alias)
        if args.command == "delete-alias":
            return await delete_alias(store, args.alias)
        if args.command == "list":
            return await list_artists(store)
        return await status(store, CheckpointStore())
    finally:
        await dispose_engine()


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    parser = argparse.ArgumentParser(description="Manage ARTMATCH artists")
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("init-db", help="Create missing tables")

    add_artist_parser = commands.add_parser("add-artist", help="Register an artist tag")
    add_artist_parser.add_argument("name")

    add_alias_parser = commands.add_parser("add-alias", help="Scrape an extra tag for an artist")
    add_alias_parser.add_argument("artist")
    add_alias_parser.add_argument("alias")

    delete_alias_parser = commands.add_parser("delete-alias", help="Stop scraping a tag")
    delete_alias_parser.add_argument("alias")

    commands.add_parser("list", help="List artists and aliases")
    commands.add_parser("status", help="Corpus size and scrape checkpoints")

    args = parser.parse_args()
    print(asyncio.run(_run(args)))


if __name__ == "__main__":
    main()
