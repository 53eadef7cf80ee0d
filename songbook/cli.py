#!/usr/bin/env python3
"""Command-line interface for Songbook.

This module provides CLI commands for songs and their stored files.
Uses only core/ modules.

Commands:
    list-songs                   List all songs
    show-song <id>               Show a song with its collections and files
    new-song <name>              Create a new song
    rename-song <id> <name>      Rename a song (moves all its files)
    delete-song <id>             Delete a song with all its files
    upload <song> <type> <path>  Upload a file into a song
    delete-files <id>...         Delete files by id
    check                        Report files whose stored path or bytes are off
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Dict, Optional

from songbook.core.assets import get_song_view, list_song_views
from songbook.core.audio import is_supported_audio_format
from songbook.core.config import Config
from songbook.core.database import Database
from songbook.core.errors import SongbookError
from songbook.core.file_store import create_file_store
from songbook.core.models import AssetType, ReconcileReport
from songbook.core.reconciler import AssetReconciler
from songbook.core.validation import (
    ValidationError,
    validate_asset_type,
    validate_entity_id,
    validate_entity_ids,
)


def format_duration(seconds: float) -> str:
    """Format seconds as m:ss."""
    seconds = int(round(seconds or 0))
    return f"{seconds // 60}:{seconds % 60:02d}"


def format_file_line(file_row: Dict[str, Any], indent: str = "  ") -> str:
    line = f"{indent}[{file_row['id']}] {file_row['file_path']}"
    if file_row.get("duration"):
        line += f" ({format_duration(file_row['duration'])})"
    return line


def format_song(song: Dict[str, Any], format_type: str = "text") -> str:
    """Format a song view for display.

    Args:
        song: Song view with nested asset lists
        format_type: Output format (text, json)

    Returns:
        Formatted song string
    """
    if format_type == "json":
        return json.dumps(song, indent=2, ensure_ascii=False)

    lines = [
        f"ID: {song['id']}",
        f"Name: {song['name'] or '(untitled)'}",
        f"Status: {song['status']}",
    ]
    if song.get("type"):
        lines.append(f"Type: {song['type']}")
    if song.get("description"):
        lines.append(f"Description: {song['description']}")
    lines.append(f"Created: {song['created_at']}")

    for asset_type in AssetType:
        entries = song.get(asset_type.response_key) or []
        if not entries:
            continue
        lines.append(f"\n{asset_type.label}:")
        for entry in entries:
            if entry.get("kind") == "collection":
                lines.append(f"  Collection [{entry['id']}] {entry['name'] or '(unnamed)'}")
                lines.extend(format_file_line(part, "    ") for part in entry["parts"])
            else:
                lines.append(format_file_line(entry))
    return "\n".join(lines)


def print_report(report: ReconcileReport, format_type: str) -> None:
    if format_type == "json":
        print(json.dumps(report.to_dict(), indent=2))
        return
    for failure in report.failures:
        print(f"  Warning: file {failure['file_id']}: {failure['reason']}", file=sys.stderr)


def cmd_list_songs(db: Database, args: argparse.Namespace) -> int:
    """List all songs.

    Args:
        db: Database instance
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success)
    """
    songs = list_song_views(db)

    if args.format == "json":
        print(json.dumps(songs, indent=2, ensure_ascii=False))
        return 0

    if not songs:
        print("No songs found.")
        return 0

    for song in songs:
        counts = []
        for asset_type in AssetType:
            total = 0
            for entry in song[asset_type.response_key]:
                total += len(entry["parts"]) if entry.get("kind") == "collection" else 1
            if total:
                counts.append(f"{asset_type.label}: {total}")
        summary = f" ({', '.join(counts)})" if counts else ""
        print(f"ID: {song['id']} | {song['name'] or '(untitled)'} | {song['status']}{summary}")
    return 0


def cmd_show_song(db: Database, args: argparse.Namespace) -> int:
    """Show details of a specific song.

    Returns:
        Exit code (0 for success, 1 for not found)
    """
    song_id = validate_entity_id(args.song_id, "song_id")
    song = get_song_view(db, song_id)
    if not song:
        print(f"Error: Song with ID {song_id} not found.", file=sys.stderr)
        return 1

    print(format_song(song, args.format))
    return 0


def cmd_new_song(reconciler: AssetReconciler, args: argparse.Namespace) -> int:
    """Create a new song.

    Returns:
        Exit code (0 for success)
    """
    song = reconciler.create_song(
        name=args.name,
        description=args.description or "",
        type=args.type or "",
        status=args.status or "Active",
    )
    if args.format == "json":
        print(json.dumps(song, ensure_ascii=False))
    else:
        print(f"Created song #{song['id']}")
    return 0


def cmd_rename_song(reconciler: AssetReconciler, args: argparse.Namespace) -> int:
    """Rename a song and move its files.

    Returns:
        Exit code (0 for success, 1 if any file could not be moved)
    """
    song_id = validate_entity_id(args.song_id, "song_id")
    report = reconciler.rename_song(song_id, args.name)
    if args.format == "json":
        print_report(report, args.format)
    else:
        print(f"Renamed song #{song_id}, moved {len(report.moved_files)} file(s)")
        print_report(report, args.format)
    return 0 if report.ok else 1


def cmd_delete_song(reconciler: AssetReconciler, args: argparse.Namespace) -> int:
    """Delete a song with all its collections and files.

    Returns:
        Exit code (0 for success)
    """
    song_id = validate_entity_id(args.song_id, "song_id")
    report = reconciler.delete_song(song_id)
    if args.format == "json":
        print_report(report, args.format)
    else:
        print(f"Deleted song #{song_id} and {len(report.deleted_files)} file(s)")
        print_report(report, args.format)
    return 0 if report.ok else 1


def cmd_upload(reconciler: AssetReconciler, args: argparse.Namespace) -> int:
    """Upload a local file into a song.

    Returns:
        Exit code (0 for success, 1 for error)
    """
    source = Path(args.path)
    if not source.is_file():
        print(f"Error: File not found: {source}", file=sys.stderr)
        return 1

    asset_type = validate_asset_type(args.asset_type)
    if asset_type is AssetType.RECORDINGS and not is_supported_audio_format(source.name):
        print(f"Warning: {source.name} is not a recognised audio format", file=sys.stderr)

    metadata = {
        "name": args.name,
        "description": args.description,
        "date": args.date,
        "album": args.album,
        "instrument": args.instrument,
    }
    file_row = reconciler.upload_file(
        validate_entity_id(args.song_id, "song_id"),
        asset_type,
        source.read_bytes(),
        source.name,
        {k: v for k, v in metadata.items() if v is not None},
        collection_id=validate_entity_id(args.collection_id, "collection_id") if args.collection_id else None,
        collection_name=args.collection_name,
    )
    if args.format == "json":
        print(json.dumps({"id": file_row["id"], "filePath": file_row["file_path"]}))
    else:
        print(f"Stored file #{file_row['id']} at {file_row['file_path']}")
    return 0


def cmd_delete_files(reconciler: AssetReconciler, args: argparse.Namespace) -> int:
    """Delete files by id; unknown ids are skipped.

    Returns:
        Exit code (0 for success, 1 if any file could not be deleted)
    """
    file_ids = validate_entity_ids(list(args.file_ids), "file_ids")
    report = reconciler.delete_files(file_ids)
    if args.format == "json":
        print_report(report, args.format)
    else:
        print(f"Deleted {len(report.deleted_files)} file(s)")
        print_report(report, args.format)
    return 0 if report.ok else 1


def cmd_check(reconciler: AssetReconciler, args: argparse.Namespace) -> int:
    """Report files whose catalog path or stored bytes are inconsistent.

    Returns:
        Exit code (0 if consistent, 1 otherwise)
    """
    problems = reconciler.find_inconsistencies()

    if args.format == "json":
        print(json.dumps(problems, indent=2, ensure_ascii=False))
    elif not problems:
        print("All files consistent.")
    else:
        for problem in problems:
            if problem["problem"] == "missing":
                print(f"File #{problem['file_id']}: stored bytes missing at {problem['file_path']}")
            else:
                print(
                    f"File #{problem['file_id']}: stored at {problem['file_path']}, "
                    f"expected {problem['expected_path']}"
                )
        print(f"\n{len(problems)} problem(s) found")
    return 0 if not problems else 1


def add_cli_subparser(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    """Add CLI subparser and its nested subcommands.

    Args:
        subparsers: Parent subparsers object to add CLI parser to
    """
    cli_parser = subparsers.add_parser(
        "cli",
        help="Command-line interface",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    cli_parser.add_argument(
        "--format",
        choices=["text", "json"],
        default="text",
        help="Output format (default: text)"
    )

    cli_subparsers = cli_parser.add_subparsers(dest="cli_command", help="CLI commands")

    cli_subparsers.add_parser("list-songs", help="List all songs")

    show_parser = cli_subparsers.add_parser("show-song", help="Show a song with its assets")
    show_parser.add_argument("song_id", type=str, help="ID of the song to show")

    new_song_parser = cli_subparsers.add_parser("new-song", help="Create a new song")
    new_song_parser.add_argument("name", type=str, help="Song name")
    new_song_parser.add_argument("--description", type=str, default=None, help="Song description")
    new_song_parser.add_argument("--type", type=str, default=None, help="Song type")
    new_song_parser.add_argument("--status", type=str, default=None, help="Song status (default: Active)")

    rename_parser = cli_subparsers.add_parser("rename-song", help="Rename a song and move its files")
    rename_parser.add_argument("song_id", type=str, help="ID of the song to rename")
    rename_parser.add_argument("name", type=str, help="New song name")

    delete_song_parser = cli_subparsers.add_parser("delete-song", help="Delete a song and all its files")
    delete_song_parser.add_argument("song_id", type=str, help="ID of the song to delete")

    upload_parser = cli_subparsers.add_parser("upload", help="Upload a file into a song")
    upload_parser.add_argument("song_id", type=str, help="ID of the song")
    upload_parser.add_argument(
        "asset_type",
        type=str,
        help="Asset type: Recordings, SheetMusic, Lyrics or OtherFiles"
    )
    upload_parser.add_argument("path", type=str, help="Path of the local file to upload")
    group = upload_parser.add_mutually_exclusive_group()
    group.add_argument("--collection-id", type=str, default=None, help="Put the file in this collection")
    group.add_argument(
        "--collection-name",
        type=str,
        default=None,
        help="Put the file in the collection of this name (created if missing)"
    )
    for option in ("name", "description", "date", "album", "instrument"):
        upload_parser.add_argument(f"--{option}", type=str, default=None, help=f"File {option}")

    delete_files_parser = cli_subparsers.add_parser("delete-files", help="Delete files by id")
    delete_files_parser.add_argument("file_ids", nargs="+", type=str, help="IDs of the files to delete")

    cli_subparsers.add_parser(
        "check",
        help="Report files whose stored path or bytes are inconsistent with the catalog"
    )


def run(config_dir: Optional[Path], args: argparse.Namespace) -> int:
    """Run CLI with given arguments.

    Args:
        config_dir: Custom configuration directory or None for default
        args: Parsed command-line arguments (should have cli_command attribute)

    Returns:
        Exit code (0 for success, 1 for error)
    """
    if not hasattr(args, "cli_command") or not args.cli_command:
        print("Error: No CLI command specified. Use --help for available commands.", file=sys.stderr)
        return 1

    # Initialize config, database and reconciler
    config = Config(config_dir=config_dir)
    db_path = config.get_database_file()
    db_path.parent.mkdir(parents=True, exist_ok=True)
    db = Database(db_path)

    try:
        reconciler = AssetReconciler(db, create_file_store(config), config.get_max_upload_bytes())

        if args.cli_command == "list-songs":
            return cmd_list_songs(db, args)
        elif args.cli_command == "show-song":
            return cmd_show_song(db, args)
        elif args.cli_command == "new-song":
            return cmd_new_song(reconciler, args)
        elif args.cli_command == "rename-song":
            return cmd_rename_song(reconciler, args)
        elif args.cli_command == "delete-song":
            return cmd_delete_song(reconciler, args)
        elif args.cli_command == "upload":
            return cmd_upload(reconciler, args)
        elif args.cli_command == "delete-files":
            return cmd_delete_files(reconciler, args)
        elif args.cli_command == "check":
            return cmd_check(reconciler, args)
        else:
            print(f"Error: Unknown command '{args.cli_command}'", file=sys.stderr)
            return 1
    except ValidationError as e:
        print(f"Error: Invalid {e.field} - {e.message}", file=sys.stderr)
        return 1
    except SongbookError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        db.close()
