import asyncio
import sys
from argparse import ArgumentParser

from rich.markup import escape
from rich.pretty import Pretty

from bento_torrent.bencoding import bendecode
from bento_torrent.errors import BentoTorrentError
from bento_torrent.metainfo import load_torrent_metadata
from bento_torrent.tracker.base import DEFAULT_PORT, TrackerFailure, TrackerRequestParameters, generate_peer_id
from bento_torrent.tracker.http import ANNOUNCE_TIMEOUT, TrackerHTTP
from bento_torrent.ui import console, files_table, metainfo_table, peers_table

argparser = ArgumentParser("bento-torrent", description="Inspect torrent files and query their trackers")
subparsers = argparser.add_subparsers(dest="command", required=True)

info_parser = subparsers.add_parser("info", help="Show the metadata of a .torrent file")
info_parser.add_argument("torrent", help="Path to a .torrent file", type=str)

dump_parser = subparsers.add_parser("dump", help="Print the decoded contents of any bencoded file")
dump_parser.add_argument("file", help="Path to a bencoded file", type=str)

announce_parser = subparsers.add_parser("announce", help="Announce to the torrent's tracker and list peers")
announce_parser.add_argument("torrent", help="Path to a .torrent file", type=str)
announce_parser.add_argument("-p", "--port", help=f"Port we claim to listen on. Defaults to {DEFAULT_PORT}",
                             type=int, default=DEFAULT_PORT)
announce_parser.add_argument("-t", "--timeout", help=f"Announce timeout in seconds. Defaults to {ANNOUNCE_TIMEOUT}",
                             type=float, default=ANNOUNCE_TIMEOUT)


async def announce(torrent_path, port, timeout) -> int:
    torrent_metadata = load_torrent_metadata(torrent_path)
    params = TrackerRequestParameters.for_torrent(torrent_metadata, generate_peer_id(), port=port, event="started")
    async with TrackerHTTP(torrent_metadata.announce, timeout) as tracker:
        res = await tracker.announce(params)
    if isinstance(res, TrackerFailure):
        console.print(f"[red]tracker failure[/red]: {escape(res.reason)}")
        return 1
    console.print(peers_table(res))
    return 0


def main(argv=None) -> int:
    args = argparser.parse_args(argv)
    try:
        match args.command:
            case "info":
                torrent_metadata = load_torrent_metadata(args.torrent)
                console.log(f"Loaded torrent \"{escape(args.torrent)}\"")
                console.print(metainfo_table(torrent_metadata))
                console.print(files_table(torrent_metadata))
            case "dump":
                with open(args.file, "rb") as f:
                    console.print(Pretty(bendecode(f.read()).to_python(), max_string=80))
            case "announce":
                return asyncio.run(announce(args.torrent, args.port, args.timeout))
    except BentoTorrentError as e:
        console.print(f"[red]{e.kind}[/red]: {escape(str(e))}")
        return 1
    except OSError as e:
        console.print(f"[red]cannot read file[/red]: {escape(str(e))}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
