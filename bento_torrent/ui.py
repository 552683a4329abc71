from datetime import datetime, timezone

from rich.console import Console
from rich.filesize import decimal
from rich.markup import escape
from rich.table import Table

console = Console()


def metainfo_table(torrent_metadata) -> Table:
    table = Table(title=escape(torrent_metadata.info.name), show_header=False)
    table.add_column("field", style="bold blue")
    table.add_column("value")
    table.add_row("announce", escape(torrent_metadata.announce))
    for tier, urls in enumerate(torrent_metadata.announce_list or ()):
        table.add_row(f"tier {tier}", escape(", ".join(urls)))
    table.add_row("info hash", torrent_metadata.info_hash.hex())
    table.add_row("size", f"{decimal(torrent_metadata.total_length)} ({torrent_metadata.total_length} bytes)")
    table.add_row("pieces", f"{torrent_metadata.num_pieces} x {decimal(torrent_metadata.info.piece_length)}")
    if torrent_metadata.info.private:
        table.add_row("private", "yes")
    if torrent_metadata.creation_date is not None:
        try:
            created = datetime.fromtimestamp(torrent_metadata.creation_date, tz=timezone.utc).isoformat()
        except (OverflowError, OSError, ValueError):
            created = str(torrent_metadata.creation_date)
        table.add_row("created", created)
    for key in ("comment", "created_by", "encoding"):
        value = getattr(torrent_metadata, key)
        if value is not None:
            table.add_row(key.replace("_", " "), escape(value))
    return table


def files_table(torrent_metadata) -> Table:
    table = Table("file", "size")
    for file in torrent_metadata.info.get_files():
        table.add_row(escape(file.name), decimal(file.length))
    return table


def peers_table(response) -> Table:
    table = Table("ip", "port", title=f"{len(response.peers)} peers, interval {response.interval}s")
    for peer in response.peers:
        table.add_row(escape(peer.ip), str(peer.port))
    return table
