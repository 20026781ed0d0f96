"""CLI commands for packsync.

Commands:
    sync: Synchronize a pack folder with a remote pack
    status: Show the cache store of a pack folder
"""

from packsync.commands.status import status
from packsync.commands.sync import RichUserInterface, sync

__all__ = ["RichUserInterface", "status", "sync"]
