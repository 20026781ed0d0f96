"""packsync - incremental synchronizer for declarative remote packs.

A pack is described by a remote pack descriptor that points at an index of
files. packsync reconciles a local folder against that description,
downloading only what changed and verifying every file against its
declared hash.

Key modules:
- core: Cache store, reconciliation, download orchestration, configuration
- formats: Pack, index and linked descriptor parsers
- commands: CLI command implementations
"""

__version__ = "0.1.0"

from packsync.core.hashing import HashValue
from packsync.core.types import HashFormat, Side

__all__ = [
    "__version__",
    "HashFormat",
    "HashValue",
    "Side",
]
