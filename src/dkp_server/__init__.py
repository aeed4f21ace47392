"""DKP Server - guild attendance ledger and loot wishlist backend.

Tracks guild members, their characters, scheduled events, attendance at
those events and the DKP balance earned by attending. Items can be wished
for by characters; wishers are ranked by balance when loot is distributed.

Version Management
------------------
``__version__`` is read from the installed package metadata at import time.
The single source of truth is the ``version`` field in ``pyproject.toml``.
"""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

try:
    __version__: str = version("dkp-server")
except PackageNotFoundError:
    __version__ = "0.1.0"
