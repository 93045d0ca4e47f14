"""CLI package.

The ``cli`` sub-package contains the Click application.  It is a client
of the engine API like any other front-end: it talks to plugs only
through ``dispatch`` and never touches plug storage directly.
"""
from __future__ import annotations
