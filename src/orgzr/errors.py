"""Root exception types for orgzr.

Every error raised by the package derives from ``OrgzrError`` so that
clients can catch the whole family with a single ``except`` clause.
More specific families live next to the code that raises them:

- :mod:`orgzr.plugs.contract` -- ``InitError``, ``ExecError``, ``FlushError``
- :mod:`orgzr.plugs.registry` -- ``RegistryError`` and subclasses
- :mod:`orgzr.storage.substrate` -- ``StorageError`` and subclasses
- :mod:`orgzr.dispatch.errors` -- ``DispatchError`` and subclasses
- :mod:`orgzr.session.context` -- ``EngineStartupError``
"""
from __future__ import annotations


class OrgzrError(Exception):
    """Base class for all orgzr errors."""


class ConfigError(OrgzrError):
    """Raised when engine configuration is missing, malformed, or inconsistent.

    Configuration errors are fatal at startup and never reach a client
    through ``dispatch``.
    """
