"""``DocumentPlug``: a plug base class backed by one JSON document.

Most plugs keep a small amount of structured state: a list of records
and a counter for the next id.  ``DocumentPlug`` implements the whole
plug lifecycle for that case so a concrete plug only declares its
descriptor and one ``do_<command>`` method per command.

Each command runs against a deep copy of the current document.  When
the handler returns, the copy is written to the namespace atomically
and only then becomes the live state.  A failing handler or a failing
write therefore leaves both memory and disk at the last consistent
state.

Example
-------
::

    class NotesPlug(DocumentPlug):
        def descriptor(self) -> PlugDescriptor:
            return PlugDescriptor(
                id="notes",
                name="Notes",
                commands=(CommandSpec("add", (ParamSpec("text", ParamType.STRING),)),),
            )

        def empty_document(self) -> dict[str, Any]:
            return {**super().empty_document(), "notes": []}

        def do_add(self, doc: dict[str, Any], *, text: str) -> dict[str, Any]:
            doc["notes"].append(text)
            return {"count": len(doc["notes"])}
"""
from __future__ import annotations

import copy
import json
import logging
from dataclasses import dataclass
from typing import Any

from orgzr.plugs.contract import ExecError, FlushError, InitError, Plug, Response
from orgzr.storage.substrate import NamespaceHandle, StorageError

logger = logging.getLogger(__name__)


def _is_kind(value: Any, kind: type | tuple[type, ...]) -> bool:
    """``isinstance`` that does not let a bool stand in for a number."""
    kinds = kind if isinstance(kind, tuple) else (kind,)
    if isinstance(value, bool) and bool not in kinds:
        return False
    return isinstance(value, kinds)


@dataclass
class DocumentState:
    """Live state of a ``DocumentPlug``: its namespace and current document."""

    namespace: NamespaceHandle
    document: dict[str, Any]


class DocumentPlug(Plug):
    """Plug whose namespace holds a single JSON object.

    Subclasses set ``schema_version``, override :meth:`empty_document`,
    :meth:`migrate` and :meth:`validate_document` as needed, and define
    ``do_<command>`` handlers.
    A handler receives the working copy of the document followed by the
    validated arguments as keyword arguments, and returns either a
    :class:`Response` or a bare payload.
    """

    schema_version: int = 1

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    def empty_document(self) -> dict[str, Any]:
        """Return the document used for a namespace that was never written."""
        return {"schema": self.schema_version}

    def migrate(self, document: dict[str, Any]) -> dict[str, Any]:
        """Bring a stored document up to ``schema_version``.

        The default implementation stamps documents that lack a schema
        number and fills in any top-level keys missing relative to
        :meth:`empty_document`.  Override to add real migrations; raise
        :class:`InitError` for data that cannot be repaired.
        """
        stored = document.get("schema", self.schema_version)
        if not isinstance(stored, int) or isinstance(stored, bool):
            raise InitError(f"{self.id}: schema number {stored!r} is not an integer")
        if stored > self.schema_version:
            raise InitError(
                f"{self.id}: stored schema {stored} is newer than supported "
                f"schema {self.schema_version}"
            )
        for key, value in self.empty_document().items():
            if key not in document:
                logger.warning("%s: repairing missing key %r", self.id, key)
                document[key] = value
            elif key != "schema" and not _is_kind(document[key], type(value)):
                raise InitError(
                    f"{self.id}: key {key!r} holds {type(document[key]).__name__}, "
                    f"expected {type(value).__name__}"
                )
        document["schema"] = self.schema_version
        return document

    def validate_document(self, document: dict[str, Any]) -> None:
        """Check the records of a migrated document before it goes live.

        The default accepts anything.  Override to reject records the
        handlers could not work with, usually through
        :meth:`check_records`; raise :class:`InitError` on failure.
        """

    # ------------------------------------------------------------------
    # Plug contract
    # ------------------------------------------------------------------

    def init(self, namespace: NamespaceHandle) -> DocumentState:
        try:
            raw = namespace.read()
        except StorageError as exc:
            raise InitError(f"{self.id}: {exc}") from exc
        if not raw.strip():
            return DocumentState(namespace=namespace, document=self.empty_document())
        try:
            document = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise InitError(f"{self.id}: namespace is not valid JSON: {exc}") from exc
        if not isinstance(document, dict):
            raise InitError(
                f"{self.id}: namespace must hold a JSON object, found {type(document).__name__}"
            )
        document = self.migrate(document)
        self.validate_document(document)
        return DocumentState(namespace=namespace, document=document)

    def execute(self, state: DocumentState, command: str, arguments: dict[str, Any]) -> Response:
        handler = getattr(self, f"do_{command}", None)
        if handler is None:
            raise ExecError(f"{self.id}: command {command!r} has no handler")
        draft = copy.deepcopy(state.document)
        result = handler(draft, **arguments)
        if draft != state.document:
            state.namespace.write(self.encode(draft))
            state.document = draft
        return result if isinstance(result, Response) else Response(payload=result)

    def shutdown(self, state: DocumentState) -> None:
        try:
            state.namespace.flush()
        except StorageError as exc:
            raise FlushError(f"{self.id}: {exc}") from exc

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def encode(document: dict[str, Any]) -> bytes:
        """Serialize a document to the bytes stored in the namespace."""
        return json.dumps(document, sort_keys=True, indent=2, ensure_ascii=False).encode("utf-8")

    @staticmethod
    def next_id(document: dict[str, Any]) -> int:
        """Allocate and return the next record id stored in ``document``."""
        value = int(document.get("next_id", 1))
        document["next_id"] = value + 1
        return value

    def check_records(
        self,
        document: dict[str, Any],
        key: str,
        fields: dict[str, type | tuple[type, ...]],
    ) -> None:
        """Require every record under ``document[key]`` to be an object
        with an integer ``id`` and each of ``fields`` of the given type.

        List fields, when named with ``list``, must hold only strings.

        Raises
        ------
        InitError
            Naming the first record that fails.
        """
        for index, record in enumerate(document[key]):
            where = f"{self.id}: {key}[{index}]"
            if not isinstance(record, dict):
                raise InitError(f"{where} is {type(record).__name__}, not an object")
            for name, kind in {"id": int, **fields}.items():
                if name not in record:
                    raise InitError(f"{where} has no {name!r} field")
                value = record[name]
                if not _is_kind(value, kind):
                    raise InitError(f"{where} field {name!r} holds {type(value).__name__}")
                if kind is list and not all(isinstance(item, str) for item in value):
                    raise InitError(f"{where} field {name!r} must hold only strings")
