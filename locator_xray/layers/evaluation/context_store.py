"""
XML Context Store - The single active document.

Holds exactly one parsed page source together with its (state, platform)
identity. Parse failures leave a null document behind instead of raising.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from locator_xray.layers.evaluation.xml_backend import XmlBackend

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Context:
    """The currently loaded XML snapshot and its identity."""
    xml_source: str = ""
    state_id: str = ""
    platform: str = ""
    document: Any = None
    parse_error: Optional[str] = None

    @property
    def has_document(self) -> bool:
        return self.document is not None


class XmlContextStore:
    """
    Owns the active ``Context``.

    The store itself has no side effects on caches or listeners; the engine
    facade performs those when it replaces the context.
    """

    def __init__(self, backend: XmlBackend):
        self.backend = backend
        self._context = Context()

    @property
    def context(self) -> Context:
        return self._context

    @property
    def state_id(self) -> str:
        return self._context.state_id

    @property
    def platform(self) -> str:
        return self._context.platform

    @property
    def document(self) -> Any:
        return self._context.document

    def get_source(self) -> str:
        """Return the current XML source text."""
        return self._context.xml_source

    def set_context(self, xml_source: Optional[str], state_id: str, platform: str) -> Context:
        """
        Replace the active document.

        The same source text is not reparsed; only the identity changes.

        Returns:
            The new Context (``document`` is None if parsing failed)
        """
        xml_source = xml_source or ""
        previous = self._context

        if xml_source and xml_source == previous.xml_source and previous.has_document:
            document, parse_error = previous.document, None
        elif not xml_source.strip():
            document, parse_error = None, None
        else:
            document, parse_error = self._parse(xml_source)

        self._context = Context(
            xml_source=xml_source,
            state_id=state_id or "",
            platform=platform or "",
            document=document,
            parse_error=parse_error,
        )
        return self._context

    def _parse(self, xml_source: str):
        try:
            return self.backend.parse(xml_source), None
        except Exception as e:
            logger.error(f"[XmlContextStore] Failed to parse XML source: {e}")
            return None, str(e)
