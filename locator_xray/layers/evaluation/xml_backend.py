"""
XML Backend - Parse, select and serialize.

The engine depends only on the ``XmlBackend`` contract. ``LxmlBackend`` is the
default implementation and the only place that touches lxml directly.
"""

from abc import ABC, abstractmethod
from typing import Any, List

from lxml import etree


class ExpressionResultError(ValueError):
    """Raised when an expression evaluates to a scalar instead of a node-set."""


class XmlBackend(ABC):
    """Abstract XML/XPath collaborator."""

    @abstractmethod
    def parse(self, xml_source: str) -> Any:
        """Parse a document. Raises on malformed input."""
        pass

    @abstractmethod
    def select(self, expression: str, document: Any) -> List[Any]:
        """Return the nodes selected by ``expression``. Raises on bad expressions."""
        pass

    @abstractmethod
    def serialize(self, node: Any) -> str:
        """Serialize a selected node to text."""
        pass


class LxmlBackend(XmlBackend):
    """
    lxml implementation of the backend contract.

    Example:
        >>> backend = LxmlBackend()
        >>> doc = backend.parse('<hierarchy><node text="Hi"/></hierarchy>')
        >>> len(backend.select('//node', doc))
        1
    """

    def __init__(self, huge_tree: bool = False):
        # Page sources are untrusted captures: no entity resolution or network
        self._parser = etree.XMLParser(
            resolve_entities=False,
            no_network=True,
            huge_tree=huge_tree,
        )

    def parse(self, xml_source: str) -> etree._ElementTree:
        root = etree.fromstring(xml_source.encode("utf-8"), parser=self._parser)
        return etree.ElementTree(root)

    def select(self, expression: str, document: etree._ElementTree) -> List[Any]:
        result = document.xpath(expression)
        if isinstance(result, list):
            return result
        raise ExpressionResultError(
            f"Expression returned {type(result).__name__} instead of a node-set"
        )

    def serialize(self, node: Any) -> str:
        if isinstance(node, etree._Element):
            return etree.tostring(node, encoding="unicode", with_tail=False)
        # attribute values and text() results come back as strings
        return str(node)
