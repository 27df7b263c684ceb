"""
Evaluation Core - XPath against XML with per-node geometry.

Runs expressions through the ``XmlBackend`` and turns whatever happens into a
well-formed ``EvaluationResult``. Nothing raised by the backend escapes.
"""

from collections import OrderedDict
from typing import Any, Optional, Tuple
import logging
import re

from locator_xray.layers.evaluation.cache import CacheKey, EvaluationCache
from locator_xray.layers.evaluation.context_store import XmlContextStore
from locator_xray.layers.evaluation.models import EvaluationResult, NodeGeometry
from locator_xray.layers.evaluation.xml_backend import XmlBackend

logger = logging.getLogger(__name__)

ANDROID_BOUNDS_RE = re.compile(r"\[(\d+),(\d+)\]\[(\d+),(\d+)\]")
IOS_POSITION_ATTRIBUTES = ("x", "y", "width", "height")
SERIALIZED_PREVIEW_CHARS = 100


def _attribute(node: Any, name: str) -> Optional[str]:
    getter = getattr(node, "get", None)
    if getter is None:
        return None
    try:
        return getter(name)
    except TypeError:
        return None


def _to_int(value: str) -> int:
    # iOS sources occasionally carry fractional points ("12.5")
    return int(float(value))


def extract_geometry(node: Any, index: int, serialized: str) -> NodeGeometry:
    """
    Extract platform geometry from a matched node.

    Android nodes expose ``bounds="[x1,y1][x2,y2]"``; iOS nodes expose
    discrete ``x``, ``y``, ``width`` and ``height``. Both are checked since
    some sources carry both. Missing or unparseable geometry is not an error.
    """
    node_name = str(getattr(node, "tag", "") or type(node).__name__)
    preview = serialized[:SERIALIZED_PREVIEW_CHARS]
    if len(serialized) > SERIALIZED_PREVIEW_CHARS:
        preview += "..."

    fields = {}
    platform = None

    bounds = _attribute(node, "bounds")
    if bounds:
        match = ANDROID_BOUNDS_RE.search(bounds)
        if match:
            x1, y1, x2, y2 = (int(v) for v in match.groups())
            fields.update(
                bounds=bounds, x1=x1, y1=y1, x2=x2, y2=y2,
                x=x1, y=y1, width=x2 - x1, height=y2 - y1,
            )
            platform = "android"
        else:
            logger.debug(f"[EvaluationCore] Could not parse bounds {bounds!r} on node {index}")
            fields["bounds"] = bounds

    raw_position = [_attribute(node, name) for name in IOS_POSITION_ATTRIBUTES]
    if all(value is not None for value in raw_position):
        try:
            x, y, width, height = (_to_int(v) for v in raw_position)
        except ValueError:
            logger.debug(f"[EvaluationCore] Non-numeric position attributes on node {index}")
        else:
            fields.update(x=x, y=y, width=width, height=height,
                          x1=x, y1=y, x2=x + width, y2=y + height)
            platform = "ios"

    if platform is None:
        css_class = _attribute(node, "class") or ""
        if node_name.startswith("XCUIElement"):
            platform = "ios"
        elif "android." in css_class:
            platform = "android"

    return NodeGeometry(index=index, node_name=node_name, serialized=preview,
                        platform=platform, **fields)


class EvaluationCore:
    """
    Evaluates XPath expressions against the active context.

    Example:
        >>> core = EvaluationCore(store, cache, backend)
        >>> result, cached = core.evaluate("//node[@text='OK']")
        >>> result.number_of_matches
        1
    """

    def __init__(
        self,
        store: XmlContextStore,
        cache: EvaluationCache,
        backend: XmlBackend,
        document_cache_size: int = 5,
    ):
        self.store = store
        self.cache = cache
        self.backend = backend
        self.document_cache_size = document_cache_size
        self._documents: "OrderedDict[str, Any]" = OrderedDict()

    def cache_key(self, expression: str, platform: Optional[str] = None) -> CacheKey:
        return CacheKey(self.store.state_id, platform or self.store.platform, expression)

    def evaluate(
        self,
        expression: str,
        platform: Optional[str] = None,
        bypass_cache: bool = False,
    ) -> Tuple[EvaluationResult, bool]:
        """
        Evaluate against the active document through the cache.

        Args:
            expression: XPath expression
            platform: Platform override for the cache key and result tag
            bypass_cache: Compute fresh and overwrite any cached entry

        Returns:
            (result, cache_hit)
        """
        platform = platform or self.store.platform
        document = self.store.document
        if not expression or document is None:
            return EvaluationResult.empty(expression, platform), False

        key = self.cache_key(expression, platform)
        if not bypass_cache:
            cached = self.cache.get(key)
            if cached is not None:
                logger.debug(f"[EvaluationCore] Cache hit for {key}")
                return cached, True

        result = self.run(expression, document, platform)
        # error results are cached too; a corrected expression has its own key
        self.cache.put(key, result)
        return result, False

    def evaluate_source(
        self,
        xml_source: str,
        expression: str,
        platform: Optional[str] = None,
    ) -> EvaluationResult:
        """Evaluate against an arbitrary XML string without touching the context."""
        if not xml_source or not expression:
            return EvaluationResult.empty(expression, platform)
        try:
            document = self._document_for(xml_source)
        except Exception as e:
            logger.warning(f"[EvaluationCore] Could not parse XML for validation: {e}")
            return EvaluationResult.failure(expression, f"XML parse error: {e}", platform)
        return self.run(expression, document, platform)

    def run(self, expression: str, document: Any, platform: Optional[str] = None) -> EvaluationResult:
        """Select, serialize and measure. Never raises."""
        try:
            nodes = self.backend.select(expression, document)
        except Exception as e:
            logger.info(f"[EvaluationCore] Expression {expression!r} failed: {e}")
            return EvaluationResult.failure(expression, str(e) or type(e).__name__, platform)

        serialized = []
        details = []
        for index, node in enumerate(nodes):
            try:
                text = self.backend.serialize(node)
            except Exception as e:
                logger.warning(f"[EvaluationCore] Failed to serialize node {index}: {e}")
                text = ""
            serialized.append(text)
            details.append(extract_geometry(node, index, text))

        return EvaluationResult(
            expression=expression,
            number_of_matches=len(nodes),
            is_valid=True,
            success=True,
            matching_nodes=tuple(serialized),
            nodes=tuple(details),
            platform=platform,
        )

    def _document_for(self, xml_source: str) -> Any:
        if xml_source in self._documents:
            self._documents.move_to_end(xml_source)
            return self._documents[xml_source]
        document = self.backend.parse(xml_source)
        self._documents[xml_source] = document
        while len(self._documents) > self.document_cache_size:
            self._documents.popitem(last=False)
        return document
