"""
XPath lookups over parsed HTML documents.

Queries run against a target that is an XPathIndex, a whole document or a
single element. When the target is an element it also becomes the context
node for the query.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
import lxml.etree

logger = logging.getLogger(__name__)


class ElementNotFoundError(LookupError):
    """Exception raised when a query matches no element."""
    pass


class InvalidTargetError(TypeError):
    """Exception raised when a query target is not an index, document or element."""
    pass


class InvalidQueryError(ValueError):
    """Exception raised when a query does not evaluate to a node-set."""
    pass


class XPathIndex:
    """Reusable XPath context for one document, caching compiled expressions."""

    def __init__(self, document: lxml.etree._ElementTree, namespaces: Optional[Dict[str, str]] = None):
        self.document = document
        self.namespaces: Dict[str, str] = dict(namespaces or {})
        self._compiled: Dict[str, lxml.etree.XPath] = {}

    def register_namespace(self, prefix: str, uri: str) -> None:
        self.namespaces[prefix] = uri
        # compiled expressions capture the namespace map
        self._compiled.clear()

    def compile(self, expression: str) -> lxml.etree.XPath:
        compiled = self._compiled.get(expression)
        if compiled is None:
            compiled = lxml.etree.XPath(expression, namespaces=self.namespaces)
            self._compiled[expression] = compiled
        return compiled

    def query(self, expression: str, context_node: Optional[lxml.etree._Element] = None) -> List[Any]:
        """
        Evaluate an expression and return the raw node-set.

        Args:
            expression: XPath expression
            context_node: Context for relative expressions. When None the
                expression runs against the document tree as lxml does it:
                absolute paths start at the document node, relative paths at
                the root element (``body`` finds ``<body>``, ``html`` finds
                nothing; use ``/html`` or ``self::html``)

        Returns:
            Matched nodes in document order (elements, attribute and text
            results, comments...)

        Raises:
            InvalidQueryError: If the expression evaluates to a number, string
                or boolean
        """
        result = self.compile(expression)(self.document if context_node is None else context_node)
        if not isinstance(result, list):
            raise InvalidQueryError(f"Query {expression} did not evaluate to a node-set")
        return result


class TargetKind(Enum):
    INDEX = "index"
    DOCUMENT = "document"
    NODE = "node"


@dataclass(frozen=True)
class QueryTarget:
    """What a query runs against."""
    kind: TargetKind
    value: Any

    @classmethod
    def of(cls, target: Any) -> "QueryTarget":
        if isinstance(target, QueryTarget):
            return target
        if isinstance(target, XPathIndex):
            return cls(TargetKind.INDEX, target)
        if isinstance(target, lxml.etree._ElementTree):
            return cls(TargetKind.DOCUMENT, target)
        if isinstance(target, lxml.etree._Element):
            return cls(TargetKind.NODE, target)

        raise InvalidTargetError(
            f"Invalid target supplied: must be an XPathIndex, document or element, got {type(target).__name__}"
        )

    def resolve(self, context_node: Optional[lxml.etree._Element] = None) -> Tuple[XPathIndex, Optional[lxml.etree._Element]]:
        """Return the index to query and the effective context node."""
        if self.kind is TargetKind.INDEX:
            return self.value, context_node
        if self.kind is TargetKind.DOCUMENT:
            return XPathIndex(self.value), context_node
        # a node target always wins over the context_node argument
        return XPathIndex(self.value.getroottree()), self.value


def _is_element(node: Any) -> bool:
    # comments, PIs and entities are _Element subclasses with a non-string tag
    return isinstance(node, lxml.etree._Element) and isinstance(node.tag, str)


def _query(target: Any, query: str, context_node: Optional[lxml.etree._Element]) -> List[Any]:
    index, context_node = QueryTarget.of(target).resolve(context_node)

    results = index.query(query, context_node)
    if not results:
        raise ElementNotFoundError(f"Element matching {query} was not found")

    return results


def get_element(target: Any, query: str,
                context_node: Optional[lxml.etree._Element] = None) -> lxml.etree._Element:
    """
    Execute an XPath query against an index, document or element and return
    the first matching element.

    Args:
        target: XPathIndex, document (_ElementTree), element or QueryTarget
        query: XPath expression
        context_node: Context node; ignored when target is an element. Without
            one, relative expressions start at the root element (see
            XPathIndex.query)

    Returns:
        First element among the matches

    Raises:
        InvalidTargetError: If the target is of an unsupported type
        ElementNotFoundError: If nothing matched, or no match is an element
    """
    for result in _query(target, query, context_node):
        if _is_element(result):
            return result

    raise ElementNotFoundError(f"No element nodes matching {query} were found")


def get_elements(target: Any, query: str,
                 context_node: Optional[lxml.etree._Element] = None) -> List[lxml.etree._Element]:
    """
    Execute an XPath query against an index, document or element and return
    all matching elements.

    Unlike get_element, a non-empty result without any element nodes gives an
    empty list rather than an error.

    Raises:
        InvalidTargetError: If the target is of an unsupported type
        ElementNotFoundError: If the query matched nothing at all
    """
    elements = [result for result in _query(target, query, context_node) if _is_element(result)]
    logger.debug(f"Query {query} matched {len(elements)} elements")
    return elements


def xpath_html_class(class_name: str) -> str:
    """
    Build an XPath predicate matching elements whose class list contains
    ``class_name``, e.g. ``//div[{predicate}]``.

    The name is inserted verbatim; quotes in it will break the expression.
    """
    return f"contains(concat(' ', normalize-space(@class), ' '), ' {class_name} ')"
