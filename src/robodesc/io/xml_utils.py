"""lxml helpers shared by the URDF and MJCF decoders and encoders."""

import logging
from typing import Optional, Union

from lxml import etree

logger = logging.getLogger(__name__)


def _parser() -> etree.XMLParser:
    return etree.XMLParser(recover=True, remove_comments=True, remove_pis=True,
                           resolve_entities=False, no_network=True)


def parse_document(text: Union[str, bytes]) -> Optional[etree._Element]:
    """Parse XML text leniently; ``None`` when nothing element-shaped is found."""
    data = text.encode("utf-8") if isinstance(text, str) else text
    if not data or not data.strip():
        return None
    try:
        return etree.fromstring(data, _parser())
    except (etree.XMLSyntaxError, ValueError) as e:
        logger.debug("XML parsing failed: %s", e)
        return None


def find_element(root: Optional[etree._Element], tag: str) -> Optional[etree._Element]:
    """The root itself if it has ``tag``, else the first descendant with it."""
    if root is None:
        return None
    if root.tag == tag:
        return root
    return next(root.iter(tag), None)


def child_text(element: Optional[etree._Element], tag: str) -> Optional[str]:
    """Stripped text of the first ``tag`` child, ``None`` when absent or empty."""
    if element is None:
        return None
    child = element.find(tag)
    if child is None or child.text is None:
        return None
    text = child.text.strip()
    return text or None


def to_string(root: etree._Element) -> str:
    return etree.tostring(root, pretty_print=True, xml_declaration=True,
                          encoding="utf-8").decode("utf-8")
