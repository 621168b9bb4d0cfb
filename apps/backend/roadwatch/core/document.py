"""
document.py — Server-side model of the page that hosts the predictions view.

The map subsystem needs to know two things about its host page:
  - which external resources (script / stylesheet nodes) it already carries,
    so the Leaflet library is inserted exactly once;
  - which anchor elements are currently mounted, so a map instance is only
    ever bound to an element that still exists.

Tabs mount and unmount anchors as the admin switches between them.
render() serialises the page shell (resource nodes + anchors) to HTML.
"""

import html
import logging
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResourceNode:
    """A <script> or <link rel="stylesheet"> node in the page."""

    kind: str          # "script" | "stylesheet"
    href: str
    node_id: str | None = None


@dataclass
class Anchor:
    """A mounted element a map instance can be bound to."""

    anchor_id: str
    src: str | None = None   # iframe source once a map is rendered into it


@dataclass
class Document:
    title: str = "Roadwatch — Predictions & analytics"
    head: list[ResourceNode] = field(default_factory=list)
    body: list[ResourceNode] = field(default_factory=list)
    anchors: dict[str, Anchor] = field(default_factory=dict)

    # ── Resource nodes ────────────────────────────────────────────────────────

    def find_script(self, node_id: str) -> ResourceNode | None:
        for node in self.body:
            if node.kind == "script" and node.node_id == node_id:
                return node
        return None

    def find_stylesheet(self, href_fragment: str) -> ResourceNode | None:
        for node in self.head:
            if node.kind == "stylesheet" and href_fragment in node.href:
                return node
        return None

    def append_head(self, node: ResourceNode) -> None:
        self.head.append(node)

    def append_body(self, node: ResourceNode) -> None:
        self.body.append(node)

    # ── Anchors ───────────────────────────────────────────────────────────────

    def mount_anchor(self, anchor_id: str, src: str | None = None) -> Anchor:
        anchor = self.anchors.get(anchor_id)
        if anchor is None:
            anchor = Anchor(anchor_id=anchor_id, src=src)
            self.anchors[anchor_id] = anchor
            logger.debug("Anchor mounted: %s", anchor_id)
        return anchor

    def unmount_anchor(self, anchor_id: str) -> None:
        if self.anchors.pop(anchor_id, None) is not None:
            logger.debug("Anchor unmounted: %s", anchor_id)

    def has_anchor(self, anchor_id: str) -> bool:
        return anchor_id in self.anchors

    # ── Serialisation ─────────────────────────────────────────────────────────

    def render(self) -> str:
        head = [f"<title>{html.escape(self.title)}</title>"]
        for node in self.head:
            head.append(f'<link rel="stylesheet" href="{html.escape(node.href)}">')

        body = []
        for anchor in self.anchors.values():
            inner = ""
            if anchor.src:
                inner = (
                    f'<iframe src="{html.escape(anchor.src)}" '
                    'style="width:100%;height:500px;border:0"></iframe>'
                )
            body.append(f'<div id="{html.escape(anchor.anchor_id)}">{inner}</div>')
        for node in self.body:
            id_attr = f' id="{html.escape(node.node_id)}"' if node.node_id else ""
            body.append(f'<script{id_attr} src="{html.escape(node.href)}"></script>')

        return (
            "<!DOCTYPE html>\n<html>\n<head>\n"
            + "\n".join(head)
            + "\n</head>\n<body>\n"
            + "\n".join(body)
            + "\n</body>\n</html>\n"
        )
