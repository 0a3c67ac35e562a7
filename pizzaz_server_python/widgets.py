"""Pizzaz widget definitions and the read-only catalog that indexes them.

Every widget is surfaced to MCP clients four ways (tool, resource, resource
template and tool result), and each of those carries the same ``_meta`` block
built by :func:`widget_meta` so the client can tie any of them back to the
widget's output template.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterable, Iterator, Mapping, Tuple

ASSET_VERSION = "2d2b"

WIDGET_HTML_SHELL = """<!doctype html>
<html>
<head>
  <script type="module" src="{base_url}/{component}-{version}.js"></script>
  <link rel="stylesheet" href="{base_url}/{component}-{version}.css">
</head>
<body>
  <div id="{component}-root"></div>
</body>
</html>"""


@dataclass(frozen=True)
class PizzazWidget:
    identifier: str
    title: str
    template_uri: str
    invoking: str
    invoked: str
    html: str
    response_text: str


class DuplicateWidgetError(ValueError):
    """Raised when two widgets share an identifier or a template URI."""


def load_widget_html(component_name: str, assets_dir: Path, base_url: str) -> str:
    """Return the markup for ``component_name``.

    A built asset in ``assets_dir`` wins; the newest hashed build
    (``<component>-<hex hash>.html``) is used next. Other components whose
    names merely start with ``component_name`` (``pizzaz`` vs
    ``pizzaz-carousel``) never match. Without either, an HTML shell that
    loads the component bundle from ``base_url`` is returned.
    """
    html_path = assets_dir / f"{component_name}.html"
    if html_path.exists():
        return html_path.read_text(encoding="utf8")

    hashed_build = re.compile(rf"{re.escape(component_name)}-[0-9a-f]+\.html")
    fallback_candidates = sorted(
        path for path in assets_dir.glob(f"{component_name}-*.html")
        if hashed_build.fullmatch(path.name)
    )
    if fallback_candidates:
        return fallback_candidates[-1].read_text(encoding="utf8")

    return WIDGET_HTML_SHELL.format(
        base_url=base_url.rstrip("/"),
        component=component_name,
        version=ASSET_VERSION,
    )


def widget_meta(widget: PizzazWidget) -> Dict[str, Any]:
    return {
        "openai/outputTemplate": widget.template_uri,
        "openai/toolInvocation/invoking": widget.invoking,
        "openai/toolInvocation/invoked": widget.invoked,
        "openai/widgetAccessible": True,
        "openai/resultCanProduceWidget": True,
    }


def build_widgets(assets_dir: Path, assets_base_url: str) -> Tuple[PizzazWidget, ...]:
    def html(component_name: str) -> str:
        return load_widget_html(component_name, assets_dir, assets_base_url)

    return (
        PizzazWidget(
            identifier="pizza-map",
            title="Show Pizza Map",
            template_uri="ui://widget/pizza-map.html",
            invoking="Hand-tossing a map",
            invoked="Served a fresh map",
            html=html("pizzaz"),
            response_text="Rendered a pizza map!",
        ),
        PizzazWidget(
            identifier="pizza-carousel",
            title="Show Pizza Carousel",
            template_uri="ui://widget/pizza-carousel.html",
            invoking="Carousel some spots",
            invoked="Served a fresh carousel",
            html=html("pizzaz-carousel"),
            response_text="Rendered a pizza carousel!",
        ),
        PizzazWidget(
            identifier="pizza-albums",
            title="Show Pizza Album",
            template_uri="ui://widget/pizza-albums.html",
            invoking="Hand-tossing an album",
            invoked="Served a fresh album",
            html=html("pizzaz-albums"),
            response_text="Rendered a pizza album!",
        ),
        PizzazWidget(
            identifier="pizza-list",
            title="Show Pizza List",
            template_uri="ui://widget/pizza-list.html",
            invoking="Hand-tossing a list",
            invoked="Served a fresh list",
            html=html("pizzaz-list"),
            response_text="Rendered a pizza list!",
        ),
    )


class WidgetCatalog:
    """Immutable registry of widgets, indexed by identifier and template URI.

    Built once at startup. Lookups return ``None`` on a miss so callers can
    raise the protocol error that fits their request.
    """

    def __init__(self, widgets: Iterable[PizzazWidget]) -> None:
        ordered = tuple(widgets)
        by_id: Dict[str, PizzazWidget] = {}
        by_uri: Dict[str, PizzazWidget] = {}

        for widget in ordered:
            if widget.identifier in by_id:
                raise DuplicateWidgetError(
                    f'Duplicate widget identifier "{widget.identifier}"'
                )
            if widget.template_uri in by_uri:
                raise DuplicateWidgetError(
                    f'Duplicate widget template URI "{widget.template_uri}" '
                    f'(used by "{by_uri[widget.template_uri].identifier}" and '
                    f'"{widget.identifier}")'
                )
            by_id[widget.identifier] = widget
            by_uri[widget.template_uri] = widget

        self._widgets = ordered
        self._by_id: Mapping[str, PizzazWidget] = MappingProxyType(by_id)
        self._by_uri: Mapping[str, PizzazWidget] = MappingProxyType(by_uri)

    def __iter__(self) -> Iterator[PizzazWidget]:
        return iter(self._widgets)

    def __len__(self) -> int:
        return len(self._widgets)

    @property
    def by_id(self) -> Mapping[str, PizzazWidget]:
        return self._by_id

    @property
    def by_uri(self) -> Mapping[str, PizzazWidget]:
        return self._by_uri

    def get_by_id(self, identifier: str) -> PizzazWidget | None:
        return self._by_id.get(identifier)

    def get_by_uri(self, uri: str) -> PizzazWidget | None:
        return self._by_uri.get(uri)
