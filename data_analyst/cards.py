"""
Adaptive Card generation for charts and tables.

Turns tabular rows plus a rendering intent into an Adaptive Card (v1.5)
attachment that the host channel can embed in an outbound message.
"""

from enum import Enum
from typing import Any, Dict, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

from data_analyst.exceptions import UnsupportedChartKindError

ADAPTIVE_CARD_CONTENT_TYPE = "application/vnd.microsoft.card.adaptive"
ADAPTIVE_CARD_VERSION = "1.5"
DEFAULT_TITLE = "Chart"
DEFAULT_PIE_COLOR_SET = "categorical"


class ChartKind(str, Enum):
    """Closed set of supported visualizations.

    Adding a member requires a matching branch in ``generate_chart_card``.
    """
    LINE = "line"
    VERTICAL_BAR = "verticalBar"
    HORIZONTAL_BAR = "horizontalBar"
    PIE = "pie"
    TABLE = "table"


class ChartOptions(BaseModel):
    """Optional rendering options for a chart or table."""
    title: Optional[str] = Field(None, description="Chart title shown above the chart")
    x_axis_title: Optional[str] = Field(None, description="X axis title")
    y_axis_title: Optional[str] = Field(None, description="Y axis title")
    color_set: Optional[str] = Field(None, description="Named color set, e.g. 'categorical'")
    color: Optional[str] = Field(None, description="Single series color")
    show_bar_values: Optional[bool] = Field(None, description="Show values on bars (vertical bar only)")


class Artifact(BaseModel):
    """Renderable card produced from a visualization request."""
    model_config = ConfigDict(frozen=True)

    content_type: str = ADAPTIVE_CARD_CONTENT_TYPE
    kind: ChartKind
    content: Dict[str, Any]

    @property
    def title(self) -> Optional[str]:
        body = self.content.get("body") or []
        return body[0].get("text") if body else None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the attachment shape used in outbound messages."""
        return {"contentType": self.content_type, "content": self.content}


def _compact(element: Dict[str, Any]) -> Dict[str, Any]:
    """Drop unset optional properties."""
    return {k: v for k, v in element.items() if v is not None}


def _chart_element(kind: ChartKind, rows: Sequence[Sequence[Any]], options: ChartOptions, title: str) -> Dict[str, Any]:
    if kind == ChartKind.VERTICAL_BAR:
        return _compact({
            "type": "Chart.VerticalBar",
            "title": title,
            "xAxisTitle": options.x_axis_title,
            "yAxisTitle": options.y_axis_title,
            "showBarValues": options.show_bar_values,
            "colorSet": options.color_set,
            "color": options.color,
            "data": [{"x": row[0], "y": row[1]} for row in rows],
        })

    if kind == ChartKind.LINE:
        return _compact({
            "type": "Chart.Line",
            "title": title,
            "xAxisTitle": options.x_axis_title,
            "yAxisTitle": options.y_axis_title,
            "colorSet": options.color_set,
            "data": [
                _compact({
                    "legend": title,
                    "color": options.color,
                    "values": [{"x": row[0], "y": row[1]} for row in rows],
                })
            ],
        })

    if kind == ChartKind.HORIZONTAL_BAR:
        # Category axis only accepts text
        return _compact({
            "type": "Chart.HorizontalBar",
            "title": title,
            "xAxisTitle": options.x_axis_title,
            "yAxisTitle": options.y_axis_title,
            "colorSet": options.color_set,
            "color": options.color,
            "data": [{"x": str(row[0]), "y": row[1]} for row in rows],
        })

    if kind == ChartKind.PIE:
        return {
            "type": "Chart.Pie",
            "title": title,
            "colorSet": options.color_set or DEFAULT_PIE_COLOR_SET,
            "data": [{"legend": row[0], "value": row[1]} for row in rows],
        }

    if kind == ChartKind.TABLE:
        column_count = max((len(row) for row in rows), default=0)
        return {
            "type": "Table",
            "firstRowAsHeaders": True,
            # Equal relative widths; the client auto-sizes from there
            "columns": [{"width": 1} for _ in range(column_count)],
            "rows": [
                {
                    "type": "TableRow",
                    "cells": [
                        {
                            "type": "TableCell",
                            "items": [{"type": "TextBlock", "text": str(cell), "wrap": True}],
                        }
                        for cell in row
                    ],
                }
                for row in rows
            ],
        }

    raise UnsupportedChartKindError(f"Unsupported chart type: {kind}")


def generate_chart_card(
    chart_type: Any,
    rows: Sequence[Sequence[Any]],
    options: Optional[ChartOptions] = None,
) -> Artifact:
    """
    Build an Adaptive Card holding a single chart or table.

    Args:
        chart_type: ChartKind or its string value
        rows: Data rows; rows[i][0] is the category/x, rows[i][1] the value
        options: Optional title, axis titles, colors

    Returns:
        Artifact wrapping the card JSON

    Raises:
        UnsupportedChartKindError: chart_type is not a ChartKind
    """
    try:
        kind = ChartKind(chart_type)
    except ValueError:
        raise UnsupportedChartKindError(
            f"Unsupported chart type: {chart_type!r}. "
            f"Supported types: {', '.join(k.value for k in ChartKind)}"
        ) from None

    options = options or ChartOptions()
    title = options.title or DEFAULT_TITLE

    card = {
        "type": "AdaptiveCard",
        "$schema": "http://adaptivecards.io/schemas/adaptive-card.json",
        "version": ADAPTIVE_CARD_VERSION,
        "body": [
            {"type": "TextBlock", "text": title, "weight": "Bolder", "size": "Medium"},
            _chart_element(kind, [list(row) for row in rows], options, title),
        ],
    }

    return Artifact(kind=kind, content=card)


def describe_artifact(artifact: Artifact) -> str:
    """Short human-readable description used in capability results."""
    element = artifact.content["body"][1]
    if artifact.kind == ChartKind.TABLE:
        count = len(element.get("rows", []))
    elif artifact.kind == ChartKind.LINE:
        count = len(element["data"][0]["values"])
    else:
        count = len(element.get("data", []))
    return f"{artifact.kind.value} card '{artifact.title}' with {count} data points"


__all__ = [
    "ADAPTIVE_CARD_CONTENT_TYPE",
    "Artifact",
    "ChartKind",
    "ChartOptions",
    "describe_artifact",
    "generate_chart_card",
]
