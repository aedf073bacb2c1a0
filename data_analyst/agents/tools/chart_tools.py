"""
Visualization tools for agents.

The card tool pushes its artifact into the turn's attachment collector
instead of returning it, so the parent's text stays free of card payloads.
"""

from typing import Any, List, Optional
import logging

from langchain_core.tools import StructuredTool
from pydantic import BaseModel, Field, field_validator

from data_analyst.agents.attachments import AttachmentCollector
from data_analyst.cards import Artifact, ChartKind, ChartOptions, describe_artifact, generate_chart_card

logger = logging.getLogger(__name__)


class ChartRequest(BaseModel):
    """Arguments of the generate_card capability."""
    chart_type: ChartKind = Field(..., description="Type of chart to render")
    rows: List[List[Any]] = Field(
        ...,
        min_length=1,
        description="Data rows for chart/table. Charts: [label, value] per row. "
                    "Tables: first row holds the column headers."
    )
    options: Optional[ChartOptions] = Field(
        None,
        description="Chart/table options such as title, axis labels, etc."
    )

    @field_validator('rows')
    @classmethod
    def validate_rows(cls, v):
        """Every row needs at least a label and a value."""
        for i, row in enumerate(v):
            if len(row) < 2:
                raise ValueError(f"Row {i} has {len(row)} field(s); at least 2 are required")
        return v


class VisualizationBuilder:
    """Build cards and push them into one turn's attachment collector."""

    def __init__(self, collector: AttachmentCollector):
        self.collector = collector

    def build(self, kind: Any, rows: List[List[Any]], options: Optional[ChartOptions] = None) -> Artifact:
        """
        Build an artifact and add it to the collector.

        Raises:
            UnsupportedChartKindError: kind is not a supported chart type
        """
        artifact = generate_chart_card(kind, rows, options)
        self.collector.add(artifact)
        logger.info(f"Generated {describe_artifact(artifact)}")
        return artifact


def make_generate_card_tool(builder: VisualizationBuilder) -> StructuredTool:
    """
    Create the generate_card capability bound to a builder.

    Args:
        builder: VisualizationBuilder for the current turn

    Returns:
        LangChain StructuredTool
    """

    def generate_card(chart_type: Any, rows: List[List[Any]], options: Any = None) -> str:
        if isinstance(options, dict):
            options = ChartOptions.model_validate(options)
        artifact = builder.build(chart_type, rows, options)
        return f"Card generated: {describe_artifact(artifact)}"

    return StructuredTool.from_function(
        func=generate_card,
        name="generate_card",
        description="Generates a card or chart from data",
        args_schema=ChartRequest,
    )
