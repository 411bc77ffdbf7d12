"""
Ticket export in tracker-friendly formats.
"""

import csv
import io
import json
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional, Union

from jira_planner.core.constants import ExportFormat
from jira_planner.core.logging import get_logger
from jira_planner.domain.planning import Ticket, TicketCollection, utc_now

logger = get_logger(__name__)

CSV_HEADERS = [
    "ID", "Type", "Summary", "Description", "Priority", "Labels", "Components",
    "Parent Ticket", "Story Points", "Time Estimate", "Complexity", "Confidence",
]

JIRA_IMPORT_HEADERS = ["Issue Type", "Summary", "Description", "Priority", "Labels", "Components"]

_FILENAME_PATTERNS = {
    ExportFormat.CSV: ("jira-tickets-{ts}.csv", "text/csv"),
    ExportFormat.JSON: ("jira-tickets-{ts}.json", "application/json"),
    ExportFormat.JIRA_IMPORT: ("jira-import-{ts}.csv", "text/csv"),
    ExportFormat.CONFLUENCE: ("project-specification-{ts}.md", "text/markdown"),
}


@dataclass
class ExportResult:
    """Rendered export ready to be written or downloaded."""

    content: str
    filename: str
    format: ExportFormat
    media_type: str


def _write_rows(headers: list[str], rows: list[list[str]]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(headers)
    writer.writerows(rows)
    return buffer.getvalue().rstrip("\n")


class TicketExporter:
    """
    Pure formatter from a TicketCollection to export content.

    The clock is injectable so filenames and timestamps are reproducible.
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None) -> None:
        self._clock = clock or utc_now

    def export(
        self,
        tickets: TicketCollection,
        export_format: Union[ExportFormat, str],
    ) -> ExportResult:
        """
        Render ``tickets`` in ``export_format``.

        Unknown formats fall back to JSON.
        """
        fmt = self._resolve_format(export_format)
        now = self._clock()
        timestamp = now.isoformat()[:19].replace(":", "-")

        renderers = {
            ExportFormat.CSV: self.to_csv,
            ExportFormat.JSON: self.to_json,
            ExportFormat.JIRA_IMPORT: self.to_jira_import,
            ExportFormat.CONFLUENCE: lambda t: self.to_confluence(t, generated_at=now),
        }
        content = renderers[fmt](tickets)
        pattern, media_type = _FILENAME_PATTERNS[fmt]

        logger.info("Tickets exported", format=fmt.value, tickets=tickets.total)
        return ExportResult(
            content=content,
            filename=pattern.format(ts=timestamp),
            format=fmt,
            media_type=media_type,
        )

    @staticmethod
    def _resolve_format(export_format: Union[ExportFormat, str]) -> ExportFormat:
        try:
            return ExportFormat(export_format)
        except ValueError:
            logger.warning("Unknown export format, using JSON", format=str(export_format))
            return ExportFormat.JSON

    @staticmethod
    def to_csv(tickets: TicketCollection) -> str:
        rows = [
            [
                ticket.id,
                ticket.type.value,
                ticket.summary,
                ticket.description,
                ticket.priority.value,
                ", ".join(ticket.labels),
                ", ".join(ticket.components),
                ticket.parent_ticket or "",
                str(ticket.estimated_effort.story_points or ""),
                ticket.estimated_effort.time_estimate or "",
                ticket.estimated_effort.complexity.value,
                ticket.estimated_effort.confidence.value,
            ]
            for ticket in tickets.all_tickets()
        ]
        return _write_rows(CSV_HEADERS, rows)

    @staticmethod
    def to_json(tickets: TicketCollection) -> str:
        return json.dumps(tickets.model_dump(mode="json", by_alias=True), indent=2)

    @staticmethod
    def to_jira_import(tickets: TicketCollection) -> str:
        rows = [
            [
                ticket.type.value,
                ticket.summary,
                ticket.description,
                ticket.priority.value,
                " ".join(ticket.labels),
                " ".join(ticket.components),
            ]
            for ticket in tickets.all_tickets()
        ]
        return _write_rows(JIRA_IMPORT_HEADERS, rows)

    @staticmethod
    def to_confluence(
        tickets: TicketCollection, generated_at: Optional[datetime] = None
    ) -> str:
        generated_at = generated_at or utc_now()
        content = "# Project Specification\n\n"
        content += f"Generated on: {generated_at.strftime('%Y-%m-%d %H:%M:%S')}\n\n"

        sections: list[tuple[str, list[Ticket]]] = [
            ("Epics", tickets.epics),
            ("User Stories", tickets.stories),
            ("Tasks", tickets.tasks),
            ("Bugs", tickets.bugs),
        ]
        for heading, group in sections:
            if not group:
                continue
            content += f"## {heading}\n\n"
            for ticket in group:
                content += f"### {ticket.summary}\n\n"
                content += f"**Priority:** {ticket.priority.value}\n\n"
                content += f"{ticket.description}\n\n"
                if ticket.acceptance_criteria:
                    content += "**Acceptance Criteria:**\n"
                    content += "".join(f"- {ac}\n" for ac in ticket.acceptance_criteria)
                    content += "\n"
                content += "---\n\n"

        return content
