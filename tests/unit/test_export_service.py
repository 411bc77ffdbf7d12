"""
Unit tests for ticket export.
"""

import csv
import io
import json
from datetime import datetime, timezone

import pytest

from jira_planner.core.constants import ExportFormat, Priority, TicketType
from jira_planner.domain.planning import EffortEstimate, Ticket, TicketCollection
from jira_planner.services.export_service import CSV_HEADERS, JIRA_IMPORT_HEADERS, TicketExporter

FIXED_TIME = datetime(2024, 3, 5, 14, 7, 9, tzinfo=timezone.utc)


@pytest.fixture
def exporter():
    return TicketExporter(clock=lambda: FIXED_TIME)


@pytest.fixture
def tickets():
    return TicketCollection(
        epics=[
            Ticket(
                id="E-1",
                type=TicketType.EPIC,
                summary="Accounts",
                description="All account work",
                priority=Priority.HIGH,
                acceptance_criteria=["Users can manage accounts"],
            )
        ],
        stories=[
            Ticket(
                id="S-1",
                type=TicketType.STORY,
                summary='Login, with "quotes"',
                description="Line one\nLine two",
                labels=["auth", "frontend"],
                components=["Frontend", "Security"],
                parent_ticket="E-1",
                estimated_effort=EffortEstimate(story_points=3, time_estimate="2d"),
            )
        ],
    )


def read_csv(content):
    return list(csv.reader(io.StringIO(content)))


class TestTicketExporter:
    """Tests for TicketExporter."""

    @pytest.mark.parametrize(
        "export_format,filename,media_type",
        [
            (ExportFormat.CSV, "jira-tickets-2024-03-05T14-07-09.csv", "text/csv"),
            (ExportFormat.JSON, "jira-tickets-2024-03-05T14-07-09.json", "application/json"),
            (ExportFormat.JIRA_IMPORT, "jira-import-2024-03-05T14-07-09.csv", "text/csv"),
            (ExportFormat.CONFLUENCE, "project-specification-2024-03-05T14-07-09.md", "text/markdown"),
        ],
    )
    def test_filenames(self, exporter, tickets, export_format, filename, media_type):
        result = exporter.export(tickets, export_format)

        assert result.filename == filename
        assert result.media_type == media_type
        assert result.format == export_format

    def test_unknown_format_falls_back_to_json(self, exporter, tickets):
        result = exporter.export(tickets, "xml")

        assert result.format == ExportFormat.JSON
        assert json.loads(result.content)["epics"][0]["id"] == "E-1"

    def test_csv_quotes_every_field(self, exporter, tickets):
        """Test that commas, quotes and newlines survive a CSV round trip."""
        content = exporter.to_csv(tickets)
        rows = read_csv(content)

        assert content.startswith('"ID","Type","Summary"')
        assert rows[0] == CSV_HEADERS
        story = rows[2]
        assert story[2] == 'Login, with "quotes"'
        assert story[3] == "Line one\nLine two"
        assert story[5] == "auth, frontend"
        assert story[7] == "E-1"
        assert story[8] == "3"
        assert story[9] == "2d"

    def test_jira_import_columns(self, exporter, tickets):
        rows = read_csv(exporter.to_jira_import(tickets))

        assert rows[0] == JIRA_IMPORT_HEADERS
        assert rows[1][0] == "Epic"
        assert rows[2][4] == "auth frontend"
        assert rows[2][5] == "Frontend Security"

    def test_json_uses_camel_case(self, exporter, tickets):
        data = json.loads(exporter.to_json(tickets))

        assert data["stories"][0]["parentTicket"] == "E-1"
        assert data["stories"][0]["estimatedEffort"]["storyPoints"] == 3

    def test_confluence_document(self, exporter, tickets):
        content = exporter.export(tickets, ExportFormat.CONFLUENCE).content

        assert content.startswith("# Project Specification\n\nGenerated on: 2024-03-05 14:07:09")
        assert "## Epics" in content
        assert "## User Stories" in content
        assert "## Tasks" not in content
        assert "### Accounts\n\n**Priority:** high" in content
        assert "**Acceptance Criteria:**\n- Users can manage accounts" in content
        assert content.count("---") == 2
