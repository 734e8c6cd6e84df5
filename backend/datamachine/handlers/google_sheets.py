"""Google Sheets publish handler: appends one row per item."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from urllib.parse import quote

from ..engine.errors import ConfigurationError, CredentialsMissingError
from ..engine.registry import HandlerRegistry
from ..engine.services import Services
from .base import PublishHandler, register_handler

API_BASE = "https://sheets.googleapis.com/v4/spreadsheets"
DEFAULT_COLUMNS = ["timestamp", "title", "content", "source_url", "source_type", "job_id"]


class GoogleSheetsPublish(PublishHandler):
    slug = "google_sheets"
    label = "Google Sheets"
    auth_provider = "google_sheets"
    settings_schema = {
        "spreadsheet_id": {"type": "text", "required": True},
        "worksheet_name": {"type": "text", "default": "Sheet1"},
        "columns": {"type": "list", "default": DEFAULT_COLUMNS},
    }

    def handle_output(self, output) -> dict[str, Any]:
        spreadsheet_id = (output.settings.get("spreadsheet_id") or "").strip()
        if not spreadsheet_id:
            raise ConfigurationError("Google Sheets spreadsheet ID is not configured")
        if not output.body.strip():
            return {"success": False, "error": "Google Sheets row requires content"}

        auth = self.get_auth()
        if auth is None:
            raise CredentialsMissingError("Google Sheets authentication is not configured")
        access_token = auth.get_access_token()

        worksheet = output.settings.get("worksheet_name") or "Sheet1"
        row = self.build_row(output, output.settings.get("columns") or DEFAULT_COLUMNS)
        range_ = quote(f"{worksheet}!A:Z", safe="")
        response = self.services.http.post(
            f"{API_BASE}/{spreadsheet_id}/values/{range_}:append",
            params={"valueInputOption": "USER_ENTERED", "insertDataOption": "INSERT_ROWS"},
            json_body={"values": [row]},
            headers={"Authorization": f"Bearer {access_token}"},
            context="Google Sheets API",
        )
        if not response.success:
            return {"success": False, "error": f"Google Sheets API error: {response.error}"}

        updated_range = ((response.json() or {}).get("updates") or {}).get("updatedRange")
        return {
            "success": True,
            "spreadsheet_id": spreadsheet_id,
            "worksheet_name": worksheet,
            "updated_range": updated_range,
            "sheet_url": f"https://docs.google.com/spreadsheets/d/{spreadsheet_id}",
        }

    @staticmethod
    def build_row(output, columns: list[str]) -> list[Any]:
        values = {
            "timestamp": datetime.utcnow().strftime("%Y-%m-%d %H:%M:%S"),
            "title": output.title,
            "content": output.body,
            "summary": output.content.get("summary") or "",
            "source_url": output.source_url or "",
            "image_url": output.image_url or "",
            "source_type": output.metadata.get("source_type") or "",
            "job_id": output.job_id or "",
        }
        return [values.get(column, output.metadata.get(column, "")) for column in columns]


def register(registry: HandlerRegistry, services: Services) -> None:
    register_handler(registry, GoogleSheetsPublish(services))
