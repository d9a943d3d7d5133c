"""Google Sheets values API: batch record source and audit append sink."""

from __future__ import annotations

import logging
from urllib.parse import quote

import httpx

from core.ingest.models import RawRecord
from core.sources.base import DEFAULT_TIMEOUT_SECONDS, AuditRow, http_client
from core.utils.errors import SourceFetchError
from core.utils.log_events import log_event

logger = logging.getLogger("worksheet.sources")

SHEETS_API_BASE = "https://sheets.googleapis.com/v4/spreadsheets"
DEFAULT_SHEET_RANGE = "Form Responses 1"


class SheetsRecordSource:
    """Read every row of a sheet range; the first row is the header.

    The record id is the 1-based sheet row number, so the header is row 1 and
    the first data row is row 2.
    """

    name = "google_sheets"

    def __init__(
        self,
        sheet_id: str,
        access_token: str,
        *,
        sheet_range: str = DEFAULT_SHEET_RANGE,
        client: httpx.Client | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._sheet_id = sheet_id
        self._access_token = access_token
        self._sheet_range = sheet_range
        self._client = client
        self._timeout = timeout

    def fetch(self) -> list[RawRecord]:
        url = f"{SHEETS_API_BASE}/{self._sheet_id}/values/{quote(self._sheet_range, safe='')}"
        log_event(
            logger,
            logging.INFO,
            "sheet_fetch",
            sheet_id=self._sheet_id,
            sheet_range=self._sheet_range,
        )
        try:
            with http_client(self._client, self._timeout) as client:
                response = client.get(url, headers=_auth_headers(self._access_token))
                response.raise_for_status()
                payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise SourceFetchError(
                f"Could not read sheet {self._sheet_id!r}: {exc}", source=self.name
            ) from exc

        return rows_to_records(payload.get("values") or [])


def rows_to_records(values: list[list[object]]) -> list[RawRecord]:
    """Map a header row plus data rows to raw records."""

    if not values:
        return []
    header = [str(cell) for cell in values[0]]
    records: list[RawRecord] = []
    for offset, row in enumerate(values[1:]):
        cells = tuple("" if cell is None else str(cell) for cell in row)
        mapped = {
            key: cells[index] if index < len(cells) else "" for index, key in enumerate(header)
        }
        records.append(RawRecord(values=mapped, row=cells, record_id=str(offset + 2)))
    return records


class SheetsAuditSink:
    """Append audit rows to a sheet; with no range the first tab is used."""

    def __init__(
        self,
        sheet_id: str,
        access_token: str,
        *,
        sheet_range: str | None = None,
        client: httpx.Client | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._sheet_id = sheet_id
        self._access_token = access_token
        self._sheet_range = sheet_range
        self._client = client
        self._timeout = timeout

    def append(self, row: AuditRow) -> None:
        headers = _auth_headers(self._access_token)
        with http_client(self._client, self._timeout) as client:
            target_range = self._sheet_range or self._first_sheet_range(client, headers)
            response = client.post(
                f"{SHEETS_API_BASE}/{self._sheet_id}/values/{quote(target_range, safe='')}:append",
                params={"valueInputOption": "USER_ENTERED", "insertDataOption": "INSERT_ROWS"},
                headers=headers,
                json={"values": [row.as_values()]},
            )
            response.raise_for_status()

    def _first_sheet_range(self, client: httpx.Client, headers: dict[str, str]) -> str:
        response = client.get(
            f"{SHEETS_API_BASE}/{self._sheet_id}",
            params={"fields": "sheets.properties.title"},
            headers=headers,
        )
        response.raise_for_status()
        sheets = response.json().get("sheets") or []
        title = "Sheet1"
        if sheets:
            title = sheets[0].get("properties", {}).get("title") or title
        return f"{title}!A1"


def _auth_headers(access_token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {access_token}"}
