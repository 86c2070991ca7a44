"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is used as the hosted storage backend because:
1. Non-technical users can view their budget data directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)
4. Easy to export/migrate later

TRADEOFFS:
- Not suitable for high-volume data (we're fine for a household ledger)
- No multi-row transactions (the unit of work compensates instead)
- Limited query capabilities (we filter in Python)

Each collection lives in its own worksheet. A row holds the document key,
its version, the last write time and the full document as JSON, so new
model fields never require a sheet migration.
"""

import json
from typing import Any, Optional

import gspread
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from zerobudget.config import GoogleSheetsSettings, get_settings
from zerobudget.models.primitives import utcnow
from zerobudget.services.storage.interface import (
    ConflictError,
    ConnectionError,
    DocumentStore,
    StorageError,
    matches,
)


DOCUMENT_COLUMNS = [
    "key",
    "version",
    "updated_at",
    "document_json",
]

_api_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    reraise=True,
)


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and worksheet lookup with retry logic.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._worksheets: dict[str, gspread.Worksheet] = {}
        self._settings = settings or get_settings().google_sheets

    @_api_retry
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    @_api_retry
    def get_worksheet(self, collection: str) -> gspread.Worksheet:
        """Get or create the worksheet backing a collection."""
        if collection in self._worksheets:
            return self._worksheets[collection]

        title = f"{self._settings.worksheet_prefix}{collection}"
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            # Create the sheet with headers
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=self._settings.worksheet_rows,
                cols=len(DOCUMENT_COLUMNS),
            )
            sheet.append_row(DOCUMENT_COLUMNS)

        self._worksheets[collection] = sheet
        return sheet


class GoogleSheetsDocumentStore(DocumentStore):
    """
    Google Sheets implementation of the document store.

    Documents are stored one per row; row 1 is the header.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    @staticmethod
    def _row_to_document(row: list) -> Optional[dict[str, Any]]:
        """Convert a spreadsheet row to a document (None for blank rows)."""
        def safe_get(index: int, default: str = "") -> str:
            try:
                return row[index] if row[index] else default
            except IndexError:
                return default

        if not safe_get(0) or not safe_get(3):
            return None

        document = json.loads(safe_get(3))
        document["version"] = int(safe_get(1, "0"))
        return document

    @staticmethod
    def _document_to_row(document: dict[str, Any]) -> list:
        return [
            document["key"],
            str(document["version"]),
            utcnow().isoformat(),
            json.dumps(document, sort_keys=True, default=str),
        ]

    @_api_retry
    def _read_rows(self, collection: str) -> list[list]:
        sheet = self._client.get_worksheet(collection)
        return sheet.get_all_values()[1:]  # Skip header

    def _find_row(self, collection: str, key: str) -> tuple[Optional[int], Optional[dict]]:
        """Locate a document; returns (sheet row number, document)."""
        for idx, row in enumerate(self._read_rows(collection), start=2):
            if row and row[0] == key:
                return idx, self._row_to_document(row)
        return None, None

    async def get(self, collection: str, key: str) -> Optional[dict[str, Any]]:
        """Retrieve a document by key."""
        try:
            _, document = self._find_row(collection, key)
            return document
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to get {collection}/{key}: {e}")

    async def query(
        self,
        collection: str,
        filters: Optional[dict[str, Any]] = None,
    ) -> list[dict[str, Any]]:
        """List documents matching every filter."""
        try:
            documents = []
            for row in self._read_rows(collection):
                document = self._row_to_document(row)
                if document is not None and matches(document, filters):
                    documents.append(document)
            return documents
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to query {collection}: {e}")

    @_api_retry
    def _write_row(self, collection: str, row_number: Optional[int], row: list) -> None:
        sheet = self._client.get_worksheet(collection)
        if row_number is None:
            sheet.append_row(row, value_input_option="RAW")
        else:
            sheet.update(
                range_name=f"A{row_number}:D{row_number}",
                values=[row],
                value_input_option="RAW",
            )

    async def upsert(
        self,
        collection: str,
        document: dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> dict[str, Any]:
        """Insert or replace a document row."""
        key = document.get("key")
        if not key:
            raise StorageError(f"Cannot store a document without a key in {collection}")

        try:
            row_number, current = self._find_row(collection, key)
            current_version = current["version"] if current else 0

            if expected_version is not None and expected_version != current_version:
                raise ConflictError(
                    f"{collection}/{key} is at version {current_version}, "
                    f"expected {expected_version}"
                )

            stored = dict(document)
            stored["version"] = current_version + 1
            self._write_row(collection, row_number, self._document_to_row(stored))
            return stored
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save {collection}/{key}: {e}")

    async def delete(self, collection: str, key: str) -> bool:
        """Delete a document row."""
        try:
            row_number, _ = self._find_row(collection, key)
            if row_number is None:
                return False
            self._client.get_worksheet(collection).delete_rows(row_number)
            return True
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to delete {collection}/{key}: {e}")
