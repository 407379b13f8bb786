"""
Google Sheets Backup Store

DESIGN DECISION: Google Sheets is used as the remote home for encrypted
backups because:
1. No server to run - a spreadsheet the user already owns
2. Built-in durability (Google's infrastructure)
3. The data is ciphertext, so the sheet never sees a transaction

TRADEOFFS:
- A cell holds at most 50 000 characters, so ciphertext is split across
  consecutive columns
- No transactions: a backup is one row replace, last writer wins

The implementation follows `BackupStoreInterface`, so the remote can be
swapped for any blob store without touching the backup service.
"""

from typing import Optional

import gspread
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from finance_tracker.config import get_settings
from finance_tracker.config.settings import GoogleSheetsSettings
from finance_tracker.errors import StorageError
from finance_tracker.services.backup.crypto import EncryptedBlob
from finance_tracker.services.storage.interface import BackupStoreInterface


# Column layout for the Backups sheet; ciphertext chunks follow the fixed columns
BACKUP_COLUMNS = [
    "account",
    "version",
    "timestamp",
    "salt",
    "iv",
    "chunk_count",
]

# Stay below the 50 000 character cell limit
CELL_CHUNK_SIZE = 45_000


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._config = settings

    @property
    def _settings(self) -> GoogleSheetsSettings:
        # Resolved on first use so a session without backups needs no sheet config
        if self._config is None:
            self._config = get_settings().google_sheets
        return self._config

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
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
                raise StorageError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise StorageError(f"Failed to connect to Google Sheets: {e}")

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
                raise StorageError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_backups_sheet(self) -> gspread.Worksheet:
        """Get or create the Backups worksheet."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(self._settings.backups_sheet_name)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=self._settings.backups_sheet_name,
                rows=100,
                cols=len(BACKUP_COLUMNS) + 20,
            )
            sheet.append_row(BACKUP_COLUMNS)
        return sheet


def blob_to_row(account: str, blob: EncryptedBlob) -> list[str]:
    """Convert a blob to a spreadsheet row."""
    chunks = [
        blob.ciphertext[i:i + CELL_CHUNK_SIZE]
        for i in range(0, len(blob.ciphertext), CELL_CHUNK_SIZE)
    ] or [""]
    return [
        account,
        str(blob.version),
        str(blob.timestamp),
        blob.salt,
        blob.iv,
        str(len(chunks)),
        *chunks,
    ]


def row_to_blob(row: list[str]) -> EncryptedBlob:
    """Convert a spreadsheet row back to a blob."""
    fixed = len(BACKUP_COLUMNS)
    chunk_count = int(row[5])
    return EncryptedBlob(
        version=int(row[1]),
        timestamp=int(row[2]),
        salt=row[3],
        iv=row[4],
        ciphertext="".join(row[fixed:fixed + chunk_count]),
    )


class GoogleSheetsBackupStore(BackupStoreInterface):
    """
    One row per account; a new backup replaces the row in place.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def put_blob(self, account: str, blob: EncryptedBlob) -> bool:
        """Store the blob, overwriting any previous backup for the account."""
        try:
            sheet = self._client.get_backups_sheet()
            all_rows = sheet.get_all_values()
            new_row = blob_to_row(account, blob)

            for idx, row in enumerate(all_rows[1:], start=2):  # Row 1 is the header
                if row and row[0] == account:
                    # Overwrite in place; blank any chunk cells left from a longer blob
                    padded = new_row + [""] * (len(row) - len(new_row))
                    if sheet.col_count < len(padded):
                        sheet.add_cols(len(padded) - sheet.col_count)
                    sheet.update(
                        range_name=f"A{idx}",
                        values=[padded],
                        value_input_option="RAW",
                    )
                    return True

            sheet.append_row(new_row, value_input_option="RAW")
            return True
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to store backup: {e}")

    async def get_blob(self, account: str) -> Optional[EncryptedBlob]:
        """Retrieve the account's blob, if any."""
        try:
            sheet = self._client.get_backups_sheet()
            all_rows = sheet.get_all_values()[1:]  # Skip header
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to read backups: {e}")

        for row in all_rows:
            if row and row[0] == account:
                try:
                    return row_to_blob(row)
                except (IndexError, ValueError) as e:
                    raise StorageError(f"Malformed backup row for {account}: {e}")
        return None
