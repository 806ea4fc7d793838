"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is offered as a persistent backend because:
1. Users can view their ledger directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)
4. Easy to export/migrate later

TRADEOFFS:
- Not suitable for high-volume data (we're fine for personal use)
- No transactions (the reconciler compensates on failure instead)
- Limited query capabilities (we filter in Python)

Each collection lives in its own worksheet with a header row.
All values are written RAW so Decimals, UUIDs and ISO dates round-trip
as plain strings.
"""

import json
from datetime import datetime
from decimal import Decimal
from typing import Callable, Optional
from uuid import UUID

import gspread
from google.oauth2.service_account import Credentials
from tenacity import (
    retry,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from finance_tracker.config import get_settings
from finance_tracker.models.account import (
    Account,
    AccountStatus,
    AccountTransaction,
    AccountType,
)
from finance_tracker.models.audit import AuditEvent, AuditEventType, AuditSeverity
from finance_tracker.models.ledger import (
    CATALOG_MODELS,
    AggregateBalance,
    CatalogItem,
    CatalogKind,
    EntityStatus,
    EntryFilter,
    EntryKind,
    LedgerEntry,
    PaymentMethodBalance,
)
from finance_tracker.services.storage.interface import (
    AccountStorageInterface,
    AuditStorageInterface,
    BalanceStorageInterface,
    CatalogStorageInterface,
    ConnectionError,
    DuplicateError,
    LedgerStorageInterface,
    NotFoundError,
    StorageError,
)


CATALOG_COLUMNS = [
    "id",
    "name",
    "status",
    "created_at",
    "updated_at",
]

ENTRY_COLUMNS = [
    "id",
    "user_id",
    "kind",
    "amount",
    "category_id",
    "payment_method_id",
    "amount_type_id",
    "entry_date",
    "description",
    "created_at",
    "updated_at",
]

PAYMENT_METHOD_BALANCE_COLUMNS = [
    "user_id",
    "payment_method_id",
    "balance",
    "updated_at",
]

BALANCE_COLUMNS = [
    "user_id",
    "current_balance",
    "updated_at",
]

ACCOUNT_COLUMNS = [
    "id",
    "user_id",
    "name",
    "description",
    "account_type",
    "status",
    "created_at",
    "updated_at",
    "transactions_json",
]

AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "user_id",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]

RETRY_POLICY = dict(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    retry=retry_if_not_exception_type((DuplicateError, NotFoundError)),
    reraise=True,
)


def _cell(row: list, index: int, default: str = "") -> str:
    """Read a cell, tolerating short rows."""
    try:
        return row[index] if row[index] else default
    except IndexError:
        return default


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = get_settings().google_sheets

    @property
    def settings(self):
        return self._settings

    @retry(**RETRY_POLICY)
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

    def get_worksheet(self, title: str, columns: list[str], rows: int = 1000) -> gspread.Worksheet:
        """Get or create a worksheet with the given header row."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet


class _SheetTable:
    """
    Row-level helpers shared by the storage classes.

    Row numbers are 1-based and include the header row, as in the Sheets UI.
    """

    def __init__(self, client: GoogleSheetsClient, title: str, columns: list[str]):
        self._client = client
        self._title = title
        self._columns = columns

    def sheet(self) -> gspread.Worksheet:
        return self._client.get_worksheet(self._title, self._columns)

    def rows(self) -> list[list]:
        """All data rows (header excluded), skipping blank rows."""
        return [row for row in self.sheet().get_all_values()[1:] if row and row[0]]

    def find(self, match: Callable[[list], bool]) -> Optional[tuple[int, list]]:
        for idx, row in enumerate(self.sheet().get_all_values()[1:], start=2):
            if row and match(row):
                return idx, row
        return None

    def append(self, row: list) -> None:
        self.sheet().append_row(row, value_input_option="RAW")

    def replace(self, row_number: int, row: list) -> None:
        self.sheet().batch_update(
            [{"range": f"A{row_number}", "values": [row]}],
            value_input_option="RAW",
        )

    def delete(self, row_number: int) -> None:
        self.sheet().delete_rows(row_number)


class GoogleSheetsCatalogStorage(CatalogStorageInterface):
    """
    Google Sheets implementation of reference data storage.

    One worksheet per catalog kind.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
        settings = self._client.settings
        titles = {
            CatalogKind.AMOUNT_TYPE: settings.amount_types_sheet_name,
            CatalogKind.CATEGORY: settings.categories_sheet_name,
            CatalogKind.PAYMENT_METHOD: settings.payment_methods_sheet_name,
        }
        self._tables = {
            kind: _SheetTable(self._client, title, CATALOG_COLUMNS)
            for kind, title in titles.items()
        }

    @staticmethod
    def _item_to_row(item: CatalogItem) -> list:
        return [
            str(item.id),
            item.name,
            item.status.value,
            item.created_at.isoformat(),
            item.updated_at.isoformat(),
        ]

    @staticmethod
    def _row_to_item(kind: CatalogKind, row: list) -> CatalogItem:
        model = CATALOG_MODELS[kind]
        return model(
            id=UUID(_cell(row, 0)),
            name=_cell(row, 1),
            status=EntityStatus(_cell(row, 2, EntityStatus.ACTIVE.value)),
            created_at=datetime.fromisoformat(_cell(row, 3)),
            updated_at=datetime.fromisoformat(_cell(row, 4)),
        )

    async def get_item(self, kind: CatalogKind, item_id: UUID) -> Optional[CatalogItem]:
        try:
            found = self._tables[kind].find(lambda row: row[0] == str(item_id))
        except Exception as e:
            raise StorageError(f"Failed to get {kind.value}: {e}")
        return self._row_to_item(kind, found[1]) if found else None

    async def list_items(self, kind: CatalogKind) -> list[CatalogItem]:
        try:
            rows = self._tables[kind].rows()
        except Exception as e:
            raise StorageError(f"Failed to list {kind.value}: {e}")

        items = []
        for row in rows:
            try:
                items.append(self._row_to_item(kind, row))
            except Exception:
                continue  # Skip malformed rows
        items.sort(key=lambda i: i.name.lower())
        return items

    @retry(**RETRY_POLICY)
    async def save_item(self, kind: CatalogKind, item: CatalogItem) -> bool:
        table = self._tables[kind]
        try:
            existing = None
            for idx, row in enumerate(table.sheet().get_all_values()[1:], start=2):
                if not row or not row[0]:
                    continue
                if row[0] == str(item.id):
                    existing = idx
                elif _cell(row, 1).lower() == item.name.lower():
                    raise DuplicateError(
                        f"{kind.value.replace('_', ' ').capitalize()} with this name already exists"
                    )

            if existing:
                table.replace(existing, self._item_to_row(item))
            else:
                table.append(self._item_to_row(item))
            return True
        except DuplicateError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save {kind.value}: {e}")

    async def delete_item(self, kind: CatalogKind, item_id: UUID) -> bool:
        table = self._tables[kind]
        try:
            found = table.find(lambda row: row[0] == str(item_id))
            if not found:
                return False
            table.delete(found[0])
            return True
        except Exception as e:
            raise StorageError(f"Failed to delete {kind.value}: {e}")


class GoogleSheetsLedgerStorage(LedgerStorageInterface):
    """
    Google Sheets implementation of expense/saving storage.

    Expenses and savings share one worksheet, told apart by the kind column.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
        self._table = _SheetTable(
            self._client,
            self._client.settings.entries_sheet_name,
            ENTRY_COLUMNS,
        )

    @staticmethod
    def _entry_to_row(entry: LedgerEntry) -> list:
        return [
            str(entry.id),
            entry.user_id,
            entry.kind.value,
            str(entry.amount),
            str(entry.category_id),
            str(entry.payment_method_id),
            str(entry.amount_type_id),
            entry.entry_date.isoformat(),
            entry.description,
            entry.created_at.isoformat(),
            entry.updated_at.isoformat(),
        ]

    @staticmethod
    def _row_to_entry(row: list) -> LedgerEntry:
        return LedgerEntry(
            id=UUID(_cell(row, 0)),
            user_id=_cell(row, 1),
            kind=EntryKind(_cell(row, 2)),
            amount=Decimal(_cell(row, 3)),
            category_id=UUID(_cell(row, 4)),
            payment_method_id=UUID(_cell(row, 5)),
            amount_type_id=UUID(_cell(row, 6)),
            entry_date=datetime.fromisoformat(_cell(row, 7)),
            description=_cell(row, 8),
            created_at=datetime.fromisoformat(_cell(row, 9)),
            updated_at=datetime.fromisoformat(_cell(row, 10)),
        )

    @retry(**RETRY_POLICY)
    async def save_entry(self, entry: LedgerEntry) -> bool:
        try:
            self._table.append(self._entry_to_row(entry))
            return True
        except Exception as e:
            raise StorageError(f"Failed to save entry: {e}")

    async def get_entry(self, entry_id: UUID) -> Optional[LedgerEntry]:
        try:
            found = self._table.find(lambda row: row[0] == str(entry_id))
        except Exception as e:
            raise StorageError(f"Failed to get entry: {e}")
        return self._row_to_entry(found[1]) if found else None

    @retry(**RETRY_POLICY)
    async def update_entry(self, entry: LedgerEntry) -> bool:
        try:
            found = self._table.find(lambda row: row[0] == str(entry.id))
            if not found:
                raise NotFoundError(f"Entry not found: {entry.id}")
            self._table.replace(found[0], self._entry_to_row(entry))
            return True
        except NotFoundError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update entry: {e}")

    async def delete_entry(self, entry_id: UUID) -> bool:
        try:
            found = self._table.find(lambda row: row[0] == str(entry_id))
            if not found:
                return False
            self._table.delete(found[0])
            return True
        except Exception as e:
            raise StorageError(f"Failed to delete entry: {e}")

    async def list_entries(
        self,
        user_id: str,
        kind: EntryKind,
        entry_filter: Optional[EntryFilter] = None,
    ) -> list[LedgerEntry]:
        try:
            rows = self._table.rows()
        except Exception as e:
            raise StorageError(f"Failed to list entries: {e}")

        entries = []
        for row in rows:
            if _cell(row, 1) != user_id or _cell(row, 2) != kind.value:
                continue
            try:
                entry = self._row_to_entry(row)
            except Exception:
                continue  # Skip malformed rows
            if entry_filter and not entry_filter.matches(entry):
                continue
            entries.append(entry)

        entries.sort(key=lambda e: (e.entry_date, e.created_at), reverse=True)
        return entries


class GoogleSheetsBalanceStorage(BalanceStorageInterface):
    """
    Google Sheets implementation of balance storage.

    One row per (user, payment method) and one row per user for the aggregate.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
        settings = self._client.settings
        self._methods = _SheetTable(
            self._client,
            settings.payment_method_balances_sheet_name,
            PAYMENT_METHOD_BALANCE_COLUMNS,
        )
        self._aggregates = _SheetTable(
            self._client,
            settings.balances_sheet_name,
            BALANCE_COLUMNS,
        )

    @staticmethod
    def _method_key(user_id: str, payment_method_id: UUID) -> Callable[[list], bool]:
        return lambda row: row[0] == user_id and _cell(row, 1) == str(payment_method_id)

    @staticmethod
    def _row_to_method_balance(row: list) -> PaymentMethodBalance:
        return PaymentMethodBalance(
            user_id=_cell(row, 0),
            payment_method_id=UUID(_cell(row, 1)),
            balance=Decimal(_cell(row, 2, "0")),
            updated_at=datetime.fromisoformat(_cell(row, 3)),
        )

    async def get_payment_method_balance(
        self,
        user_id: str,
        payment_method_id: UUID,
    ) -> Optional[PaymentMethodBalance]:
        try:
            found = self._methods.find(self._method_key(user_id, payment_method_id))
        except Exception as e:
            raise StorageError(f"Failed to get payment method balance: {e}")
        return self._row_to_method_balance(found[1]) if found else None

    async def list_payment_method_balances(self, user_id: str) -> list[PaymentMethodBalance]:
        try:
            rows = self._methods.rows()
        except Exception as e:
            raise StorageError(f"Failed to list payment method balances: {e}")
        return [self._row_to_method_balance(row) for row in rows if row[0] == user_id]

    @retry(**RETRY_POLICY)
    async def save_payment_method_balance(self, row: PaymentMethodBalance) -> bool:
        values = [
            row.user_id,
            str(row.payment_method_id),
            str(row.balance),
            row.updated_at.isoformat(),
        ]
        try:
            found = self._methods.find(self._method_key(row.user_id, row.payment_method_id))
            if found:
                self._methods.replace(found[0], values)
            else:
                self._methods.append(values)
            return True
        except Exception as e:
            raise StorageError(f"Failed to save payment method balance: {e}")

    async def delete_payment_method_balance(
        self,
        user_id: str,
        payment_method_id: UUID,
    ) -> bool:
        try:
            found = self._methods.find(self._method_key(user_id, payment_method_id))
            if not found:
                return False
            self._methods.delete(found[0])
            return True
        except Exception as e:
            raise StorageError(f"Failed to delete payment method balance: {e}")

    async def get_aggregate_balance(self, user_id: str) -> Optional[AggregateBalance]:
        try:
            found = self._aggregates.find(lambda row: row[0] == user_id)
        except Exception as e:
            raise StorageError(f"Failed to get balance: {e}")
        if not found:
            return None
        row = found[1]
        return AggregateBalance(
            user_id=_cell(row, 0),
            current_balance=Decimal(_cell(row, 1, "0")),
            updated_at=datetime.fromisoformat(_cell(row, 2)),
        )

    @retry(**RETRY_POLICY)
    async def save_aggregate_balance(self, row: AggregateBalance) -> bool:
        values = [row.user_id, str(row.current_balance), row.updated_at.isoformat()]
        try:
            found = self._aggregates.find(lambda existing: existing[0] == row.user_id)
            if found:
                self._aggregates.replace(found[0], values)
            else:
                self._aggregates.append(values)
            return True
        except Exception as e:
            raise StorageError(f"Failed to save balance: {e}")


class GoogleSheetsAccountStorage(AccountStorageInterface):
    """
    Google Sheets implementation of loan account storage.

    Transactions are JSON-serialized into a single column.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
        self._table = _SheetTable(
            self._client,
            self._client.settings.accounts_sheet_name,
            ACCOUNT_COLUMNS,
        )

    @staticmethod
    def _account_to_row(account: Account) -> list:
        return [
            str(account.id),
            account.user_id,
            account.name,
            account.description,
            account.account_type.value,
            account.status.value,
            account.created_at.isoformat(),
            account.updated_at.isoformat(),
            json.dumps([txn.model_dump(mode="json") for txn in account.transactions]),
        ]

    @staticmethod
    def _row_to_account(row: list) -> Account:
        transactions = []
        transactions_json = _cell(row, 8)
        if transactions_json:
            transactions = [
                AccountTransaction(**txn) for txn in json.loads(transactions_json)
            ]
        return Account(
            id=UUID(_cell(row, 0)),
            user_id=_cell(row, 1),
            name=_cell(row, 2),
            description=_cell(row, 3),
            account_type=AccountType(_cell(row, 4, AccountType.BORROWED.value)),
            status=AccountStatus(_cell(row, 5, AccountStatus.ACTIVE.value)),
            created_at=datetime.fromisoformat(_cell(row, 6)),
            updated_at=datetime.fromisoformat(_cell(row, 7)),
            transactions=transactions,
        )

    @retry(**RETRY_POLICY)
    async def save_account(self, account: Account) -> bool:
        try:
            self._table.append(self._account_to_row(account))
            return True
        except Exception as e:
            raise StorageError(f"Failed to save account: {e}")

    async def get_account(self, account_id: UUID) -> Optional[Account]:
        try:
            found = self._table.find(lambda row: row[0] == str(account_id))
        except Exception as e:
            raise StorageError(f"Failed to get account: {e}")
        return self._row_to_account(found[1]) if found else None

    @retry(**RETRY_POLICY)
    async def update_account(self, account: Account) -> bool:
        try:
            found = self._table.find(lambda row: row[0] == str(account.id))
            if not found:
                raise NotFoundError(f"Account not found: {account.id}")
            self._table.replace(found[0], self._account_to_row(account))
            return True
        except NotFoundError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update account: {e}")

    async def list_accounts(
        self,
        user_id: str,
        status: Optional[AccountStatus] = None,
    ) -> list[Account]:
        try:
            rows = self._table.rows()
        except Exception as e:
            raise StorageError(f"Failed to list accounts: {e}")

        accounts = []
        for row in rows:
            if _cell(row, 1) != user_id:
                continue
            try:
                account = self._row_to_account(row)
            except Exception:
                continue  # Skip malformed rows
            if status and account.status != status:
                continue
            accounts.append(account)

        accounts.sort(key=lambda a: a.updated_at, reverse=True)
        return accounts


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
        self._table = _SheetTable(
            self._client,
            self._client.settings.audit_sheet_name,
            AUDIT_COLUMNS,
        )

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        return AuditEvent(
            event_id=UUID(_cell(row, 0)),
            timestamp=datetime.fromisoformat(_cell(row, 1)),
            event_type=AuditEventType(_cell(row, 2)),
            severity=AuditSeverity(_cell(row, 3)),
            user_id=_cell(row, 4) or None,
            entity_type=_cell(row, 5) or None,
            entity_id=UUID(_cell(row, 6)) if _cell(row, 6) else None,
            correlation_id=UUID(_cell(row, 7)) if _cell(row, 7) else None,
            description=_cell(row, 8),
            details=json.loads(_cell(row, 9)) if _cell(row, 9) else {},
            error_message=_cell(row, 10) or None,
            is_user_action=_cell(row, 11).lower() == "true",
        )

    def _events(self, match: Callable[[list], bool]) -> list[AuditEvent]:
        events = []
        for row in self._table.rows():
            if not match(row):
                continue
            try:
                events.append(self._row_to_event(row))
            except Exception:
                continue
        return events

    @retry(**RETRY_POLICY)
    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            self._table.append(event.to_sheets_row())
            return True
        except Exception as e:
            raise StorageError(f"Failed to write audit event: {e}")

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        try:
            events = self._events(lambda row: _cell(row, 7) == str(correlation_id))
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        try:
            events = self._events(
                lambda row: _cell(row, 5) == entity_type and _cell(row, 6) == str(entity_id)
            )
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        try:
            events = self._events(lambda row: True)
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
