"""
Local State Cache

The local lane of persistence: one JSON file at a fixed storage key,
written synchronously on every state change.

DESIGN DECISION: A missing or unreadable cache is never an error for the
user. We fall back to the empty state and keep going. Partial payloads
(older clients, hand edits) are filled field by field with defaults.
"""

import json
import os
from pathlib import Path
from typing import TYPE_CHECKING, Optional

from household_finance.models.audit import AuditEventBuilder
from household_finance.models.finance import AppState, Currency, parse_app_state

if TYPE_CHECKING:
    from household_finance.audit.logger import AuditLogger


class LocalStateCache:
    """
    File-backed cache of the application state.

    The file holds the AppState payload (camelCase keys).
    """

    def __init__(
        self,
        path: Path,
        default_currency: Currency = Currency.GBP,
        audit_logger: Optional["AuditLogger"] = None,
    ):
        self._path = Path(path)
        self._default_currency = default_currency
        self._audit_logger = audit_logger

    @property
    def path(self) -> Path:
        return self._path

    def empty_state(self) -> AppState:
        return AppState(currency=self._default_currency)

    def load(self) -> AppState:
        """
        Read the cached state.

        Returns the empty state when the file is absent, unreadable or not
        valid JSON.
        """
        if not self._path.exists():
            return self.empty_state()

        try:
            raw = self._path.read_text(encoding="utf-8")
            payload = json.loads(raw) if raw.strip() else None
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            if self._audit_logger:
                self._audit_logger.log(
                    AuditEventBuilder.local_cache_recovered(str(self._path), str(e))
                )
            return self.empty_state()

        state, issues = parse_app_state(payload, self._default_currency)
        if self._audit_logger:
            self._audit_logger.log(
                AuditEventBuilder.state_loaded_local(str(self._path), issues)
            )
        return state

    def save(self, state: AppState) -> None:
        """
        Write the full state.

        Written to a sibling temp file first, then moved into place, so a
        crash mid-write leaves the previous cache intact.
        """
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_name(self._path.name + ".tmp")
        with tmp_path.open("w", encoding="utf-8") as handle:
            json.dump(state.to_payload(), handle, indent=2)
        os.replace(tmp_path, self._path)
