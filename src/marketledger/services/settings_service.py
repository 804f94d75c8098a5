from __future__ import annotations

import logging
from datetime import date
from typing import Any, Callable, Optional

from marketledger.domain.models import Setting
from marketledger.repositories.contracts import LedgerStore, SETTINGS

log = logging.getLogger(__name__)

LAST_MARKET_NAME = "last_market_name"
LAST_SALE_DATE = "last_sale_date"


class SettingsService:
    def __init__(self, repo: LedgerStore, today: Callable[[], date] = date.today):
        self.repo = repo
        self.today = today

    def get(self, key: str, default: Any = None) -> Any:
        setting = self.repo.get(SETTINGS, key)
        return setting.value if setting is not None else default

    def set(self, key: str, value: Any) -> None:
        self.repo.put(SETTINGS, Setting(key=key, value=value))

    def last_market_name(self) -> str:
        return str(self.get(LAST_MARKET_NAME, "") or "")

    def last_sale_date(self) -> date:
        """Last date a sale was recorded for, or today when none is stored."""
        raw: Optional[str] = self.get(LAST_SALE_DATE)
        if raw:
            try:
                return date.fromisoformat(raw)
            except ValueError:
                log.warning("setting_unparseable key=%s value=%r", LAST_SALE_DATE, raw)
        return self.today()
