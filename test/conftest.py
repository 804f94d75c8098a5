import sys
from datetime import date, datetime
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))


class FixedClock:
    """Callable clock; ``now`` can be moved between calls."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def today(self) -> date:
        return self.now.date()


def seed_catalog(catalog):
    """Product A (price 10, cost 4) and product B (price 6, cost 2)."""
    a = catalog.add_product("A", 10.0, 4.0)
    b = catalog.add_product("B", 6.0, 2.0)
    return a, b
