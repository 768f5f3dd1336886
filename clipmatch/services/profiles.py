"""Matching profiles: one parametrised engine per source pairing."""

from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal

from clipmatch.config import Settings, settings
from clipmatch.models import Side
from clipmatch.services.adapters import SourceAdapter, build_adapter
from clipmatch.services.errors import ConfigurationError
from clipmatch.services.matcher import MatchThresholds
from clipmatch.services.metrics import RoleMapping


@dataclass(frozen=True)
class MatchingProfile:
    """Sources, role mapping and threshold overrides for a pairing.

    Thresholds left as None fall back to the configured defaults.
    """

    name: str
    side_a_source: str
    side_b_source: str
    roles: RoleMapping
    require_key_match: bool = False
    amount_tolerance: Decimal | None = None
    time_window: timedelta | None = None

    def thresholds(self, config: Settings | None = None) -> MatchThresholds:
        cfg = config or settings
        return MatchThresholds(
            amount_tolerance=self.amount_tolerance if self.amount_tolerance is not None else cfg.amount_tolerance,
            time_window=self.time_window if self.time_window is not None else cfg.time_window,
            require_key_match=self.require_key_match,
        )

    def adapters(self, config: Settings | None = None) -> dict[Side, SourceAdapter]:
        return {
            Side.A: build_adapter(self.side_a_source, config),
            Side.B: build_adapter(self.side_b_source, config),
        }


PROFILES: dict[str, MatchingProfile] = {
    # IDEX payouts against Bybit P2P sales: Bybit spends, IDEX settles in USDT.
    "idex_bybit": MatchingProfile(
        name="idex_bybit",
        side_a_source="idex",
        side_b_source="bybit",
        roles=RoleMapping(expense_side=Side.B),
    ),
    # Vires card payments against Bybit orders, paired on the customer phone.
    "vires_bybit": MatchingProfile(
        name="vires_bybit",
        side_a_source="vires",
        side_b_source="bybit_order",
        roles=RoleMapping(expense_side=Side.A),
        require_key_match=True,
    ),
    "generic": MatchingProfile(
        name="generic",
        side_a_source="ledger",
        side_b_source="counterparty",
        roles=RoleMapping(expense_side=Side.B, expense_multiplier=Decimal("1.009")),
    ),
}


def get_profile(name: str) -> MatchingProfile:
    profile = PROFILES.get(name)
    if profile is None:
        raise ConfigurationError(f"Unknown matching profile '{name}'")
    return profile
