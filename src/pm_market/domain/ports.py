# src/pm_market/domain/ports.py
"""Outward capabilities a Market is handed at initialization.

Protocols keep the domain free of registry / treasury imports. Unit tests
inject mocks that conform to these.
"""

from typing import Protocol


class VolumeReporter(Protocol):
    """Advisory, fire-and-forget. Failures never roll back a stake."""

    def report_volume(self, market_address: str, amount: int) -> None: ...


class ValueTransfer(Protocol):
    """Moves value out of the market. Always the last step of a claim."""

    def transfer(self, recipient: str, amount: int) -> None: ...
