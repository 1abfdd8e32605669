from datetime import datetime
from typing import Literal

from pydantic import BaseModel

from app.scanner.models import ScannerDescriptor, ScannerKind


class CachedScannerState(BaseModel):
    """The registry's last known-good scanner as saved between runs."""

    format: Literal[1] = 1
    device: str
    vendor: str = "Unknown"
    model: str = "Unknown"
    kind: ScannerKind = ScannerKind.UNKNOWN
    available: bool = True
    last_success: datetime | None = None

    @classmethod
    def capture(
        cls, descriptor: ScannerDescriptor, last_success: datetime | None
    ) -> "CachedScannerState":
        return cls(
            device=descriptor.device,
            vendor=descriptor.vendor,
            model=descriptor.model,
            kind=descriptor.kind,
            available=descriptor.available,
            last_success=last_success,
        )

    def descriptor(self) -> ScannerDescriptor:
        return ScannerDescriptor(
            device=self.device,
            vendor=self.vendor,
            model=self.model,
            kind=self.kind,
            available=self.available,
        )
