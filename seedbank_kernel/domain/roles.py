"""Static PIN -> role lookup used to attribute edits."""

from __future__ import annotations

from collections.abc import Mapping

UNKNOWN_ROLE = "Unknown User"


class RoleDirectory:
    """Resolves a staff PIN to a role name; unknown PINs get ``UNKNOWN_ROLE``."""

    def __init__(self, pins: Mapping[str, str], unknown_role: str = UNKNOWN_ROLE):
        self._pins = {str(pin).strip(): role for pin, role in pins.items()}
        self.unknown_role = unknown_role

    def resolve(self, pin: str | int | None) -> str:
        if pin is None:
            return self.unknown_role
        return self._pins.get(str(pin).strip(), self.unknown_role)

    def __len__(self) -> int:
        return len(self._pins)
