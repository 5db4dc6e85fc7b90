"""Client for the scheduling RPCs (PostgREST style)."""
from datetime import date, time
from typing import Any, Optional

import httpx

from apothecary.core_settings import Settings, get_settings
from shared.core import get_logger

logger = get_logger(__name__)


class AvailabilityClient:
    def __init__(self, settings: Optional[Settings] = None):
        settings = settings or get_settings()
        self.base_url = settings.AVAILABILITY_RPC_URL.rstrip("/")
        self.headers = {"Content-Type": "application/json"}
        if settings.AVAILABILITY_RPC_KEY:
            self.headers["apikey"] = settings.AVAILABILITY_RPC_KEY
            self.headers["Authorization"] = f"Bearer {settings.AVAILABILITY_RPC_KEY}"

    def _rpc(self, function: str, params: dict) -> Any:
        with httpx.Client(timeout=5.0, headers=self.headers) as client:
            response = client.post(f"{self.base_url}/rpc/{function}", json=params)
            response.raise_for_status()
            return response.json()

    def is_slot_available(self, day: date, start: time, duration_minutes: int) -> bool:
        """An RPC failure counts as unavailable."""
        try:
            result = self._rpc("is_slot_available", {
                "p_date": day.isoformat(),
                "p_time": start.strftime("%H:%M:%S"),
                "p_duration_minutes": duration_minutes,
            })
        except httpx.HTTPError as e:
            logger.error(
                "Slot availability check failed",
                extra={"extra_fields": {"date": day.isoformat(), "error": str(e)}},
            )
            return False
        return result is True

    def get_available_slots(self, day: date, booking_type: str) -> list[dict]:
        result = self._rpc("get_available_slots", {
            "p_date": day.isoformat(),
            "p_booking_type": booking_type,
        })
        return result or []


def get_availability_client() -> AvailabilityClient:
    return AvailabilityClient()
