"""Async HTTP client the reminder session uses to reach the API server.

One object plays three roles for the session: schedule store, reminder
attempt tracker, and instant-escalation trigger. Every failure (network,
timeout, non-2xx, a body that is not JSON or not the expected shape)
surfaces as BackendError.
"""

from typing import Any, List, Optional, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from config import settings
from schemas import EscalationResult, ReminderAttemptResponse, ScheduleItem

ModelT = TypeVar("ModelT", bound=BaseModel)


class BackendError(Exception):
    """A request to the reminder backend failed."""


class ReminderBackendClient:
    def __init__(
        self,
        user_id: str,
        base_url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0
    ):
        self.user_id = user_id
        self.client = client or httpx.AsyncClient(
            base_url=base_url or settings.REMINDER_API_URL,
            timeout=timeout
        )

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        try:
            response = await self.client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise BackendError(f"{method} {path} failed: {str(e)}") from e

        try:
            return response.json()
        except ValueError as e:
            raise BackendError(f"{method} {path} returned a non-JSON body: {str(e)}") from e

    @staticmethod
    def _parse(model: Type[ModelT], data: Any, path: str) -> ModelT:
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise BackendError(f"{path} returned an unexpected {model.__name__}: {str(e)}") from e

    # Schedule store

    async def list_today_schedule(self, user_id: Optional[str] = None) -> List[ScheduleItem]:
        path = "/schedule/today"
        data = await self._request("GET", path, params={"user_id": user_id or self.user_id})
        if not isinstance(data, list):
            raise BackendError(f"{path} returned {type(data).__name__}, expected a list")
        return [self._parse(ScheduleItem, item, path) for item in data]

    async def mark_taken(self, schedule_id: str) -> ScheduleItem:
        path = f"/schedule/{schedule_id}/taken"
        data = await self._request("POST", path, params={"user_id": self.user_id})
        return self._parse(ScheduleItem, data, path)

    async def mark_missed(self, schedule_id: str) -> ScheduleItem:
        path = f"/schedule/{schedule_id}/missed"
        data = await self._request("POST", path, params={"user_id": self.user_id})
        return self._parse(ScheduleItem, data, path)

    # Reminder attempt tracker

    async def increment(self, schedule_id: str, medicine_id: str, user_id: str) -> ReminderAttemptResponse:
        path = "/reminder-attempts/increment"
        data = await self._request(
            "POST",
            path,
            json={"schedule_id": schedule_id, "medicine_id": medicine_id, "user_id": user_id}
        )
        return self._parse(ReminderAttemptResponse, data, path)

    async def reset(self, schedule_id: str, user_id: str) -> None:
        await self._request(
            "POST",
            "/reminder-attempts/reset",
            json={"schedule_id": schedule_id, "user_id": user_id}
        )

    # Escalation

    async def request_instant_sms(self, user_id: str, medicine_name: str, dosage: str) -> EscalationResult:
        path = "/sms/instant"
        data = await self._request(
            "POST",
            path,
            json={"user_id": user_id, "medicine_name": medicine_name, "dosage": dosage}
        )
        return self._parse(EscalationResult, data, path)

    async def aclose(self) -> None:
        await self.client.aclose()
