import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Tuple

from integrations.google_auth import GoogleApi, GoogleApiError, rfc3339
from utils.timeutil import parse_iso

logger = logging.getLogger(__name__)

CALENDAR_API = "https://www.googleapis.com/calendar/v3"


@dataclass
class CalendarEvent:
    event_id: str
    meeting_link: Optional[str]
    html_link: Optional[str]


class GoogleCalendarProvider(GoogleApi):
    def __init__(self, tokens, calendar_id="primary", timezone="Europe/Madrid", timeout=15, transport=None):
        super().__init__(tokens, timeout=timeout, transport=transport)
        self.calendar_id = calendar_id
        self.timezone = timezone

    def busy_blocks(self, attendee_email: str, start: datetime, end: datetime) -> List[Tuple[datetime, datetime]]:
        response = self.request(
            "POST",
            f"{CALENDAR_API}/freeBusy",
            json={
                "timeMin": rfc3339(start),
                "timeMax": rfc3339(end),
                "items": [{"id": attendee_email}],
            },
        )
        calendar = (response.json().get("calendars") or {}).get(attendee_email) or {}
        if calendar.get("errors"):
            reasons = ", ".join(e.get("reason", "unknown") for e in calendar["errors"])
            raise GoogleApiError(f"freeBusy failed for {attendee_email}: {reasons}")
        return [
            (parse_iso(block["start"]), parse_iso(block["end"]))
            for block in calendar.get("busy", [])
            if block.get("start") and block.get("end")
        ]

    def check_availability(self, attendee_email: str, start: datetime, end: datetime) -> bool:
        """True when nothing on the attendee's calendar overlaps [start, end)."""
        for busy_start, busy_end in self.busy_blocks(attendee_email, start, end):
            if start < busy_end and end > busy_start:
                return False
        return True

    def create_event(self, summary: str, attendees, start: datetime, end: datetime,
                     conferencing: bool = True, description: Optional[str] = None) -> CalendarEvent:
        body = {
            "summary": summary,
            "description": description or "",
            "start": {"dateTime": rfc3339(start), "timeZone": self.timezone},
            "end": {"dateTime": rfc3339(end), "timeZone": self.timezone},
            "attendees": [{"email": email} for email in attendees if email],
            "reminders": {
                "useDefault": False,
                "overrides": [
                    {"method": "email", "minutes": 24 * 60},
                    {"method": "popup", "minutes": 30},
                ],
            },
        }
        params = {"sendUpdates": "all"}
        if conferencing:
            body["conferenceData"] = {
                "createRequest": {
                    "requestId": f"class-{uuid.uuid4()}",
                    "conferenceSolutionKey": {"type": "hangoutsMeet"},
                }
            }
            params["conferenceDataVersion"] = 1

        response = self.request(
            "POST", f"{CALENDAR_API}/calendars/{self.calendar_id}/events", params=params, json=body,
        )
        event = response.json()
        entry_points = (event.get("conferenceData") or {}).get("entryPoints") or []
        meeting_link = next(
            (ep.get("uri") for ep in entry_points if ep.get("entryPointType") == "video"),
            None,
        ) or event.get("hangoutLink")

        logger.info("created calendar event %s (%s)", event.get("id"), summary)
        return CalendarEvent(
            event_id=event.get("id") or "",
            meeting_link=meeting_link,
            html_link=event.get("htmlLink"),
        )

    def delete_event(self, event_id: str) -> bool:
        """Idempotent: an already-gone event returns False instead of raising."""
        response = self.request(
            "DELETE",
            f"{CALENDAR_API}/calendars/{self.calendar_id}/events/{event_id}",
            params={"sendUpdates": "all"},
            allow_status=(404, 410),
        )
        if response.status_code in (404, 410):
            logger.info("calendar event %s already gone", event_id)
            return False
        logger.info("deleted calendar event %s", event_id)
        return True
