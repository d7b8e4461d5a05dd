"""Outbound collaborators: external calendar, class documents, notifications.

The app keeps one ``Providers`` bundle in ``app.extensions``. Any slot may be
None, meaning "not configured"; orchestrators then skip that step.
"""
import logging
from dataclasses import dataclass
from typing import Any, Optional

from flask import current_app

logger = logging.getLogger(__name__)

EXTENSION_KEY = "lessonslot.providers"


@dataclass
class Party:
    """A notification recipient."""
    name: str
    email: Optional[str]

    @classmethod
    def from_user(cls, user) -> "Party":
        if user is None:
            return cls(name="", email=None)
        return cls(name=user.display_name, email=user.email)


@dataclass
class Providers:
    calendar: Any = None
    documents: Any = None
    notifier: Any = None


def build_default_providers(config) -> Providers:
    from integrations.google_auth import GoogleTokenSource
    from integrations.google_calendar import GoogleCalendarProvider
    from integrations.google_docs import GoogleDocumentProvider
    from integrations.notifier import EmailNotifier

    providers = Providers(notifier=EmailNotifier())

    if config.get("GOOGLE_REFRESH_TOKEN") and config.get("GOOGLE_CLIENT_ID"):
        tokens = GoogleTokenSource(
            client_id=config["GOOGLE_CLIENT_ID"],
            client_secret=config.get("GOOGLE_CLIENT_SECRET"),
            refresh_token=config["GOOGLE_REFRESH_TOKEN"],
            timeout=config.get("GOOGLE_HTTP_TIMEOUT", 15),
        )
        providers.calendar = GoogleCalendarProvider(
            tokens,
            calendar_id=config.get("GOOGLE_CALENDAR_ID", "primary"),
            timezone=config.get("SCHOOL_TIMEZONE", "Europe/Madrid"),
            timeout=config.get("GOOGLE_HTTP_TIMEOUT", 15),
        )
        if config.get("GOOGLE_TEMPLATE_DOC_ID"):
            providers.documents = GoogleDocumentProvider(
                tokens,
                template_doc_id=config["GOOGLE_TEMPLATE_DOC_ID"],
                timeout=config.get("GOOGLE_HTTP_TIMEOUT", 15),
            )
        else:
            logger.info("GOOGLE_TEMPLATE_DOC_ID not set: class documents disabled")
    else:
        logger.info("Google credentials not set: calendar and documents disabled")

    return providers


def init_providers(app, providers: Optional[Providers] = None) -> Providers:
    if providers is None:
        providers = build_default_providers(app.config)
    app.extensions[EXTENSION_KEY] = providers
    return providers


def get_providers(app=None) -> Providers:
    app = app or current_app
    return app.extensions.get(EXTENSION_KEY) or Providers()
