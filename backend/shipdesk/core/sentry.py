from __future__ import annotations

import logging

from shipdesk.core.config import Settings, settings as default_settings


def _scrub_contact_emails(event, _hint):
    # Draft payloads carry customer emails; keep them out of error reports.
    request = event.get("request") or {}
    if isinstance(request.get("data"), dict):
        request["data"] = {key: "[filtered]" if "email" in key.lower() else value for key, value in request["data"].items()}
    return event


def init_sentry(settings: Settings | None = None, *, backend_mode: str | None = None) -> bool:
    settings = settings or default_settings
    if not (settings.sentry_dsn or "").strip():
        return False

    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.logging import LoggingIntegration
    from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.environment,
        release=settings.app_version,
        traces_sample_rate=settings.sentry_traces_sample_rate,
        integrations=[
            FastApiIntegration(),
            SqlalchemyIntegration(),
            LoggingIntegration(level=logging.INFO, event_level=logging.ERROR),
        ],
        before_send=_scrub_contact_emails,
        attach_stacktrace=True,
        send_default_pii=False,
    )
    if backend_mode:
        sentry_sdk.set_tag("backend_mode", backend_mode)
    return True
