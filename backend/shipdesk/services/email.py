from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import httpx
from jinja2 import Environment, FileSystemLoader, select_autoescape

from shipdesk.core.config import Settings, get_settings
from shipdesk.core.errors import RelayError

logger = logging.getLogger(__name__)

TEMPLATE_PATH = Path(__file__).parent.parent / "templates" / "emails"
env = Environment(loader=FileSystemLoader(TEMPLATE_PATH), autoescape=select_autoescape(["html", "xml"]))


def render_template(template_name: str, context: dict[str, Any]) -> str:
    base_text = env.get_template("base.txt.j2")
    body_text = env.get_template(template_name).render(**context)
    return base_text.render(body=body_text, **context)


def build_template_params(
    *,
    subject: str,
    message: str,
    tracking_number: str,
    tracking_link: str,
    to_email: str,
    from_email: str,
    from_name: str,
    to_name: str = "Customer",
) -> dict[str, str]:
    # EmailJS templates differ in which recipient variable they read, so every common one is set.
    return {
        "subject": subject,
        "message": message,
        "tracking_number": tracking_number,
        "tracking_link": tracking_link,
        "from_email": from_email,
        "from_name": from_name,
        "to_email": to_email,
        "to": to_email,
        "reply_to": from_email,
        "to_name": to_name,
    }


@dataclass(frozen=True)
class RelayConfig:
    service_id: str
    template_id: str
    public_key: str
    private_key: str | None = None
    api_url: str = "https://api.emailjs.com/api/v1.0/email/send"
    timeout_seconds: float = 10.0


class EmailRelay:
    """Sends templated messages through the EmailJS REST API."""

    def __init__(self, config: RelayConfig, *, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.config = config
        self._transport = transport

    def _payload(self, template_params: dict[str, str]) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "service_id": self.config.service_id,
            "template_id": self.config.template_id,
            "user_id": self.config.public_key,
            "template_params": template_params,
        }
        if self.config.private_key:
            payload["accessToken"] = self.config.private_key
        return payload

    async def send(self, template_params: dict[str, str]) -> None:
        try:
            async with httpx.AsyncClient(timeout=self.config.timeout_seconds, transport=self._transport) as client:
                resp = await client.post(self.config.api_url, json=self._payload(template_params))
        except httpx.HTTPError as exc:
            raise RelayError(f"Email relay unreachable: {exc}") from exc
        if resp.status_code >= 400:
            raise RelayError(
                f"Email relay rejected the message: {resp.status_code} {resp.text[:200]}",
                status_code=resp.status_code,
            )
        logger.info("email_relay_sent", extra={"to_email": template_params.get("to_email")})


def relay_from_settings(
    settings: Settings | None = None, *, transport: httpx.AsyncBaseTransport | None = None
) -> EmailRelay | None:
    settings = settings or get_settings()
    if not settings.relay_configured:
        return None
    config = RelayConfig(
        service_id=str(settings.emailjs_service_id).strip(),
        template_id=str(settings.emailjs_template_id).strip(),
        public_key=str(settings.emailjs_public_key).strip(),
        private_key=(settings.emailjs_private_key or "").strip() or None,
        api_url=settings.emailjs_api_url,
        timeout_seconds=settings.email_timeout_seconds,
    )
    return EmailRelay(config, transport=transport)
