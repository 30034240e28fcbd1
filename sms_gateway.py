"""SMS gateway backed by the Twilio REST API.

The gateway only delivers; recording the outcome in sms_logs is done by the
escalation code that calls it.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field
from twilio.base.exceptions import TwilioRestException
from twilio.rest import Client

from config import settings
from logger_config import setup_logger

logger = setup_logger(__name__, 'escalation.log')


class DeliveryResult(BaseModel):
    """Outcome of a single send."""

    success: bool
    sid: Optional[str] = None
    error: Optional[str] = None
    response: Dict[str, Any] = Field(default_factory=dict)


class TwilioSmsGateway:
    """Thin wrapper around twilio.rest.Client.messages.create."""

    def __init__(
        self,
        account_sid: Optional[str] = None,
        auth_token: Optional[str] = None,
        from_number: Optional[str] = None,
        client: Optional[Client] = None
    ):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self._client = client

    @property
    def is_configured(self) -> bool:
        """True when the gateway can actually send (client or credentials, plus a sender number)."""
        has_credentials = self._client is not None or bool(self.account_sid and self.auth_token)
        return has_credentials and bool(self.from_number)

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = Client(self.account_sid, self.auth_token)
        return self._client

    def send(self, to: str, from_: Optional[str], body: str) -> DeliveryResult:
        """Send one text message.

        Provider rejections come back as a failed DeliveryResult; transport
        errors propagate to the caller.
        """
        sender = from_ or self.from_number
        try:
            message = self.client.messages.create(body=body, from_=sender, to=to)
        except TwilioRestException as e:
            logger.warning(f"Twilio rejected SMS to {to}: {e.msg}")
            return DeliveryResult(
                success=False,
                error=f"Twilio error: {e.msg}",
                response={"code": e.code, "status": e.status, "uri": e.uri}
            )

        return DeliveryResult(
            success=True,
            sid=message.sid,
            response={
                "sid": message.sid,
                "status": str(message.status),
                "to": message.to,
                "from": message.from_,
            }
        )


def get_sms_gateway() -> TwilioSmsGateway:
    """Gateway built from settings. Also used as a FastAPI dependency."""
    return TwilioSmsGateway(
        account_sid=settings.TWILIO_ACCOUNT_SID,
        auth_token=settings.TWILIO_AUTH_TOKEN,
        from_number=settings.TWILIO_PHONE_NUMBER
    )
