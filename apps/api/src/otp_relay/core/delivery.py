"""
Delivery Gateway

Uniform send_sms / send_email operations for verification messages.

Each call decides between live and mock delivery from the configuration it was
given. Mock delivery logs the message and reports success. Live delivery never
raises for network or gateway problems: failures are logged and reported as
False so callers can show a generic retry prompt.

SMS goes to the internal gateway over the shared SSH tunnel. Any failure other
than a gateway rejection also drops the tunnel so the next send reconnects.
"""

import json
import logging
import re
import time

from otp_relay.core import email as email_service
from otp_relay.core.config import Settings, settings
from otp_relay.core.tunnel import TunnelConnection, TunnelError, TunnelState
from otp_relay.core.tunnel_http import send_through_tunnel

logger = logging.getLogger(__name__)

SMS_MESSAGE_TYPE = "SMS"

_NON_DIGITS = re.compile(r"\D")


class GatewayRejectedError(TunnelError):
    """Raised when the SMS gateway answers with a non-2xx status."""

    def __init__(self, status_code: int, body: str):
        self.status_code = status_code
        self.body = body
        super().__init__(f"SMS gateway rejected message: {status_code} - {body}")


def build_sms_payload(mobile_number: str, message: str, provider_id: str) -> str:
    """
    Build the JSON envelope the SMS gateway expects.

    The gateway takes an array of messages; we always send exactly one. The
    internal id is a millisecond timestamp used for correlation in gateway logs.
    """
    return json.dumps(
        [
            {
                "internalId": str(int(time.time() * 1000)),
                "mobileNumber": mobile_number,
                "smsMessage": message,
                "providerId": provider_id,
                "type": SMS_MESSAGE_TYPE,
            }
        ]
    )


class DeliveryGateway:
    """Sends SMS through the tunnelled gateway and email through Resend."""

    def __init__(self, config: Settings, tunnel: TunnelConnection | None = None):
        self.config = config
        self.tunnel = tunnel or TunnelConnection(
            host=config.sms_jump_server,
            port=config.sms_ssh_port,
            username=config.sms_ssh_user,
            private_key=config.sms_ssh_key,
        )

    @property
    def tunnel_state(self) -> TunnelState:
        return self.tunnel.state

    def validate(self) -> None:
        """
        Fail loudly on a malformed SSH key.

        Does nothing when SMS is not configured, since that only means mock delivery.

        Raises:
            TunnelConfigurationError: If the configured key cannot be decoded
        """
        if self.config.has_sms_config:
            self.tunnel.validate()

    async def send_sms(self, to: str, message: str) -> bool:
        """
        Send one SMS message.

        Args:
            to: Destination number in any format; non-digits are stripped
            message: Message text

        Returns:
            True if the gateway accepted the message (or it was logged in mock mode)
        """
        if not self.config.has_sms_config:
            self._log_mock_sms(to, message)
            return True

        mobile_number = _NON_DIGITS.sub("", to)
        try:
            await self._deliver_sms(mobile_number, message)
        except GatewayRejectedError as e:
            logger.error(f"Failed to send SMS: {e.status_code} - {e.body}")
            return False
        except Exception as e:
            logger.error(f"Error sending SMS: {e}", exc_info=True)
            self.tunnel.reset()
            return False

        logger.info(f"Successfully sent SMS to {mobile_number}")
        return True

    async def _deliver_sms(self, mobile_number: str, message: str) -> None:
        payload = build_sms_payload(mobile_number, message, self.config.sms_provider_id)
        headers = {
            "Content-Type": "application/json",
            "TenantId": self.config.sms_tenant_id,
            "Tenant-App-Key": self.config.sms_tenant_app_key or "",
        }

        logger.info(f"Sending SMS to {mobile_number} via internal gateway")
        logger.info(
            f"Target: {self.config.sms_api_host}:{self.config.sms_api_port}"
            f"{self.config.sms_api_path}"
        )

        session = await self.tunnel.acquire()
        response = await send_through_tunnel(
            session,
            self.config.sms_api_host,
            self.config.sms_api_port,
            self.config.sms_api_path,
            headers,
            payload,
        )

        logger.info(f"Response status: {response.status_code}")
        logger.info(f"Response body: {response.body[:200]}")

        if not response.ok:
            raise GatewayRejectedError(response.status_code, response.body)

    def _log_mock_sms(self, to: str, message: str) -> None:
        logger.info("=============================================")
        logger.info("MOCK SMS SERVICE - MESSAGE NOT ACTUALLY SENT")
        logger.info(f"To: {to}")
        logger.info(f"Message: {message}")
        logger.info("=============================================")
        logger.warning(
            "To enable real SMS, set SMS_TENANT_APP_KEY and ensure "
            "SMS_JUMP_SERVER (or ERPIS_JUMP_SERVER) and SMS_SSH_KEY (or ERPIS_SSH_KEY) are configured"
        )

    async def send_email(self, to: str, subject: str, body: str) -> bool:
        """
        Send one email. Mock mode when no Resend key is configured.

        Returns:
            True if the provider accepted the email (or it was logged in mock mode)
        """
        return await email_service.send_email(
            to,
            subject,
            body,
            api_key=self.config.resend_api_key or "",
            from_email=self.config.email_from,
        )

    async def close(self) -> None:
        """Close the shared tunnel."""
        await self.tunnel.close()


# Process-wide gateway, created on startup
delivery_gateway: DeliveryGateway | None = None


def init_delivery_gateway(config: Settings | None = None) -> DeliveryGateway:
    """
    Create the process-wide gateway and validate its configuration.

    Call this on application startup.

    Raises:
        TunnelConfigurationError: If the configured SSH key is malformed
    """
    global delivery_gateway
    gateway = DeliveryGateway(config or settings)
    gateway.validate()
    delivery_gateway = gateway
    return gateway


def get_delivery_gateway() -> DeliveryGateway:
    """
    FastAPI dependency returning the shared gateway.

    Creates it lazily when the lifespan did not run (scripts, tests).
    """
    global delivery_gateway
    if delivery_gateway is None:
        delivery_gateway = DeliveryGateway(settings)
    return delivery_gateway


async def close_delivery_gateway() -> None:
    """Close the shared gateway and its tunnel."""
    global delivery_gateway
    if delivery_gateway is not None:
        await delivery_gateway.close()
        delivery_gateway = None
