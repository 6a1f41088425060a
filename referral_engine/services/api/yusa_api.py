import logging

from fhir.resources.R4B.bundle import Bundle

from referral_engine.services.api.api_service import HttpService
from referral_engine.services.api.authenticators.yusa_authenticator import YusaAuthenticator
from referral_engine.services.fhir.utils import to_json

logger = logging.getLogger(__name__)

ACCEPTED = "ACCEPTED"
SUCCESS = "SUCCESS"
FAILED = "FAILED"


class YusaApi(HttpService):
    """
    YUSA recipients take the referral message as a plain json POST instead of
    a $process-message call.
    """

    def __init__(self, base_url: str, timeout: int, auth: YusaAuthenticator) -> None:
        super().__init__(base_url=base_url, timeout=timeout, authenticator=auth)
        self.__auth = auth

    def submit_referral(self, envelope: Bundle) -> str:
        """
        Returns the textual outcome of the submission: "ACCEPTED: <body>" when the
        recipient queued the message, "SUCCESS" on any other 2xx answer and
        "FAILED: <reason>" otherwise.
        """
        try:
            response = self.do_request(
                "POST",
                json=to_json(envelope),
                headers=self.__auth.get_client_headers(),
            )
        except (OSError, ValueError) as e:
            logger.error(f"Submitting referral to {self.base_url} failed: {e}")
            return f"{FAILED}: {e}"

        if response.status_code == 202:
            return f"{ACCEPTED}: {response.text}"
        if 200 <= response.status_code < 300:
            return SUCCESS

        logger.error(f"YUSA rejected the referral ({response.status_code}): {response.text}")
        return f"{FAILED}: {response.status_code} {response.text}"


def is_submitted(result: str) -> bool:
    return result.startswith(ACCEPTED) or result.startswith(SUCCESS)
