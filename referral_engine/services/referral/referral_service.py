import logging

from fhir.resources.R4B.bundle import Bundle

from referral_engine.config import Config
from referral_engine.models.referral.context import DispatchConfig, ReferralResult, RequestContext, Warnings
from referral_engine.models.referral.intent import ReferralIntent
from referral_engine.services.api.authenticators.authenticator import Authenticator
from referral_engine.services.api.authenticators.registry import AuthenticatorRegistry
from referral_engine.services.referral.assembler import ReferralAssembler
from referral_engine.services.referral.dispatcher import Dispatcher
from referral_engine.services.referral.gateway import FhirResourceGateway, ResourceGateway
from referral_engine.services.referral.reconciler import FeedbackReconciler

logger = logging.getLogger(__name__)


class ReferralService:
    """
    Entry point for both operations. Every call gets its own request context,
    gateway and warning collector, so nothing leaks between requests.
    """

    def __init__(
        self,
        config: Config,
        registry: AuthenticatorRegistry,
        recipient_authenticator: Authenticator,
    ) -> None:
        self.__config = config
        self.__registry = registry
        self.__recipient_authenticator = recipient_authenticator
        self.__dispatch_config = DispatchConfig(
            recipient_ready=not config.bser.recipient_not_ready,
            recipient_site=config.recipient.site,
        )

    def referral_request(self, intent: ReferralIntent) -> ReferralResult:
        context = self.create_context(intent.provider_base_url)
        warnings = Warnings()
        gateway = self.create_gateway(context)

        logger.info(f"Processing referral request against {context.store_url}")
        assembler = ReferralAssembler(gateway, context, self.__dispatch_config, warnings)
        referral = assembler.assemble(intent)

        dispatcher = Dispatcher(
            gateway,
            self.__registry,
            self.__recipient_authenticator,
            self.__dispatch_config,
            warnings,
            timeout=self.__config.recipient.timeout,
        )
        return dispatcher.dispatch(referral)

    def process_message(self, content: Bundle | None) -> None:
        gateway = self.create_gateway(self.create_context())
        FeedbackReconciler(gateway).process_message(content)

    def create_context(self, provider_base_url: str | None = None) -> RequestContext:
        store_url = provider_base_url.strip() if provider_base_url and provider_base_url.strip() else None
        return RequestContext(
            store_url=store_url or self.__config.fhir_store.url,
            process_message_url=str(self.__config.bser.process_message_url),
        )

    def create_gateway(self, context: RequestContext) -> ResourceGateway:
        return FhirResourceGateway(context, self.__registry, self.__config.fhir_store.timeout)
