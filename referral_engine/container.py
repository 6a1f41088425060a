import inject

from referral_engine.config import get_config
from referral_engine.services.api.authenticators.factory import AuthenticatorFactory
from referral_engine.services.referral.referral_service import ReferralService


def container_config(binder: inject.Binder) -> None:
    config = get_config()

    auth_factory = AuthenticatorFactory(config=config)
    registry = auth_factory.create_registry()
    recipient_authenticator = auth_factory.create_recipient_authenticator()

    referral_service = ReferralService(
        config=config,
        registry=registry,
        recipient_authenticator=recipient_authenticator,
    )
    binder.bind(ReferralService, referral_service)


def get_referral_service() -> ReferralService:
    return inject.instance(ReferralService)


def setup_container() -> None:
    inject.configure(container_config, once=True)
