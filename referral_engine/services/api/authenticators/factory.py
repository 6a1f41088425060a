from referral_engine.config import Config
from referral_engine.services.api.authenticators.authenticator import Authenticator
from referral_engine.services.api.authenticators.basic_authenticator import BasicAuthenticator
from referral_engine.services.api.authenticators.bearer_authenticator import BearerAuthenticator
from referral_engine.services.api.authenticators.null_authenticator import NullAuthenticator
from referral_engine.services.api.authenticators.oauth2_authenticator import OAuth2Authenticator
from referral_engine.services.api.authenticators.registry import AuthenticatorRegistry
from referral_engine.services.api.authenticators.yusa_authenticator import YusaAuthenticator

YUSA_SITE = "YUSA"


class AuthenticatorFactory:
    def __init__(self, config: Config) -> None:
        self.__config = config

    def create_store_authenticator(self) -> Authenticator:
        store = self.__config.fhir_store

        match store.authentication:
            case "off":
                return NullAuthenticator()
            case "basic":
                if not store.username or store.password is None:
                    raise ValueError(self.__error_message("basic", "username and password"))
                return BasicAuthenticator(store.username, store.password)
            case "bearer":
                if not store.token:
                    raise ValueError(self.__error_message("bearer", "token"))
                return BearerAuthenticator(store.token)
            case "oauth2":
                backend = self.create_backend_authenticator()
                if backend is None:
                    raise ValueError(self.__error_message("oauth2", "[backend_services]"))
                return backend
            case _:
                raise ValueError(
                    "incorrect value for authenticator, supported types are 'off', 'basic', 'bearer' or 'oauth2'. Please fix in app.conf"
                )

    def create_backend_authenticator(self) -> Authenticator | None:
        backend = self.__config.backend_services
        if backend is None:
            return None

        return OAuth2Authenticator(
            token_url=backend.token_url,
            client_id=backend.client_id,
            client_secret=backend.client_secret,
            scope=backend.scope,
        )

    def create_recipient_authenticator(self) -> Authenticator:
        recipient = self.__config.recipient
        if (
            recipient.site != YUSA_SITE
            or recipient.authentication_api_url is None
            or recipient.authorization_api_url is None
        ):
            return NullAuthenticator()

        return YusaAuthenticator(
            authentication_api_url=recipient.authentication_api_url,
            authorization_api_url=recipient.authorization_api_url,
            client_id=recipient.client_id or "",
            api_sub_key=recipient.api_sub_key or "",
            api_key=recipient.api_key or "",
            timeout=recipient.timeout,
        )

    def create_registry(self) -> AuthenticatorRegistry:
        """
        Registers the store and the backend services target so every outbound FHIR
        call picks the credentials belonging to its base url.
        """
        registry = AuthenticatorRegistry()
        registry.register(self.__config.fhir_store.url, self.create_store_authenticator())

        backend = self.__config.backend_services
        backend_auth = self.create_backend_authenticator()
        if backend is not None and backend_auth is not None:
            registry.register(backend.fhir_server_url, backend_auth)

        return registry

    def __error_message(self, auth_type: str, field: str) -> str:
        return f"{field} cannot be empty when authentication is set to {auth_type}, please fix in app.conf"
