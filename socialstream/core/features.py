"""Social login feature flags.

Snapshot of the feature toggles taken once per request, so a callback
is resolved against a single consistent configuration.
"""

from dataclasses import dataclass

from socialstream.core.config import Settings


@dataclass(frozen=True)
class Features:
    """Feature flags that steer the callback policy.

    Attributes:
        registration: Registration is enabled at all.
        create_account_on_first_login: Unknown identities get a new user
            on a plain login attempt.
        login_on_registration: A registration attempt for an email that
            already has a user logs that user in instead of rejecting.
        remember_session: Logins issue a long-lived session cookie.
        provider_avatars: New users take their photo from the provider.
        generate_missing_emails: Users without a provider email get a
            placeholder address instead of being rejected.
    """

    registration: bool = True
    create_account_on_first_login: bool = False
    login_on_registration: bool = False
    remember_session: bool = False
    provider_avatars: bool = False
    generate_missing_emails: bool = False

    @classmethod
    def from_settings(cls, settings: Settings) -> "Features":
        return cls(
            registration=settings.registration_enabled,
            create_account_on_first_login=settings.create_account_on_first_login,
            login_on_registration=settings.login_on_registration,
            remember_session=settings.remember_session,
            provider_avatars=settings.provider_avatars,
            generate_missing_emails=settings.generate_missing_emails,
        )
