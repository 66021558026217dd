"""
Normalization of DingTalk profile documents into canonical identities.
"""

from typing import Any, Dict, MutableMapping, Optional, Protocol, Tuple

from shared.logging import get_logger
from ..errors import MalformedProfileError
from ..models import CanonicalIdentity


PROFILE_UNION_ID = "unionId"
PROFILE_OPEN_ID = "openId"
PROFILE_NICK = "nick"
PROFILE_EMAIL = "email"
PROFILE_MOBILE = "mobile"


class Transliterator(Protocol):
    async def transliterate(self, text: str) -> str:
        ...


def _text(profile: Dict[str, Any], key: str) -> Optional[str]:
    value = profile.get(key)
    if value is None:
        return None
    return str(value)


def split_display_name(nick: str) -> Tuple[str, str]:
    """Split a display name into ``(last_name, first_name)``.

    The first character is the family name, the rest the given name, which
    matches how Chinese names are written. An empty name yields two empty
    strings.
    """
    if not nick:
        return nick, nick
    return nick[:1], nick[1:]


class IdentityNormalizer:
    """Maps a raw profile document into a :class:`CanonicalIdentity`."""

    def __init__(self, transliterator: Transliterator, email_domain: str):
        self.transliterator = transliterator
        self.email_domain = email_domain
        self.logger = get_logger("federation.normalizer")

    async def normalize(self, profile: Dict[str, Any]) -> CanonicalIdentity:
        union_id = (_text(profile, PROFILE_UNION_ID) or "").strip().lower()
        if not union_id:
            raise MalformedProfileError(details={"fields": sorted(profile)})

        open_id = (_text(profile, PROFILE_OPEN_ID) or "").strip().lower()
        nick = _text(profile, PROFILE_NICK) or ""
        email = _text(profile, PROFILE_EMAIL) or None
        mobile = _text(profile, PROFILE_MOBILE) or ""

        last_name, first_name = split_display_name(nick)
        username = await self._derive_username(nick, open_id or union_id)

        email_synthesized = email is None
        if email_synthesized:
            email = f"{username}@{self.email_domain}"

        identity = CanonicalIdentity(
            federated_id=union_id,
            username=username,
            first_name=first_name,
            last_name=last_name,
            email=email,
            attributes={PROFILE_MOBILE: mobile},
        )

        self.logger.info(
            "Profile normalized",
            federated_id=identity.federated_id,
            open_id=open_id,
            username=identity.username,
            email_synthesized=email_synthesized,
        )
        return identity

    async def _derive_username(self, nick: str, fallback: str) -> str:
        # TransliterationError propagates; the raw nick is never used as a username
        if not nick:
            return fallback
        return await self.transliterator.transliterate(nick)


def update_brokered_user(user: MutableMapping[str, Any], identity: CanonicalIdentity) -> MutableMapping[str, Any]:
    """Copy a federated identity onto a hosting-framework user representation."""
    attributes = user.setdefault("attributes", {})
    attributes[PROFILE_MOBILE] = [identity.attributes.get(PROFILE_MOBILE, "")]

    user["username"] = identity.username
    user["firstName"] = identity.first_name
    user["lastName"] = identity.last_name
    user["email"] = identity.email
    return user
