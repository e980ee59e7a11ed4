"""Account domain models.

Accounts are metadata only. The app password for an account lives on the
account service; the client forwards it once on create or update and never
keeps it on any of these models.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class AccountType(str, Enum):
    """Outbound transport family for an account."""

    GMAIL = "gmail"
    DOMAIN_SMTP = "domain-smtp"
    GENERIC_SMTP = "generic-smtp"

    @classmethod
    def from_string(cls, value: Optional[str]) -> "AccountType":
        """Parse a stored type value, accepting the legacy ``vegvisr``/``smtp`` names.

        Records written before the type existed have no value and are Gmail.
        """
        if value is None or value == "":
            return cls.GMAIL

        normalised = str(value).strip().lower()
        legacy = {"vegvisr": cls.DOMAIN_SMTP, "smtp": cls.GENERIC_SMTP}
        if normalised in legacy:
            return legacy[normalised]

        try:
            return cls(normalised)
        except ValueError:
            raise ValueError(f"Invalid account type: {value}")

    @property
    def uses_gmail_transport(self) -> bool:
        return self is AccountType.GMAIL


def _dedupe(values: List[str]) -> List[str]:
    seen = set()
    result = []
    for value in values:
        if value not in seen:
            seen.add(value)
            result.append(value)
    return result


class _AccountFields(BaseModel):
    """Fields shared by drafts and stored accounts, with camelCase wire names."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str = ""
    email: str
    aliases: List[str] = Field(default_factory=list)
    is_default: bool = Field(default=False, alias="isDefault")
    has_password: bool = Field(default=False, alias="hasPassword")
    mailbox_endpoint: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("storeUrl", "mailboxEndpoint", "mailbox_endpoint"),
        serialization_alias="storeUrl",
    )
    account_type: AccountType = Field(default=AccountType.GMAIL, alias="accountType")

    @field_validator("email")
    @classmethod
    def _email_not_empty(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("Account email cannot be empty")
        return value

    @field_validator("name", mode="before")
    @classmethod
    def _name_default(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("aliases", mode="before")
    @classmethod
    def _aliases_default(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("aliases")
    @classmethod
    def _aliases_unique(cls, value: List[str]) -> List[str]:
        return _dedupe(value)

    @field_validator("mailbox_endpoint", mode="before")
    @classmethod
    def _blank_endpoint_is_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("account_type", mode="before")
    @classmethod
    def _parse_account_type(cls, value: Any) -> Any:
        if isinstance(value, AccountType):
            return value
        return AccountType.from_string(value)


class AccountDraft(_AccountFields):
    """User input for a new account; the manager assigns the id."""


class Account(_AccountFields):
    """A configured sending/receiving identity."""

    id: str

    def to_record(self) -> Dict[str, Any]:
        """Serialise with camelCase keys for the local cache and the account service."""
        return self.model_dump(mode="json", by_alias=True)

    def can_send_as(self, address: str) -> bool:
        return address == self.email or address in self.aliases


class AccountPatch(BaseModel):
    """Partial update; only fields that were explicitly set are applied."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: Optional[str] = None
    email: Optional[str] = None
    aliases: Optional[List[str]] = None
    is_default: Optional[bool] = Field(default=None, alias="isDefault")
    has_password: Optional[bool] = Field(default=None, alias="hasPassword")
    mailbox_endpoint: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("storeUrl", "mailboxEndpoint", "mailbox_endpoint"),
    )
    account_type: Optional[AccountType] = Field(default=None, alias="accountType")

    @field_validator("account_type", mode="before")
    @classmethod
    def _parse_account_type(cls, value: Any) -> Any:
        if value is None or isinstance(value, AccountType):
            return value
        return AccountType.from_string(value)

    def changes(self) -> Dict[str, Any]:
        """Field-name keyed changes that were explicitly set.

        An explicit ``None`` only means something for ``mailbox_endpoint``
        (clear the override); for every other field it is ignored.
        """
        return {
            key: value
            for key, value in self.model_dump(exclude_unset=True).items()
            if value is not None or key == "mailbox_endpoint"
        }
