"""AT Protocol identifier value types.

``Did``, ``Handle`` and ``AtUri`` validate on construction and render back to
their canonical string form with ``str()``. The ``*Str`` annotated aliases let
pydantic models declare fields that must hold one of these identifiers.
"""

from dataclasses import dataclass
from typing import Annotated, Optional

from pydantic import AfterValidator

from social.graze.atclient.errors import InvalidHandle, InvalidIdentifier, InvalidUri

DID_PREFIX = "did:"
AT_URI_PREFIX = "at://"


@dataclass(frozen=True)
class Did:
    """A decentralized identifier, ``did:<method>:<method-specific-id>``."""

    value: str

    def __post_init__(self) -> None:
        if not self.value.startswith(DID_PREFIX):
            raise InvalidIdentifier(self.value)
        parts = self.value.split(":", 2)
        if len(parts) < 3 or not parts[1] or not parts[2]:
            raise InvalidIdentifier(self.value)

    @staticmethod
    def parse(value: str) -> "Did":
        return Did(value)

    @property
    def method(self) -> str:
        return self.value.split(":", 2)[1]

    @property
    def identifier(self) -> str:
        return self.value.split(":", 2)[2]

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Handle:
    """A domain-form account handle such as ``alice.example.com``."""

    value: str

    def __post_init__(self) -> None:
        labels = self.value.split(".")
        if len(labels) < 2:
            raise InvalidHandle(self.value)
        for label in labels:
            # str.isalnum() accepts non-ASCII letters, so check ASCII explicitly
            if not label or not all(
                c.isascii() and (c.isalnum() or c == "-") for c in label
            ):
                raise InvalidHandle(self.value)
        object.__setattr__(self, "value", self.value.lower())

    @staticmethod
    def parse(value: str) -> "Handle":
        return Handle(value)

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class AtUri:
    """A pointer to a repository, a collection in it, or a single record.

    Format: ``at://<authority>[/<collection>[/<rkey>]]``
    """

    authority: str
    collection: Optional[str] = None
    rkey: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.authority:
            raise InvalidUri("missing authority")
        if self.rkey is not None and self.collection is None:
            raise InvalidUri("rkey without collection")

    @staticmethod
    def for_repo(authority: str) -> "AtUri":
        return AtUri(authority)

    @staticmethod
    def for_collection(authority: str, collection: str) -> "AtUri":
        return AtUri(authority, collection)

    @staticmethod
    def for_record(authority: str, collection: str, rkey: str) -> "AtUri":
        return AtUri(authority, collection, rkey)

    @staticmethod
    def parse(value: str) -> "AtUri":
        if not value.startswith(AT_URI_PREFIX):
            raise InvalidUri(f"must start with '{AT_URI_PREFIX}': {value}")

        parts = value[len(AT_URI_PREFIX):].split("/", 2)
        authority = parts[0]
        collection = parts[1] if len(parts) > 1 and parts[1] else None
        rkey = parts[2] if len(parts) > 2 and parts[2] else None

        return AtUri(authority, collection, rkey)

    def __str__(self) -> str:
        uri = f"{AT_URI_PREFIX}{self.authority}"
        if self.collection is not None:
            uri += f"/{self.collection}"
            if self.rkey is not None:
                uri += f"/{self.rkey}"
        return uri


def validate_did(value: str) -> str:
    return str(Did(value))


def validate_handle(value: str) -> str:
    return str(Handle(value))


def validate_at_uri(value: str) -> str:
    return str(AtUri.parse(value))


DidStr = Annotated[str, AfterValidator(validate_did)]
HandleStr = Annotated[str, AfterValidator(validate_handle)]
AtUriStr = Annotated[str, AfterValidator(validate_at_uri)]
