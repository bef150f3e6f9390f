"""
Profile Tree Errors
Error kinds surfaced by the tree engine, codec and stores.
"""


class ProfileTreeError(Exception):
    """Base class for all profile tree errors."""


class NotFoundError(ProfileTreeError):
    """A label is absent from the tree, or an address is absent from the store."""


class InvalidOperationError(ProfileTreeError):
    """A structural contract was violated (e.g. removing the root)."""


class DecodeError(ProfileTreeError):
    """A serialized tree or leaf payload is malformed."""


class DecryptionError(ProfileTreeError):
    """A leaf payload could not be decrypted with the supplied key."""


class StoreIOError(ProfileTreeError):
    """Transport failure talking to the content store."""
