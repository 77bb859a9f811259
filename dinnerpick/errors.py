"""Exception types raised by DinnerPick collaborators."""


class DinnerPickError(Exception):
    """Base class for DinnerPick errors."""


class GeocodeServiceError(DinnerPickError):
    """The geocoding provider could not be reached or rejected the request.

    An address that simply does not exist is not an error; resolvers return
    ``None`` for that case.
    """


class StoreFetchError(DinnerPickError):
    """The restaurant source returned an error or an unreadable payload."""


class ProfileStoreError(DinnerPickError):
    """Reading or writing a user's profile or favorites failed."""


class CatalogLoadError(DinnerPickError):
    """The menu catalog file is missing or malformed."""
