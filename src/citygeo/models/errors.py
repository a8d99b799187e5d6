"""Error types raised by the reference store."""


class CityGeoError(Exception):
    """Base class for every error raised by citygeo."""


class InvalidCoordinate(CityGeoError, ValueError):
    """Longitude/latitude that is non-numeric, non-finite or out of range."""


class InvalidRecord(CityGeoError, ValueError):
    """A city row with a missing or malformed field."""


class InvalidQuery(CityGeoError, ValueError):
    """A query parameter (radius, k) outside its domain."""


class DuplicateId(CityGeoError):
    def __init__(self, record_id: int):
        super().__init__(f"record id {record_id} already exists")
        self.record_id = record_id


class NotFound(CityGeoError, KeyError):
    def __init__(self, record_id: int):
        super().__init__(record_id)
        self.record_id = record_id

    def __str__(self) -> str:
        return f"record id {self.record_id} not found"


class BulkLoadFailed(CityGeoError):
    """
    A batch was rejected as a whole.

    `index` is the position of the first offending item in the batch and
    `cause` the error it raised. Nothing from the batch was committed.
    """

    def __init__(self, index: int, cause: Exception):
        super().__init__(f"bulk load rejected at item {index}: {cause}")
        self.index = index
        self.cause = cause
