"""
Record Store Errors
"""


class RecordNotFound(LookupError):
    """A record addressed by id does not exist."""

    def __init__(self, entity: str, record_id):
        self.entity = entity
        self.record_id = record_id
        super().__init__(f"{entity} {record_id} not found")


class InvalidRecord(ValueError):
    """A mutation would produce an invalid record."""
