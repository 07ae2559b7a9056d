from .record import Record, RecordKind

__all__ = [
    "Record",
    "RecordKind",
]
