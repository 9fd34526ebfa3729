"""Writers for the destination table and object storage."""

from .batch_inserter import BatchInserter
from .object_uploader import ObjectUploader

__all__ = [
    "BatchInserter",
    "ObjectUploader",
]
