# Transfer event decoding and mint/burn classification. Pure; no I/O.

from backend_indexer.events.classifier import classify, decode_transfer, scale_amount
from backend_indexer.events.models import (
    ZERO_ADDRESS,
    Attribution,
    ClassifiedEvent,
    EventKind,
    ExecutionMethod,
    TransferFields,
)

__all__ = [
    "ZERO_ADDRESS",
    "Attribution",
    "ClassifiedEvent",
    "EventKind",
    "ExecutionMethod",
    "TransferFields",
    "classify",
    "decode_transfer",
    "scale_amount",
]
