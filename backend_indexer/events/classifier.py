"""
Transfer event classifier: raw log bytes to a typed mint/burn event.

Pure and deterministic: no I/O, no clock, no logging side effects that
change the result. Decodes from/to from the indexed topics (lower 20 bytes of
each 32-byte word) and the amount from the data payload as a big-endian
uint256 scaled by the token decimals.
"""

from __future__ import annotations

import decimal
from decimal import Decimal

from backend_indexer.chain_reader.models import RawLogEntry, hex_to_bytes
from backend_indexer.chain_reader.reader import TRANSFER_TOPIC
from backend_indexer.core.exceptions import LogDecodeError
from backend_indexer.events.models import (
    ZERO_ADDRESS,
    ClassifiedEvent,
    EventKind,
    TransferFields,
)

WORD_SIZE = 32
ADDRESS_SIZE = 20
DEFAULT_DECIMALS = 18

_TRANSFER_TOPIC_BYTES = hex_to_bytes(TRANSFER_TOPIC)
# uint256 has at most 78 digits; keep scaling exact
_AMOUNT_CONTEXT = decimal.Context(prec=100)


def _topic_to_address(topic: bytes) -> str:
    return "0x" + topic[WORD_SIZE - ADDRESS_SIZE:].hex()


def decode_transfer(log: RawLogEntry) -> TransferFields:
    """
    Decode Transfer(address indexed from, address indexed to, uint256 value).

    Raises:
        LogDecodeError: wrong signature, missing/short topics, or empty data.
    """
    topics = log.topics
    if len(topics) < 3:
        raise LogDecodeError(
            f"Transfer log needs 3 topics, got {len(topics)}", tx_hash=log.transaction_hash
        )
    if topics[0] != _TRANSFER_TOPIC_BYTES:
        raise LogDecodeError("topic0 is not the Transfer signature", tx_hash=log.transaction_hash)
    for idx in (1, 2):
        if len(topics[idx]) != WORD_SIZE:
            raise LogDecodeError(
                f"topic{idx} is {len(topics[idx])} bytes, expected {WORD_SIZE}",
                tx_hash=log.transaction_hash,
            )
    data = log.data
    if not data:
        raise LogDecodeError("empty data payload", tx_hash=log.transaction_hash)
    if len(data) > WORD_SIZE:
        raise LogDecodeError(
            f"data payload is {len(data)} bytes, expected at most {WORD_SIZE}",
            tx_hash=log.transaction_hash,
        )
    return TransferFields(
        from_address=_topic_to_address(topics[1]),
        to_address=_topic_to_address(topics[2]),
        raw_amount=int.from_bytes(data, "big"),
    )


def scale_amount(raw_amount: int, decimals: int = DEFAULT_DECIMALS) -> Decimal:
    """Convert base units to token units exactly (no float rounding)."""
    return Decimal(raw_amount).scaleb(-decimals, context=_AMOUNT_CONTEXT)


def classify(log: RawLogEntry, decimals: int = DEFAULT_DECIMALS) -> ClassifiedEvent | None:
    """
    Classify a Transfer log: from == zero -> Mint, to == zero -> Burn,
    otherwise None (plain transfer, not persisted).
    """
    fields = decode_transfer(log)
    if fields.from_address == ZERO_ADDRESS:
        kind = EventKind.MINT
    elif fields.to_address == ZERO_ADDRESS:
        kind = EventKind.BURN
    else:
        return None
    return ClassifiedEvent(
        kind=kind,
        from_address=fields.from_address,
        to_address=fields.to_address,
        amount=scale_amount(fields.raw_amount, decimals),
        transaction_hash=log.transaction_hash,
        block_number=log.block_number,
        log_index=log.log_index,
    )
