"""Gossip message encoding: SSZ bodies compressed with raw snappy."""

from __future__ import annotations

import logging

from ethlambda.net.snappy import compress, decompress
from ethlambda.types.attestation import SignedAttestation
from ethlambda.types.block import SignedBlockWithAttestation

logger = logging.getLogger(__name__)

BLOCK_TOPIC_KIND = "block"
"""Topic kind for block gossip."""
ATTESTATION_TOPIC_KIND = "attestation"
"""Topic kind for attestation gossip."""


def compress_message(data: bytes) -> bytes:
    """Compress a gossip message with raw snappy."""
    return compress(data)


def decompress_message(data: bytes) -> bytes:
    """Decompress a raw-snappy gossip message."""
    return decompress(data)


def topic_kind(topic: str) -> str | None:
    """The kind segment of a topic such as ``/prefix/network/kind/encoding``."""
    parts = topic.split("/")
    return parts[3] if len(parts) > 3 else None


def decode_gossip_message(
    topic: str, data: bytes
) -> SignedBlockWithAttestation | SignedAttestation | None:
    """Decode a gossip message by its topic.

    Returns None for topics of an unknown kind; raises ValueError when the
    data cannot be decompressed or decoded.
    """
    kind = topic_kind(topic)
    if kind == BLOCK_TOPIC_KIND:
        signed_block = SignedBlockWithAttestation.from_ssz_bytes(decompress_message(data))
        logger.info(
            "Received new block from gossipsub slot=%d", signed_block.message.block.slot
        )
        return signed_block
    if kind == ATTESTATION_TOPIC_KIND:
        attestation = SignedAttestation.from_ssz_bytes(decompress_message(data))
        logger.info(
            "Received new attestation from gossipsub slot=%d validator=%d",
            attestation.message.slot,
            attestation.validator_id,
        )
        return attestation
    logger.debug("Received message on unknown topic: %s", topic)
    return None


def encode_attestation(attestation: SignedAttestation) -> bytes:
    """The gossip payload for a signed attestation."""
    return compress_message(attestation.as_ssz_bytes())


def encode_block(signed_block: SignedBlockWithAttestation) -> bytes:
    """The gossip payload for a signed block."""
    return compress_message(signed_block.as_ssz_bytes())