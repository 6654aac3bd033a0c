"""
Decryption entry points.

``decrypt`` recovers the plaintext without looking at signatures.
``decrypt_and_verify`` additionally requires a signature that verifies
against the caller's keys. Content reaches the sink as it is decoded, so
a late failure leaves partial output behind.
"""

from typing import BinaryIO

import structlog

from pgp_pipeline.config import PGPConfig
from pgp_pipeline.exceptions import MessageFormatError, SignatureVerificationError
from pgp_pipeline.keys.keyring import EncryptionKeys
from pgp_pipeline.openpgp.armor import open_packet_stream
from pgp_pipeline.pipeline.walker import MessageTrace, check_signatures, walk_message

logger = structlog.get_logger(__name__)


class MessageDecoder:
    def __init__(self, keys: EncryptionKeys, config: PGPConfig) -> None:
        self._keys = keys
        self._config = config

    def decrypt(self, source: BinaryIO, sink: BinaryIO) -> MessageTrace:
        """
        Decode ``source`` into ``sink``.

        Raises:
            MessageFormatError: If the input is not a simple OpenPGP message.
            KeyNotFoundError: If no secret key matches the message recipients.
            IntegrityError: If the integrity check fails after the content was written.
        """
        packets, _ = open_packet_stream(source)
        trace = walk_message(packets, self._keys, self._config, sink=sink)
        logger.debug("Decrypted message", size=trace.content_length, encrypted=trace.is_encrypted)
        return trace

    def decrypt_and_verify(self, source: BinaryIO, sink: BinaryIO) -> MessageTrace:
        """
        Decode ``source`` into ``sink`` and verify its signature.

        The signer is looked up among the verification keys first, then among
        every key of the public key rings, so a signing sub-key that is not its
        ring's preferred verification key is still accepted.

        Raises:
            MessageFormatError: If the message carries no signature.
            SignatureVerificationError: If no signature verifies against the known keys.
        """
        packets, _ = open_packet_stream(source)
        trace = walk_message(packets, self._keys, self._config, sink=sink, hash_content=True)
        if not trace.is_signed:
            msg = "File was not signed."
            raise MessageFormatError(msg)
        if not check_signatures(trace, self._keys):
            msg = "Failed to verify file."
            raise SignatureVerificationError(msg, key_id=next(iter(trace.signer_key_ids), None))
        logger.debug("Decrypted and verified message", size=trace.content_length)
        return trace
