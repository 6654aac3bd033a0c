"""
Verification engine.

Checks messages that are signed but not expected to be encrypted. Signed
content is digested while it streams to the optional sink; trailing or
leading signature packets are then checked against the caller's keys.

An encrypted message cannot be verified without decrypting it. Unless the
caller forbids encrypted input, such a message is accepted when one of its
recipients is a known key. That is an identity check, not a cryptographic
one, and is logged as a warning.
"""

from collections.abc import Callable, Iterator
from typing import BinaryIO

import structlog

from pgp_pipeline.config import PGPConfig
from pgp_pipeline.exceptions import InvalidArgumentError, MessageFormatError
from pgp_pipeline.keys import selector
from pgp_pipeline.keys.keyring import EncryptionKeys
from pgp_pipeline.models.keys import PublicKey
from pgp_pipeline.models.message import (
    CompressedData,
    EncryptedDataList,
    OnePassSignatureList,
    PGPObject,
    SignatureList,
)
from pgp_pipeline.openpgp.armor import open_packet_stream
from pgp_pipeline.openpgp.packets import DecompressingReader, PGPObjectFactory
from pgp_pipeline.pipeline.walker import MessageWalker, check_signatures, iter_objects

logger = structlog.get_logger(__name__)


def _prepend(first: PGPObject | None, factory: PGPObjectFactory) -> Iterator[PGPObject]:
    if first is not None:
        yield first
    yield from iter_objects(factory)


class MessageVerifier:
    def __init__(self, keys: EncryptionKeys, config: PGPConfig) -> None:
        self._keys = keys
        self._config = config

    def verify(
        self,
        source: BinaryIO,
        sink: BinaryIO | None = None,
        *,
        throw_if_encrypted: bool = False,
    ) -> bool:
        """
        Verify a signed message, streaming its content to ``sink``.

        Signers are resolved the same way as in decrypt-and-verify: verification
        keys first, then any key of the public key rings.

        Returns:
            True if a signature verifies; False if none does or the signer is unknown.

        Raises:
            InvalidArgumentError: If the input is encrypted and ``throw_if_encrypted`` is set.
            MessageFormatError: If the input is neither signed nor encrypted.
        """
        packets, _ = open_packet_stream(source)
        factory = PGPObjectFactory(packets)
        first = factory.next_object()
        match first:
            case EncryptedDataList():
                if throw_if_encrypted:
                    msg = "Input is encrypted. Decrypt the input first."
                    raise InvalidArgumentError(msg)
                return self._check_recipients(first, self._keys.find_public_key)
            case CompressedData():
                inner = PGPObjectFactory(DecompressingReader(first))
                nested = inner.next_object()
                if isinstance(nested, EncryptedDataList):
                    return self._check_recipients(nested, self._find_verification_key)
                walker = self._walker(sink)
                walker.trace.is_compressed = True
                walker.walk(_prepend(nested, inner), depth=2)
                walker.walk(iter_objects(factory))
                return self._check(walker)
            case OnePassSignatureList() | SignatureList():
                walker = self._walker(sink)
                walker.walk(_prepend(first, factory))
                return self._check(walker)
            case _:
                msg = "Message is not a encrypted and signed file or simple signed file."
                raise MessageFormatError(msg)

    def _walker(self, sink: BinaryIO | None) -> MessageWalker:
        return MessageWalker(self._keys, self._config, sink=sink, hash_content=True)

    def _check(self, walker: MessageWalker) -> bool:
        trace = walker.finish()
        if not trace.is_signed:
            msg = "File was not signed."
            raise MessageFormatError(msg)
        verified = check_signatures(trace, self._keys)
        logger.debug("Verified message", verified=verified, signers=trace.signer_key_ids)
        return verified

    def _find_verification_key(self, key_id: str) -> PublicKey | None:
        return selector.find_public_key(key_id, self._keys.verification_keys)

    @staticmethod
    def _check_recipients(
        encrypted: EncryptedDataList, find: Callable[[str], PublicKey | None]
    ) -> bool:
        matched = [key_id for key_id in encrypted.key_ids if find(key_id) is not None]
        logger.warning(
            "Encrypted message checked by recipient key id only",
            recipients=encrypted.key_ids,
            matched=matched,
        )
        return bool(matched)
