"""
Message inspection.

Classifies a message by walking it up to the literal data header. Opening
an encrypted layer still needs a matching secret key.
"""

from typing import BinaryIO

import structlog

from pgp_pipeline.config import PGPConfig
from pgp_pipeline.keys.keyring import EncryptionKeys
from pgp_pipeline.models.message import CompressedData, EncryptedDataList, InspectResult
from pgp_pipeline.openpgp.armor import open_packet_stream
from pgp_pipeline.openpgp.packets import DecompressingReader, PGPObjectFactory
from pgp_pipeline.pipeline.walker import walk_message

logger = structlog.get_logger(__name__)


class MessageInspector:
    def __init__(self, keys: EncryptionKeys | None, config: PGPConfig) -> None:
        self._keys = keys
        self._config = config

    def inspect(self, source: BinaryIO) -> InspectResult:
        """
        Classify the message in ``source``.

        Raises:
            KeyNotFoundError: If the message is encrypted to keys we do not hold.
            MessageFormatError: If the input is not an OpenPGP message.
        """
        packets, armored = open_packet_stream(source)
        trace = walk_message(
            packets, self._keys, self._config, read_content=False, check_integrity=False
        )
        result = InspectResult(
            is_encrypted=trace.is_encrypted,
            is_signed=trace.is_signed,
            is_compressed=trace.is_compressed,
            is_integrity_protected=trace.is_integrity_protected,
            is_armored=armored is not None,
            symmetric_algorithm=trace.symmetric_algorithm,
            file_name=trace.file_name,
            modification_time=trace.modification_time,
            message_headers=dict(armored.headers) if armored is not None else {},
        )
        logger.debug(
            "Inspected message",
            encrypted=result.is_encrypted,
            signed=result.is_signed,
            compressed=result.is_compressed,
            armored=result.is_armored,
        )
        return result

    @staticmethod
    def get_recipients(source: BinaryIO) -> tuple[str, ...]:
        """
        Key ids the message's session key is wrapped to, without decrypting.

        Returns an empty tuple for messages that are not encrypted.
        """
        packets, _ = open_packet_stream(source)
        obj = PGPObjectFactory(packets).next_object()
        if isinstance(obj, CompressedData):
            obj = PGPObjectFactory(DecompressingReader(obj)).next_object()
        if isinstance(obj, EncryptedDataList):
            return obj.key_ids
        return ()
