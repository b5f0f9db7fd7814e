"""
Document Message Handler Module.

Serves the document protocol over a Channel:

    INIT_PDF_TRANSFER      -> TRANSFER_INITIALIZED
    PDF_CHUNK              -> TRANSFER_PROGRESS
    COMPLETE_PDF_TRANSFER  -> EXTRACTION_RESULT | TRANSFER_ERROR | EXTRACTION_ERROR
    PROCESS_DOCUMENT       -> EXTRACTION_RESULT | EXTRACTION_ERROR

Chunked transfers are owned by the session (channel) that opened them
and are discarded when it disconnects. A transfer must be completed
within transfer.completion_timeout_seconds of its INIT message.
Decoding and extraction run in the event loop's default executor.

No exception escapes handle() or serve(): every failure becomes a
response with success false, the error message and its errorType.

Author: ML Engineering Team
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

from config import get_config
from bill_extraction.utils.logger import get_logger
from bill_extraction.utils.helpers import to_bytes, truncate
from bill_extraction.utils.exceptions import (
    BillExtractionError,
    TransferError,
    InvalidChunkError,
    UnknownTransferError,
    DocumentDecodeError,
    OperationTimeoutError,
    ExtractionTimeoutError,
    TransferTimeoutError,
    ProtocolError,
    UnsupportedMessageError,
)
from bill_extraction.input_handler.chunk_assembler import ChunkAssembler
from bill_extraction.input_handler.pdf_processor import DocumentDecoder
from bill_extraction.extraction.extraction_result import ExtractionContext, SourceKind
from bill_extraction.extraction.orchestrator import ExtractionOrchestrator
from .channel import Channel, Message

# Initialize module logger
logger = get_logger(__name__)


@dataclass
class HandlerSession:
    """
    Per-channel protocol state.

    Attributes:
        name: Session name used in log messages
        transfers: Ids of the transfers this session opened, oldest first
        expired: Ids of transfers dropped by the completion timeout
        timers: Completion timeout handles per transfer id
    """
    name: str = "session"
    transfers: List[str] = field(default_factory=list)
    expired: Set[str] = field(default_factory=set)
    timers: Dict[str, asyncio.TimerHandle] = field(default_factory=dict)


class DocumentHandler:
    """
    Protocol endpoint turning messages into transfers and extractions.

    Attributes:
        orchestrator: Extraction orchestrator
        assembler: Chunk assembler shared by all sessions
        decoder: Document decoder
        completion_timeout: Seconds a transfer may stay open
        decode_timeout: Seconds allowed for decoding one document
        extract_timeout: Seconds allowed for one extraction

    Example:
        >>> handler = DocumentHandler(build_orchestrator())
        >>> response = await handler.handle({"type": "INIT_PDF_TRANSFER", "totalChunks": 3})
        >>> response["type"]
        'TRANSFER_INITIALIZED'
    """

    def __init__(
        self,
        orchestrator: ExtractionOrchestrator,
        assembler: Optional[ChunkAssembler] = None,
        decoder: Optional[DocumentDecoder] = None,
        completion_timeout: Optional[float] = None,
        decode_timeout: Optional[float] = None,
        extract_timeout: Optional[float] = None
    ) -> None:
        self.orchestrator = orchestrator
        self.assembler = assembler or ChunkAssembler()
        self.decoder = decoder or DocumentDecoder()
        self.completion_timeout = completion_timeout if completion_timeout is not None else get_config(
            "transfer.completion_timeout_seconds", 120
        )
        self.decode_timeout = decode_timeout if decode_timeout is not None else get_config(
            "transfer.decode_timeout_seconds", 60
        )
        self.extract_timeout = extract_timeout if extract_timeout is not None else orchestrator.timeout
        self._default_session = HandlerSession(name="default")

        self._handlers = {
            'INIT_PDF_TRANSFER': self._init_transfer,
            'PDF_CHUNK': self._put_chunk,
            'COMPLETE_PDF_TRANSFER': self._complete_transfer,
            'PROCESS_DOCUMENT': self._process_document,
        }

    # ------------------------------------------------------------------
    # Public entry points
    # ------------------------------------------------------------------

    async def serve(self, channel: Channel, name: str = "channel") -> None:
        """
        Answer every message of a channel until it disconnects.

        The session's open transfers are discarded on disconnect.
        """
        session = HandlerSession(name=name)
        logger.info(f"Serving {name}")
        try:
            while True:
                message = await channel.receive()
                if message is None:
                    break
                response = await self.handle(message, session)
                try:
                    await channel.send(response)
                except ConnectionError as e:
                    logger.warning(f"{name}: response dropped, {e}")
                    break
        finally:
            self.close_session(session)
            logger.info(f"{name} disconnected")

    async def handle(self, message: Message, session: Optional[HandlerSession] = None) -> Message:
        """
        Answer one message.

        Args:
            message: Protocol message.
            session: Owning session; a handler-wide session if None.

        Returns:
            Response message (messageId echoed when supplied).
        """
        session = session or self._default_session
        message_id = message.get('messageId') if isinstance(message, dict) else None

        try:
            if not isinstance(message, dict):
                raise ProtocolError(f"Message must be a mapping, got {type(message).__name__}")
            message_type = message.get('type')
            handler = self._handlers.get(message_type)
            if handler is None:
                raise UnsupportedMessageError(str(message_type))
            logger.debug(f"{session.name}: {message_type}")
            response = await handler(message, session)

        except TransferError as e:
            logger.warning(f"{session.name}: transfer error: {e.message}")
            response = self._error('TRANSFER_ERROR', e)
        except TransferTimeoutError as e:
            response = self._error('TRANSFER_ERROR', e)
        except ProtocolError as e:
            logger.warning(f"{session.name}: {e.message}")
            response = {'success': False, 'error': e.message, 'errorType': type(e).__name__}
        except BillExtractionError as e:
            logger.error(f"{session.name}: {e}")
            response = self._error('EXTRACTION_ERROR', e)
        except Exception as e:
            logger.error(f"{session.name}: unexpected error: {e}", exc_info=True)
            response = self._error('EXTRACTION_ERROR', e)

        if message_id is not None:
            response['messageId'] = message_id
        return response

    def close_session(self, session: HandlerSession) -> int:
        """
        Discard every transfer a session still owns.

        Returns:
            Number of transfers discarded.
        """
        for timer in session.timers.values():
            timer.cancel()
        session.timers.clear()

        discarded = sum(1 for transfer_id in session.transfers if self.assembler.discard(transfer_id))
        session.transfers.clear()
        if discarded:
            logger.info(f"{session.name}: discarded {discarded} open transfers")
        return discarded

    @staticmethod
    def _error(response_type: str, error: Exception) -> Message:
        response = {
            'type': response_type,
            'success': False,
            'error': str(error),
            'errorType': type(error).__name__,
        }
        if isinstance(error, BillExtractionError):
            response['error'] = error.message
            if error.details:
                response['details'] = dict(error.details)
        return response

    # ------------------------------------------------------------------
    # Chunked transfer
    # ------------------------------------------------------------------

    async def _init_transfer(self, message: Message, session: HandlerSession) -> Message:
        transfer_id = self.assembler.init(message.get('totalChunks'), {
            'fileName': message.get('fileName'),
            'fileSize': message.get('fileSize'),
            'language': message.get('language'),
            'extractBillData': message.get('extractBillData', True) is not False,
        })
        session.transfers.append(transfer_id)

        loop = asyncio.get_running_loop()
        session.timers[transfer_id] = loop.call_later(
            self.completion_timeout, self._expire, session, transfer_id
        )
        return {'type': 'TRANSFER_INITIALIZED', 'success': True, 'transferId': transfer_id}

    def _expire(self, session: HandlerSession, transfer_id: str) -> None:
        session.timers.pop(transfer_id, None)
        if self.assembler.discard(transfer_id):
            session.expired.add(transfer_id)
            if transfer_id in session.transfers:
                session.transfers.remove(transfer_id)
            logger.warning(
                f"{session.name}: transfer {transfer_id} not completed within "
                f"{self.completion_timeout}s, discarded"
            )

    def _resolve_transfer(self, message: Message, session: HandlerSession) -> str:
        transfer_id = message.get('transferId')
        if transfer_id is None:
            if session.transfers:
                return session.transfers[-1]
            if session.expired:
                raise TransferTimeoutError(self.completion_timeout)
            raise UnknownTransferError(None)
        if transfer_id in session.expired:
            raise TransferTimeoutError(self.completion_timeout, transfer_id)
        if transfer_id not in session.transfers:
            # Transfers are only reachable from the session that opened them
            raise UnknownTransferError(transfer_id)
        return transfer_id

    async def _put_chunk(self, message: Message, session: HandlerSession) -> Message:
        transfer_id = self._resolve_transfer(message, session)
        index = message.get('chunkIndex')
        if not isinstance(index, int) or isinstance(index, bool):
            raise InvalidChunkError(f"chunkIndex must be an integer, got {index!r}", transfer_id=transfer_id)
        try:
            data = to_bytes(message.get('chunk'))
        except (TypeError, ValueError) as e:
            raise InvalidChunkError(f"unreadable chunk payload ({e})", transfer_id=transfer_id)

        progress = self.assembler.put_chunk(transfer_id, index, data)
        response = {'type': 'TRANSFER_PROGRESS', 'success': True}
        response.update(progress.to_dict())
        return response

    async def _complete_transfer(self, message: Message, session: HandlerSession) -> Message:
        transfer_id = self._resolve_transfer(message, session)
        transfer = self.assembler.get(transfer_id)
        data = self.assembler.complete(transfer_id)

        timer = session.timers.pop(transfer_id, None)
        if timer:
            timer.cancel()
        if transfer_id in session.transfers:
            session.transfers.remove(transfer_id)

        return await self.process(
            data,
            file_name=transfer.file_name,
            language=transfer.language,
            extract_bill_data=transfer.extract_bill_data,
            subject=message.get('subject')
        )

    # ------------------------------------------------------------------
    # Decoding and extraction
    # ------------------------------------------------------------------

    async def _process_document(self, message: Message, session: HandlerSession) -> Message:
        try:
            data = to_bytes(message.get('data'))
        except (TypeError, ValueError) as e:
            raise ProtocolError(f"Unreadable document payload: {e}")
        return await self.process(
            data,
            file_name=message.get('fileName'),
            language=message.get('language'),
            extract_bill_data=message.get('extractBillData', True) is not False,
            subject=message.get('subject')
        )

    async def process(
        self,
        data: bytes,
        file_name: Optional[str] = None,
        language: Optional[str] = None,
        extract_bill_data: bool = True,
        subject: Optional[str] = None
    ) -> Message:
        """
        Decode a complete document and extract its bills.

        A decoder failure is not fatal: extraction still runs on an empty
        text so the raw-regex strategy can scan the bytes.

        Returns:
            EXTRACTION_RESULT on success, EXTRACTION_ERROR otherwise.
        """
        loop = asyncio.get_running_loop()
        context = await self._decode(loop, data, file_name, language, subject)

        if not extract_bill_data:
            return {
                'type': 'EXTRACTION_RESULT',
                'success': True,
                'text': context.text,
                'bills': [],
                'confidence': 0.0,
                'language': language,
            }

        try:
            result = await asyncio.wait_for(
                loop.run_in_executor(None, self.orchestrator.extract, context),
                timeout=self.extract_timeout
            )
        except asyncio.TimeoutError:
            raise ExtractionTimeoutError(self.extract_timeout)

        if not result.success:
            return {
                'type': 'EXTRACTION_ERROR',
                'success': False,
                'error': result.error or "No bill data found",
                'errorType': result.error_type or 'ExtractionError',
                'text': context.text,
                'language': result.language,
            }

        logger.info(
            f"{file_name or 'document'}: {len(result.bills)} bills, "
            f"confidence {result.confidence:.2f}"
        )
        return {
            'type': 'EXTRACTION_RESULT',
            'success': True,
            'text': context.text,
            'bills': [bill.to_dict() for bill in result.bills],
            'confidence': result.confidence,
            'language': result.language,
            'lowConfidence': result.is_low_confidence,
        }

    async def _decode(
        self,
        loop: asyncio.AbstractEventLoop,
        data: bytes,
        file_name: Optional[str],
        language: Optional[str],
        subject: Optional[str]
    ) -> ExtractionContext:
        try:
            document = await asyncio.wait_for(
                loop.run_in_executor(None, self.decoder.decode, data, file_name),
                timeout=self.decode_timeout
            )
        except asyncio.TimeoutError:
            raise OperationTimeoutError("Document decoding", self.decode_timeout)
        except DocumentDecodeError as e:
            logger.warning(f"Decoding failed, continuing with raw bytes: {e}")
            kind = SourceKind.PDF if self.decoder.is_pdf(data) else SourceKind.TEXT
            return ExtractionContext(
                text="",
                language=language,
                file_name=file_name,
                subject=subject,
                raw_bytes=data,
                source_kind=kind
            )

        if document.is_empty():
            logger.warning(f"{file_name or 'document'} has no text layer, relying on the raw scan")
        else:
            logger.debug(f"Decoded {file_name or 'document'}: '{truncate(document.text, 60)}'")
        return ExtractionContext.from_document(
            document, language=language, subject=subject, raw_bytes=data
        )
