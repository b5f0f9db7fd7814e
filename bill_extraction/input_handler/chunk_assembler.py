"""
Chunk Assembler Module.

Reassembles a document delivered as a sequence of binary fragments.
Fragments may arrive out of order, repeat, or leave gaps; nothing is
handed on for decoding until every declared chunk is present.

Classes:
    TransferState: Lifecycle states of a transfer
    ChunkTransfer: One in-flight transfer
    ChunkProgress: Progress report returned for each chunk
    ChunkAssembler: Registry of in-flight transfers

Author: ML Engineering Team
"""

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Dict, Any, List

from config import get_config
from bill_extraction.utils.logger import get_logger
from bill_extraction.utils.helpers import format_file_size
from bill_extraction.utils.exceptions import (
    MissingChunksError,
    UnknownTransferError,
    InvalidChunkError,
)

# Initialize module logger
logger = get_logger(__name__)


class TransferState(Enum):
    """Lifecycle of a chunked transfer."""
    IDLE = "idle"
    RECEIVING = "receiving"
    COMPLETE = "complete"
    ERROR = "error"


@dataclass
class ChunkProgress:
    """Acknowledgment for a received chunk."""
    chunk_index: int
    received_chunks: int
    total_chunks: int

    @property
    def progress(self) -> float:
        """Fraction of chunks received, in [0, 1]."""
        if self.total_chunks <= 0:
            return 0.0
        return self.received_chunks / self.total_chunks

    def to_dict(self) -> Dict[str, Any]:
        return {
            'progress': self.progress,
            'chunkIndex': self.chunk_index,
            'receivedChunks': self.received_chunks,
            'totalChunks': self.total_chunks
        }


@dataclass
class ChunkTransfer:
    """
    State of a single chunked transfer.

    The chunk buffer is sized to total_chunks up front; a slot is None
    until its chunk arrives.

    Attributes:
        transfer_id: Identifier handed back to the producer
        total_chunks: Declared number of chunks
        file_name: Declared file name
        file_size: Declared size in bytes
        language: Optional language hint for extraction
        extract_bill_data: Whether extraction should run after decoding
        state: Current TransferState
        received_chunks: Number of distinct chunk indices received
        created_at: Monotonic creation timestamp
    """
    transfer_id: str
    total_chunks: int
    file_name: Optional[str] = None
    file_size: Optional[int] = None
    language: Optional[str] = None
    extract_bill_data: bool = True
    state: TransferState = TransferState.IDLE
    received_chunks: int = 0
    created_at: float = field(default_factory=time.monotonic)
    chunks: List[Optional[bytes]] = field(default_factory=list)

    def __post_init__(self):
        if not self.chunks:
            self.chunks = [None] * self.total_chunks

    @property
    def is_complete(self) -> bool:
        return self.received_chunks == self.total_chunks

    def missing_indices(self) -> List[int]:
        """Indices of chunks that have not arrived yet."""
        return [i for i, chunk in enumerate(self.chunks) if chunk is None]

    def put(self, index: int, data: bytes) -> None:
        """Store one chunk; re-sending an index overwrites it without recounting."""
        if index < 0 or index >= self.total_chunks:
            raise InvalidChunkError(
                f"index {index} outside 0..{self.total_chunks - 1}",
                transfer_id=self.transfer_id,
                chunk_index=index
            )
        if self.chunks[index] is None:
            self.received_chunks += 1
        self.chunks[index] = data
        self.state = TransferState.RECEIVING

    def assemble(self) -> bytes:
        """Concatenate chunks by index order."""
        if not self.is_complete:
            raise MissingChunksError(
                received=self.received_chunks,
                expected=self.total_chunks,
                transfer_id=self.transfer_id
            )
        return b"".join(self.chunks)


class ChunkAssembler:
    """
    Keeps in-flight transfers and reassembles them on completion.

    The assembler imposes no timeout; the hosting handler decides when
    a transfer has waited too long and discards it.

    Example:
        >>> assembler = ChunkAssembler()
        >>> tid = assembler.init(2, {"fileName": "bill.pdf"})
        >>> assembler.put_chunk(tid, 1, b"world")
        >>> assembler.put_chunk(tid, 0, b"hello ")
        >>> assembler.complete(tid)
        b'hello world'
    """

    def __init__(self, max_chunks: Optional[int] = None) -> None:
        self.max_chunks = max_chunks or get_config("transfer.max_chunks", 10000)
        self._transfers: Dict[str, ChunkTransfer] = {}

    def init(self, total_chunks: int, metadata: Optional[Dict[str, Any]] = None) -> str:
        """
        Start a new transfer.

        Args:
            total_chunks: Number of chunks the producer will send.
            metadata: Optional fileName, fileSize, language, extractBillData.

        Returns:
            New transfer id.

        Raises:
            InvalidChunkError: If total_chunks is not a positive integer
                within the configured maximum.
        """
        metadata = metadata or {}
        if not isinstance(total_chunks, int) or isinstance(total_chunks, bool) or total_chunks < 1:
            raise InvalidChunkError(f"totalChunks must be a positive integer, got {total_chunks!r}")
        if total_chunks > self.max_chunks:
            raise InvalidChunkError(
                f"totalChunks {total_chunks} exceeds limit {self.max_chunks}",
                total_chunks=total_chunks
            )

        transfer_id = uuid.uuid4().hex
        transfer = ChunkTransfer(
            transfer_id=transfer_id,
            total_chunks=total_chunks,
            file_name=metadata.get('fileName'),
            file_size=metadata.get('fileSize'),
            language=metadata.get('language'),
            extract_bill_data=metadata.get('extractBillData', True),
        )
        self._transfers[transfer_id] = transfer

        size = transfer.file_size
        logger.info(
            f"Transfer {transfer_id} started: {transfer.file_name or '<unnamed>'}, "
            f"{total_chunks} chunks"
            + (f", {format_file_size(size)}" if size else "")
        )
        return transfer_id

    def get(self, transfer_id: str) -> ChunkTransfer:
        """
        Look up an in-flight transfer.

        Raises:
            UnknownTransferError: If the id is not known.
        """
        transfer = self._transfers.get(transfer_id)
        if transfer is None:
            raise UnknownTransferError(transfer_id)
        return transfer

    def put_chunk(self, transfer_id: str, index: int, data: bytes) -> ChunkProgress:
        """
        Store one chunk.

        Args:
            transfer_id: Transfer id from init().
            index: 0-based chunk index.
            data: Chunk bytes.

        Returns:
            ChunkProgress for acknowledgment.

        Raises:
            UnknownTransferError: For unknown transfer ids.
            InvalidChunkError: For out-of-range indices.
        """
        transfer = self.get(transfer_id)
        try:
            transfer.put(index, data)
        except InvalidChunkError:
            logger.warning(f"Rejected chunk {index} for transfer {transfer_id}")
            raise

        logger.debug(
            f"Transfer {transfer_id}: chunk {index} stored "
            f"({transfer.received_chunks}/{transfer.total_chunks})"
        )
        return ChunkProgress(
            chunk_index=index,
            received_chunks=transfer.received_chunks,
            total_chunks=transfer.total_chunks
        )

    def complete(self, transfer_id: str) -> bytes:
        """
        Reassemble a transfer and discard it.

        An incomplete transfer stays registered so late chunks can still
        arrive.

        Raises:
            UnknownTransferError: For unknown transfer ids.
            MissingChunksError: If not every chunk has arrived.
        """
        transfer = self.get(transfer_id)

        if not transfer.is_complete:
            missing = transfer.missing_indices()
            logger.warning(
                f"Transfer {transfer_id} incomplete: "
                f"{transfer.received_chunks}/{transfer.total_chunks}, missing {missing[:10]}"
            )
            raise MissingChunksError(
                received=transfer.received_chunks,
                expected=transfer.total_chunks,
                transfer_id=transfer_id
            )

        data = transfer.assemble()
        transfer.state = TransferState.COMPLETE
        del self._transfers[transfer_id]

        if transfer.file_size is not None and transfer.file_size != len(data):
            logger.warning(
                f"Transfer {transfer_id}: declared size {transfer.file_size} "
                f"but assembled {len(data)} bytes"
            )

        logger.info(f"Transfer {transfer_id} complete ({format_file_size(len(data))})")
        return data

    def discard(self, transfer_id: str) -> bool:
        """
        Drop a transfer without side effects.

        Returns:
            True if a transfer was removed.
        """
        transfer = self._transfers.pop(transfer_id, None)
        if transfer is None:
            return False
        transfer.state = TransferState.ERROR
        transfer.chunks = []
        logger.info(f"Transfer {transfer_id} discarded")
        return True

    def active_transfers(self) -> List[str]:
        return list(self._transfers)

    def __len__(self) -> int:
        return len(self._transfers)

    def __contains__(self, transfer_id: str) -> bool:
        return transfer_id in self._transfers
