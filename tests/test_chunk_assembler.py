"""
Unit tests for chunked transfer reassembly.
"""

import random

import pytest

from bill_extraction.input_handler.chunk_assembler import ChunkAssembler, TransferState
from bill_extraction.utils.exceptions import (
    MissingChunksError,
    UnknownTransferError,
    InvalidChunkError,
)


def split(data: bytes, size: int):
    return [data[i:i + size] for i in range(0, len(data), size)]


class TestChunkAssembler:
    """Test ChunkAssembler transfers."""

    def test_any_arrival_order_reassembles(self):
        """Chunks delivered in a shuffled order assemble by index."""
        data = bytes(range(256)) * 7
        chunks = split(data, 100)
        order = list(range(len(chunks)))
        random.Random(42).shuffle(order)

        assembler = ChunkAssembler()
        transfer_id = assembler.init(len(chunks), {"fileName": "bill.pdf", "fileSize": len(data)})
        for index in order:
            assembler.put_chunk(transfer_id, index, chunks[index])

        assert assembler.complete(transfer_id) == data
        assert transfer_id not in assembler

    def test_resent_chunk_is_not_counted_twice(self):
        """Re-sending an index overwrites it and keeps the count."""
        assembler = ChunkAssembler()
        transfer_id = assembler.init(2)

        first = assembler.put_chunk(transfer_id, 0, b"old")
        again = assembler.put_chunk(transfer_id, 0, b"new")
        assembler.put_chunk(transfer_id, 1, b"!")

        assert first.received_chunks == 1
        assert again.received_chunks == 1
        assert assembler.complete(transfer_id) == b"new!"

    def test_progress_report(self):
        """Progress is reported with camelCase keys."""
        assembler = ChunkAssembler()
        transfer_id = assembler.init(4)
        progress = assembler.put_chunk(transfer_id, 2, b"x").to_dict()

        assert progress == {
            'progress': 0.25,
            'chunkIndex': 2,
            'receivedChunks': 1,
            'totalChunks': 4,
        }

    def test_missing_chunks(self):
        """Completing with gaps fails and keeps the transfer open."""
        assembler = ChunkAssembler()
        transfer_id = assembler.init(3)
        assembler.put_chunk(transfer_id, 0, b"a")
        assembler.put_chunk(transfer_id, 2, b"c")

        with pytest.raises(MissingChunksError) as excinfo:
            assembler.complete(transfer_id)

        assert excinfo.value.received == 2
        assert excinfo.value.expected == 3
        assert transfer_id in assembler

        # A late chunk still completes the transfer
        assembler.put_chunk(transfer_id, 1, b"b")
        assert assembler.complete(transfer_id) == b"abc"

    @pytest.mark.parametrize("index", [-1, 3, 100])
    def test_index_out_of_range(self, index):
        """Indices outside 0..total-1 are rejected."""
        assembler = ChunkAssembler()
        transfer_id = assembler.init(3)

        with pytest.raises(InvalidChunkError):
            assembler.put_chunk(transfer_id, index, b"x")
        assert assembler.get(transfer_id).received_chunks == 0

    @pytest.mark.parametrize("total", [0, -2, "3", None, True])
    def test_invalid_chunk_count(self, total):
        """totalChunks must be a positive integer."""
        with pytest.raises(InvalidChunkError):
            ChunkAssembler().init(total)

    def test_chunk_count_limit(self):
        """totalChunks above the configured maximum is rejected."""
        with pytest.raises(InvalidChunkError):
            ChunkAssembler(max_chunks=5).init(6)

    def test_unknown_transfer(self):
        """Unknown ids fail for chunks and completion alike."""
        assembler = ChunkAssembler()

        with pytest.raises(UnknownTransferError):
            assembler.put_chunk("nope", 0, b"x")
        with pytest.raises(UnknownTransferError):
            assembler.complete("nope")

    def test_discard(self):
        """Discarding drops the transfer exactly once."""
        assembler = ChunkAssembler()
        transfer_id = assembler.init(2)
        transfer = assembler.get(transfer_id)

        assert assembler.discard(transfer_id) is True
        assert assembler.discard(transfer_id) is False
        assert transfer.state == TransferState.ERROR
        assert assembler.active_transfers() == []

    def test_metadata_is_kept(self):
        """Init metadata is stored on the transfer."""
        assembler = ChunkAssembler()
        transfer_id = assembler.init(1, {
            "fileName": "szamla.pdf",
            "fileSize": 10,
            "language": "hu",
            "extractBillData": False,
        })
        transfer = assembler.get(transfer_id)

        assert transfer.file_name == "szamla.pdf"
        assert transfer.language == "hu"
        assert transfer.extract_bill_data is False
        assert transfer.state == TransferState.IDLE
