"""
Tests for the message channel and the document protocol handler.
"""

import asyncio

import pytest

from bill_extraction.input_handler import DocumentDecoder
from bill_extraction.protocol import DocumentHandler, HandlerSession, create_channel_pair


class CountingDecoder(DocumentDecoder):
    """DocumentDecoder remembering how often it ran."""

    def __init__(self):
        super().__init__()
        self.calls = 0

    def decode(self, data, file_name=None):
        self.calls += 1
        return super().decode(data, file_name)


def split(data, size):
    return [data[i:i + size] for i in range(0, len(data), size)]


@pytest.fixture
def handler(orchestrator):
    return DocumentHandler(orchestrator)


class TestChunkedTransfer:
    """Test INIT / PDF_CHUNK / COMPLETE message flows."""

    def test_out_of_order_chunks(self, handler, mvm_text):
        """Chunks may arrive in any order."""
        chunks = split(mvm_text.encode("utf-8"), 50)

        async def scenario():
            session = HandlerSession(name="test")
            init = await handler.handle({
                'type': 'INIT_PDF_TRANSFER',
                'totalChunks': len(chunks),
                'fileName': 'mvm.txt',
            }, session)
            transfer_id = init['transferId']

            progress = []
            for index in reversed(range(len(chunks))):
                progress.append(await handler.handle({
                    'type': 'PDF_CHUNK',
                    'transferId': transfer_id,
                    'chunkIndex': index,
                    'chunk': list(chunks[index]),
                }, session))

            result = await handler.handle({
                'type': 'COMPLETE_PDF_TRANSFER',
                'transferId': transfer_id,
            }, session)
            return init, progress, result

        init, progress, result = asyncio.run(scenario())

        assert init['type'] == 'TRANSFER_INITIALIZED'
        assert init['success']
        assert [p['receivedChunks'] for p in progress] == list(range(1, len(progress) + 1))
        assert progress[-1]['progress'] == 1.0

        assert result['type'] == 'EXTRACTION_RESULT'
        assert result['success']
        assert result['language'] == 'hu'
        assert result['bills'][0]['fields']['amount'] == 6364.0
        assert result['bills'][0]['fields']['due_date'] == '2025-05-05'
        assert result['bills'][0]['source'] == {'kind': 'text', 'locator': 'mvm.txt'}
        assert not result['lowConfidence']
        assert len(handler.assembler) == 0

    def test_transfer_id_defaults_to_latest(self, handler):
        """Messages without a transferId address the session's latest transfer."""
        async def scenario():
            session = HandlerSession()
            await handler.handle({
                'type': 'INIT_PDF_TRANSFER', 'totalChunks': 1, 'extractBillData': False
            }, session)
            await handler.handle({'type': 'PDF_CHUNK', 'chunkIndex': 0, 'chunk': b'Total due: $45.00'}, session)
            return await handler.handle({'type': 'COMPLETE_PDF_TRANSFER'}, session)

        result = asyncio.run(scenario())

        assert result['type'] == 'EXTRACTION_RESULT'
        assert result['text'] == 'Total due: $45.00'

    def test_missing_chunks(self, orchestrator):
        """Completing early reports the counts and decodes nothing."""
        decoder = CountingDecoder()
        handler = DocumentHandler(orchestrator, decoder=decoder)

        async def scenario():
            init = await handler.handle({'type': 'INIT_PDF_TRANSFER', 'totalChunks': 3})
            transfer_id = init['transferId']
            for index in (0, 2):
                await handler.handle({
                    'type': 'PDF_CHUNK', 'transferId': transfer_id,
                    'chunkIndex': index, 'chunk': b'abc',
                })
            return transfer_id, await handler.handle({
                'type': 'COMPLETE_PDF_TRANSFER', 'transferId': transfer_id, 'messageId': 7
            })

        transfer_id, result = asyncio.run(scenario())

        assert result['type'] == 'TRANSFER_ERROR'
        assert not result['success']
        assert result['errorType'] == 'MissingChunksError'
        assert result['details']['received'] == 2
        assert result['details']['expected'] == 3
        assert result['messageId'] == 7
        assert decoder.calls == 0
        # The transfer survives so the missing chunk can still arrive
        assert transfer_id in handler.assembler

    def test_invalid_chunk_index(self, handler):
        async def scenario():
            init = await handler.handle({'type': 'INIT_PDF_TRANSFER', 'totalChunks': 2})
            return await handler.handle({
                'type': 'PDF_CHUNK', 'transferId': init['transferId'],
                'chunkIndex': '0', 'chunk': b'abc',
            })

        result = asyncio.run(scenario())

        assert result['type'] == 'TRANSFER_ERROR'
        assert result['errorType'] == 'InvalidChunkError'

    def test_unknown_transfer(self, handler):
        result = asyncio.run(handler.handle({
            'type': 'PDF_CHUNK', 'transferId': 'nope', 'chunkIndex': 0, 'chunk': b'abc'
        }))

        assert result['type'] == 'TRANSFER_ERROR'
        assert result['errorType'] == 'UnknownTransferError'

    def test_transfer_of_another_session(self, handler):
        """A session cannot feed or complete a transfer it did not open."""
        async def scenario():
            owner, intruder = HandlerSession(name="owner"), HandlerSession(name="intruder")
            init = await handler.handle({'type': 'INIT_PDF_TRANSFER', 'totalChunks': 1}, owner)
            transfer_id = init['transferId']

            chunk = await handler.handle({
                'type': 'PDF_CHUNK', 'transferId': transfer_id, 'chunkIndex': 0, 'chunk': b'abc',
            }, intruder)
            complete = await handler.handle({
                'type': 'COMPLETE_PDF_TRANSFER', 'transferId': transfer_id,
            }, intruder)
            return transfer_id, chunk, complete

        transfer_id, chunk, complete = asyncio.run(scenario())

        assert chunk['errorType'] == 'UnknownTransferError'
        assert complete['errorType'] == 'UnknownTransferError'
        assert handler.assembler.get(transfer_id).received_chunks == 0

    def test_transfer_expires(self, orchestrator):
        """A transfer not completed in time is dropped."""
        handler = DocumentHandler(orchestrator, completion_timeout=0.01)

        async def scenario():
            session = HandlerSession()
            init = await handler.handle({'type': 'INIT_PDF_TRANSFER', 'totalChunks': 2}, session)
            await asyncio.sleep(0.05)
            return await handler.handle({
                'type': 'PDF_CHUNK', 'transferId': init['transferId'],
                'chunkIndex': 0, 'chunk': b'abc',
            }, session)

        result = asyncio.run(scenario())

        assert result['type'] == 'TRANSFER_ERROR'
        assert result['errorType'] == 'TransferTimeoutError'
        assert len(handler.assembler) == 0


class TestProcessDocument:
    """Test one-shot PROCESS_DOCUMENT messages."""

    def test_text_document(self, handler, two_bills_text):
        result = asyncio.run(handler.handle({
            'type': 'PROCESS_DOCUMENT',
            'data': two_bills_text.encode('utf-8'),
            'language': 'hu',
        }))

        assert result['type'] == 'EXTRACTION_RESULT'
        assert [bill['fields']['amount'] for bill in result['bills']] == [12500.0, 8200.0]

    def test_text_only(self, handler, mvm_text):
        result = asyncio.run(handler.handle({
            'type': 'PROCESS_DOCUMENT',
            'data': mvm_text,
            'extractBillData': False,
        }))

        assert result['success']
        assert result['bills'] == []
        assert result['text'] == mvm_text

    def test_no_bill_found(self, handler, unrelated_text):
        result = asyncio.run(handler.handle({
            'type': 'PROCESS_DOCUMENT', 'data': unrelated_text.encode('utf-8')
        }))

        assert result['type'] == 'EXTRACTION_ERROR'
        assert not result['success']
        assert result['error'] == 'No bill data found'

    def test_damaged_pdf_still_scanned(self, handler):
        """Undecodable PDFs fall back to the raw byte scan."""
        result = asyncio.run(handler.handle({
            'type': 'PROCESS_DOCUMENT',
            'data': b"%PDF-1.4 BT (Amount due: $45.00) Tj ET",
            'fileName': 'broken.pdf',
            'language': 'en',
        }))

        assert result['type'] == 'EXTRACTION_RESULT'
        assert result['lowConfidence']
        assert result['bills'][0]['fields']['amount'] == 45.0
        assert result['bills'][0]['source']['kind'] == 'raw_scan'

    def test_unsupported_message(self, handler):
        result = asyncio.run(handler.handle({'type': 'RESIZE_IMAGE', 'messageId': 'm-1'}))

        assert not result['success']
        assert result['errorType'] == 'UnsupportedMessageError'
        assert result['messageId'] == 'm-1'

    def test_message_must_be_mapping(self, handler):
        result = asyncio.run(handler.handle(["PDF_CHUNK"]))

        assert not result['success']
        assert result['errorType'] == 'ProtocolError'


class TestServe:
    """Test serving a channel."""

    def test_disconnect_discards_transfers(self, handler):
        async def scenario():
            client, server = create_channel_pair()
            task = asyncio.ensure_future(handler.serve(server, name="client-1"))

            await client.send({'type': 'INIT_PDF_TRANSFER', 'totalChunks': 4})
            response = await client.receive()
            open_before = len(handler.assembler)

            await client.close()
            await task
            return response, open_before

        response, open_before = asyncio.run(scenario())

        assert response['type'] == 'TRANSFER_INITIALIZED'
        assert open_before == 1
        assert len(handler.assembler) == 0


class TestChannel:
    """Test the in-process channel pair."""

    def test_round_trip_and_close(self):
        async def scenario():
            client, server = create_channel_pair()
            await client.send({'type': 'PING'})
            received = await server.receive()

            await client.close()
            after_close = await server.receive()
            again = await server.receive()

            with pytest.raises(ConnectionError):
                await client.send({'type': 'PING'})
            return received, after_close, again

        received, after_close, again = asyncio.run(scenario())

        assert received == {'type': 'PING'}
        assert after_close is None
        assert again is None
