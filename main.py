#!/usr/bin/env python3
"""
Bill Extraction System - Main Entry Point.

This is the main entry point for the bill extraction system. It
provides a command-line interface and programmatic access to the
extraction pipeline.

Usage:
    Command Line:
        python main.py --input bill.pdf --output results.json
        python main.py --input ./bills/ --language hu --chunk-size 65536

    Python:
        from main import run_extraction
        results = run_extraction(["bill.pdf"])

Author: ML Engineering Team
Version: 1.0.0
"""

import argparse
import asyncio
import json
import math
import sys
from pathlib import Path
from typing import Optional, List, Dict, Any

# Add project root to path for imports
PROJECT_ROOT = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))

# Import project modules
from config import ConfigurationManager
from bill_extraction.utils.logger import setup_logger_from_config, get_logger, set_level
from bill_extraction.utils.helpers import ensure_directory, get_file_extension

SUPPORTED_EXTENSIONS = {'.pdf', '.txt', '.eml'}


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Returns:
        Parsed argument namespace.
    """
    parser = argparse.ArgumentParser(
        description="Multilingual Bill Extraction System",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    Process a single bill:
        python main.py --input bill.pdf --output results.json

    Process a directory of Hungarian bills:
        python main.py --input ./bills/ --language hu

    Route documents through the chunked transfer protocol:
        python main.py --input bill.pdf --chunk-size 65536
        """
    )

    # Input/Output arguments
    parser.add_argument(
        "--input", "-i",
        type=str,
        nargs="+",
        required=True,
        help="Input file(s) or directory containing bills"
    )

    parser.add_argument(
        "--output", "-o",
        type=str,
        default=None,
        help="Write results as JSON to this file (default: print to stdout)"
    )

    # Extraction options
    parser.add_argument(
        "--language", "-l",
        type=str,
        default=None,
        help="Language hint (en, hu); detected when omitted"
    )

    parser.add_argument(
        "--subject", "-s",
        type=str,
        default=None,
        help="Email subject used to select bill patterns"
    )

    parser.add_argument(
        "--chunk-size",
        type=int,
        default=None,
        help="Send documents through the chunked transfer protocol in chunks of this many bytes"
    )

    parser.add_argument(
        "--config", "-c",
        type=str,
        default=None,
        help="Path to custom configuration file"
    )

    # Logging options
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging"
    )

    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Only log warnings and errors"
    )

    return parser.parse_args(argv)


def initialize_system(args: argparse.Namespace) -> ConfigurationManager:
    """
    Initialize the extraction system with configuration and logging.

    Args:
        args: Parsed command-line arguments.

    Returns:
        Initialized configuration manager.
    """
    # Load configuration (user file merged over the bundled defaults)
    config = ConfigurationManager.load(args.config)

    # Results go to stdout unless --output is given, so log to stderr then
    logger = setup_logger_from_config(stream=sys.stdout if args.output else sys.stderr)

    if args.debug:
        set_level("DEBUG")
    elif args.quiet:
        set_level("WARNING")

    logger.info("=" * 60)
    logger.info("BILL EXTRACTION SYSTEM")
    logger.info("=" * 60)
    logger.info(f"Version: {config.get('project.version', '1.0.0')}")
    logger.info(f"Input: {', '.join(args.input)}")
    logger.info(f"Output: {args.output or 'stdout'}")

    return config


def validate_inputs(inputs: List[str]) -> List[Path]:
    """
    Validate input files/directories and return the files to process.

    Args:
        inputs: Input files or directories.

    Returns:
        List of valid input file paths.

    Raises:
        FileNotFoundError: If an input path doesn't exist.
        ValueError: If an input file has an unsupported type.
    """
    logger = get_logger(__name__)
    files: List[Path] = []

    for item in inputs:
        input_path = Path(item)
        if not input_path.exists():
            raise FileNotFoundError(f"Input path not found: {input_path}")

        if input_path.is_file():
            if get_file_extension(input_path) not in SUPPORTED_EXTENSIONS:
                raise ValueError(f"Unsupported file type: {input_path.suffix}")
            files.append(input_path)
            continue

        found = sorted(
            p for p in input_path.iterdir()
            if p.is_file() and get_file_extension(p) in SUPPORTED_EXTENSIONS
        )
        if not found:
            logger.warning(f"No supported files found in: {input_path}")
        else:
            logger.info(f"Found {len(found)} files in {input_path}")
        files.extend(found)

    return files


async def _send_chunked(
    handler,
    data: bytes,
    file_name: str,
    chunk_size: int,
    language: Optional[str],
    subject: Optional[str]
) -> Dict[str, Any]:
    """Push one document through the chunked protocol over an in-process channel."""
    from bill_extraction.protocol import create_channel_pair

    client, server = create_channel_pair()
    server_task = asyncio.create_task(handler.serve(server, name=file_name))

    total_chunks = max(1, math.ceil(len(data) / chunk_size))
    await client.send({
        'type': 'INIT_PDF_TRANSFER',
        'totalChunks': total_chunks,
        'fileName': file_name,
        'fileSize': len(data),
        'language': language,
        'extractBillData': True,
    })
    response = await client.receive()
    if not response.get('success'):
        await client.close()
        await server_task
        return response

    transfer_id = response['transferId']
    for index in range(total_chunks):
        await client.send({
            'type': 'PDF_CHUNK',
            'transferId': transfer_id,
            'chunkIndex': index,
            'chunk': data[index * chunk_size:(index + 1) * chunk_size],
        })
        response = await client.receive()
        if not response.get('success'):
            await client.close()
            await server_task
            return response

    await client.send({'type': 'COMPLETE_PDF_TRANSFER', 'transferId': transfer_id, 'subject': subject})
    response = await client.receive()
    await client.close()
    await server_task
    return response


def run_extraction(
    input_files: List[Path],
    language: Optional[str] = None,
    subject: Optional[str] = None,
    chunk_size: Optional[int] = None
) -> List[Dict[str, Any]]:
    """
    Run the bill extraction pipeline over files.

    Args:
        input_files: Documents to process.
        language: Language hint; detected when None.
        subject: Subject used for pattern selection.
        chunk_size: Route documents through the chunked protocol
                    in chunks of this size when given.

    Returns:
        One protocol response dictionary per file, with its file name.

    Example:
        >>> results = run_extraction([Path("bill.pdf")])
        >>> results[0]['bills'][0]['fields']['amount']
        6364.0
    """
    logger = get_logger(__name__)

    # Import pipeline components
    from bill_extraction.extraction import build_orchestrator
    from bill_extraction.protocol import DocumentHandler

    logger.info("Initializing pipeline components...")
    orchestrator = build_orchestrator()
    handler = DocumentHandler(orchestrator)

    async def process_all() -> List[Dict[str, Any]]:
        responses = []
        for file_path in input_files:
            logger.info(f"Processing: {file_path.name}")
            data = file_path.read_bytes()
            if chunk_size:
                response = await _send_chunked(
                    handler, data, file_path.name, chunk_size, language, subject
                )
            else:
                response = await handler.handle({
                    'type': 'PROCESS_DOCUMENT',
                    'data': data,
                    'fileName': file_path.name,
                    'language': language,
                    'subject': subject,
                })
            response['fileName'] = file_path.name

            if response.get('success'):
                for bill in response.get('bills', []):
                    fields = bill['fields']
                    logger.info(
                        f"  Bill: amount={fields.get('amount')}, due={fields.get('due_date')}, "
                        f"vendor={fields.get('vendor') or 'N/A'}, "
                        f"confidence={bill['confidence']:.2f}"
                    )
            else:
                logger.warning(f"  {file_path.name}: {response.get('error')}")
            responses.append(response)
        return responses

    try:
        return asyncio.run(process_all())
    finally:
        orchestrator.close()


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main function - entry point for command-line execution.

    Returns:
        Exit code (0 when every document yielded a bill, 1 otherwise).
    """
    try:
        # Parse command-line arguments
        args = parse_arguments(argv)

        # Initialize system
        initialize_system(args)
        logger = get_logger(__name__)

        if args.chunk_size is not None and args.chunk_size < 1:
            raise ValueError("--chunk-size must be positive")

        # Validate inputs
        input_files = validate_inputs(args.input)

        if not input_files:
            logger.error("No files to process")
            return 1

        # Run extraction
        results = run_extraction(
            input_files,
            language=args.language,
            subject=args.subject,
            chunk_size=args.chunk_size
        )

        for result in results:
            result.pop('text', None)
        payload = json.dumps(results, indent=2, ensure_ascii=False, default=str)

        if args.output:
            output_path = Path(args.output)
            ensure_directory(output_path.parent)
            output_path.write_text(payload, encoding='utf-8')
            logger.info(f"Results written to {output_path}")
        else:
            print(payload)

        succeeded = sum(1 for r in results if r.get('success'))
        logger.info("=" * 60)
        logger.info(f"Extraction complete. {succeeded}/{len(results)} documents with bill data.")
        logger.info("=" * 60)

        return 0 if succeeded == len(results) else 1

    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    except KeyboardInterrupt:
        print("\nOperation cancelled by user")
        return 130


if __name__ == "__main__":
    sys.exit(main())
