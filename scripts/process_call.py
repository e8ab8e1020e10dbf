"""
CLI tool to process one call's transcript by hand.

Useful when a webhook was missed and the call fell outside the sweep
windows. Arguments starting with ``conv_`` are treated as conversation
IDs, anything else as a call ID.

Usage:
    python scripts/process_call.py <call_id | conv_...>
"""

import argparse
import asyncio
import json
import os
import sys

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from dotenv import load_dotenv
load_dotenv(".env.local")

from claimchaser.exceptions import ClaimChaserError
from claimchaser.logging_config import setup_logging, get_logger
from claimchaser.services.call_orchestrator import open_orchestrator

setup_logging()
logger = get_logger(__name__)


def split_identifier(value: str) -> tuple[str | None, str | None]:
    """Return (conversation_id, call_id) for a CLI argument."""
    if value.startswith("conv_"):
        return value, None
    return None, value


async def process_call(identifier: str) -> int:
    conversation_id, call_id = split_identifier(identifier)

    async with open_orchestrator() as orchestrator:
        try:
            result = await orchestrator.process_transcript(conversation_id, call_id)
        except ClaimChaserError as e:
            print(f"Processing failed: {e.message}")
            return 1

    print(f"Processed conversation {result.conversation_id}")
    print(f"  call_id:  {result.call_id}")
    print(f"  claim_id: {result.claim_id or 'unresolved'}")
    print(json.dumps(result.extracted_data.model_dump(), indent=2))
    if result.inserted_reasons:
        print(f"  new denial reasons: {len(result.inserted_reasons)}")
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Process a completed call's transcript")
    parser.add_argument("identifier", help="Call UUID or ElevenLabs conversation ID (conv_...)")
    args = parser.parse_args()

    sys.exit(asyncio.run(process_call(args.identifier)))


if __name__ == "__main__":
    main()
