"""
CLI tool to dial the next eligible claim.

Claims are picked in the same order the automatic dialer uses: oldest
Denied, then oldest Pending Resubmission, then oldest never-called. The
voice toggle is ignored.

Usage:
    python scripts/make_call.py
"""

import asyncio
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


async def make_call() -> int:
    """Dispatch a single outbound call. Returns a process exit code."""
    async with open_orchestrator() as orchestrator:
        try:
            result = await orchestrator.start_call()
        except ClaimChaserError as e:
            print(f"Call dispatch failed: {e.message}")
            return 1

    call = result.call
    print(f"Call dispatched for claim {result.claim.id if result.claim else '?'}")
    if call:
        print(f"  call_id:         {call.id}")
        print(f"  conversation_id: {call.conversation_id}")
        print(f"  to_number:       {call.to_number}")
    return 0


def main() -> None:
    sys.exit(asyncio.run(make_call()))


if __name__ == "__main__":
    main()
