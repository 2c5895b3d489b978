#!/usr/bin/env python3
"""
issue_token.py
--------------

Mint a development identity token (signed with IDENTITY_SECRET).

USAGE:
  python scripts/issue_token.py p-1 alice
  python scripts/issue_token.py p-1 alice --ttl 3600 --register
"""

import argparse
import asyncio
import sys

from rankstream.core.database.service import DatabaseService
from rankstream.core.logging.logger import get_logger
from rankstream.database.models import Participant
from rankstream.modules.identity import IdentityVerifier, ParticipantRepository

logger = get_logger("rankstream.scripts.issue_token")


async def register(participant_id: str, display_name: str) -> bool:
    repo = ParticipantRepository(model_class=Participant, logger=logger)
    await DatabaseService.initialize()
    try:
        async with DatabaseService.get_transaction() as session:
            return await repo.register(session, participant_id, display_name)
    finally:
        await DatabaseService.shutdown()


def main() -> int:
    parser = argparse.ArgumentParser(description="Issue a participant identity token")
    parser.add_argument("participant_id")
    parser.add_argument("display_name")
    parser.add_argument("--ttl", type=int, default=None, help="lifetime in seconds")
    parser.add_argument(
        "--register",
        action="store_true",
        help="also create the participant row if it does not exist",
    )
    args = parser.parse_args()

    if args.register:
        try:
            created = asyncio.run(register(args.participant_id, args.display_name))
        except Exception as exc:
            logger.critical(f"Registration failed: {exc}", exc_info=True)
            return 1
        logger.info(
            "Participant registered" if created else "Participant already exists",
            extra={"participant_id": args.participant_id},
        )

    print(IdentityVerifier().issue(args.participant_id, args.display_name, args.ttl))
    return 0


if __name__ == "__main__":
    sys.exit(main())
