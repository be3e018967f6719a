"""Send an STK push from the command line and follow it to a final status.

    python scripts/pay.py 0712345678 50 --base-url http://localhost:8000
"""
from __future__ import annotations

import argparse
import asyncio
import sys

from dotenv import load_dotenv

load_dotenv()

from app.client import Notification, PaymentApiClient, PaymentForm, PollOutcome  # noqa: E402
from app.core.logging import setup_logging  # noqa: E402


def _print_notification(notification: Notification) -> None:
    marker = "!!" if notification.variant == "destructive" else "=>"
    print(f"{marker} {notification.title}: {notification.description}")


async def _pay(base_url: str, phone_number: str, amount: str) -> int:
    async with PaymentApiClient(base_url) as api, PaymentForm(api, _print_notification) as form:
        result = await form.submit(phone_number, amount)
        if not result.success:
            return 1
        print(f"Waiting for payment {result.payment_id} (checkout {result.checkout_request_id})...")
        assert form.active_poll is not None
        outcome = await form.active_poll.wait()
        return 0 if outcome is PollOutcome.COMPLETED else 2


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("phone_number")
    parser.add_argument("amount")
    parser.add_argument("--base-url", default="http://localhost:8000")
    parser.add_argument("--log-level", default="WARNING")
    args = parser.parse_args(argv)

    setup_logging(args.log_level)
    try:
        return asyncio.run(_pay(args.base_url, args.phone_number, args.amount))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
