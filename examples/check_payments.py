"""Incoming payment check example.

This script demonstrates how to use esploracli to list the payments an
address has received, with confirmation counts.
"""

import json
import subprocess
import sys


def main():
    """List incoming payments for the address given on the command line."""
    if len(sys.argv) != 2:
        print("Usage: python check_payments.py <testnet-address>")
        sys.exit(1)

    address = sys.argv[1]
    print(f"Checking incoming payments for {address}...")

    result = subprocess.run(
        ["esploracli", "--quiet", "payments", address, "--format", "json"],
        capture_output=True,
        text=True
    )

    if result.returncode != 0:
        print(f"Error (exit {result.returncode}): {result.stderr}")
        return

    data = json.loads(result.stdout)

    print(f"\nTip height: {data['tip_height']}")
    print(f"Payments found: {len(data['payments'])}")

    for payment in data["payments"]:
        state = f"{payment['confirmations']} conf" if payment["confirmations"] else "mempool"
        print(f"  • {payment['txid'][:16]}...  {payment['amount_btc']} BTC  ({state})")


if __name__ == "__main__":
    main()
