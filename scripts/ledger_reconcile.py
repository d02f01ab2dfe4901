"""Fetch and print the balance-vs-ledger reconciliation report."""

import argparse
import json

import httpx


def main() -> None:
    """CLI entrypoint for reconciliation checks."""

    parser = argparse.ArgumentParser(description="Compare account balances with their ledger lines.")
    parser.add_argument("--ledger-url", default="http://localhost:8003")
    parser.add_argument("--limit", type=int, default=1000)
    parser.add_argument("--user-id", default=None, help="Reconcile one account instead of all")
    parser.add_argument("--fail-on-drift", action="store_true", help="Exit non-zero when any account drifted")
    args = parser.parse_args()

    if args.user_id:
        resp = httpx.get(f"{args.ledger_url}/reconciliation/{args.user_id}", timeout=10.0)
    else:
        resp = httpx.get(f"{args.ledger_url}/reconciliation", params={"limit": args.limit}, timeout=10.0)
    resp.raise_for_status()
    report = resp.json()
    print(json.dumps(report, indent=2))

    drifted = not report["balanced"] if args.user_id else report["drifted_count"] > 0
    if args.fail_on_drift and drifted:
        raise SystemExit(1)


if __name__ == "__main__":
    main()
