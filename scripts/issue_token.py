"""
Mint a bearer token for local development.

Usage:
    python scripts/issue_token.py "Budi Santoso" "Admin Logistik" --division Logistik
"""

import argparse
import os
import sys
from datetime import timedelta

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from assetdesk.core.permissions import ROLE_PERMISSIONS  # noqa: E402
from assetdesk.core.security import create_access_token  # noqa: E402


def main():
    parser = argparse.ArgumentParser(description=__doc__.strip().splitlines()[0])
    parser.add_argument("name", help="Display name, used as requester / approver")
    parser.add_argument("role", choices=sorted(ROLE_PERMISSIONS))
    parser.add_argument("--division")
    parser.add_argument("--minutes", type=int, default=None, help="Lifetime override")
    args = parser.parse_args()

    claims = {"sub": args.name, "role": args.role}
    if args.division:
        claims["division"] = args.division
    expires = timedelta(minutes=args.minutes) if args.minutes else None

    print(create_access_token(claims, expires_delta=expires))


if __name__ == "__main__":
    main()
