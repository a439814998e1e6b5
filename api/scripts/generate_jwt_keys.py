#!/usr/bin/env python3
"""
Generate an RS256 key pair for session and operator tokens.

Prints the PEM blocks and the matching environment variable lines.
"""

import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from services.auth import generate_dev_key_pair


def as_env_value(pem: str) -> str:
    return pem.strip().replace("\n", "\\n")


if __name__ == "__main__":
    private_key, public_key = generate_dev_key_pair()

    print("=== JWT PRIVATE KEY ===")
    print(private_key)
    print("=== JWT PUBLIC KEY ===")
    print(public_key)

    print("=== Environment Variables ===")
    print(f'JWT_PRIVATE_KEY="{as_env_value(private_key)}"')
    print(f'JWT_PUBLIC_KEY="{as_env_value(public_key)}"')
