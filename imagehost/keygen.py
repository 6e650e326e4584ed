"""Print a fresh 256-bit encryption key for ENCRYPTION_KEY."""

import base64

from .crypto import generate_key


def main() -> None:
    encoded_key = base64.b64encode(generate_key()).decode("ascii")

    print("Generated 256-bit encryption key:")
    print(encoded_key)
    print("\nAdd this to your .env file:")
    print(f"ENCRYPTION_KEY={encoded_key}")


if __name__ == "__main__":
    main()
