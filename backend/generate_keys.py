"""Generate JWT_SECRET and TOKEN_ENCRYPTION_KEY and write them into .env.

Reads .env.template, fills in the two keys and writes .env.
"""

import os
import secrets

from cryptography.fernet import Fernet

TEMPLATE_PATH = ".env.template"
ENV_PATH = ".env"


def main():
    jwt_secret = secrets.token_urlsafe(32)
    fernet_key = Fernet.generate_key().decode()

    print(f"Generated JWT_SECRET: {jwt_secret}")
    print(f"Generated TOKEN_ENCRYPTION_KEY: {fernet_key}")

    if not os.path.exists(TEMPLATE_PATH):
        print(f"Error: {TEMPLATE_PATH} not found. Please ensure it exists.")
        return

    with open(TEMPLATE_PATH, "r") as f:
        lines = f.read().splitlines()

    new_lines = []
    for line in lines:
        if line.startswith("JWT_SECRET="):
            new_lines.append(f"JWT_SECRET={jwt_secret}")
        elif line.startswith("TOKEN_ENCRYPTION_KEY="):
            new_lines.append(f"TOKEN_ENCRYPTION_KEY={fernet_key}")
        else:
            new_lines.append(line)

    with open(ENV_PATH, "w") as f:
        f.write("\n".join(new_lines) + "\n")

    print(f"Successfully wrote to {ENV_PATH}")


if __name__ == "__main__":
    main()
