"""
API Key Generation Script

Prints a new shared secret for a master site. Set it as ``SYNC_API_KEY`` on
the master, give it to each client as ``SYNC_MASTER_API_KEY`` and restart
both; the previous key stops working once the master restarts.

    python -m scripts.generate_api_key
"""
from coursesync.utils.auth import generate_api_key


def main():
    key = generate_api_key()
    print(key)
    print(f"\nSYNC_API_KEY={key}")


if __name__ == "__main__":
    main()
