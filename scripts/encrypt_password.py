import argparse

from db2Pool.utils import encrypt_password, generate_key


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Encrypt a Db2 password for the pool config")
    parser.add_argument("password", help="Plain-text password")
    parser.add_argument("key", nargs="?", help="Fernet key; a new one is generated if omitted")
    args = parser.parse_args()

    key = args.key
    if not key:
        key = generate_key()
        print(f"Generated key (set global_config.encryption_key): {key}")
    print(f"Encrypted password: {encrypt_password(args.password, key)}")
