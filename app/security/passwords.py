from pwdlib import PasswordHash


password_hash = PasswordHash.recommended()


def hash_pin(raw_pin: str) -> str:
    return password_hash.hash(raw_pin)


def verify_pin(raw_pin: str, pin_hash: str | None) -> bool:
    if not raw_pin or not pin_hash:
        return False
    return password_hash.verify(raw_pin, pin_hash)
