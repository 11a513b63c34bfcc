from passkey_auth.db.models.passkey import PasskeyRecord

__all__ = ["PasskeyRecord"]
