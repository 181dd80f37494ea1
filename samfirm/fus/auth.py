"""FUS ``Authorization`` header construction."""

from ..collaborators import CryptoProvider
from ..session import FusSession


def build_authorization(session: FusSession, crypto: CryptoProvider) -> str:
    """
    Build the header from the session's *current* nonce.

    The signature stays empty until a decrypted nonce exists; afterwards it
    is recomputed on every call so a rotated nonce is never signed stale.
    """
    signature = crypto.signature(session.nonce_decrypted) if session.nonce_decrypted else ""
    return (
        f'FUS nonce="{session.nonce}", signature="{signature}", '
        'nc="", type="", realm="", newauth="1"'
    )
