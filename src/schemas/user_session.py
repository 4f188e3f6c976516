from typing import Optional

from pydantic import BaseModel


class UserSession(BaseModel):
    """Authenticated identity handed over by the wallet/auth layer.

    Only ``is_user_signed_in`` and the storage key material are consumed here,
    sign-in itself happens elsewhere.
    """

    identity: Optional[str] = None
    app_private_key: Optional[str] = None
    stx_address: Optional[str] = None

    def is_user_signed_in(self) -> bool:
        return bool(self.identity and self.app_private_key)
