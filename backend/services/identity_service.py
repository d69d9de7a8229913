import logging
import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from models.game import Game, _utcnow

logger = logging.getLogger(__name__)


class AnonymousUser(BaseModel):
    uid: str = Field(default_factory=lambda: uuid.uuid4().hex)
    created_at: datetime = Field(default_factory=_utcnow)


class IdentityService:
    """
    Anonymous identity for one client. Sign-in happens once; afterwards the
    same uid is returned, and that uid is what admin checks compare against
    the game's creator_id.
    """

    def __init__(self, user: Optional[AnonymousUser] = None):
        self._user = user

    def get_current_user(self) -> Optional[AnonymousUser]:
        return self._user

    async def sign_in_anonymously(self) -> AnonymousUser:
        if self._user is None:
            self._user = AnonymousUser()
            logger.info(f"Signed in anonymously as {self._user.uid}")
        return self._user

    def is_admin(self, game: Game) -> bool:
        return self._user is not None and self._user.uid == game.creator_id
