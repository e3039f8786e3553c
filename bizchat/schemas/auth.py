from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class Identity(BaseModel):

    user_id: str
    issued_at: Optional[datetime] = None
