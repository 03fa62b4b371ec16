from pydantic import BaseModel
from enum import Enum
from typing import Optional


class SessionEventType(str, Enum):
    start = "start"
    end = "end"
    user_speech_start = "user_speech_start"
    user_speech_end = "user_speech_end"
    ai_speech_start = "ai_speech_start"
    ai_speech_end = "ai_speech_end"
    message = "message"


class SessionEvent(BaseModel):
    """A client event on the conversation socket."""
    type: SessionEventType
    title: Optional[str] = None     # start
    text: Optional[str] = None      # message
    is_user: bool = True            # message
