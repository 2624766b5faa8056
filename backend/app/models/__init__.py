from app.models.event import Event
from app.models.prompt import Prompt
from app.models.upload import Upload

__all__ = [
    "Event",
    "Prompt",
    "Upload",
]
