from app.mentions.harvester import MentionHarvester, MessageSource, to_mention
from app.mentions.matcher import is_mention
from app.mentions.names import resolve_display_name

__all__ = [
    "MentionHarvester",
    "MessageSource",
    "to_mention",
    "is_mention",
    "resolve_display_name",
]
