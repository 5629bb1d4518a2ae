from models.base import Base, async_session, engine, get_session
from models.equipment import EquipmentModel, Oem, ProductLine, SavedUnit
from models.manual import Manual, ManualSection, ManualStatus, SectionType
from models.chat import ChatSession, QuestionRecord

__all__ = [
    "Base",
    "async_session",
    "engine",
    "get_session",
    "Oem",
    "ProductLine",
    "EquipmentModel",
    "SavedUnit",
    "Manual",
    "ManualSection",
    "ManualStatus",
    "SectionType",
    "ChatSession",
    "QuestionRecord",
]
