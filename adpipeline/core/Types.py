from enum import Enum, auto


class PortDirection(Enum):
    INPUT = auto()
    OUTPUT = auto()


class BlockCategory(Enum):
    SPY = "spy"          # data collection
    BRAIN = "brain"      # logic & writing
    FACTORY = "factory"  # generation
    MANAGER = "manager"  # actions


class FieldKind(Enum):
    TEXT = "text"
    TEXTAREA = "textarea"
    SELECT = "select"
    IMAGE = "image"
    MODEL_VIDEO = "model-video"
    MODEL_LLM = "model-llm"
    MODEL_SCRAPER = "model-scraper"

    def isModelChoice(self) -> bool:
        return self in (FieldKind.MODEL_VIDEO, FieldKind.MODEL_LLM, FieldKind.MODEL_SCRAPER)

    def isChoice(self) -> bool:
        return self == FieldKind.SELECT or self.isModelChoice()


class NodeStatus(Enum):
    IDLE = "idle"
    RUNNING = "running"
    DONE = "done"
    ERROR = "error"


class MediaKind(Enum):
    IMAGE = "image"
    VIDEO = "video"

    @staticmethod
    def guess(url: str) -> 'MediaKind':
        # Matches the checks the editor uses when previewing an exported file
        lowered = url.lower()
        if ".mp4" in lowered or ".webm" in lowered or ".mov" in lowered or "video" in lowered:
            return MediaKind.VIDEO
        return MediaKind.IMAGE


# Discriminant values carried in an output bundle's "type" key
RESULT_TYPE_TEXT = "text"
RESULT_TYPE_IMAGE = "image"
RESULT_TYPE_VIDEO = "video"
RESULT_TYPE_DOWNLOAD = "download"
RESULT_TYPE_ERROR = "error"
