from enum import Enum

class ConnectionStatus(str, Enum):
    pending = "pending"
    accepted = "accepted"
    rejected = "rejected"

class MessageType(str, Enum):
    text = "text"
    emoji = "emoji"
    image = "image"
    file = "file"
