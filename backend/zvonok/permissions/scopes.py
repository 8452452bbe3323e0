from enum import Enum


class ScopeKind(str, Enum):
    SERVER = "server"
    FOLDER = "folder"
    CHANNEL = "channel"
