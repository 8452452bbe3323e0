import enum


class ChannelType(str, enum.Enum):
    text = "text"
    voice = "voice"
