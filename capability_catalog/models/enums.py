from enum import Enum

class AuthenticationType(str, Enum):
    NONE = "None"
    API_KEY = "ApiKey"
    OAUTH2 = "OAuth2.0"
    BASIC = "Basic"
    CUSTOM = "Custom"

class CapabilityType(str, Enum):
    LOCAL = "local"
    FUNCTION = "function"
    CORE = "core"
    REMOTE = "remote"
