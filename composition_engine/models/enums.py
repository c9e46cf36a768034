from enum import Enum

class CapabilityScope(str, Enum):
    PLATFORM = "platform"
    APP_SPECIFIC = "app-specific"

class CapabilityVisibility(str, Enum):
    INTERNAL = "internal"
    PARTNER = "partner"
    PUBLIC = "public"

class PolicyEffect(str, Enum):
    ALLOW = "allow"
    DENY = "deny"

class PolicyStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    SUPERSEDED = "superseded"

class PolicyLayer(str, Enum):
    DEFAULT = "default"
    TENANT = "tenant"

class IntegrationType(str, Enum):
    API = "api"
    WEBHOOK = "webhook"
    MCP = "mcp"
    WORKFLOW = "workflow"

class TenantIntegrationKind(str, Enum):
    WORKFLOW = "workflow"
    SECRET = "secret"

class Slot(str, Enum):
    HEADER = "header"
    SIDEBAR = "sidebar"
    MAIN = "main"
    MODAL = "modal"
    INLINE = "inline"
    FLOATING = "floating"
    FOOTER = "footer"
