from .eligibility import should_proxy
from .log_channel import LogChannelService
from .matcher import PersonaMatcher, ProxyMatcher, ProxyTagParser
from .models import AutoproxyMode, MessageContext, MessageLink, ProxyMatch, ProxyMember, ProxyTag
from .service import ProxyService
from .webhooks import WebhookExecutor

__all__ = [
    "AutoproxyMode",
    "LogChannelService",
    "MessageContext",
    "MessageLink",
    "PersonaMatcher",
    "ProxyMatch",
    "ProxyMatcher",
    "ProxyMember",
    "ProxyService",
    "ProxyTag",
    "ProxyTagParser",
    "WebhookExecutor",
    "should_proxy",
]
