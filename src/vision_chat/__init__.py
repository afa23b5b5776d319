"""Top-level package for vision-chat."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .attachments import AttachmentPipeline, LocalFile
    from .config import ensure_config_dir, load_config
    from .controller import RequestController
    from .conversation import ConversationStore
    from .errors import ErrorCode, ErrorKind, classify
    from .logging_utils import configure_logging
    from .models import Attachment, Cancelled, Completed, Failed, Message, Role
    from .session import ChatSession, build_session
    from .view import ChatView

__all__ = [
    "Attachment",
    "AttachmentPipeline",
    "Cancelled",
    "ChatSession",
    "ChatView",
    "Completed",
    "ConversationStore",
    "ErrorCode",
    "ErrorKind",
    "Failed",
    "LocalFile",
    "Message",
    "RequestController",
    "Role",
    "build_session",
    "classify",
    "configure_logging",
    "ensure_config_dir",
    "load_config",
]

_LAZY_IMPORTS: dict[str, str] = {
    "AttachmentPipeline": ".attachments",
    "LocalFile": ".attachments",
    "ensure_config_dir": ".config",
    "load_config": ".config",
    "RequestController": ".controller",
    "ConversationStore": ".conversation",
    "ErrorCode": ".errors",
    "ErrorKind": ".errors",
    "classify": ".errors",
    "configure_logging": ".logging_utils",
    "Attachment": ".models",
    "Cancelled": ".models",
    "Completed": ".models",
    "Failed": ".models",
    "Message": ".models",
    "Role": ".models",
    "ChatSession": ".session",
    "build_session": ".session",
    "ChatView": ".view",
}


def __getattr__(name: str) -> Any:
    """Lazily import public symbols so importing the package stays cheap."""
    module_name = _LAZY_IMPORTS.get(name)
    if module_name is None:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    from importlib import import_module

    return getattr(import_module(module_name, __name__), name)
