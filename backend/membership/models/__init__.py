from .user import User
from .session import UserSession
from .post import Post
from .attachment import Attachment


__all__ = ["User", "UserSession", "Post", "Attachment"]
