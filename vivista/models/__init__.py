from vivista.models.user import User
from vivista.models.session import UserSession
from vivista.models.video import VideoAsset, ExtraFile

__all__ = ["User", "UserSession", "VideoAsset", "ExtraFile"]
