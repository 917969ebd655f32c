from .main import create_app, run
from .settings import Settings

__all__ = ["create_app", "run", "Settings"]
